from __future__ import annotations

from pathlib import Path

import asyncpg
import pytest

from tablesync.core.errors import InvalidInputError, LoadFailureError
from tablesync.persistence.bulk import copy_file_into
from tablesync.tests.utils.fakes import write_csv


class _FakeDriver:
    def __init__(self, *, status: str = "COPY 0", error: BaseException | None = None) -> None:
        self.status = status
        self.error = error
        self.calls: list[dict[str, object]] = []

    async def copy_to_table(self, table: str, **kwargs: object) -> str:
        self.calls.append({"table": table, **kwargs})
        if self.error is not None:
            raise self.error
        return self.status


class _FakeRaw:
    def __init__(self, driver: _FakeDriver) -> None:
        self.driver_connection = driver


class _FakeConnection:
    def __init__(self, driver: _FakeDriver) -> None:
        self._raw = _FakeRaw(driver)

    async def get_raw_connection(self) -> _FakeRaw:
        return self._raw


@pytest.fixture
def extract(tmp_path: Path) -> Path:
    return write_csv(tmp_path / "x.csv", ["id,name", "1,Ann"])


@pytest.mark.asyncio
async def test_copy_returns_rows_from_command_tag(extract: Path) -> None:
    driver = _FakeDriver(status="COPY 1")

    rows = await copy_file_into(_FakeConnection(driver), "customer1", extract, delimiter=";", schema="public")

    assert rows == 1
    call = driver.calls[0]
    assert call["table"] == "customer1"
    assert call["schema_name"] == "public"
    assert call["delimiter"] == ";"
    assert call["header"] is True
    assert call["format"] == "csv"


@pytest.mark.asyncio
async def test_unreadable_file_is_invalid_input(tmp_path: Path) -> None:
    driver = _FakeDriver()

    with pytest.raises(InvalidInputError):
        await copy_file_into(_FakeConnection(driver), "customer1", tmp_path / "missing.csv")

    assert driver.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [TimeoutError(), ConnectionResetError("reset by peer")])
async def test_timeouts_and_socket_errors_keep_their_type(extract: Path, error: OSError) -> None:
    driver = _FakeDriver(error=error)

    with pytest.raises(type(error)):
        await copy_file_into(_FakeConnection(driver), "customer1", extract, timeout=0.01)


@pytest.mark.asyncio
async def test_rejected_row_is_load_failure(extract: Path) -> None:
    driver = _FakeDriver(error=asyncpg.exceptions.BadCopyFileFormatError("extra data after last expected column"))

    with pytest.raises(LoadFailureError) as excinfo:
        await copy_file_into(_FakeConnection(driver), "customer1", extract)

    assert isinstance(excinfo.value.__cause__, asyncpg.exceptions.BadCopyFileFormatError)


@pytest.mark.asyncio
async def test_other_server_errors_propagate(extract: Path) -> None:
    driver = _FakeDriver(error=asyncpg.exceptions.InsufficientPrivilegeError("permission denied"))

    with pytest.raises(asyncpg.exceptions.InsufficientPrivilegeError):
        await copy_file_into(_FakeConnection(driver), "customer1", extract)
