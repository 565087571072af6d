from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncContextManager, AsyncIterator, Protocol

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from tablesync.core.config import get_settings
from tablesync.core.errors import (
    AuditWriteFailureError,
    ConflictTargetMissingError,
    NameCollisionError,
    TableSyncError,
)
from tablesync.persistence.bulk import copy_file_into


# Raised by the capture trigger when the audit insert fails.
AUDIT_WRITE_FAILURE_SQLSTATE = "AU001"

_SQLSTATE_ERRORS: dict[str, type[TableSyncError]] = {
    "42P07": NameCollisionError,
    "42P10": ConflictTargetMissingError,
    AUDIT_WRITE_FAILURE_SQLSTATE: AuditWriteFailureError,
}


class TableStore(Protocol):
    # Capabilities the inference engine, upsert planner and recorder need from a store.
    async def execute(self, statement: str) -> int:
        ...

    async def copy_from_file(
        self,
        table: str,
        path: str | Path,
        *,
        delimiter: str,
        schema: str | None = None,
    ) -> int:
        ...

    def savepoint(self) -> AsyncContextManager[None]:
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...


def sqlstate_of(exc: BaseException) -> str | None:
    # The asyncpg adapter exposes the server code on the wrapped DBAPI error.
    orig = getattr(exc, "orig", None)
    for candidate in (orig, getattr(orig, "__cause__", None), exc):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


def translate_error(exc: DBAPIError) -> TableSyncError | None:
    error_type = _SQLSTATE_ERRORS.get(sqlstate_of(exc) or "")
    if error_type is None:
        return None
    return error_type(str(getattr(exc, "orig", None) or exc))


class SqlAlchemyTableStore:
    """TableStore backed by an ``AsyncSession`` on the asyncpg driver.

    DDL and DML run through the session; COPY runs on the session's own
    connection so it shares the open transaction. Errors with a known SQLSTATE
    are re-raised as tablesync errors chained to the original.
    """

    def __init__(self, session: AsyncSession, *, copy_timeout_s: float | None = None) -> None:
        self.session = session
        if copy_timeout_s is None:
            copy_timeout_s = get_settings().copy_timeout_s
        self._copy_timeout = copy_timeout_s or None

    async def execute(self, statement: str) -> int:
        try:
            result = await self.session.execute(text(statement))
        except DBAPIError as exc:
            translated = translate_error(exc)
            if translated is not None:
                raise translated from exc
            raise
        rowcount = getattr(result, "rowcount", -1)
        return int(rowcount) if rowcount is not None else -1

    async def copy_from_file(
        self,
        table: str,
        path: str | Path,
        *,
        delimiter: str,
        schema: str | None = None,
    ) -> int:
        connection = await self.session.connection()
        return await copy_file_into(
            connection,
            table,
            path,
            delimiter=delimiter,
            schema=schema,
            timeout=self._copy_timeout,
        )

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        async with self.session.begin_nested():
            yield

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
