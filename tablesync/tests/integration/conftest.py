from __future__ import annotations

from pathlib import Path
from uuid import uuid4

import pytest
from sqlalchemy import text

from tablesync.domain.models import Base
from tablesync.persistence.db import SessionLocal, engine
from tablesync.persistence.statements import drop_table
from tablesync.persistence.store import SqlAlchemyTableStore
from tablesync.services.capture import ChangeCaptureRecorder


@pytest.fixture(autouse=True)
async def dispose_engine_between_tests() -> None:
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    yield
    await engine.dispose()


@pytest.fixture
async def database() -> None:
    # Integration tests need a real PostgreSQL; skip cleanly when none is configured.
    try:
        async with engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
    except Exception as exc:  # noqa: BLE001 - any connect failure means "no database here"
        pytest.skip(f"PostgreSQL unavailable: {exc}")
    async with SessionLocal() as session:
        await ChangeCaptureRecorder().install(SqlAlchemyTableStore(session))
        await session.commit()


@pytest.fixture
async def table_name(database: None) -> str:
    # Unique table per test keeps audit rows and data isolated without deleting audit history.
    name = f"t_{uuid4().hex[:12]}"
    yield name
    async with SessionLocal() as session:
        await session.execute(text(drop_table(name, "public")))
        await session.commit()


@pytest.fixture
def csv_dir(tmp_path: Path) -> Path:
    return tmp_path
