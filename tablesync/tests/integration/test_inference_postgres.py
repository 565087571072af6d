from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import text

from tablesync.core.errors import LoadFailureError, NameCollisionError
from tablesync.persistence.catalog import PostgresSchemaCatalog
from tablesync.persistence.db import SessionLocal
from tablesync.persistence.store import SqlAlchemyTableStore
from tablesync.services.inference import import_csv
from tablesync.tests.utils.fakes import write_csv


async def _column_types(table: str) -> list[tuple[str, str]]:
    async with SessionLocal() as session:
        result = await session.execute(
            text(
                "SELECT column_name, data_type FROM information_schema.columns "
                "WHERE table_schema = 'public' AND table_name = :table ORDER BY ordinal_position"
            ),
            {"table": table},
        )
        return [(str(name), str(data_type)) for name, data_type in result.all()]


async def _table_exists(table: str) -> bool:
    async with SessionLocal() as session:
        result = await session.execute(text("SELECT to_regclass(:name) IS NOT NULL"), {"name": f"public.{table}"})
        return bool(result.scalar())


@pytest.mark.asyncio
async def test_import_creates_text_columns_and_loads_rows(table_name: str, csv_dir: Path) -> None:
    path = write_csv(csv_dir / "people.csv", ["id,name,age", "1,Ann,30", "2,Bob,41", '3,"Smith, Jo",52'])

    async with SessionLocal() as session:
        result = await import_csv(SqlAlchemyTableStore(session), path, table_name=table_name, schema="public")

    assert result.rows_loaded == 3
    assert await _column_types(table_name) == [("id", "text"), ("name", "text"), ("age", "text")]
    async with SessionLocal() as session:
        assert await PostgresSchemaCatalog(session).columns("public", table_name) == ["id", "name", "age"]
        count = await session.execute(text(f'SELECT count(*) FROM "public"."{table_name}"'))
        assert count.scalar() == 3


@pytest.mark.asyncio
async def test_malformed_row_leaves_no_table(table_name: str, csv_dir: Path) -> None:
    path = write_csv(csv_dir / "broken.csv", ["id,name,age", "1,Ann,30", "2,Bob,41,extra"])

    async with SessionLocal() as session:
        with pytest.raises(LoadFailureError):
            await import_csv(SqlAlchemyTableStore(session), path, table_name=table_name, schema="public")

    assert not await _table_exists(table_name)


@pytest.mark.asyncio
async def test_existing_table_collides_unless_dropped(table_name: str, csv_dir: Path) -> None:
    path = write_csv(csv_dir / "people.csv", ["id,name", "1,Ann"])
    async with SessionLocal() as session:
        await import_csv(SqlAlchemyTableStore(session), path, table_name=table_name, schema="public")

    async with SessionLocal() as session:
        with pytest.raises(NameCollisionError):
            await import_csv(SqlAlchemyTableStore(session), path, table_name=table_name, schema="public")

    replacement = write_csv(csv_dir / "people_v2.csv", ["id,name,email", "1,Ann,a@x", "2,Bob,b@x"])
    async with SessionLocal() as session:
        result = await import_csv(
            SqlAlchemyTableStore(session),
            replacement,
            table_name=table_name,
            schema="public",
            drop_if_exists=True,
        )
    assert result.rows_loaded == 2
    assert [name for name, _ in await _column_types(table_name)] == ["id", "name", "email"]
