from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
import logging
from pathlib import Path
from typing import AsyncIterator
from uuid import uuid4

from tablesync.core.config import get_settings
from tablesync.core.errors import ConflictTargetMissingError, InvalidInputError
from tablesync.persistence.catalog import SchemaCatalog
from tablesync.persistence.statements import (
    create_staging_like,
    drop_table,
    merge_update_columns,
    upsert_from_staging,
    validate_identifier,
)
from tablesync.persistence.store import TableStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpsertPlan:
    schema: str
    table: str
    key_column: str
    columns: list[str]
    update_columns: list[str]
    staging_table: str
    statement: str


@dataclass(frozen=True)
class UpsertResult:
    schema: str
    table: str
    rows_staged: int
    rows_merged: int


def staging_table_name(prefix: str | None = None) -> str:
    # Random suffix keeps concurrent upserts on the same target from colliding.
    prefix = prefix or get_settings().staging_table_prefix
    return validate_identifier(f"{prefix}_{uuid4().hex[:12]}")


async def build_plan(
    catalog: SchemaCatalog,
    *,
    schema: str,
    table: str,
    key_column: str,
    staging_table: str,
) -> UpsertPlan:
    """Build the merge for ``schema.table`` from the live catalog.

    The target's column list, not the staged file, decides which columns are
    inserted and updated.
    """
    columns = await catalog.columns(schema, table)
    if not columns:
        raise InvalidInputError(f"Table {schema}.{table} does not exist or has no columns")
    if key_column not in columns:
        raise ConflictTargetMissingError(f"Key column {key_column} is not a column of {schema}.{table}")
    statement = upsert_from_staging(
        schema=schema,
        table=table,
        staging=staging_table,
        columns=columns,
        key_column=key_column,
    )
    return UpsertPlan(
        schema=schema,
        table=table,
        key_column=key_column,
        columns=columns,
        update_columns=merge_update_columns(columns, key_column),
        staging_table=staging_table,
        statement=statement,
    )


async def _preflight(catalog: SchemaCatalog, *, schema: str, table: str, key_column: str) -> None:
    # Fail before staging anything; the merge would otherwise only fail after a full copy.
    if not await catalog.columns(schema, table):
        raise InvalidInputError(f"Table {schema}.{table} does not exist")
    if not await catalog.has_unique_key(schema, table, key_column):
        raise ConflictTargetMissingError(
            f"{schema}.{table}.{key_column} has no single-column unique constraint to upsert on"
        )


async def _drop_after_failure(store: TableStore, staging: str, error: BaseException) -> None:
    try:
        await store.execute(drop_table(staging))
    except Exception as exc:  # noqa: BLE001 - keep the original failure visible
        logger.error("upsert_staging_drop_failed staging=%s error=%s", staging, exc, exc_info=exc)
        error.add_note(f"dropping staging table {staging} failed: {exc}")


@asynccontextmanager
async def staging_table(store: TableStore, *, schema: str, table: str) -> AsyncIterator[str]:
    """Create a temp copy of the target's structure and always drop it again.

    Work done with the staging table runs inside a savepoint, so after a
    failed load or merge the surrounding transaction is still usable for the
    drop.
    """
    name = staging_table_name()
    await store.execute(create_staging_like(name, schema, table))
    try:
        async with store.savepoint():
            yield name
    except BaseException as exc:
        await _drop_after_failure(store, name, exc)
        raise
    await store.execute(drop_table(name))


async def upsert_csv(
    store: TableStore,
    catalog: SchemaCatalog,
    *,
    schema: str | None = None,
    table: str,
    key_column: str,
    path: str | Path,
    delimiter: str | None = None,
) -> UpsertResult:
    """Merge the rows of ``path`` into ``schema.table`` keyed by ``key_column``.

    Existing keys get every non-key column overwritten with the incoming
    value; new keys are inserted. The caller owns the transaction and commits.
    """
    settings = get_settings()
    schema = validate_identifier(schema or settings.default_schema)
    validate_identifier(table)
    validate_identifier(key_column)
    delimiter = delimiter or settings.default_delimiter

    await _preflight(catalog, schema=schema, table=table, key_column=key_column)

    async with staging_table(store, schema=schema, table=table) as staging:
        staged = await store.copy_from_file(staging, path, delimiter=delimiter)
        plan = await build_plan(
            catalog,
            schema=schema,
            table=table,
            key_column=key_column,
            staging_table=staging,
        )
        merged = await store.execute(plan.statement)

    logger.info(
        "csv_upsert_completed table=%s.%s key=%s staged=%s merged=%s",
        schema,
        table,
        key_column,
        staged,
        merged,
    )
    return UpsertResult(schema=schema, table=table, rows_staged=staged, rows_merged=merged)
