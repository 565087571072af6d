from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path

from tablesync.core.config import get_settings
from tablesync.ingestion.headers import derive_table_name, sanitized_header
from tablesync.persistence.statements import (
    TableDefinition,
    create_table,
    drop_table,
    validate_identifier,
)
from tablesync.persistence.store import TableStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportResult:
    table: str
    schema: str | None
    columns: list[str]
    rows_loaded: int

    @property
    def message(self) -> str:
        return f'Table "{self.table}" created and data imported successfully.'


def build_table_definition(
    path: str | Path,
    *,
    table_name: str | None = None,
    delimiter: str = ",",
) -> TableDefinition:
    # An explicit name is used as given and must already be a valid identifier.
    name = validate_identifier(table_name) if table_name is not None else derive_table_name(path)
    return TableDefinition.from_names(name, sanitized_header(path, delimiter))


async def _compensate(store: TableStore, definition: TableDefinition, schema: str | None, error: BaseException) -> None:
    # Best effort only: the original error is what the caller sees.
    try:
        await store.rollback()
        await store.execute(drop_table(definition.name, schema))
        await store.commit()
    except Exception as exc:  # noqa: BLE001 - never mask the load failure
        logger.error(
            "csv_import_compensation_failed table=%s error=%s",
            definition.name,
            exc,
            exc_info=exc,
        )
        error.add_note(f"compensating drop of {definition.name} failed: {exc}")


async def import_csv(
    store: TableStore,
    path: str | Path,
    *,
    table_name: str | None = None,
    delimiter: str | None = None,
    drop_if_exists: bool = False,
    schema: str | None = None,
) -> ImportResult:
    """Create a table from a file's header and load the file into it.

    Every column is ``TEXT``. A requested drop is committed on its own before
    anything else happens. If loading fails the table created by this call is
    dropped again; the load error is re-raised with any compensation failure
    attached as a note.
    """
    delimiter = delimiter or get_settings().default_delimiter
    if schema is not None:
        validate_identifier(schema)
    definition = build_table_definition(path, table_name=table_name, delimiter=delimiter)

    if drop_if_exists:
        await store.execute(drop_table(definition.name, schema))
        await store.commit()
        logger.info("csv_import_dropped_existing table=%s", definition.name)

    try:
        await store.execute(create_table(definition, schema))
    except BaseException:
        # Nothing was created, so there is nothing to compensate; just release the transaction.
        await store.rollback()
        raise
    try:
        rows = await store.copy_from_file(definition.name, path, delimiter=delimiter, schema=schema)
        await store.commit()
    except BaseException as exc:
        # Covers cancellation too; cleanup still runs before the error surfaces.
        await _compensate(store, definition, schema, exc)
        raise

    logger.info(
        "csv_import_completed table=%s columns=%s rows=%s",
        definition.name,
        len(definition.columns),
        rows,
    )
    return ImportResult(
        table=definition.name,
        schema=schema,
        columns=definition.column_names,
        rows_loaded=rows,
    )
