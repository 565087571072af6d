from __future__ import annotations

import logging
from pathlib import Path

import asyncpg
from sqlalchemy.ext.asyncio import AsyncConnection

from tablesync.core.errors import InvalidInputError, LoadFailureError
from tablesync.persistence.statements import validate_identifier


logger = logging.getLogger(__name__)

# SQLSTATE classes that mean "the file content is bad", not "the server is unwell".
_ROW_REJECTION_CLASSES = ("22", "23")


def _rows_from_status(status: str) -> int:
    # asyncpg returns the command tag, e.g. "COPY 42".
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


async def copy_file_into(
    connection: AsyncConnection,
    table: str,
    path: str | Path,
    *,
    delimiter: str = ",",
    schema: str | None = None,
    timeout: float | None = None,
) -> int:
    """Stream a delimited file into ``table`` through PostgreSQL COPY.

    The first line is treated as a header and skipped. The copy runs on the
    connection (and therefore inside the transaction) that ``connection``
    already holds, so a rejected row leaves nothing behind once the caller
    rolls back. Returns the number of rows copied.
    """
    validate_identifier(table)
    if schema is not None:
        validate_identifier(schema)
    source = Path(path)
    # Only failing to open the file is an input problem; socket errors and
    # timeouts raised during the copy keep their own type.
    try:
        handle = source.open("rb")
    except OSError as exc:
        raise InvalidInputError(f"Cannot read {source}: {exc}") from exc
    with handle:
        raw = await connection.get_raw_connection()
        driver: asyncpg.Connection = raw.driver_connection
        try:
            status = await driver.copy_to_table(
                table,
                source=handle,
                schema_name=schema,
                format="csv",
                header=True,
                delimiter=delimiter,
                timeout=timeout,
            )
        except asyncpg.PostgresError as exc:
            sqlstate = getattr(exc, "sqlstate", None) or ""
            if sqlstate[:2] in _ROW_REJECTION_CLASSES:
                logger.warning(
                    "bulk_copy_rejected table=%s path=%s sqlstate=%s",
                    table,
                    source,
                    sqlstate,
                )
                raise LoadFailureError(f"Rejected row while loading {source} into {table}: {exc}") from exc
            raise
    rows = _rows_from_status(status)
    logger.info("bulk_copy_completed table=%s path=%s rows=%s", table, source, rows)
    return rows
