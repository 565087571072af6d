"""Statement builder for runtime-discovered table and column names.

Every identifier that reaches SQL text passes through :func:`quote_ident`,
which rejects anything outside the sanitized character set before quoting it.
Values never go through this module; they travel as bind parameters.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from tablesync.core.config import MAX_IDENTIFIER_LENGTH
from tablesync.core.errors import InvalidIdentifierError, InvalidInputError
from tablesync.ingestion.headers import IDENTIFIER_PATTERN


GENERIC_COLUMN_TYPE = "TEXT"


def validate_identifier(name: str) -> str:
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.match(name):
        raise InvalidIdentifierError(f"Invalid identifier: {name!r}")
    if len(name.encode("utf-8")) > MAX_IDENTIFIER_LENGTH:
        raise InvalidIdentifierError(
            f"Identifier exceeds {MAX_IDENTIFIER_LENGTH} bytes: {name!r}"
        )
    return name


def quote_ident(name: str) -> str:
    # Always quote so mixed-case names keep their case, matching what the header said.
    return '"' + validate_identifier(name) + '"'


def quote_literal(value: str) -> str:
    return "'" + validate_identifier(value) + "'"


def qualified(name: str, schema: str | None = None) -> str:
    if schema is None:
        return quote_ident(name)
    return f"{quote_ident(schema)}.{quote_ident(name)}"


def _column_list(columns: Iterable[str]) -> str:
    return ", ".join(quote_ident(column) for column in columns)


@dataclass(frozen=True)
class ColumnDefinition:
    name: str
    type: str = GENERIC_COLUMN_TYPE


@dataclass(frozen=True)
class TableDefinition:
    # Column order is header order and is preserved in the emitted DDL.
    name: str
    columns: tuple[ColumnDefinition, ...]

    def __post_init__(self) -> None:
        validate_identifier(self.name)
        if not self.columns:
            raise InvalidInputError(f"Table {self.name} needs at least one column")
        seen: set[str] = set()
        duplicates: list[str] = []
        for column in self.columns:
            validate_identifier(column.name)
            if column.name in seen:
                duplicates.append(column.name)
            seen.add(column.name)
        if duplicates:
            raise InvalidInputError(
                f"Duplicate column names for table {self.name}: {', '.join(sorted(set(duplicates)))}"
            )

    @classmethod
    def from_names(cls, name: str, column_names: Sequence[str]) -> "TableDefinition":
        return cls(name=name, columns=tuple(ColumnDefinition(column) for column in column_names))

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]


def create_table(definition: TableDefinition, schema: str | None = None) -> str:
    body = ", ".join(f"{quote_ident(column.name)} {column.type}" for column in definition.columns)
    return f"CREATE TABLE {qualified(definition.name, schema)} ({body})"


def drop_table(name: str, schema: str | None = None, *, if_exists: bool = True) -> str:
    guard = "IF EXISTS " if if_exists else ""
    return f"DROP TABLE {guard}{qualified(name, schema)}"


def create_staging_like(staging: str, schema: str, table: str) -> str:
    # Temp tables live in pg_temp, so the staging name is never schema-qualified.
    return f"CREATE TEMP TABLE {quote_ident(staging)} (LIKE {qualified(table, schema)} INCLUDING ALL)"


def merge_update_columns(columns: Sequence[str], key_column: str) -> list[str]:
    return [column for column in columns if column != key_column]


def upsert_from_staging(
    *,
    schema: str,
    table: str,
    staging: str,
    columns: Sequence[str],
    key_column: str,
) -> str:
    """Build the single merge statement for an upsert.

    Non-key columns are overwritten unconditionally. With no non-key columns
    the key is assigned to itself so that a repeated row still counts as an
    update instead of being skipped.
    """
    if key_column not in columns:
        raise InvalidInputError(f"Key column {key_column} is not a column of {schema}.{table}")
    column_list = _column_list(columns)
    update_columns = merge_update_columns(columns, key_column) or [key_column]
    assignments = ", ".join(
        f"{quote_ident(column)} = EXCLUDED.{quote_ident(column)}" for column in update_columns
    )
    return (
        f"INSERT INTO {qualified(table, schema)} ({column_list}) "
        f"SELECT {column_list} FROM {quote_ident(staging)} "
        f"ON CONFLICT ({quote_ident(key_column)}) DO UPDATE SET {assignments}"
    )


def create_row_trigger(trigger: str, *, schema: str, table: str, function: str, key_column: str) -> str:
    return (
        f"CREATE OR REPLACE TRIGGER {quote_ident(trigger)} "
        f"AFTER INSERT OR UPDATE OR DELETE ON {qualified(table, schema)} "
        f"FOR EACH ROW EXECUTE FUNCTION {quote_ident(function)}({quote_literal(key_column)})"
    )


def drop_trigger(trigger: str, *, schema: str, table: str) -> str:
    return f"DROP TRIGGER IF EXISTS {quote_ident(trigger)} ON {qualified(table, schema)}"
