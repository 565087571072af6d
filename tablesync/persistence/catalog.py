from __future__ import annotations

from typing import Protocol

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession


class SchemaCatalog(Protocol):
    # Live catalog reads; never cached, so schema changes are seen on the next call.
    async def columns(self, schema: str, table: str) -> list[str]:
        ...

    async def has_unique_key(self, schema: str, table: str, column: str) -> bool:
        ...


_COLUMNS_SQL = text(
    """
    SELECT column_name
    FROM information_schema.columns
    WHERE table_schema = :schema AND table_name = :table
    ORDER BY ordinal_position
    """
)

# ON CONFLICT (col) can only infer a unique index that covers exactly that column
# with no predicate or expressions.
_UNIQUE_KEY_SQL = text(
    """
    SELECT EXISTS (
        SELECT 1
        FROM pg_index i
        JOIN pg_class c ON c.oid = i.indrelid
        JOIN pg_namespace n ON n.oid = c.relnamespace
        JOIN pg_attribute a ON a.attrelid = c.oid AND a.attnum = i.indkey[0]
        WHERE n.nspname = :schema
          AND c.relname = :table
          AND a.attname = :column
          AND i.indisunique
          AND i.indnkeyatts = 1
          AND i.indpred IS NULL
          AND i.indexprs IS NULL
    )
    """
)


class PostgresSchemaCatalog:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def columns(self, schema: str, table: str) -> list[str]:
        result = await self.session.execute(_COLUMNS_SQL, {"schema": schema, "table": table})
        return [str(name) for name in result.scalars().all()]

    async def has_unique_key(self, schema: str, table: str, column: str) -> bool:
        result = await self.session.execute(
            _UNIQUE_KEY_SQL, {"schema": schema, "table": table, "column": column}
        )
        return bool(result.scalar())
