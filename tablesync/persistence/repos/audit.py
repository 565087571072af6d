from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tablesync.domain.models import RowAuditLog


def _filtered(stmt, *, source_table: str | None, subject_id: int | None, operation: str | None):
    if source_table:
        stmt = stmt.where(RowAuditLog.source_table == source_table)
    if subject_id is not None:
        stmt = stmt.where(RowAuditLog.subject_id == subject_id)
    if operation:
        stmt = stmt.where(RowAuditLog.operation_kind == operation.upper())
    return stmt


async def list_changes(
    session: AsyncSession,
    *,
    source_table: str | None = None,
    subject_id: int | None = None,
    operation: str | None = None,
    offset: int = 0,
    limit: int = 100,
) -> list[RowAuditLog]:
    # Oldest first so callers can replay a subject's history in capture order.
    stmt = _filtered(
        select(RowAuditLog),
        source_table=source_table,
        subject_id=subject_id,
        operation=operation,
    )
    stmt = stmt.order_by(RowAuditLog.log_id.asc()).offset(offset).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_changes(
    session: AsyncSession,
    *,
    source_table: str | None = None,
    subject_id: int | None = None,
    operation: str | None = None,
) -> int:
    stmt = _filtered(
        select(func.count()).select_from(RowAuditLog),
        source_table=source_table,
        subject_id=subject_id,
        operation=operation,
    )
    result = await session.execute(stmt)
    return int(result.scalar() or 0)
