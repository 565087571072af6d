from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# Fixed location shared by the model, the migration and the capture trigger.
AUDIT_SCHEMA = "public"
AUDIT_TABLE = "row_audit_log"


# Images must match the operation kind; the capture trigger relies on this to fail closed.
IMAGE_DISCIPLINE_SQL = (
    "(operation_kind = 'INSERT' AND old_image IS NULL AND new_image IS NOT NULL)"
    " OR (operation_kind = 'UPDATE' AND old_image IS NOT NULL AND new_image IS NOT NULL)"
    " OR (operation_kind = 'DELETE' AND old_image IS NOT NULL AND new_image IS NULL)"
)


class RowAuditLog(Base):
    __tablename__ = AUDIT_TABLE
    __table_args__ = (
        CheckConstraint(IMAGE_DISCIPLINE_SQL, name="ck_row_audit_log_image_discipline"),
        Index("ix_row_audit_log_source_subject", "source_table", "subject_id"),
        Index("ix_row_audit_log_captured_at", text("captured_at DESC")),
        {"schema": AUDIT_SCHEMA},
    )

    # Identity column gives a monotonically increasing order for replay.
    log_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    # "schema.table" of the monitored table; identifiers are sanitized so no quoting is needed.
    source_table: Mapped[str] = mapped_column(Text)
    subject_id: Mapped[int] = mapped_column(BigInteger)
    operation_kind: Mapped[str] = mapped_column(String(30))
    old_image: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    new_image: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
