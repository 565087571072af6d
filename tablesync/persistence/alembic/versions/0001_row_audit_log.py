"""add row audit log

Revision ID: 0001_row_audit_log
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_row_audit_log"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Append-only change log written by the capture trigger on monitored tables.
    op.create_table(
        "row_audit_log",
        sa.Column("log_id", sa.BigInteger(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("source_table", sa.Text(), nullable=False),
        sa.Column("subject_id", sa.BigInteger(), nullable=False),
        sa.Column("operation_kind", sa.String(length=30), nullable=False),
        sa.Column("old_image", postgresql.JSONB(), nullable=True),
        sa.Column("new_image", postgresql.JSONB(), nullable=True),
        sa.Column("captured_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "(operation_kind = 'INSERT' AND old_image IS NULL AND new_image IS NOT NULL)"
            " OR (operation_kind = 'UPDATE' AND old_image IS NOT NULL AND new_image IS NOT NULL)"
            " OR (operation_kind = 'DELETE' AND old_image IS NOT NULL AND new_image IS NULL)",
            name="ck_row_audit_log_image_discipline",
        ),
        schema="public",
    )
    op.create_index(
        "ix_row_audit_log_source_subject",
        "row_audit_log",
        ["source_table", "subject_id"],
        unique=False,
        schema="public",
    )
    op.create_index(
        "ix_row_audit_log_captured_at",
        "row_audit_log",
        [sa.text("captured_at DESC")],
        unique=False,
        schema="public",
    )


def downgrade() -> None:
    op.drop_index("ix_row_audit_log_captured_at", table_name="row_audit_log", schema="public")
    op.drop_index("ix_row_audit_log_source_subject", table_name="row_audit_log", schema="public")
    op.drop_table("row_audit_log", schema="public")
