"""Row-level change capture for monitored tables.

The recorder is a state machine over the operation kind. ``IMAGE_RULES`` is
its only definition: :meth:`ChangeCaptureRecorder.handler_statements`
compiles it into the PL/pgSQL trigger function PostgreSQL runs inside the
mutating transaction, and :class:`AuditRecord` checks rows read back from the
log against it. The trigger hands an explicit context (source table, subject
id, operation, old image, new image) to ``record_row_change``; nothing is
read from ambient trigger state past that point. Audit rows are only ever
written by that server-side function.

Any failure to persist the audit row raises SQLSTATE ``AU001`` from the
trigger, which aborts the triggering statement. No data change commits
without its audit counterpart.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import logging
from typing import Any, Mapping

from tablesync.core.errors import InvalidInputError
from tablesync.domain.models import RowAuditLog
from tablesync.persistence.catalog import SchemaCatalog
from tablesync.persistence.statements import (
    create_row_trigger,
    drop_trigger,
    qualified,
    quote_ident,
)
from tablesync.persistence.store import AUDIT_WRITE_FAILURE_SQLSTATE, TableStore


logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ImageRule:
    old: bool
    new: bool

    @property
    def subject_image(self) -> str:
        # The pre-mutation row identifies the subject whenever it exists.
        return "old" if self.old else "new"


IMAGE_RULES: dict[ChangeKind, ImageRule] = {
    ChangeKind.INSERT: ImageRule(old=False, new=True),
    ChangeKind.UPDATE: ImageRule(old=True, new=True),
    ChangeKind.DELETE: ImageRule(old=True, new=False),
}


def check_images(kind: ChangeKind, old: Mapping[str, Any] | None, new: Mapping[str, Any] | None) -> None:
    kind = ChangeKind(kind)
    rule = IMAGE_RULES[kind]
    if (old is not None) != rule.old or (new is not None) != rule.new:
        raise ValueError(
            f"{kind.value} requires old image {'present' if rule.old else 'absent'}"
            f" and new image {'present' if rule.new else 'absent'}"
        )


@dataclass(frozen=True)
class AuditRecord:
    source_table: str
    subject_id: int
    operation: ChangeKind
    old_image: dict[str, Any] | None
    new_image: dict[str, Any] | None
    log_id: int | None = None
    captured_at: datetime | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        check_images(self.operation, self.old_image, self.new_image)

    @classmethod
    def from_model(cls, row: RowAuditLog) -> "AuditRecord":
        return cls(
            source_table=row.source_table,
            subject_id=int(row.subject_id),
            operation=ChangeKind(row.operation_kind),
            old_image=row.old_image,
            new_image=row.new_image,
            log_id=row.log_id,
            captured_at=row.captured_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "log_id": self.log_id,
            "source_table": self.source_table,
            "subject_id": self.subject_id,
            "operation": self.operation.value,
            "old_image": self.old_image,
            "new_image": self.new_image,
            "captured_at": self.captured_at.isoformat() if self.captured_at else None,
        }


class ChangeCaptureRecorder:
    handler_function = "capture_row_change"
    record_function = "record_row_change"
    guard_function = "reject_audit_mutation"
    # Trigger names are scoped per table in PostgreSQL, so one fixed name suffices.
    trigger_name = "row_change_capture"
    guard_trigger_name = "audit_append_only"

    def __init__(self) -> None:
        # Write to the table the ORM model and migration define, never a configured copy.
        self.audit_table = RowAuditLog.__table__.name
        self.audit_schema = RowAuditLog.__table__.schema

    def _record_function_sql(self) -> str:
        audit = qualified(self.audit_table, self.audit_schema)
        return f"""
CREATE OR REPLACE FUNCTION {quote_ident(self.record_function)}(
    p_source_table TEXT,
    p_subject_id BIGINT,
    p_operation TEXT,
    p_old_image JSONB,
    p_new_image JSONB
) RETURNS BIGINT LANGUAGE plpgsql AS $fn$
DECLARE
    v_log_id BIGINT;
BEGIN
    INSERT INTO {audit} (source_table, subject_id, operation_kind, old_image, new_image)
    VALUES (p_source_table, p_subject_id, p_operation, p_old_image, p_new_image)
    RETURNING log_id INTO v_log_id;
    RETURN v_log_id;
END;
$fn$"""

    def _handler_function_sql(self) -> str:
        branches: list[str] = []
        for index, (kind, rule) in enumerate(IMAGE_RULES.items()):
            keyword = "IF" if index == 0 else "ELSIF"
            old_expr = "to_jsonb(OLD)" if rule.old else "NULL"
            new_expr = "to_jsonb(NEW)" if rule.new else "NULL"
            subject_var = "v_old" if rule.subject_image == "old" else "v_new"
            branches.append(
                f"    {keyword} TG_OP = '{kind.value}' THEN\n"
                f"        v_old := {old_expr};\n"
                f"        v_new := {new_expr};\n"
                f"        v_subject := {subject_var} ->> TG_ARGV[0];"
            )
        state_machine = "\n".join(branches)
        return f"""
CREATE OR REPLACE FUNCTION {quote_ident(self.handler_function)}() RETURNS TRIGGER LANGUAGE plpgsql AS $fn$
DECLARE
    v_old JSONB;
    v_new JSONB;
    v_subject TEXT;
BEGIN
{state_machine}
    ELSE
        RAISE EXCEPTION 'unsupported operation %', TG_OP USING ERRCODE = '{AUDIT_WRITE_FAILURE_SQLSTATE}';
    END IF;
    BEGIN
        PERFORM {quote_ident(self.record_function)}(
            TG_TABLE_SCHEMA || '.' || TG_TABLE_NAME,
            v_subject::BIGINT,
            TG_OP,
            v_old,
            v_new
        );
    EXCEPTION WHEN OTHERS THEN
        RAISE EXCEPTION 'audit write failed for %.%: %', TG_TABLE_SCHEMA, TG_TABLE_NAME, SQLERRM
            USING ERRCODE = '{AUDIT_WRITE_FAILURE_SQLSTATE}';
    END;
    RETURN NULL;
END;
$fn$"""

    def _guard_sql(self) -> list[str]:
        audit = qualified(self.audit_table, self.audit_schema)
        return [
            f"""
CREATE OR REPLACE FUNCTION {quote_ident(self.guard_function)}() RETURNS TRIGGER LANGUAGE plpgsql AS $fn$
BEGIN
    RAISE EXCEPTION '% is append-only', TG_TABLE_NAME;
END;
$fn$""",
            f"CREATE OR REPLACE TRIGGER {quote_ident(self.guard_trigger_name)} "
            f"BEFORE UPDATE OR DELETE OR TRUNCATE ON {audit} "
            f"FOR EACH STATEMENT EXECUTE FUNCTION {quote_ident(self.guard_function)}()",
        ]

    def handler_statements(self) -> list[str]:
        return [self._record_function_sql(), self._handler_function_sql(), *self._guard_sql()]

    async def install(self, store: TableStore) -> None:
        # CREATE OR REPLACE throughout, so reinstalling is safe.
        for statement in self.handler_statements():
            await store.execute(statement)
        logger.info(
            "change_capture_installed audit_table=%s.%s",
            self.audit_schema,
            self.audit_table,
        )

    async def enable(
        self,
        store: TableStore,
        *,
        schema: str,
        table: str,
        key_column: str,
        catalog: SchemaCatalog | None = None,
    ) -> None:
        if catalog is not None:
            columns = await catalog.columns(schema, table)
            if key_column not in columns:
                raise InvalidInputError(f"Key column {key_column} is not a column of {schema}.{table}")
        await self.install(store)
        await store.execute(
            create_row_trigger(
                self.trigger_name,
                schema=schema,
                table=table,
                function=self.handler_function,
                key_column=key_column,
            )
        )
        logger.info("change_capture_enabled table=%s.%s key=%s", schema, table, key_column)

    async def disable(self, store: TableStore, *, schema: str, table: str) -> None:
        await store.execute(drop_trigger(self.trigger_name, schema=schema, table=table))
        logger.info("change_capture_disabled table=%s.%s", schema, table)
