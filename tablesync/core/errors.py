from __future__ import annotations


class TableSyncError(Exception):
    """Base error for tablesync."""


class InvalidInputError(TableSyncError):
    """Unreadable file, empty header or an unusable name."""


class InvalidIdentifierError(InvalidInputError):
    """Identifier outside the sanitized character set; never interpolated into SQL."""


class NameCollisionError(TableSyncError):
    """Target table already exists and dropping it was not requested."""


class ConflictTargetMissingError(TableSyncError):
    """Upsert key column has no single-column unique constraint on the target."""


class LoadFailureError(TableSyncError):
    """Bulk copy rejected a row; the whole load is aborted."""


class AuditWriteFailureError(TableSyncError):
    """Audit row could not be persisted, so the triggering mutation was rolled back."""
