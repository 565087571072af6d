from __future__ import annotations

import argparse
import asyncio
import json
import sys

from tablesync.core.config import get_settings
from tablesync.core.logging import configure_logging
from tablesync.persistence.db import SessionLocal
from tablesync.persistence.repos.audit import list_changes
from tablesync.services.capture import AuditRecord


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Print audit records as JSON lines")
    parser.add_argument("--source-table", default=None, help="Filter by schema.table")
    parser.add_argument("--subject-id", type=int, default=None, help="Filter by subject id")
    parser.add_argument("--operation", default=None, choices=["INSERT", "UPDATE", "DELETE"])
    parser.add_argument("--offset", type=int, default=0)
    parser.add_argument("--limit", type=int, default=100)
    return parser


async def _list(args: argparse.Namespace) -> int:
    async with SessionLocal() as session:
        rows = await list_changes(
            session,
            source_table=args.source_table,
            subject_id=args.subject_id,
            operation=args.operation,
            offset=args.offset,
            limit=args.limit,
        )
    for row in rows:
        print(json.dumps(AuditRecord.from_model(row).to_dict(), sort_keys=True))
    return 0


def main() -> int:
    configure_logging(get_settings().log_level)
    args = _build_parser().parse_args()
    try:
        return asyncio.run(_list(args))
    except Exception as exc:  # noqa: BLE001 - surface lookup failures clearly
        print(f"list_changes failed: {exc}", file=sys.stderr)
        for note in getattr(exc, "__notes__", []):
            print(f"  note: {note}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
