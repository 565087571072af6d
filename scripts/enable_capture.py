from __future__ import annotations

import argparse
import asyncio
import sys

from tablesync.core.config import get_settings
from tablesync.core.logging import configure_logging
from tablesync.persistence.catalog import PostgresSchemaCatalog
from tablesync.persistence.db import SessionLocal
from tablesync.persistence.store import SqlAlchemyTableStore
from tablesync.services.capture import ChangeCaptureRecorder


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Record every insert/update/delete on a table in the audit log")
    parser.add_argument("--table", required=True, help="Table to monitor")
    parser.add_argument("--key", default=None, help="Integer key column used as the audit subject id")
    parser.add_argument("--schema", default=None, help="Table schema (default: settings)")
    parser.add_argument("--disable", action="store_true", help="Remove the capture trigger instead")
    return parser


async def _apply(args: argparse.Namespace) -> int:
    schema = args.schema or get_settings().default_schema
    recorder = ChangeCaptureRecorder()
    async with SessionLocal() as session:
        store = SqlAlchemyTableStore(session)
        if args.disable:
            await recorder.disable(store, schema=schema, table=args.table)
        else:
            if not args.key:
                print("--key is required unless --disable is given", file=sys.stderr)
                return 2
            await recorder.enable(
                store,
                schema=schema,
                table=args.table,
                key_column=args.key,
                catalog=PostgresSchemaCatalog(session),
            )
        await session.commit()
    state = "disabled" if args.disable else "enabled"
    print(f"change capture {state} for {schema}.{args.table}")
    return 0


def main() -> int:
    configure_logging(get_settings().log_level)
    args = _build_parser().parse_args()
    try:
        return asyncio.run(_apply(args))
    except Exception as exc:  # noqa: BLE001 - surface trigger setup failures clearly
        print(f"enable_capture failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
