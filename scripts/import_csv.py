from __future__ import annotations

import argparse
import asyncio
import sys

from tablesync.core.config import get_settings
from tablesync.core.logging import configure_logging
from tablesync.persistence.db import SessionLocal
from tablesync.persistence.store import SqlAlchemyTableStore
from tablesync.services.inference import import_csv


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create a TEXT-typed table from a CSV header and load the file")
    parser.add_argument("path", help="Delimited file whose first line is the header")
    parser.add_argument("--table", default=None, help="Table name (default: sanitized file name)")
    parser.add_argument("--schema", default=None, help="Target schema (default: search_path)")
    parser.add_argument("--delimiter", default=None, help="Field delimiter (default: settings)")
    parser.add_argument("--drop-if-exists", action="store_true", help="Drop an existing table first")
    return parser


async def _import(args: argparse.Namespace) -> int:
    async with SessionLocal() as session:
        result = await import_csv(
            SqlAlchemyTableStore(session),
            args.path,
            table_name=args.table,
            delimiter=args.delimiter,
            drop_if_exists=args.drop_if_exists,
            schema=args.schema,
        )
    print(result.message)
    print(f"  columns: {', '.join(result.columns)}")
    print(f"  rows_loaded: {result.rows_loaded}")
    return 0


def main() -> int:
    configure_logging(get_settings().log_level)
    args = _build_parser().parse_args()
    try:
        return asyncio.run(_import(args))
    except Exception as exc:  # noqa: BLE001 - surface import failures clearly
        print(f"import_csv failed: {exc}", file=sys.stderr)
        for note in getattr(exc, "__notes__", []):
            print(f"  note: {note}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
