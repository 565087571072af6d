from __future__ import annotations

import argparse
import asyncio
import sys

from tablesync.core.config import get_settings
from tablesync.core.logging import configure_logging
from tablesync.persistence.catalog import PostgresSchemaCatalog
from tablesync.persistence.db import SessionLocal
from tablesync.persistence.store import SqlAlchemyTableStore
from tablesync.services.upsert import upsert_csv


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Merge a CSV file into an existing table keyed by a unique column")
    parser.add_argument("path", help="Delimited file with a header line, columns in table order")
    parser.add_argument("--table", required=True, help="Target table")
    parser.add_argument("--key", required=True, help="Key column carrying a unique constraint")
    parser.add_argument("--schema", default=None, help="Target schema (default: settings)")
    parser.add_argument("--delimiter", default=None, help="Field delimiter (default: settings)")
    return parser


async def _upsert(args: argparse.Namespace) -> int:
    async with SessionLocal() as session:
        result = await upsert_csv(
            SqlAlchemyTableStore(session),
            PostgresSchemaCatalog(session),
            schema=args.schema,
            table=args.table,
            key_column=args.key,
            path=args.path,
            delimiter=args.delimiter,
        )
        await session.commit()
    print(f"upserted {result.schema}.{result.table}: staged={result.rows_staged} merged={result.rows_merged}")
    return 0


def main() -> int:
    configure_logging(get_settings().log_level)
    args = _build_parser().parse_args()
    try:
        return asyncio.run(_upsert(args))
    except Exception as exc:  # noqa: BLE001 - surface merge failures clearly
        print(f"upsert_csv failed: {exc}", file=sys.stderr)
        for note in getattr(exc, "__notes__", []):
            print(f"  note: {note}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
