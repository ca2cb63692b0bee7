"""Backfill missing embeddings for risks or controls.

Usage:
    python scripts/backfill_embeddings.py --kind risk --batch-size 20 --concurrency 4
    python scripts/backfill_embeddings.py --kind control --dry-run
"""

import argparse
import asyncio
import logging
import sys

from riskmatch.config import settings
from riskmatch.db import AsyncSessionMaker, engine
from riskmatch.domain import RecordKind
from riskmatch.engine import build_engine
from riskmatch.logging_config import setup_logging
from riskmatch.store import SqlRecordStore

logger = logging.getLogger("backfill_embeddings")


def positive_int(value: str) -> int:
    """argparse type accepting integers >= 1."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Compute embeddings for records that have none.")
    parser.add_argument(
        "--kind",
        choices=[k.value for k in RecordKind],
        default=RecordKind.RISK.value,
        help="Record kind to backfill",
    )
    parser.add_argument("--batch-size", type=positive_int, default=settings.backfill.batch_size)
    parser.add_argument("--concurrency", type=positive_int, default=settings.backfill.concurrency)
    parser.add_argument("--dry-run", action="store_true", help="Count records without calling the provider")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> None:
    kind = RecordKind(args.kind)
    matching = build_engine(settings, SqlRecordStore(AsyncSessionMaker))
    try:
        progress = await matching.backfill.run(
            kind,
            batch_size=args.batch_size,
            concurrency=args.concurrency,
            dry_run=args.dry_run,
        )
    finally:
        await matching.aclose()
        await engine.dispose()

    print("-" * 50)
    print(f"Kind:        {kind.value}{' (dry run)' if progress.dry_run else ''}")
    print(f"Processed:   {progress.processed}")
    print(f"Succeeded:   {progress.succeeded}")
    print(f"Failed:      {progress.failed}")


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(settings.logging)
    try:
        asyncio.run(run(args))
    except Exception as e:
        logger.error(f"Backfill aborted: {e}", exc_info=True)
        print(f"\n❌ Backfill failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
