"""Report embedding coverage for risks and controls."""

import asyncio
import logging
import sys

from riskmatch.config import settings
from riskmatch.db import AsyncSessionMaker, engine
from riskmatch.domain import RecordKind
from riskmatch.logging_config import setup_logging
from riskmatch.store import SqlRecordStore

logger = logging.getLogger("check_embeddings")


async def report() -> None:
    store = SqlRecordStore(AsyncSessionMaker)
    try:
        for kind in RecordKind:
            status = await store.embedding_status(kind)
            print(
                f"{kind.value:<8} with: {status.with_embedding:>6}  "
                f"without: {status.without_embedding:>6}  total: {status.total:>6}"
            )
    finally:
        await engine.dispose()


def main() -> int:
    setup_logging(settings.logging)
    try:
        asyncio.run(report())
    except Exception as e:
        logger.error(f"Embedding check failed: {e}", exc_info=True)
        print(f"\n❌ Embedding check failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
