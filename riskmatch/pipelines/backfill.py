"""Embedding backfill: compute missing embeddings across the record store.

Idempotent and safe to re-run: only records whose embedding is absent are
paged, using a cursor on id (``id > last_seen``) so that rows gaining an
embedding mid-run cannot shift later pages. Batches run sequentially; the
records inside a batch run through a ``ConcurrencyLimiter``. Per-record
outcomes are folded into an immutable ``BackfillProgress`` after the batch
drains; one record's failure never aborts the run.
"""
from __future__ import annotations

import asyncio
import logging

from riskmatch.concurrency import ConcurrencyLimiter
from riskmatch.config import BackfillSettings, SimilaritySettings
from riskmatch.domain import (
    UNAVAILABLE,
    BackfillProgress,
    EmbeddingStatus,
    EmbeddingVector,
    Record,
    RecordKind,
    Unavailable,
)
from riskmatch.pipelines.normalization import record_text
from riskmatch.pipelines.similarity import Embedder
from riskmatch.store import RecordStore

logger = logging.getLogger(__name__)


def fold_outcomes(progress: BackfillProgress, outcomes: list[object]) -> BackfillProgress:
    """Fold a batch of task outcomes into the accumulator.

    ``True`` counts as success; ``False`` or an exception counts as failure.
    """
    for outcome in outcomes:
        progress = progress.record(outcome is True)
    return progress


class EmbeddingBackfill:
    """Computes and stores embeddings for risks and controls."""

    def __init__(
        self,
        store: RecordStore,
        embedder: Embedder,
        config: BackfillSettings | None = None,
        similarity: SimilaritySettings | None = None,
    ):
        self.store = store
        self.embedder = embedder
        self.config = config or BackfillSettings()
        self.max_text_length = (similarity or SimilaritySettings()).max_text_length

    async def compute_and_store(self, kind: RecordKind, record: Record) -> EmbeddingVector | Unavailable:
        """Best-effort embedding of a single record.

        Failures are logged and reported as ``UNAVAILABLE``; nothing is raised,
        so callers on a create/update path are never rolled back by this step.
        """
        try:
            text = record_text(record, max_length=self.max_text_length)
            embedding = await self.embedder.generate(text)
            if isinstance(embedding, Unavailable):
                logger.error(f"[Embedding Service] Failed to generate embedding for {kind.value} {record.id}")
                return UNAVAILABLE

            await self.store.update_embedding(kind, record.id, embedding)
            return embedding
        except Exception as e:
            logger.error(f"[Embedding Service] Error computing/storing embedding for {kind.value} {record.id}: {e}")
            return UNAVAILABLE

    async def _process_record(self, kind: RecordKind, record: Record) -> bool:
        result = await self.compute_and_store(kind, record)
        return not isinstance(result, Unavailable)

    async def run(
        self,
        kind: RecordKind = RecordKind.RISK,
        *,
        batch_size: int | None = None,
        concurrency: int | None = None,
        dry_run: bool | None = None,
    ) -> BackfillProgress:
        """Backfill missing embeddings for one record kind.

        Args:
            kind: Record kind to process
            batch_size: Records per page (default from config)
            concurrency: Parallel embedding computations (default from config)
            dry_run: Count candidate records without calling the provider or writing

        Returns:
            Accumulated progress (processed, succeeded, failed, last cursor)
        """
        batch_size = self.config.batch_size if batch_size is None else batch_size
        concurrency = self.config.concurrency if concurrency is None else concurrency
        dry_run = self.config.dry_run if dry_run is None else dry_run

        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        progress = BackfillProgress(batch_size=batch_size, concurrency=concurrency, dry_run=dry_run)
        limiter: ConcurrencyLimiter | None = None

        logger.info(
            f"[Backfill] Starting {kind.value} backfill "
            f"(batchSize={batch_size}, concurrency={concurrency}, dryRun={dry_run})"
        )

        while True:
            batch = await self.store.find_missing_embeddings_page(kind, progress.last_id, batch_size)
            if not batch:
                break

            if dry_run:
                outcomes: list[object] = [True] * len(batch)
            else:
                if limiter is None:
                    limiter = ConcurrencyLimiter(concurrency, timeout=self.config.task_timeout)
                outcomes = await asyncio.gather(
                    *(limiter.execute(lambda r=record: self._process_record(kind, r)) for record in batch),
                    return_exceptions=True,
                )
                for record, outcome in zip(batch, outcomes):
                    if isinstance(outcome, BaseException):
                        logger.error(f"[Backfill] Failed for {kind.value} {record.id}: {outcome!r}")

            progress = fold_outcomes(progress, outcomes).advance(batch[-1].id)
            logger.info(
                f"[Backfill Progress] Processed: {progress.processed}, Succeeded: {progress.succeeded}, "
                f"Failed: {progress.failed} (cursor: {progress.last_id})"
            )

        logger.info(
            f"[Backfill] Complete - Processed: {progress.processed}, "
            f"Succeeded: {progress.succeeded}, Failed: {progress.failed}"
        )
        return progress

    async def embedding_status(self, kind: RecordKind) -> EmbeddingStatus:
        """Embedding coverage for one record kind."""
        status = await self.store.embedding_status(kind)
        logger.info(
            f"[Embedding Status] {kind.value}: {status.with_embedding} with, "
            f"{status.without_embedding} without (total {status.total})"
        )
        return status
