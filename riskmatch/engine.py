"""Wiring of the engine components from settings.

Configuration flows in through constructors only; this is the one place
that reads the application ``Settings`` and hands each component its slice.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from ai.embeddings import EmbeddingClient
from ai.judge import SemanticJudge
from riskmatch.config import Settings
from riskmatch.heuristics import HeuristicScorer
from riskmatch.pipelines.backfill import EmbeddingBackfill
from riskmatch.pipelines.relevance import RelevanceMatcher
from riskmatch.pipelines.similarity import SimilaritySearch
from riskmatch.store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class MatchingEngine:
    """All engine components sharing one HTTP client."""
    embedder: EmbeddingClient
    judge: SemanticJudge
    heuristic: HeuristicScorer
    search: SimilaritySearch
    matcher: RelevanceMatcher
    backfill: EmbeddingBackfill
    http_client: httpx.AsyncClient

    async def aclose(self) -> None:
        await self.http_client.aclose()


def build_engine(
    config: Settings,
    store: RecordStore,
    http_client: httpx.AsyncClient | None = None,
) -> MatchingEngine:
    """Construct the engine for a store.

    Args:
        config: Application settings
        store: Persistence collaborator
        http_client: Optional shared HTTP client (created otherwise)
    """
    http_client = http_client or httpx.AsyncClient()

    embedder = EmbeddingClient(config.provider, http_client=http_client)
    judge = SemanticJudge(config.provider, http_client=http_client)
    heuristic = HeuristicScorer(judge, config.heuristics)
    search = SimilaritySearch(embedder, heuristic, config.similarity)
    matcher = RelevanceMatcher(store, search, config.relevance, config.similarity)
    backfill = EmbeddingBackfill(store, embedder, config.backfill, config.similarity)

    logger.info(
        f"Engine ready (provider={config.provider.base_url}, "
        f"embedding_model={config.provider.embedding_model}, judge_model={config.provider.judge_model})"
    )
    return MatchingEngine(
        embedder=embedder,
        judge=judge,
        heuristic=heuristic,
        search=search,
        matcher=matcher,
        backfill=backfill,
        http_client=http_client,
    )
