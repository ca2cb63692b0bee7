"""Similarity search: pairwise scoring and one-to-many ranking.

Scoring is an explicit ordered chain of strategies. Each strategy returns
``Success(result)`` or ``UNAVAILABLE``; the chain takes the first success:

    EmbeddingStrategy  →  HeuristicStrategy

``rank_against`` applies the same ordering to a whole candidate set: vectors
when the query can be embedded, otherwise a capped heuristic pass.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Protocol, Sequence

from riskmatch.concurrency import ConcurrencyLimiter
from riskmatch.config import SimilaritySettings
from riskmatch.domain import (
    UNAVAILABLE,
    EmbeddingVector,
    Outcome,
    Record,
    ScoredCandidate,
    SimilarityResult,
    Success,
    Unavailable,
)
from riskmatch.errors import DimensionMismatch
from riskmatch.heuristics import HeuristicScorer
from riskmatch.pipelines.normalization import record_text, split_query_text
from riskmatch.vectors import cosine, round_score, to_score

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Anything that turns text into a vector or ``UNAVAILABLE``."""

    async def generate(self, text: str) -> EmbeddingVector | Unavailable: ...


class ScoringStrategy(Protocol):
    """One link of the scoring chain."""

    name: str

    async def score(self, a: Record, b: Record) -> Outcome[SimilarityResult]: ...


def pair_matched_fields(a: Record, b: Record) -> list[str]:
    """Fields reported as matching for a vector-scored pair."""
    matched = []
    if a.title and b.title and a.title.strip().lower() == b.title.strip().lower():
        matched.append("title")
    if (a.threat_description or "").strip() and (b.threat_description or "").strip():
        matched.append("threatDescription")
    if (a.description or "").strip() and (b.description or "").strip():
        matched.append("description")
    return matched


def title_in_query(query_text: str, candidate: Record) -> bool:
    title = (candidate.title or "").strip().lower()
    return bool(title) and title in query_text.lower()


class EmbeddingStrategy:
    """Cosine similarity over stored or freshly generated embeddings."""

    name = "embedding"

    def __init__(self, embedder: Embedder, max_text_length: int = 1024):
        self.embedder = embedder
        self.max_text_length = max_text_length

    async def embedding_for(self, record: Record) -> EmbeddingVector | Unavailable:
        """Stored embedding when present, otherwise a generated one."""
        if record.embedding:
            return record.embedding
        return await self.embedder.generate(record_text(record, max_length=self.max_text_length))

    async def score(self, a: Record, b: Record) -> Outcome[SimilarityResult]:
        """Score a pair by cosine similarity.

        Raises:
            DimensionMismatch: If the two embeddings differ in length
        """
        vec_a, vec_b = await asyncio.gather(self.embedding_for(a), self.embedding_for(b))
        if isinstance(vec_a, Unavailable) or isinstance(vec_b, Unavailable):
            logger.warning(f"[Similarity] Embedding unavailable for pair {a.id} / {b.id}")
            return UNAVAILABLE

        score = round_score(to_score(cosine(vec_a, vec_b)))
        return Success(SimilarityResult(score=score, matched_fields=pair_matched_fields(a, b)))


class HeuristicStrategy:
    """Rule-based and judge-based scoring; always produces a result."""

    name = "heuristic"

    def __init__(self, scorer: HeuristicScorer):
        self.scorer = scorer

    async def score(self, a: Record, b: Record) -> Outcome[SimilarityResult]:
        return Success(await self.scorer.score(a, b))


class StrategyChain:
    """Evaluate strategies in order until one succeeds."""

    def __init__(self, strategies: Sequence[ScoringStrategy]):
        if not strategies:
            raise ValueError("StrategyChain needs at least one strategy")
        self.strategies = list(strategies)

    async def score(self, a: Record, b: Record) -> SimilarityResult | Unavailable:
        for strategy in self.strategies:
            try:
                outcome = await strategy.score(a, b)
            except DimensionMismatch as e:
                logger.warning(f"[Similarity] {strategy.name} strategy failed for {a.id} / {b.id}: {e}")
                continue
            if isinstance(outcome, Success):
                logger.debug(f"[Similarity] {a.id} / {b.id} scored by {strategy.name}: {outcome.value.score}")
                return outcome.value
        return UNAVAILABLE


class SimilaritySearch:
    """Pairwise and one-to-many similarity over risk records."""

    def __init__(
        self,
        embedder: Embedder,
        heuristic: HeuristicScorer,
        config: SimilaritySettings | None = None,
    ):
        """Initialize the search.

        Args:
            embedder: Embedding provider client
            heuristic: Fallback scorer used when vectors are unavailable
            config: Batch sizes and caps
        """
        self.config = config or SimilaritySettings()
        self.embedder = embedder
        self.heuristic = heuristic
        self.embedding_strategy = EmbeddingStrategy(embedder, self.config.max_text_length)
        self.chain = StrategyChain([self.embedding_strategy, HeuristicStrategy(heuristic)])

    async def score_pair(self, a: Record, b: Record) -> SimilarityResult | Unavailable:
        """Vector score for a pair, or ``UNAVAILABLE`` when an embedding is missing.

        Raises:
            DimensionMismatch: If the two embeddings differ in length
        """
        outcome = await self.embedding_strategy.score(a, b)
        return outcome.value if isinstance(outcome, Success) else UNAVAILABLE

    async def compare(self, a: Record, b: Record) -> SimilarityResult:
        """Score a pair, falling back to the heuristic scorer. Never unavailable."""
        result = await self.chain.score(a, b)
        if isinstance(result, Unavailable):
            return SimilarityResult(score=0, matched_fields=[])
        return result

    async def _embed_candidates(
        self,
        candidates: Sequence[Record],
        query_vector: EmbeddingVector,
    ) -> list[tuple[Record, EmbeddingVector]]:
        """Embed candidates in fixed-size batches, skipping failures."""
        batch_size = self.config.embedding_batch_size
        total = len(candidates)
        embedded: list[tuple[Record, EmbeddingVector]] = []

        logger.info(f"[Similarity] Comparing against {total} records using embeddings (batches of {batch_size})")

        for start in range(0, total, batch_size):
            batch = candidates[start:start + batch_size]
            vectors = await asyncio.gather(*(self._candidate_vector(c, len(query_vector)) for c in batch))

            for candidate, vector in zip(batch, vectors):
                if isinstance(vector, Unavailable):
                    logger.warning(f"[Similarity] Skipping record {candidate.id} - embedding failed")
                    continue
                embedded.append((candidate, vector))

            done = start + len(batch)
            logger.info(f"[Similarity Progress] {round(done * 100 / total)}% - Processed {done} of {total} records")

        return embedded

    async def _candidate_vector(self, candidate: Record, dimension: int) -> EmbeddingVector | Unavailable:
        # Stored vectors from a different model are regenerated
        if candidate.embedding and len(candidate.embedding) == dimension:
            return candidate.embedding
        return await self.embedder.generate(record_text(candidate, max_length=self.config.max_text_length))

    async def rank_heuristic(self, query_text: str, candidates: Sequence[Record]) -> list[ScoredCandidate]:
        """Heuristic one-to-many pass over at most ``heuristic_candidate_cap`` candidates.

        Each comparison may cost one judge call, hence the cap.
        """
        cap = self.config.heuristic_candidate_cap
        if len(candidates) > cap:
            logger.warning(
                f"[Similarity Chat] Limiting to first {cap} of {len(candidates)} records "
                f"(heuristic scoring is slow); use an embedding model to compare all records"
            )
        to_compare = list(candidates[:cap])
        query = split_query_text(query_text)
        limiter = ConcurrencyLimiter(self.config.judge_concurrency)

        async def compare_one(candidate: Record) -> ScoredCandidate:
            result = await self.heuristic.score(query, candidate)
            matched = list(result.matched_fields)
            if title_in_query(query_text, candidate) and "title" not in matched:
                matched.insert(0, "title")
            return ScoredCandidate(record_id=candidate.id, score=result.score, matched_fields=matched)

        scored = await asyncio.gather(
            *(limiter.execute(lambda c=c: compare_one(c)) for c in to_compare)
        )
        return sorted(scored, key=lambda s: s.score, reverse=True)

    async def rank_against(self, query_text: str, candidates: Sequence[Record]) -> list[ScoredCandidate]:
        """Rank candidates against free query text, best first.

        No threshold is applied here; callers filter.
        """
        if not candidates:
            return []

        query_vector = await self.embedder.generate(query_text)
        if isinstance(query_vector, Unavailable):
            logger.error("[Similarity] Query embedding unavailable; falling back to heuristic scoring")
            return await self.rank_heuristic(query_text, candidates)

        embedded = await self._embed_candidates(candidates, query_vector)
        if not embedded:
            logger.error("[Similarity] No candidate embeddings available; falling back to heuristic scoring")
            return await self.rank_heuristic(query_text, candidates)

        logger.info(f"[Similarity] Calculating cosine similarity for {len(embedded)} records")
        scored = []
        for candidate, vector in embedded:
            similarity = cosine(query_vector, vector)
            matched = ["title"] if title_in_query(query_text, candidate) else []
            scored.append(ScoredCandidate(
                record_id=candidate.id,
                score=round_score(to_score(similarity)),
                matched_fields=matched,
            ))
            logger.debug(f"[Similarity] Record {candidate.id}: cosine={similarity:.3f}")

        return sorted(scored, key=lambda s: s.score, reverse=True)
