"""Heuristic fallback scorer for risk-to-risk similarity.

Used when embeddings are unavailable. Evaluates, in order:

1. Exact-match shortcut (all fields equal) → 100
2. Title-match shortcut, graded by word-level Jaccard of threat/description
3. External semantic judge, followed by deterministic penalties

The judge is never guessed around: if the call itself fails the result is 0.
"""
from __future__ import annotations

import logging
import math
from typing import Protocol

from ai.judge import build_prompt, parse_judgement
from riskmatch.config import HeuristicSettings
from riskmatch.domain import Record, SimilarityResult, Unavailable
from riskmatch.errors import JudgeParseFailure
from riskmatch.vectors import round_score

logger = logging.getLogger(__name__)

ALL_FIELDS = ["title", "threatDescription", "description"]


class Judge(Protocol):
    """Anything that answers a prompt with free text."""

    async def ask(self, prompt: str) -> str | Unavailable: ...


def _clean(value: str | None) -> str:
    return (value or "").strip().lower()


def tokenize(text: str | None, min_length: int = 3) -> set[str]:
    """Lowercase whitespace tokens of at least ``min_length`` characters."""
    return {w for w in (text or "").lower().split() if len(w) >= min_length}


def jaccard(text1: str | None, text2: str | None, min_length: int = 3) -> float:
    """Word-level Jaccard similarity.

    Empty inputs score 0; identical non-empty inputs score 1.
    """
    if not text1 or not text2:
        return 0.0
    if text1 == text2:
        return 1.0

    words1 = tokenize(text1, min_length)
    words2 = tokenize(text2, min_length)
    if not words1 or not words2:
        return 0.0

    return len(words1 & words2) / len(words1 | words2)


def is_complete(record: Record) -> bool:
    """A record is complete when it has a title and some body text."""
    return bool(
        (record.title or "").strip()
        and ((record.threat_description or "").strip() or (record.description or "").strip())
    )


class HeuristicScorer:
    """Rule-based plus externally-judged similarity scorer."""

    def __init__(self, judge: Judge, config: HeuristicSettings | None = None):
        """Initialize the scorer.

        Args:
            judge: Semantic judge client
            config: Thresholds and penalties (defaults apply when omitted)
        """
        self.judge = judge
        self.config = config or HeuristicSettings()

    def shortcut(self, a: Record, b: Record) -> SimilarityResult | None:
        """Deterministic shortcuts; ``None`` when the judge must decide."""
        title1, title2 = _clean(a.title), _clean(b.title)
        threat1, threat2 = _clean(a.threat_description), _clean(b.threat_description)
        desc1, desc2 = _clean(a.description), _clean(b.description)

        if not title1 or title1 != title2:
            return None

        if threat1 == threat2 and desc1 == desc2:
            matched = ["title"]
            if threat1:
                matched.append("threatDescription")
            if desc1:
                matched.append("description")
            return SimilarityResult(score=100, matched_fields=matched)

        cfg = self.config
        desc_similarity = jaccard(desc1, desc2, cfg.min_token_length)
        threat_similarity = jaccard(threat1, threat2, cfg.min_token_length)

        if desc_similarity > cfg.strong_overlap and threat_similarity > cfg.strong_overlap:
            return SimilarityResult(score=cfg.title_strong_score, matched_fields=list(ALL_FIELDS))
        if desc_similarity > cfg.partial_overlap or threat_similarity > cfg.partial_overlap:
            return SimilarityResult(score=cfg.title_partial_score, matched_fields=["title"])
        return SimilarityResult(score=cfg.title_only_score, matched_fields=["title"])

    def _is_generic_title(self, title: str | None) -> bool:
        title = _clean(title)
        if not title or len(title.split()) > self.config.generic_title_max_words:
            return False
        return any(term in title for term in self.config.generic_terms)

    def adjust(self, a: Record, b: Record, raw_score: float) -> int:
        """Apply completeness and generic-title penalties, clamp and round."""
        cfg = self.config
        score = 0.0 if math.isnan(raw_score) else max(0.0, min(100.0, raw_score))

        if not is_complete(a) or not is_complete(b):
            score = max(0.0, score - cfg.completeness_penalty)

        if (self._is_generic_title(a.title) or self._is_generic_title(b.title)) and score > cfg.generic_title_trigger:
            score = max(score - cfg.generic_title_penalty, float(cfg.generic_title_floor))

        return round_score(score)

    async def judge_pair(self, a: Record, b: Record) -> SimilarityResult:
        """Ask the semantic judge and post-process its answer."""
        reply = await self.judge.ask(build_prompt(a, b))
        if isinstance(reply, Unavailable):
            logger.error("[Similarity Chat] Judge call failed; returning score 0")
            return SimilarityResult(score=0, matched_fields=[])

        try:
            judgement = parse_judgement(reply)
        except JudgeParseFailure as e:
            logger.warning(f"[Similarity Chat] {e}; using score 0")
            return SimilarityResult(score=self.adjust(a, b, 0.0), matched_fields=[])

        score = self.adjust(a, b, judgement.score)
        logger.info(
            f"[Similarity Chat] Judge score {judgement.score} -> adjusted {score} "
            f"(parsed via {judgement.stage}), reasoning: {judgement.reasoning or 'N/A'}"
        )
        return SimilarityResult(score=score, matched_fields=judgement.matched_fields)

    async def score(self, a: Record, b: Record) -> SimilarityResult:
        """Score two records without embeddings."""
        result = self.shortcut(a, b)
        if result is not None:
            return result
        return await self.judge_pair(a, b)
