"""Relevance matching: supplier → risk suggestions and risk duplicate checks.

Every public operation here degrades to an empty list instead of raising:
the caller always gets "no suggestion" rather than a hard failure.
"""
from __future__ import annotations

import logging

from riskmatch.config import RelevanceSettings, SimilaritySettings
from riskmatch.domain import CandidateFilter, Record, RiskSuggestion, ScoredCandidate
from riskmatch.errors import InsufficientInputData, RecordNotFound
from riskmatch.pipelines.normalization import combine, combine_supplier_profile
from riskmatch.pipelines.similarity import SimilaritySearch
from riskmatch.store import RecordStore

logger = logging.getLogger(__name__)


def select_top(scored: list[ScoredCandidate], min_score: int, limit: int) -> list[ScoredCandidate]:
    """Keep scores ≥ ``min_score``, best first, at most ``limit``."""
    kept = [s for s in scored if s.score >= min_score]
    kept.sort(key=lambda s: s.score, reverse=True)
    return kept[:limit]


def _to_suggestions(selected: list[ScoredCandidate], candidates: list[Record]) -> list[RiskSuggestion]:
    by_id = {c.id: c for c in candidates}
    return [
        RiskSuggestion(risk=by_id[s.record_id], similarity_score=s.score, matched_fields=s.matched_fields)
        for s in selected
        if s.record_id in by_id
    ]


class RelevanceMatcher:
    """Ranks existing risks against suppliers and draft risks."""

    def __init__(
        self,
        store: RecordStore,
        search: SimilaritySearch,
        relevance: RelevanceSettings | None = None,
        similarity: SimilaritySettings | None = None,
    ):
        self.store = store
        self.search = search
        self.relevance = relevance or RelevanceSettings()
        self.similarity = similarity or SimilaritySettings()

    async def _supplier_query(self, supplier_id: str) -> str:
        profile = await self.store.get_supplier(supplier_id)
        if profile is None:
            raise RecordNotFound(f"Supplier not found: {supplier_id}")

        text = combine_supplier_profile(profile, max_length=self.similarity.max_text_length)
        if len(text.strip()) < self.relevance.min_query_length:
            raise InsufficientInputData(f"Insufficient supplier data for {supplier_id}")
        return text

    async def suggest_risks_for_supplier(
        self,
        supplier_id: str,
        limit: int | None = None,
    ) -> list[RiskSuggestion]:
        """Suggest existing risks relevant to a supplier.

        Steps:
        1. Build the supplier query text; too little text → no suggestions
        2. Load active candidate risks (bounded) and already-linked ids
        3. Drop linked risks; nothing left → no suggestions
        4. Rank candidates against the query
        5. Keep scores ≥ min_score, best first, top ``limit``

        Args:
            supplier_id: Supplier to match
            limit: Maximum suggestions (default from config)

        Returns:
            Suggestions, possibly empty. Never raises.
        """
        limit = limit or self.relevance.default_limit

        try:
            try:
                query_text = await self._supplier_query(supplier_id)
            except InsufficientInputData as e:
                logger.warning(f"[SupplierRiskSuggestion] {e}")
                return []

            candidates = await self.store.find_candidates(
                CandidateFilter(archived=False),
                self.relevance.candidate_cap,
            )
            if not candidates:
                return []

            linked_ids = await self.store.find_linked_ids(supplier_id)
            candidates = [c for c in candidates if c.id not in linked_ids]
            if not candidates:
                logger.info(f"[SupplierRiskSuggestion] All candidate risks already linked to {supplier_id}")
                return []

            scored = await self.search.rank_against(query_text, candidates)
            selected = select_top(scored, self.relevance.min_score, limit)

            logger.info(
                f"[SupplierRiskSuggestion] {len(selected)} of {len(candidates)} risks relevant to supplier {supplier_id}"
            )
            return _to_suggestions(selected, candidates)

        except Exception as e:
            logger.error(f"[SupplierRiskSuggestion] Error finding relevant risks for {supplier_id}: {e}", exc_info=True)
            return []

    async def find_similar_risks(self, risk_id: str, limit: int | None = None) -> list[RiskSuggestion]:
        """Find likely duplicates of an existing risk among active risks.

        Returns an empty list on any failure.
        """
        limit = limit or self.similarity.duplicate_limit

        try:
            risk = await self.store.get_risk(risk_id)
            if risk is None:
                raise RecordNotFound(f"Risk not found: {risk_id}")

            candidates = await self.store.find_candidates(
                CandidateFilter(archived=False, exclude_ids=frozenset({risk_id})),
                self.similarity.candidate_cap,
            )
            candidates = [c for c in candidates if c.id != risk_id]
            if not candidates:
                return []

            query_text = combine(
                risk.title,
                risk.threat_description,
                risk.description,
                max_length=self.similarity.max_text_length,
            )
            scored = await self.search.rank_against(query_text, candidates)
            selected = select_top(scored, self.similarity.duplicate_threshold, limit)
            return _to_suggestions(selected, candidates)

        except Exception as e:
            logger.error(f"Error finding similar risks for {risk_id}: {e}", exc_info=True)
            return []

    async def check_new_risk(
        self,
        title: str,
        threat_description: str | None = None,
        description: str | None = None,
        *,
        exclude_id: str | None = None,
        limit: int | None = None,
    ) -> list[RiskSuggestion]:
        """Check a draft risk (being created or edited) against existing risks.

        Titles shorter than the configured minimum produce no result.
        """
        limit = limit or self.similarity.new_risk_limit

        if not title or len(title.strip()) < self.similarity.new_risk_min_title_length:
            return []

        try:
            exclude = frozenset({exclude_id}) if exclude_id else frozenset()
            candidates = await self.store.find_candidates(
                CandidateFilter(archived=False, exclude_ids=exclude),
                self.similarity.candidate_cap,
            )
            candidates = [c for c in candidates if c.id not in exclude]
            if not candidates:
                return []

            query_text = combine(
                title,
                threat_description,
                description,
                max_length=self.similarity.max_text_length,
            )
            scored = await self.search.rank_against(query_text, candidates)
            selected = select_top(scored, self.similarity.duplicate_threshold, limit)
            return _to_suggestions(selected, candidates)

        except Exception as e:
            logger.error(f"Error checking similarity for new risk: {e}", exc_info=True)
            return []
