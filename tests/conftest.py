"""Shared fixtures."""
from __future__ import annotations

import pytest

from riskmatch.config import (
    BackfillSettings,
    HeuristicSettings,
    RelevanceSettings,
    SimilaritySettings,
)
from riskmatch.domain import SupplierProfile
from riskmatch.heuristics import HeuristicScorer
from riskmatch.pipelines.similarity import SimilaritySearch
from tests.fakes import FakeJudge


@pytest.fixture
def heuristic_settings():
    return HeuristicSettings()


@pytest.fixture
def similarity_settings():
    return SimilaritySettings()


@pytest.fixture
def relevance_settings():
    return RelevanceSettings()


@pytest.fixture
def backfill_settings():
    return BackfillSettings(batch_size=10, concurrency=3, dry_run=False, task_timeout=5.0)


@pytest.fixture
def judge():
    return FakeJudge()


@pytest.fixture
def scorer(judge, heuristic_settings):
    return HeuristicScorer(judge, heuristic_settings)


@pytest.fixture
def make_search(similarity_settings, heuristic_settings):
    def _make(embedder, judge=None):
        heuristic = HeuristicScorer(judge or FakeJudge(), heuristic_settings)
        return SimilaritySearch(embedder, heuristic, similarity_settings)
    return _make


@pytest.fixture
def supplier():
    return SupplierProfile(
        id="sup-1",
        name="Acme Cloud Ltd",
        trading_name="Acme",
        supplier_type="Cloud hosting",
        service_description="Managed hosting of customer databases",
        risk_rationale="Processes personal data",
    )
