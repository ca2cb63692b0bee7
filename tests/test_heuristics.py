"""Tests for the heuristic fallback scorer."""
import pytest

from riskmatch.heuristics import HeuristicScorer, is_complete, jaccard
from riskmatch.domain import UNAVAILABLE
from tests.fakes import FakeJudge, make_risk

THREAT = "attackers send deceptive emails to staff to steal credentials"
DESCRIPTION = "employees may disclose passwords through fake login pages hosted externally"


def test_jaccard_edge_cases():
    assert jaccard("", "anything") == 0.0
    assert jaccard("same words here", "same words here") == 1.0
    assert jaccard("a b c", "a b c d") == 0.0  # tokens shorter than 3 are ignored
    assert jaccard("alpha beta gamma", "alpha beta delta") == pytest.approx(2 / 4)


def test_is_complete():
    assert is_complete(make_risk("1", "Title", threat="Threat"))
    assert not is_complete(make_risk("1", "Title"))


async def test_identical_records_score_100_with_all_fields(scorer, judge):
    a = make_risk("1", "Phishing Attack", THREAT, DESCRIPTION)
    b = make_risk("2", "phishing attack ", THREAT.upper(), DESCRIPTION)
    result = await scorer.score(a, b)
    assert result.score == 100
    assert result.matched_fields == ["title", "threatDescription", "description"]
    assert judge.prompts == []


async def test_same_title_high_overlap_scores_95(scorer):
    a = make_risk("1", "Phishing Attack", THREAT, DESCRIPTION)
    b = make_risk("2", "Phishing Attack", THREAT + " today", DESCRIPTION + " today")
    result = await scorer.score(a, b)
    assert result.score == 95
    assert set(result.matched_fields) == {"title", "threatDescription", "description"}


async def test_same_title_partial_overlap_scores_85(scorer):
    a = make_risk("1", "Phishing Attack", THREAT, DESCRIPTION)
    b = make_risk("2", "Phishing Attack", THREAT, "something completely unrelated entirely")
    result = await scorer.score(a, b)
    assert result.score == 85
    assert result.matched_fields == ["title"]


async def test_same_title_no_overlap_scores_70(scorer):
    a = make_risk("1", "Vendor outage", "power failure at datacenter", "loss of hosting")
    b = make_risk("2", "Vendor outage", "insolvency of provider", "contract ends abruptly")
    result = await scorer.score(a, b)
    assert result.score == 70
    assert result.matched_fields == ["title"]


async def test_phishing_end_to_end_scores_at_least_85(scorer):
    a = make_risk("1", "Phishing Attack", THREAT, DESCRIPTION)
    b = make_risk("2", "Phishing Attack", THREAT, DESCRIPTION + " via sms")
    result = await scorer.score(a, b)
    assert result.score >= 85
    assert "title" in result.matched_fields


async def test_judge_unavailable_scores_zero(scorer):
    a = make_risk("1", "Ransomware", "encryption of servers", "downtime")
    b = make_risk("2", "Insider fraud", "payment diversion", "financial loss")
    result = await scorer.score(a, b)
    assert result.score == 0
    assert result.matched_fields == []


async def test_judge_score_passes_through_for_complete_specific_records(heuristic_settings):
    judge = FakeJudge('{"score": 82, "matchedFields": ["threatDescription", "bogus"], "reasoning": "close"}')
    scorer = HeuristicScorer(judge, heuristic_settings)
    a = make_risk("1", "Ransomware on file servers", "encryption of servers", "downtime")
    b = make_risk("2", "Crypto-locker infection", "encryption of shares", "outage")
    result = await scorer.score(a, b)
    assert result.score == 82
    assert result.matched_fields == ["threatDescription"]
    assert len(judge.prompts) == 1


async def test_incomplete_record_penalty(heuristic_settings):
    scorer = HeuristicScorer(FakeJudge('{"score": 60}'), heuristic_settings)
    a = make_risk("1", "Ransomware on file servers")
    b = make_risk("2", "Crypto-locker infection", "encryption of shares")
    result = await scorer.score(a, b)
    assert result.score == 45


async def test_generic_title_penalty_respects_floor(heuristic_settings):
    scorer = HeuristicScorer(FakeJudge("score: 90"), heuristic_settings)
    a = make_risk("1", "Security risk", "generic", "generic")
    b = make_risk("2", "Unpatched VPN appliance", "exploit", "remote access")
    result = await scorer.score(a, b)
    assert result.score == 80

    scorer = HeuristicScorer(FakeJudge('{"score": 55}'), heuristic_settings)
    assert scorer.adjust(a, b, 75) == 65
    assert scorer.adjust(a, b, 55) == 55


async def test_unparseable_judge_reply_scores_zero(heuristic_settings):
    scorer = HeuristicScorer(FakeJudge("no idea, sorry"), heuristic_settings)
    a = make_risk("1", "Ransomware", "encryption", "downtime")
    b = make_risk("2", "Fraud", "diversion", "loss")
    result = await scorer.score(a, b)
    assert result.score == 0


def test_adjust_clamps_out_of_range(scorer):
    a = make_risk("1", "Specific title here", "t", "d")
    b = make_risk("2", "Another specific one", "t", "d")
    assert scorer.adjust(a, b, 140) == 100
    assert scorer.adjust(a, b, -20) == 0


def test_unavailable_sentinel_is_falsy():
    assert not UNAVAILABLE


async def test_salvaged_number_still_gets_penalties(heuristic_settings):
    judge = FakeJudge("I would say 90 out of 100")
    scorer = HeuristicScorer(judge, heuristic_settings)
    a = make_risk("1", "Security breach")
    b = make_risk("2", "Unpatched VPN appliance", "exploit", "remote access")

    result = await scorer.score(a, b)
    assert result.score == 65
    assert result.matched_fields == []
    assert len(judge.prompts) == 1
