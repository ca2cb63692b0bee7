"""Tests for the semantic judge client and reply parsing."""
import json

import httpx
import pytest

from ai.judge import SemanticJudge, build_prompt, first_balanced_object, parse_judgement
from riskmatch.config import ProviderSettings
from riskmatch.domain import UNAVAILABLE
from riskmatch.errors import JudgeParseFailure
from tests.fakes import make_risk


def test_parse_strict_json():
    judgement = parse_judgement('{"score": 91, "matchedFields": ["title"], "reasoning": "same"}')
    assert judgement.score == 91
    assert judgement.matched_fields == ["title"]
    assert judgement.reasoning == "same"
    assert judgement.stage == "json"


def test_parse_code_fenced_json():
    judgement = parse_judgement('```json\n{"score": 40}\n```')
    assert judgement.score == 40
    assert judgement.stage == "json"


def test_parse_json_embedded_in_prose():
    reply = 'Sure! Here you go: {"score": 72, "reasoning": "uses {braces} in text"} Hope that helps.'
    judgement = parse_judgement(reply)
    assert judgement.score == 72
    assert judgement.stage == "brace"


def test_parse_falls_back_to_first_number():
    judgement = parse_judgement("I would rate these 65 out of 100")
    assert judgement.score == 65
    assert judgement.stage == "number"


def test_parse_without_score_raises():
    with pytest.raises(JudgeParseFailure):
        parse_judgement("cannot compare these")


def test_first_balanced_object_ignores_braces_in_strings():
    assert first_balanced_object('x {"a": "}"} y') == '{"a": "}"}'
    assert first_balanced_object("no braces") is None


def test_build_prompt_marks_missing_fields():
    prompt = build_prompt(make_risk("1", "Phishing"), make_risk("2", "Malware", "drive-by"))
    assert "Title: Phishing" in prompt
    assert "Threat Description: N/A" in prompt
    assert "Threat Description: drive-by" in prompt


def _judge(handler):
    config = ProviderSettings(base_url="http://llm.test", judge_model="judge-model")
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SemanticJudge(config, http_client=client)


async def test_ask_posts_chat_request_and_returns_content():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"message": {"role": "assistant", "content": '{"score": 88}'}})

    reply = await _judge(handler).ask("compare")
    assert reply == '{"score": 88}'
    assert seen["url"] == "http://llm.test/api/chat"
    assert seen["body"] == {
        "model": "judge-model",
        "messages": [{"role": "user", "content": "compare"}],
        "stream": False,
    }


async def test_ask_reads_response_field():
    judge = _judge(lambda request: httpx.Response(200, json={"response": "70"}))
    assert await judge.ask("compare") == "70"


async def test_ask_error_status_is_unavailable():
    judge = _judge(lambda request: httpx.Response(500, text="boom"))
    assert await judge.ask("compare") is UNAVAILABLE


async def test_ask_transport_error_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    assert await _judge(handler).ask("compare") is UNAVAILABLE
