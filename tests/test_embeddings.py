"""Tests for the embedding provider client."""
import json

import httpx

from ai.embeddings import EmbeddingClient
from riskmatch.config import ProviderSettings
from riskmatch.domain import UNAVAILABLE


def _client(handler, max_retries=0):
    config = ProviderSettings(base_url="http://llm.test/", embedding_model="embed-model", max_retries=max_retries)
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EmbeddingClient(config, http_client=http_client)


async def test_generate_returns_vector_and_trims_text():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"embedding": [0.1, 0.2, 3]})

    vector = await _client(handler).generate("  phishing risk  ")
    assert vector == [0.1, 0.2, 3.0]
    assert seen["url"] == "http://llm.test/api/embeddings"
    assert seen["body"] == {"model": "embed-model", "prompt": "phishing risk"}


async def test_blank_text_skips_provider():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"embedding": [1.0]})

    assert await _client(handler).generate("   ") is UNAVAILABLE
    assert calls == []


async def test_empty_embedding_is_unavailable():
    client = _client(lambda request: httpx.Response(200, json={"embedding": []}))
    assert await client.generate("text") is UNAVAILABLE


async def test_non_numeric_embedding_is_unavailable():
    client = _client(lambda request: httpx.Response(200, json={"embedding": ["a", "b"]}))
    assert await client.generate("text") is UNAVAILABLE


async def test_non_json_body_is_unavailable():
    client = _client(lambda request: httpx.Response(200, text="<html>"))
    assert await client.generate("text") is UNAVAILABLE


async def test_http_error_status_is_unavailable():
    client = _client(lambda request: httpx.Response(404, json={"error": "model not found"}))
    assert await client.generate("text") is UNAVAILABLE


async def test_transport_error_is_retried_then_unavailable():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    client = _client(handler, max_retries=1)
    assert await client.generate("text") is UNAVAILABLE
    assert len(calls) == 2


async def test_transport_error_recovers_on_retry():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, json={"embedding": [1.0, 0.0]})

    assert await _client(handler, max_retries=2).generate("text") == [1.0, 0.0]


async def test_generate_many_preserves_order():
    def handler(request):
        prompt = json.loads(request.content)["prompt"]
        return httpx.Response(200, json={"embedding": [float(len(prompt))]})

    vectors = await _client(handler).generate_many(["a", "bbb", ""])
    assert vectors == [[1.0], [3.0], UNAVAILABLE]
