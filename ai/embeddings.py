"""Embedding provider client (Ollama ``/api/embeddings``).

Wraps the HTTP call with timeouts, retry on transport errors and response
validation. ``generate`` never raises: every failure becomes ``UNAVAILABLE``
and is logged with enough detail to spot a misconfigured model.
"""
from __future__ import annotations

import asyncio
import logging
import numbers
from typing import Iterable

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from riskmatch.config import ProviderSettings
from riskmatch.domain import UNAVAILABLE, EmbeddingVector, Unavailable
from riskmatch.errors import MalformedResponse, ProviderUnavailable

logger = logging.getLogger(__name__)


def _validate_embedding(data: object, model: str) -> EmbeddingVector:
    """Extract a non-empty numeric vector from a provider body.

    Raises:
        MalformedResponse: If the body is not shaped like ``{"embedding": [...]}``
    """
    if not isinstance(data, dict):
        raise MalformedResponse(f"Model '{model}' returned a non-object body")

    embedding = data.get("embedding")
    if not isinstance(embedding, list) or not embedding:
        raise MalformedResponse(
            f"Model '{model}' returned empty embeddings; it may not support embeddings"
        )
    if not all(isinstance(v, numbers.Real) and not isinstance(v, bool) for v in embedding):
        raise MalformedResponse(f"Model '{model}' returned a non-numeric embedding")

    return [float(v) for v in embedding]


class EmbeddingClient:
    """Async client for an embedding model behind an Ollama-compatible API."""

    def __init__(
        self,
        config: ProviderSettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Provider settings (base URL, model, timeout, retries)
            http_client: Optional shared client; one is created lazily otherwise
        """
        self.config = config
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def model(self) -> str:
        return self.config.embedding_model

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.embedding_timeout,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(self, text: str) -> EmbeddingVector:
        """Single provider round-trip.

        Raises:
            ProviderUnavailable: On transport failure or non-success status
            MalformedResponse: On an unusable body
        """
        client = self._get_client()
        url = f"{self.config.base_url.rstrip('/')}/api/embeddings"

        response: httpx.Response | None = None
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.config.max_retries + 1),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                response = await client.post(
                    url,
                    json={"model": self.model, "prompt": text},
                    timeout=self.config.embedding_timeout,
                )

        if response.status_code >= 400:
            raise ProviderUnavailable(f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponse(f"Body is not JSON: {e}") from e

        return _validate_embedding(data, self.model)

    async def generate(self, text: str | None) -> EmbeddingVector | Unavailable:
        """Embed a single text.

        Args:
            text: Text to embed (trimmed before sending)

        Returns:
            Embedding vector, or ``UNAVAILABLE`` on any failure
        """
        text = (text or "").strip()
        if not text:
            logger.warning("Empty text provided to embedding client")
            return UNAVAILABLE

        try:
            embedding = await self._request(text)
        except httpx.TimeoutException as e:
            logger.error(
                f"[Embedding] Timed out after {self.config.embedding_timeout}s "
                f"calling model '{self.model}': {e!r}"
            )
            return UNAVAILABLE
        except httpx.TransportError as e:
            logger.error(
                f"[Embedding] Transport failure reaching {self.config.base_url} "
                f"(model '{self.model}'): {e!r}. Is the provider running?"
            )
            return UNAVAILABLE
        except ProviderUnavailable as e:
            logger.error(
                f"[Embedding] {e}. Model '{self.model}' may not support embeddings "
                f"(try an embedding model such as nomic-embed-text)"
            )
            return UNAVAILABLE
        except MalformedResponse as e:
            logger.error(f"[Embedding] Malformed response: {e}")
            return UNAVAILABLE
        except httpx.HTTPError as e:
            logger.error(f"[Embedding] Request to model '{self.model}' failed: {e!r}")
            return UNAVAILABLE

        logger.debug(f"[Embedding] Generated embedding of length {len(embedding)} for text: {text[:50]!r}")
        return embedding

    async def generate_many(self, texts: Iterable[str]) -> list[EmbeddingVector | Unavailable]:
        """Embed several texts concurrently, preserving order."""
        return list(await asyncio.gather(*(self.generate(t) for t in texts)))
