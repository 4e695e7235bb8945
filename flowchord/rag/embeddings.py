"""Embedding providers."""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from typing import Any

import httpx

from flowchord.errors.exceptions import MissingAPIKeyError, ProviderError
from flowchord.llm.openai_compat import provider_error_message

_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class EmbeddingProvider(ABC):
    """Turns text into dense vectors."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        pass

    @property
    @abstractmethod
    def dimensions(self) -> int:
        pass

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        pass

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]


class OpenAICompatibleEmbeddings(EmbeddingProvider):
    """``POST {base_url}/embeddings`` over httpx.

    Texts are sent in batches of up to 2048 inputs per request.
    """

    batch_size = 2048

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise MissingAPIKeyError("OpenAI")
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return _DIMENSIONS.get(self._model, 1536)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        headers = {"Authorization": f"Bearer {self._api_key}"}
        vectors: list[list[float]] = []
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                for i in range(0, len(texts), self.batch_size):
                    payload: dict[str, Any] = {
                        "model": self._model,
                        "input": texts[i : i + self.batch_size],
                    }
                    response = await client.post(
                        f"{self._base_url}/embeddings", json=payload, headers=headers
                    )
                    if not response.is_success:
                        raise ProviderError(
                            provider_error_message(response),
                            provider="openai",
                            status_code=response.status_code,
                        )
                    data = response.json().get("data") or []
                    vectors.extend(item["embedding"] for item in data)
        except httpx.HTTPError as e:
            raise ProviderError(f"Embedding request failed: {e}", provider="openai") from e
        return vectors


class HashEmbeddingProvider(EmbeddingProvider):
    """Hash-based embedding fallback when no real provider is configured.

    Uses SHA-256 to generate deterministic 32-dimensional vectors. This is
    NOT semantic: identical text produces identical vectors, but similar
    text produces unrelated ones. Suitable only for exact-match lookups and
    tests.
    """

    @property
    def model_name(self) -> str:
        return "hash-embedding"

    @property
    def dimensions(self) -> int:
        return 32

    async def embed(self, text: str) -> list[float]:
        digest = hashlib.sha256(text.encode()).digest()
        # SHA-256 produces 32 bytes, normalize to [0, 1]
        return [float(b) / 255.0 for b in digest]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed(text) for text in texts]
