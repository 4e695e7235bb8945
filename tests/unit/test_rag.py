"""Tests for embeddings and vector search."""

from __future__ import annotations

import json

import httpx
import pytest

from flowchord.core.models import Collection, DistanceMetric, VectorRecord
from flowchord.errors.exceptions import ProviderError
from flowchord.rag import (
    HashEmbeddingProvider,
    OpenAICompatibleEmbeddings,
    VectorSearch,
    cosine_similarity,
    similarity,
)


class TestSimilarity:
    def test_cosine(self):
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_cosine_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_cosine_length_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 2.0])

    def test_euclidean_higher_is_closer(self):
        near = similarity([0.0, 0.0], [0.0, 1.0], DistanceMetric.EUCLIDEAN)
        far = similarity([0.0, 0.0], [0.0, 3.0], DistanceMetric.EUCLIDEAN)
        assert near == pytest.approx(0.5)
        assert far == pytest.approx(0.25)

    def test_dot_product(self):
        assert similarity([1.0, 0.0], [1.0, 0.0], DistanceMetric.DOT_PRODUCT) == pytest.approx(1.0)


class TestHashEmbeddings:
    @pytest.mark.asyncio
    async def test_deterministic_32_dimensions(self):
        provider = HashEmbeddingProvider()

        first = await provider.embed("hello")
        second = await provider.embed("hello")

        assert first == second
        assert len(first) == provider.dimensions == 32
        assert all(0.0 <= value <= 1.0 for value in first)

    @pytest.mark.asyncio
    async def test_batch(self):
        provider = HashEmbeddingProvider()

        vectors = await provider.embed_batch(["a", "b"])

        assert vectors == [await provider.embed("a"), await provider.embed("b")]


class TestOpenAICompatibleEmbeddings:
    @pytest.mark.asyncio
    async def test_embed_batch(self):
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["model"] == "text-embedding-3-small"
            return httpx.Response(
                200,
                json={"data": [{"embedding": [float(i)] * 3} for i, _ in enumerate(body["input"])]},
            )

        provider = OpenAICompatibleEmbeddings(api_key="sk-test", transport=httpx.MockTransport(handler))

        vectors = await provider.embed_batch(["one", "two"])

        assert vectors == [[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]]
        assert provider.dimensions == 1536

    @pytest.mark.asyncio
    async def test_error_response(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(401, json={"error": {"message": "Incorrect API key"}})
        )
        provider = OpenAICompatibleEmbeddings(api_key="sk-bad", transport=transport)

        with pytest.raises(ProviderError, match="Incorrect API key"):
            await provider.embed("text")


class TestVectorSearch:
    @pytest.mark.asyncio
    async def test_ranked_limited_and_filtered(self, store, seed):
        collection = await seed.collection(dimensions=2)
        for vector_id, vector in (("x", [1.0, 0.0]), ("diag", [1.0, 1.0]), ("y", [0.0, 1.0])):
            await store.vectors.add(
                VectorRecord(id=vector_id, collection_id=collection.id, vector=vector, text=vector_id)
            )
        search = VectorSearch(store.collections, store.vectors)

        hits = await search.search(collection.id, [1.0, 0.0], limit=2)
        assert [hit.id for hit in hits] == ["x", "diag"]

        filtered = await search.search(collection.id, [1.0, 0.0], min_score=0.9)
        assert [hit.id for hit in filtered] == ["x"]

    @pytest.mark.asyncio
    async def test_stored_vectors_of_other_length_skipped(self, store, seed):
        collection = await seed.collection(dimensions=2)
        await store.vectors.add(VectorRecord(id="bad", collection_id=collection.id, vector=[1.0, 0.0, 0.0]))
        await store.vectors.add(VectorRecord(id="ok", collection_id=collection.id, vector=[1.0, 0.0]))

        hits = await VectorSearch(store.collections, store.vectors).search(collection.id, [1.0, 0.0])

        assert [hit.id for hit in hits] == ["ok"]

    @pytest.mark.asyncio
    async def test_dimension_mismatch(self, store, seed):
        collection = await seed.collection(dimensions=3)

        with pytest.raises(ValueError, match="collection expects 3"):
            await VectorSearch(store.collections, store.vectors).search(collection.id, [1.0, 0.0])

    @pytest.mark.asyncio
    async def test_missing_collection(self, store):
        with pytest.raises(ValueError, match="not found"):
            await VectorSearch(store.collections, store.vectors).search("ghost", [1.0])

    @pytest.mark.asyncio
    async def test_collection_distance_metric_used(self, store):
        collection = await store.collections.save(
            Collection(dimensions=2, distance=DistanceMetric.EUCLIDEAN)
        )
        await store.vectors.add(VectorRecord(id="v", collection_id=collection.id, vector=[0.0, 1.0]))

        [hit] = await VectorSearch(store.collections, store.vectors).search(collection.id, [0.0, 0.0])

        assert hit.score == pytest.approx(0.5)
