"""Brute-force similarity search over a collection's stored vectors."""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel

from flowchord.core.models import Collection, DistanceMetric
from flowchord.store.base import ICollectionRepository, IVectorRepository


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Calculate cosine similarity between two vectors.

    Raises:
        ValueError: If vectors have different lengths.
    """
    if len(a) != len(b):
        raise ValueError("Vectors must have same length")

    dot_product = sum(x * y for x, y in zip(a, b))
    magnitude_a = math.sqrt(sum(x * x for x in a))
    magnitude_b = math.sqrt(sum(x * x for x in b))

    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0

    return dot_product / (magnitude_a * magnitude_b)


def similarity(a: list[float], b: list[float], metric: DistanceMetric) -> float:
    """Score two vectors so that higher is always more similar."""
    if metric == DistanceMetric.EUCLIDEAN:
        return 1.0 / (1.0 + math.dist(a, b))
    if metric == DistanceMetric.DOT_PRODUCT:
        return (sum(x * y for x, y in zip(a, b)) + 1.0) / 2.0
    return cosine_similarity(a, b)


class SearchHit(BaseModel):
    id: str
    text: str | None = None
    metadata: dict[str, Any] | None = None
    score: float


class VectorSearch:
    """Top-K search within one collection.

    Example:
        >>> search = VectorSearch(store.collections, store.vectors)
        >>> hits = await search.search("col-1", query_vector, limit=5, min_score=0.5)
    """

    def __init__(self, collections: ICollectionRepository, vectors: IVectorRepository) -> None:
        self._collections = collections
        self._vectors = vectors

    async def search(
        self,
        collection_id: str,
        query_vector: list[float],
        limit: int = 10,
        min_score: float | None = None,
        collection: Collection | None = None,
    ) -> list[SearchHit]:
        """Return the best-scoring vectors, highest first.

        Raises:
            ValueError: If the collection is missing or the query vector's
                dimensions do not match the collection.
        """
        collection = collection or await self._collections.get_by_id(collection_id)
        if collection is None:
            raise ValueError(f"Collection {collection_id} not found")
        if len(query_vector) != collection.dimensions:
            raise ValueError(
                f"Query vector has {len(query_vector)} dimensions, "
                f"collection expects {collection.dimensions}"
            )

        hits: list[SearchHit] = []
        for record in await self._vectors.list_by_collection(collection_id):
            if len(record.vector) != len(query_vector):
                continue
            score = similarity(query_vector, record.vector, collection.distance)
            if min_score is not None and score < min_score:
                continue
            hits.append(
                SearchHit(id=record.id, text=record.text, metadata=record.metadata, score=score)
            )

        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]
