"""Embeddings and vector search for FlowChord."""

from flowchord.rag.embeddings import (
    EmbeddingProvider,
    HashEmbeddingProvider,
    OpenAICompatibleEmbeddings,
)
from flowchord.rag.search import SearchHit, VectorSearch, cosine_similarity, similarity

__all__ = [
    "EmbeddingProvider",
    "HashEmbeddingProvider",
    "OpenAICompatibleEmbeddings",
    "SearchHit",
    "VectorSearch",
    "cosine_similarity",
    "similarity",
]
