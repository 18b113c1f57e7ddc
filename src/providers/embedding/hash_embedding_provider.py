"""Offline embedding provider producing deterministic hash vectors.

Used when no embedding API is configured (local development, CI).  Every
vector is :func:`~src.services.embedding.fallback.fallback_vector` of the
text, so identical texts match exactly and nothing else is semantically
meaningful.  Retrieval then relies on the keyword and metadata scores.
"""

from __future__ import annotations

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.services.embedding.fallback import fallback_vector


class HashEmbeddingProvider(IEmbeddingProvider):
    """Deterministic, network-free embedding provider."""

    def __init__(self, dimension: int = 1536) -> None:
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self._dimension = dimension

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [fallback_vector(t, self._dimension) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return fallback_vector(text, self._dimension)

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "hash_embedding"

    def is_available(self) -> bool:
        return True
