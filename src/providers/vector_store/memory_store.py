"""In-process vector store backed by numpy arrays.

Each index is a dict of key -> (vector, metadata) plus its fixed dimension.
Queries compute cosine similarity against every stored vector, which is
fine for tests and small corpora.  Can be swapped for ChromaDB via the
:class:`IVectorStoreProvider` interface without touching callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np
import structlog

from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import IndexCreation, QueryMatch, ScoreConvention, VectorRecord
from src.utils.errors import VectorStoreError

logger = structlog.get_logger(logger_name=__name__)

_PROVIDER_NAME = "memory"


@dataclass
class _Index:
    dimension: int
    vectors: dict[str, np.ndarray] = field(default_factory=dict)
    metadata: dict[str, dict[str, Any]] = field(default_factory=dict)


class InMemoryVectorStore(IVectorStoreProvider):
    """Vector store that keeps every index in process memory.

    Parameters
    ----------
    score_convention:
        ``SIMILARITY`` (default) reports cosine similarity.  ``DISTANCE``
        reports ``1 - similarity`` instead, for exercising callers against
        distance-based backends.
    """

    def __init__(self, score_convention: ScoreConvention = ScoreConvention.SIMILARITY) -> None:
        self._convention = score_convention
        self._indices: dict[str, _Index] = {}

    @property
    def score_convention(self) -> ScoreConvention:
        return self._convention

    # ------------------------------------------------------------------
    # IVectorStoreProvider implementation
    # ------------------------------------------------------------------

    async def create_index(self, name: str, dimension: int) -> IndexCreation:
        if dimension <= 0:
            raise VectorStoreError(
                message=f"Index dimension must be positive, got {dimension}",
                provider_name=_PROVIDER_NAME,
            )
        existing = self._indices.get(name)
        if existing is not None:
            if existing.dimension != dimension:
                raise VectorStoreError(
                    message=(
                        f"Index '{name}' exists with dimension {existing.dimension}, "
                        f"requested {dimension}"
                    ),
                    provider_name=_PROVIDER_NAME,
                )
            return IndexCreation.ALREADY_EXISTS

        self._indices[name] = _Index(dimension=dimension)
        logger.info("memory_index_created", index_name=name, dimension=dimension)
        return IndexCreation.CREATED

    async def upsert_vectors(self, index_name: str, records: list[VectorRecord]) -> int:
        index = self._require(index_name)
        written = 0
        for record in records:
            if len(record.vector) != index.dimension:
                logger.warning(
                    "vector_dimension_rejected",
                    index_name=index_name,
                    key=record.key,
                    expected=index.dimension,
                    actual=len(record.vector),
                )
                continue
            index.vectors[record.key] = np.asarray(record.vector, dtype=np.float64)
            index.metadata[record.key] = dict(record.metadata)
            written += 1
        return written

    async def query_top_k(
        self, index_name: str, vector: list[float], k: int
    ) -> list[QueryMatch]:
        index = self._require(index_name)
        if not index.vectors or k <= 0:
            return []
        if len(vector) != index.dimension:
            raise VectorStoreError(
                message=(
                    f"Query vector has dimension {len(vector)}, "
                    f"index '{index_name}' expects {index.dimension}"
                ),
                provider_name=_PROVIDER_NAME,
            )

        keys = list(index.vectors)
        matrix = np.vstack([index.vectors[key] for key in keys])
        query = np.asarray(vector, dtype=np.float64)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        with np.errstate(divide="ignore", invalid="ignore"):
            similarities = np.where(norms > 0, matrix @ query / norms, 0.0)

        # Stable sort keeps insertion order among equal scores.
        order = np.argsort(-similarities, kind="stable")[:k]
        matches = []
        for i in order:
            similarity = float(similarities[i])
            score = similarity if self._convention is ScoreConvention.SIMILARITY else 1.0 - similarity
            matches.append(
                QueryMatch(key=keys[i], score=score, metadata=dict(index.metadata[keys[i]]))
            )
        return matches

    async def list_keys(self, index_name: str) -> list[str]:
        return sorted(self._require(index_name).vectors)

    async def delete_vectors(self, index_name: str, keys: list[str]) -> int:
        index = self._require(index_name)
        removed = 0
        for key in keys:
            if index.vectors.pop(key, None) is not None:
                index.metadata.pop(key, None)
                removed += 1
        return removed

    async def delete_index(self, name: str) -> bool:
        removed = self._indices.pop(name, None) is not None
        if removed:
            logger.info("memory_index_deleted", index_name=name)
        return removed

    async def list_indices(self) -> list[str]:
        return sorted(self._indices)

    def get_provider_name(self) -> str:
        return _PROVIDER_NAME

    def is_available(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _require(self, index_name: str) -> _Index:
        index = self._indices.get(index_name)
        if index is None:
            raise VectorStoreError(
                message=f"Index '{index_name}' does not exist",
                provider_name=_PROVIDER_NAME,
            )
        return index
