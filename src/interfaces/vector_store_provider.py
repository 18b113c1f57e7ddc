"""Abstract base class for vector-store service providers.

Defines the contract for creating named indices, writing vectors and
running top-K similarity queries.  Implementations may wrap ChromaDB, an
in-process numpy matrix, or any hosted vector database; the ingestion and
search services depend only on this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import IndexCreation, QueryMatch, ScoreConvention, VectorRecord


# Concrete implementations (src/providers/vector_store/):
#   InMemoryVectorStore  -- numpy cosine similarity, tests and small corpora
#   ChromaDBVectorStore  -- one ChromaDB collection per index, persisted to disk
class IVectorStoreProvider(ABC):
    """Contract for vector stores holding one index per ingested document.

    All I/O methods are async so network-backed stores do not block the
    event loop.  Scores returned by :meth:`query_top_k` follow
    :attr:`score_convention`; the hybrid ranker normalises them.
    """

    @property
    @abstractmethod
    def score_convention(self) -> ScoreConvention:
        """How :attr:`QueryMatch.score` values from this store should be read."""

    @abstractmethod
    async def create_index(self, name: str, dimension: int) -> IndexCreation:
        """Create a named index of vectors of the given dimension.

        Idempotent: calling it again with the same name and dimension
        returns :attr:`IndexCreation.ALREADY_EXISTS`.  Both outcomes are
        success.

        Raises
        ------
        src.utils.errors.VectorStoreError
            If the index exists with a different dimension, or the backend
            fails.
        """

    @abstractmethod
    async def upsert_vectors(self, index_name: str, records: list[VectorRecord]) -> int:
        """Insert or replace *records* in *index_name*.

        Records whose vector length differs from the index dimension are
        rejected and not counted.

        Returns
        -------
        int
            The number of records actually written.  May be lower than
            ``len(records)``; a partial write is not an error.

        Raises
        ------
        src.utils.errors.VectorStoreError
            If the index does not exist or the backend fails outright.
        """

    @abstractmethod
    async def query_top_k(
        self, index_name: str, vector: list[float], k: int
    ) -> list[QueryMatch]:
        """Return up to *k* matches for *vector*, best first.

        Raises
        ------
        src.utils.errors.VectorStoreError
            If the index does not exist or the query fails.
        """

    @abstractmethod
    async def list_keys(self, index_name: str) -> list[str]:
        """Return every record key stored in *index_name*, sorted.

        Raises
        ------
        src.utils.errors.VectorStoreError
            If the index does not exist or the backend fails.
        """

    @abstractmethod
    async def delete_vectors(self, index_name: str, keys: list[str]) -> int:
        """Remove *keys* from *index_name*.  Unknown keys are ignored.

        Returns
        -------
        int
            The number of records actually removed.
        """

    @abstractmethod
    async def delete_index(self, name: str) -> bool:
        """Drop *name*.  Returns ``False`` if it did not exist."""

    @abstractmethod
    async def list_indices(self) -> list[str]:
        """Return the names of all indices, sorted."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"chromadb"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store is reachable."""
