"""ChromaDB vector store provider adapter.

Wraps a ``chromadb`` client to implement :class:`IVectorStoreProvider`.
Every index is its own collection in cosine space; the index dimension is
recorded in the collection metadata so a later ``create_index`` with a
different dimension can be refused.  Fully local, free, and Python-native.
"""

from __future__ import annotations

import os
from typing import Any

# ChromaDB reads this before its telemetry client is created.
os.environ.setdefault("ANONYMIZED_TELEMETRY", "False")

import chromadb
import structlog

from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import IndexCreation, QueryMatch, ScoreConvention, VectorRecord
from src.utils.errors import VectorStoreError

logger = structlog.get_logger(logger_name=__name__)

_PROVIDER_NAME = "chromadb"
_UPSERT_BATCH_SIZE = 500

# Metadata keys owned by this adapter, stripped before results are returned.
_DIMENSION_KEY = "index_dimension"
_RECORD_KEY = "record_key"
_CONTENT_KEY = "content"


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that is never called.

    Every vector is pre-computed by the embedding pipeline; passing this
    stops ChromaDB from downloading its default ONNX model on collection
    creation.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "sectionrag uses pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


class ChromaDBVectorStore(IVectorStoreProvider):
    """Vector store backed by ChromaDB, one collection per index.

    Parameters
    ----------
    persist_directory:
        Directory for a ``PersistentClient``.  ``None`` uses an in-memory
        ``EphemeralClient``.
    client:
        An already-built ChromaDB client; overrides *persist_directory*.
    """

    def __init__(
        self,
        persist_directory: str | None = None,
        client: Any | None = None,
    ) -> None:
        self._persist_directory = persist_directory
        if client is not None:
            self._client = client
        elif persist_directory:
            self._client = chromadb.PersistentClient(
                path=persist_directory,
                settings=chromadb.config.Settings(anonymized_telemetry=False),
            )
        else:
            self._client = chromadb.EphemeralClient(
                settings=chromadb.config.Settings(anonymized_telemetry=False),
            )

    @property
    def score_convention(self) -> ScoreConvention:
        # Cosine distances are converted to similarities in query_top_k.
        return ScoreConvention.SIMILARITY

    # ------------------------------------------------------------------
    # IVectorStoreProvider implementation
    # ------------------------------------------------------------------

    async def create_index(self, name: str, dimension: int) -> IndexCreation:
        try:
            if name in self._collection_names():
                collection = self._get_collection(name)
                existing = (collection.metadata or {}).get(_DIMENSION_KEY)
                if existing is not None and int(existing) != dimension:
                    raise VectorStoreError(
                        message=(
                            f"Index '{name}' exists with dimension {existing}, "
                            f"requested {dimension}"
                        ),
                        provider_name=_PROVIDER_NAME,
                    )
                return IndexCreation.ALREADY_EXISTS

            self._client.create_collection(
                name=name,
                metadata={"hnsw:space": "cosine", _DIMENSION_KEY: dimension},
                embedding_function=_NoopEmbeddingFunction(),
            )
            logger.info("chromadb_index_created", index_name=name, dimension=dimension)
            return IndexCreation.CREATED

        except VectorStoreError:
            raise
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB create_index failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

    async def upsert_vectors(self, index_name: str, records: list[VectorRecord]) -> int:
        """Upsert *records* in batches, skipping vectors of the wrong dimension."""
        collection = self._require(index_name)
        dimension = int((collection.metadata or {}).get(_DIMENSION_KEY, 0))

        accepted = [r for r in records if not dimension or len(r.vector) == dimension]
        if len(accepted) < len(records):
            logger.warning(
                "vector_dimension_rejected",
                index_name=index_name,
                expected=dimension,
                rejected=len(records) - len(accepted),
            )
        if not accepted:
            return 0

        try:
            total_stored = 0
            for start in range(0, len(accepted), _UPSERT_BATCH_SIZE):
                batch = accepted[start : start + _UPSERT_BATCH_SIZE]
                collection.upsert(
                    ids=[r.key for r in batch],
                    embeddings=[list(r.vector) for r in batch],
                    documents=[str(r.metadata.get(_CONTENT_KEY, "")) for r in batch],
                    metadatas=[self._to_chroma_metadata(r) for r in batch],
                )
                total_stored += len(batch)

            logger.info(
                "chromadb_upsert",
                index_name=index_name,
                count=total_stored,
                batches=(len(accepted) + _UPSERT_BATCH_SIZE - 1) // _UPSERT_BATCH_SIZE,
            )
            return total_stored

        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

    async def query_top_k(
        self, index_name: str, vector: list[float], k: int
    ) -> list[QueryMatch]:
        """Return up to *k* matches with ``score = 1 - cosine_distance``."""
        collection = self._require(index_name)
        try:
            count = collection.count()
            if count == 0 or k <= 0:
                return []

            results = collection.query(
                query_embeddings=[list(vector)],
                n_results=min(k, count),
                include=["metadatas", "documents", "distances"],
            )
            ids = results["ids"][0] if results["ids"] else []
            metadatas = results["metadatas"][0] if results.get("metadatas") else [{}] * len(ids)
            documents = results["documents"][0] if results.get("documents") else [""] * len(ids)
            distances = results["distances"][0] if results.get("distances") else [1.0] * len(ids)

            matches = [
                QueryMatch(
                    key=key,
                    score=1.0 - float(distance),
                    metadata=self._from_chroma_metadata(meta, document),
                )
                for key, meta, document, distance in zip(
                    ids, metadatas, documents, distances, strict=True
                )
            ]
            logger.debug(
                "chromadb_query",
                index_name=index_name,
                results_count=len(matches),
                top_score=matches[0].score if matches else 0.0,
            )
            return matches

        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

    async def list_keys(self, index_name: str) -> list[str]:
        collection = self._require(index_name)
        try:
            return sorted(collection.get(include=[])["ids"])
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB list_keys failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

    async def delete_vectors(self, index_name: str, keys: list[str]) -> int:
        if not keys:
            return 0
        collection = self._require(index_name)
        try:
            present = collection.get(ids=list(keys), include=[])["ids"]
            if present:
                collection.delete(ids=present)
            logger.info("chromadb_vectors_deleted", index_name=index_name, count=len(present))
            return len(present)
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB delete_vectors failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

    async def delete_index(self, name: str) -> bool:
        try:
            if name not in self._collection_names():
                return False
            self._client.delete_collection(name=name)
            logger.info("chromadb_index_deleted", index_name=name)
            return True
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB delete_index failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

    async def list_indices(self) -> list[str]:
        try:
            return sorted(self._collection_names())
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB list_indices failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

    def get_provider_name(self) -> str:
        return _PROVIDER_NAME

    def is_available(self) -> bool:
        """Return ``True`` if the ChromaDB client answers a heartbeat."""
        try:
            self._client.heartbeat()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _collection_names(self) -> set[str]:
        # Newer clients return names, older ones return Collection objects.
        return {c if isinstance(c, str) else c.name for c in self._client.list_collections()}

    def _get_collection(self, name: str) -> Any:
        try:
            return self._client.get_collection(
                name=name, embedding_function=_NoopEmbeddingFunction()
            )
        except ValueError:
            # Collection persisted with a different embedding function.
            return self._client.get_collection(name=name)

    def _require(self, index_name: str) -> Any:
        try:
            exists = index_name in self._collection_names()
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB unavailable: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc
        if not exists:
            raise VectorStoreError(
                message=f"Index '{index_name}' does not exist",
                provider_name=_PROVIDER_NAME,
            )
        return self._get_collection(index_name)

    @staticmethod
    def _to_chroma_metadata(record: VectorRecord) -> dict[str, str | int | float | bool]:
        """Flatten metadata for ChromaDB.

        The chunk text is stored as the collection document, not metadata.
        ChromaDB only accepts scalar, non-``None`` values, and rejects empty
        dicts, so the record key is always included.
        """
        meta: dict[str, str | int | float | bool] = {_RECORD_KEY: record.key}
        for key, value in record.metadata.items():
            if key == _CONTENT_KEY or value is None:
                continue
            if isinstance(value, (list, tuple, set)):
                meta[key] = ",".join(str(v) for v in value)
            elif isinstance(value, (str, int, float, bool)):
                meta[key] = value
            else:
                meta[key] = str(value)
        return meta

    @staticmethod
    def _from_chroma_metadata(meta: dict[str, Any] | None, document: str | None) -> dict[str, Any]:
        restored = {k: v for k, v in (meta or {}).items() if k != _RECORD_KEY}
        if document:
            restored[_CONTENT_KEY] = document
        return restored
