"""Unit tests for the in-process numpy vector store."""

from __future__ import annotations

import pytest

from src.models.rag import IndexCreation, ScoreConvention, VectorRecord
from src.providers.vector_store.memory_store import InMemoryVectorStore
from src.utils.errors import VectorStoreError


def _record(key: str, vector: list[float], **metadata) -> VectorRecord:
    return VectorRecord(key=key, vector=vector, metadata={"content": f"text for {key}", **metadata})


class TestCreateIndex:
    @pytest.mark.asyncio
    async def test_create_is_idempotent(self, memory_store: InMemoryVectorStore) -> None:
        assert await memory_store.create_index("idx", 3) is IndexCreation.CREATED
        assert await memory_store.create_index("idx", 3) is IndexCreation.ALREADY_EXISTS
        assert await memory_store.list_indices() == ["idx"]

    @pytest.mark.asyncio
    async def test_dimension_mismatch_rejected(self, memory_store: InMemoryVectorStore) -> None:
        await memory_store.create_index("idx", 3)
        with pytest.raises(VectorStoreError):
            await memory_store.create_index("idx", 4)

    @pytest.mark.asyncio
    async def test_non_positive_dimension_rejected(self, memory_store: InMemoryVectorStore) -> None:
        with pytest.raises(VectorStoreError):
            await memory_store.create_index("idx", 0)

    @pytest.mark.asyncio
    async def test_list_is_sorted(self, memory_store: InMemoryVectorStore) -> None:
        await memory_store.create_index("b", 2)
        await memory_store.create_index("a", 2)
        assert await memory_store.list_indices() == ["a", "b"]


class TestUpsert:
    @pytest.mark.asyncio
    async def test_returns_written_count(self, memory_store: InMemoryVectorStore) -> None:
        await memory_store.create_index("idx", 3)
        written = await memory_store.upsert_vectors(
            "idx", [_record("a", [1.0, 0.0, 0.0]), _record("b", [0.0, 1.0, 0.0])]
        )
        assert written == 2

    @pytest.mark.asyncio
    async def test_wrong_dimension_not_counted(self, memory_store: InMemoryVectorStore) -> None:
        await memory_store.create_index("idx", 3)
        written = await memory_store.upsert_vectors(
            "idx", [_record("a", [1.0, 0.0, 0.0]), _record("b", [1.0, 0.0])]
        )
        assert written == 1

    @pytest.mark.asyncio
    async def test_upsert_replaces_existing_key(self, memory_store: InMemoryVectorStore) -> None:
        await memory_store.create_index("idx", 2)
        await memory_store.upsert_vectors("idx", [_record("a", [1.0, 0.0], version=1)])
        await memory_store.upsert_vectors("idx", [_record("a", [0.0, 1.0], version=2)])

        matches = await memory_store.query_top_k("idx", [0.0, 1.0], 5)
        assert len(matches) == 1
        assert matches[0].metadata["version"] == 2

    @pytest.mark.asyncio
    async def test_missing_index_raises(self, memory_store: InMemoryVectorStore) -> None:
        with pytest.raises(VectorStoreError):
            await memory_store.upsert_vectors("missing", [_record("a", [1.0])])


async def _populated(convention: ScoreConvention = ScoreConvention.SIMILARITY) -> InMemoryVectorStore:
    store = InMemoryVectorStore(score_convention=convention)
    await store.create_index("idx", 3)
    await store.upsert_vectors(
        "idx",
        [
            _record("x", [1.0, 0.0, 0.0]),
            _record("y", [0.0, 1.0, 0.0]),
            _record("xy", [1.0, 1.0, 0.0]),
        ],
    )
    return store


class TestQuery:
    @pytest.mark.asyncio
    async def test_similarity_ordering(self) -> None:
        store = await _populated()
        matches = await store.query_top_k("idx", [1.0, 0.0, 0.0], 3)

        assert store.score_convention is ScoreConvention.SIMILARITY
        assert [m.key for m in matches] == ["x", "xy", "y"]
        assert matches[0].score == pytest.approx(1.0)
        assert matches[1].score == pytest.approx(0.7071, abs=1e-4)
        assert matches[2].score == pytest.approx(0.0)
        assert matches[0].metadata["content"] == "text for x"

    @pytest.mark.asyncio
    async def test_distance_convention(self) -> None:
        store = await _populated(ScoreConvention.DISTANCE)
        matches = await store.query_top_k("idx", [1.0, 0.0, 0.0], 3)

        assert [m.key for m in matches] == ["x", "xy", "y"]
        assert matches[0].score == pytest.approx(0.0)
        assert matches[2].score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_k_caps_results(self) -> None:
        store = await _populated()
        assert len(await store.query_top_k("idx", [0.0, 1.0, 0.0], 2)) == 2
        assert await store.query_top_k("idx", [0.0, 1.0, 0.0], 0) == []

    @pytest.mark.asyncio
    async def test_zero_query_vector_scores_zero(self) -> None:
        store = await _populated()
        matches = await store.query_top_k("idx", [0.0, 0.0, 0.0], 3)
        assert all(m.score == 0.0 for m in matches)

    @pytest.mark.asyncio
    async def test_empty_index(self, memory_store: InMemoryVectorStore) -> None:
        await memory_store.create_index("idx", 3)
        assert await memory_store.query_top_k("idx", [1.0, 0.0, 0.0], 5) == []

    @pytest.mark.asyncio
    async def test_query_dimension_mismatch(self) -> None:
        store = await _populated()
        with pytest.raises(VectorStoreError):
            await store.query_top_k("idx", [1.0, 0.0], 3)

    @pytest.mark.asyncio
    async def test_missing_index_raises(self, memory_store: InMemoryVectorStore) -> None:
        with pytest.raises(VectorStoreError):
            await memory_store.query_top_k("missing", [1.0], 3)


class TestKeys:
    @pytest.mark.asyncio
    async def test_list_keys_sorted(self) -> None:
        store = await _populated()
        assert await store.list_keys("idx") == ["x", "xy", "y"]

    @pytest.mark.asyncio
    async def test_delete_vectors_ignores_unknown_keys(self) -> None:
        store = await _populated()

        assert await store.delete_vectors("idx", ["y", "missing"]) == 1
        assert await store.list_keys("idx") == ["x", "xy"]
        matches = await store.query_top_k("idx", [0.0, 1.0, 0.0], 5)
        assert [m.key for m in matches] == ["xy", "x"]

    @pytest.mark.asyncio
    async def test_missing_index_raises(self, memory_store: InMemoryVectorStore) -> None:
        with pytest.raises(VectorStoreError):
            await memory_store.list_keys("missing")
        with pytest.raises(VectorStoreError):
            await memory_store.delete_vectors("missing", ["a"])


class TestDeleteIndex:
    @pytest.mark.asyncio
    async def test_delete(self) -> None:
        store = await _populated()
        assert await store.delete_index("idx") is True
        assert await store.delete_index("idx") is False
        assert await store.list_indices() == []

    def test_provider_metadata(self, memory_store: InMemoryVectorStore) -> None:
        assert memory_store.get_provider_name() == "memory"
        assert memory_store.is_available() is True
