"""Unit tests for MemoryCacheProvider, ProgressTracker and ProcessingStatusStore."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.models.rag import EmbeddingProgress, IngestionStage, ProcessingState
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.status_store import ProcessingStatusStore
from src.providers.cache.memory_cache import MemoryCacheProvider
from src.utils.errors import PipelineError


class _ManualTimer:
    """Clock for TTLCache that only moves when told to."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


# ======================================================================
# MemoryCacheProvider
# ======================================================================


class TestMemoryCacheProvider:
    @pytest.fixture()
    def cache(self) -> MemoryCacheProvider:
        return MemoryCacheProvider(max_size=100, ttl=3600)

    @pytest.mark.asyncio
    async def test_get_missing_key_returns_none(self, cache: MemoryCacheProvider) -> None:
        assert await cache.get("nonexistent") is None

    @pytest.mark.asyncio
    async def test_set_and_get(self, cache: MemoryCacheProvider) -> None:
        await cache.set("key1", "value1")
        assert await cache.get("key1") == "value1"

    @pytest.mark.asyncio
    async def test_set_overwrites_existing(self, cache: MemoryCacheProvider) -> None:
        await cache.set("key1", "old")
        await cache.set("key1", "new")
        assert await cache.get("key1") == "new"

    @pytest.mark.asyncio
    async def test_delete_removes_key(self, cache: MemoryCacheProvider) -> None:
        await cache.set("key1", "value1")
        await cache.delete("key1")
        assert await cache.get("key1") is None

    @pytest.mark.asyncio
    async def test_delete_nonexistent_is_noop(self, cache: MemoryCacheProvider) -> None:
        await cache.delete("nonexistent")  # should not raise

    @pytest.mark.asyncio
    async def test_exists(self, cache: MemoryCacheProvider) -> None:
        await cache.set("key1", "value1")
        assert await cache.exists("key1") is True
        assert await cache.exists("missing") is False

    @pytest.mark.asyncio
    async def test_stores_complex_values(self, cache: MemoryCacheProvider) -> None:
        data = {"vector": [0.1, 0.2], "count": 2}
        await cache.set("complex", data)
        assert await cache.get("complex") == data

    @pytest.mark.asyncio
    async def test_entries_expire_after_ttl(self) -> None:
        timer = _ManualTimer()
        cache = MemoryCacheProvider(max_size=10, ttl=60, timer=timer)
        await cache.set("key", "value")

        timer.now = 59
        assert await cache.get("key") == "value"
        timer.now = 61
        assert await cache.get("key") is None
        assert await cache.exists("key") is False

    @pytest.mark.asyncio
    async def test_evicts_when_full(self) -> None:
        cache = MemoryCacheProvider(max_size=2, ttl=60)
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.set("c", 3)
        assert await cache.get("c") == 3
        assert sum([await cache.exists(k) for k in ("a", "b", "c")]) == 2

    @pytest.mark.asyncio
    async def test_per_item_ttl_ignored(self) -> None:
        timer = _ManualTimer()
        cache = MemoryCacheProvider(max_size=10, ttl=60, timer=timer)
        await cache.set("key", "value", ttl=5)
        timer.now = 30
        assert await cache.get("key") == "value"


# ======================================================================
# ProgressTracker
# ======================================================================


class TestProgressTracker:
    @pytest.fixture()
    def tracker(self) -> ProgressTracker:
        return ProgressTracker()

    @pytest.mark.asyncio
    async def test_update_stores_status(self, tracker: ProgressTracker) -> None:
        await tracker.update("s1", IngestionStage.EMBEDDING, 25.0, "Embedding")
        status = tracker.get_status("s1")
        assert status["stage"] == "embedding"
        assert status["progress"] == 25.0
        assert status["message"] == "Embedding"
        assert status["detail"] is None

    @pytest.mark.asyncio
    async def test_progress_is_clamped(self, tracker: ProgressTracker) -> None:
        await tracker.update("s1", IngestionStage.EMBEDDING, 140.0)
        assert tracker.get_status("s1")["progress"] == 100.0
        await tracker.update("s1", IngestionStage.EMBEDDING, -3.0)
        assert tracker.get_status("s1")["progress"] == 0.0

    def test_unknown_run_has_zeroed_status(self, tracker: ProgressTracker) -> None:
        status = tracker.get_status("unknown")
        assert status["stage"] == "chunking"
        assert status["progress"] == 0.0

    @pytest.mark.asyncio
    async def test_detail_is_serialised(self, tracker: ProgressTracker) -> None:
        detail = EmbeddingProgress(processed=2, total=4, percentage=50.0, eta_seconds=3.0)
        await tracker.update("s1", IngestionStage.EMBEDDING, 50.0, detail=detail)
        assert tracker.get_status("s1")["detail"]["processed"] == 2

    @pytest.mark.asyncio
    async def test_sync_and_async_listeners(self, tracker: ProgressTracker) -> None:
        seen: list[tuple] = []

        def sync_listener(status_id, stage, progress, message) -> None:
            seen.append(("sync", progress))

        async def async_listener(status_id, stage, progress, message) -> None:
            seen.append(("async", progress))

        tracker.register_listener("s1", sync_listener)
        tracker.register_listener("s1", async_listener)
        await tracker.update("s1", IngestionStage.STORING, 10.0)

        assert seen == [("sync", 10.0), ("async", 10.0)]

    @pytest.mark.asyncio
    async def test_listeners_are_scoped_to_their_run(self, tracker: ProgressTracker) -> None:
        seen: list[str] = []
        tracker.register_listener("s1", lambda sid, *_: seen.append(sid))
        await tracker.update("s2", IngestionStage.EMBEDDING, 10.0)
        assert seen == []

    @pytest.mark.asyncio
    async def test_duplicate_registration_ignored(self, tracker: ProgressTracker) -> None:
        seen: list[float] = []

        def listener(status_id, stage, progress, message) -> None:
            seen.append(progress)

        tracker.register_listener("s1", listener)
        tracker.register_listener("s1", listener)
        await tracker.update("s1", IngestionStage.EMBEDDING, 5.0)
        assert seen == [5.0]

    @pytest.mark.asyncio
    async def test_unregister_listener(self, tracker: ProgressTracker) -> None:
        seen: list[float] = []

        def listener(status_id, stage, progress, message) -> None:
            seen.append(progress)

        tracker.register_listener("s1", listener)
        tracker.unregister_listener("s1", listener)
        await tracker.update("s1", IngestionStage.EMBEDDING, 5.0)
        assert seen == []

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self, tracker: ProgressTracker) -> None:
        seen: list[float] = []

        def broken(status_id, stage, progress, message) -> None:
            raise RuntimeError("listener bug")

        tracker.register_listener("s1", broken)
        tracker.register_listener("s1", lambda sid, stage, progress, msg: seen.append(progress))
        await tracker.update("s1", IngestionStage.EMBEDDING, 42.0)

        assert seen == [42.0]

    @pytest.mark.asyncio
    async def test_clear_forgets_run(self, tracker: ProgressTracker) -> None:
        await tracker.update("s1", IngestionStage.COMPLETE, 100.0)
        tracker.clear("s1")
        assert tracker.get_status("s1")["progress"] == 0.0


# ======================================================================
# ProcessingStatusStore
# ======================================================================


class _SteppingClock:
    def __init__(self) -> None:
        self.current = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=5)
        return value


class TestProcessingStatusStore:
    @pytest.fixture()
    def store(self, memory_cache: MemoryCacheProvider) -> ProcessingStatusStore:
        return ProcessingStatusStore(memory_cache, now=_SteppingClock())

    @pytest.mark.asyncio
    async def test_create_and_get(self, store: ProcessingStatusStore) -> None:
        created = await store.create("handbook", status_id="run-1")
        fetched = await store.get("run-1")

        assert fetched == created
        assert fetched.state is ProcessingState.PROCESSING
        assert fetched.document_id == "handbook"

    @pytest.mark.asyncio
    async def test_generated_status_id(self, store: ProcessingStatusStore) -> None:
        first = await store.create("a")
        second = await store.create("b")
        assert first.status_id and second.status_id
        assert first.status_id != second.status_id

    @pytest.mark.asyncio
    async def test_get_unknown_returns_none(self, store: ProcessingStatusStore) -> None:
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_latest_record_per_document(self, store: ProcessingStatusStore) -> None:
        await store.create("handbook", status_id="run-1")
        await store.create("handbook", status_id="run-2")
        latest = await store.get_for_document("handbook")
        assert latest.status_id == "run-2"
        assert await store.get_for_document("other") is None

    @pytest.mark.asyncio
    async def test_update_bumps_updated_at(self, store: ProcessingStatusStore) -> None:
        await store.create("handbook", status_id="run-1")
        updated = await store.update("run-1", progress=40.0, total_chunks=10)

        assert updated.progress == 40.0
        assert updated.total_chunks == 10
        assert updated.elapsed_seconds == 5.0

    @pytest.mark.asyncio
    async def test_update_unknown_raises(self, store: ProcessingStatusStore) -> None:
        with pytest.raises(PipelineError):
            await store.update("missing", progress=10.0)

    @pytest.mark.asyncio
    async def test_complete(self, store: ProcessingStatusStore) -> None:
        await store.create("handbook", status_id="run-1")
        done = await store.complete("run-1", index_name="semantic-handbook-2026-10-19", processed_chunks=7)

        assert done.state is ProcessingState.COMPLETED
        assert done.progress == 100.0
        assert done.index_name == "semantic-handbook-2026-10-19"
        assert done.processed_chunks == 7

    @pytest.mark.asyncio
    async def test_fail_and_cancel(self, store: ProcessingStatusStore) -> None:
        await store.create("a", status_id="run-a")
        await store.create("b", status_id="run-b")

        failed = await store.fail("run-a", error="store down")
        cancelled = await store.cancel("run-b", reason="user request")

        assert failed.state is ProcessingState.FAILED
        assert failed.error == "store down"
        assert cancelled.state is ProcessingState.CANCELLED
        assert cancelled.error == "user request"

    @pytest.mark.asyncio
    async def test_evict(self, store: ProcessingStatusStore) -> None:
        await store.create("a", status_id="run-a")
        await store.evict("run-a")
        assert await store.get("run-a") is None

    @pytest.mark.asyncio
    async def test_records_expire_with_cache_ttl(self) -> None:
        timer = _ManualTimer()
        store = ProcessingStatusStore(MemoryCacheProvider(max_size=10, ttl=60, timer=timer))
        await store.create("a", status_id="run-a")

        timer.now = 120
        assert await store.get("run-a") is None
