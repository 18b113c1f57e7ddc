"""Unit tests for IngestionService -- index naming, storage, retries, status and cancellation."""

from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock

import pytest

from src.models.config import ChunkingConfig, RateLimitConfig
from src.models.document import ChunkingStrategy, Document
from src.models.rag import (
    IndexCreation,
    IngestionStage,
    ProcessingState,
    ProcessingStatus,
    VectorRecord,
)
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.status_store import ProcessingStatusStore
from src.providers.cache.memory_cache import MemoryCacheProvider
from src.providers.vector_store.memory_store import InMemoryVectorStore
from src.services.embedding.pipeline import CancelPolicy, EmbeddingPipeline
from src.services.ingestion.chunker import BoundaryAwareChunker
from src.services.ingestion.ingestion_service import (
    IngestionService,
    build_index_name,
    sanitize_document_id,
)
from src.utils.concurrency import CancelToken
from src.utils.errors import (
    ChunkingError,
    PipelineCancelledError,
    PipelineError,
    ProviderUnavailableError,
    VectorStoreError,
)
from tests.fakes import FakeEmbeddingProvider, SleepRecorder

_TODAY = date(2026, 10, 19)


# ======================================================================
# Store doubles
# ======================================================================


class _ShortWriteStore(InMemoryVectorStore):
    """Drops the last record of every upsert."""

    async def upsert_vectors(self, index_name: str, records: list[VectorRecord]) -> int:
        return await super().upsert_vectors(index_name, records[:-1])


class _FlakyCreateStore(InMemoryVectorStore):
    """Fails ``create_index`` with the given errors before succeeding."""

    def __init__(self, errors: list[Exception]) -> None:
        super().__init__()
        self._errors = list(errors)
        self.create_calls = 0

    async def create_index(self, name: str, dimension: int) -> IndexCreation:
        self.create_calls += 1
        if self._errors:
            raise self._errors.pop(0)
        return await super().create_index(name, dimension)


class _BrokenUpsertStore(InMemoryVectorStore):
    async def upsert_vectors(self, index_name: str, records: list[VectorRecord]) -> int:
        raise VectorStoreError(message="disk full", provider_name="memory")


class _ExplodingListStore(InMemoryVectorStore):
    async def list_indices(self) -> list[str]:
        raise RuntimeError("socket closed")


class _SecondUpsertFailsStore(InMemoryVectorStore):
    """Accepts the first upsert, then fails every later one."""

    def __init__(self) -> None:
        super().__init__()
        self.upserts = 0

    async def upsert_vectors(self, index_name: str, records: list[VectorRecord]) -> int:
        self.upserts += 1
        if self.upserts > 1:
            raise VectorStoreError(message="disk full", provider_name="memory")
        return await super().upsert_vectors(index_name, records)


class _ExpiringStatusStore(ProcessingStatusStore):
    """Loses the record right before the run is marked complete."""

    async def complete(
        self, status_id: str, index_name: str, processed_chunks: int
    ) -> ProcessingStatus:
        await self.evict(status_id)
        return await super().complete(status_id, index_name, processed_chunks)


# ======================================================================
# Helpers
# ======================================================================


def _service(
    store: InMemoryVectorStore,
    *,
    strategy: ChunkingStrategy = ChunkingStrategy.SEMANTIC,
    today: date = _TODAY,
    cancel_policy: CancelPolicy = CancelPolicy.FALLBACK,
    store_sleep: SleepRecorder | None = None,
    status_store: ProcessingStatusStore | None = None,
    tracker: ProgressTracker | None = None,
) -> IngestionService:
    chunker = BoundaryAwareChunker(
        ChunkingConfig(max_chunk_size=300, min_chunk_size=50, overlap_size=30, strategy=strategy)
    )
    tracker = tracker or ProgressTracker()
    pipeline = EmbeddingPipeline(
        FakeEmbeddingProvider(dimension=8),
        RateLimitConfig(requests_per_minute=60000, burst_size=4),
        progress_tracker=tracker,
        cancel_policy=cancel_policy,
        sleep=SleepRecorder(),
    )
    return IngestionService(
        chunker=chunker,
        embedding_pipeline=pipeline,
        vector_store=store,
        status_store=status_store or ProcessingStatusStore(MemoryCacheProvider()),
        progress_tracker=tracker,
        today=lambda: today,
        sleep=store_sleep or SleepRecorder(),
    )


def _document(text: str, document_id: str = "doc 1") -> Document:
    return Document(document_id=document_id, text=text, total_pages=3, title="Staff Handbook")


async def _stored_keys(store: InMemoryVectorStore, index_name: str) -> list[str]:
    matches = await store.query_top_k(index_name, [1.0] + [0.0] * 7, 1000)
    return sorted(m.key for m in matches)


# ======================================================================
# Index naming
# ======================================================================


class TestIndexNaming:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("doc 1", "doc-1"),
            ("Staff Guide (v2).pdf", "staff-guide-v2-pdf"),
            ("already-clean_id", "already-clean_id"),
            ("???", "document"),
        ],
    )
    def test_sanitize(self, raw: str, expected: str) -> None:
        assert sanitize_document_id(raw) == expected

    def test_build_index_name(self) -> None:
        assert (
            build_index_name(ChunkingStrategy.LINE_BASED, "Doc 1", _TODAY)
            == "line-based-doc-1-2026-10-19"
        )


# ======================================================================
# Successful ingestion
# ======================================================================


class TestIngest:
    @pytest.mark.asyncio
    async def test_result_and_index(
        self, memory_store: InMemoryVectorStore, structured_text: str
    ) -> None:
        service = _service(memory_store)
        result = await service.ingest(_document(structured_text))

        assert result.index_name == "semantic-doc-1-2026-10-19"
        assert result.chunks_created > 1
        assert result.vectors_written == result.chunks_created
        assert result.fallback_count == 0
        assert result.cancelled is False
        assert result.ingestion_time >= 0
        assert await memory_store.list_indices() == [result.index_name]
        assert len(await _stored_keys(memory_store, result.index_name)) == result.chunks_created

    @pytest.mark.asyncio
    async def test_metadata_written(
        self, memory_store: InMemoryVectorStore, structured_text: str
    ) -> None:
        result = await _service(memory_store).ingest(_document(structured_text))
        matches = await memory_store.query_top_k(result.index_name, [1.0] + [0.0] * 7, 1000)

        metadata = matches[0].metadata
        assert metadata["embedding"] == "real"
        assert metadata["title"] == "Staff Handbook"
        assert metadata["document_id"] == "doc 1"
        assert metadata["content"]
        assert "author" not in metadata
        assert metadata["chunking_strategy"] == "semantic"
        assert metadata["total_chunks"] == result.chunks_created
        assert metadata["summary"]
        assert metadata["topics"]

    @pytest.mark.asyncio
    async def test_empty_document(self, memory_store: InMemoryVectorStore) -> None:
        status_store = ProcessingStatusStore(MemoryCacheProvider())
        service = _service(memory_store, status_store=status_store)

        result = await service.ingest(_document("   \n\n  "), status_id="run-empty")

        assert result.chunks_created == 0
        assert result.index_name == ""
        assert await memory_store.list_indices() == []
        status = await service.get_status("run-empty")
        assert status.state is ProcessingState.COMPLETED

    @pytest.mark.asyncio
    async def test_ingest_text(self, memory_store: InMemoryVectorStore, structured_text: str) -> None:
        result = await _service(memory_store).ingest_text(structured_text, "Doc 1", total_pages=2)
        assert result.document_id == "Doc 1"
        assert result.index_name == "semantic-doc-1-2026-10-19"

    @pytest.mark.asyncio
    async def test_write_shortfall_reported(self, structured_text: str) -> None:
        store = _ShortWriteStore()
        result = await _service(store).ingest(_document(structured_text))

        assert result.vectors_written == result.chunks_created - 1
        assert result.write_shortfall == 1

    @pytest.mark.asyncio
    async def test_status_completed(
        self, memory_store: InMemoryVectorStore, structured_text: str
    ) -> None:
        tracker = ProgressTracker()
        service = _service(memory_store, tracker=tracker)

        result = await service.ingest(_document(structured_text), status_id="run-1")

        status = await service.get_status("run-1")
        assert status.state is ProcessingState.COMPLETED
        assert status.progress == 100.0
        assert status.total_chunks == result.chunks_created
        assert status.processed_chunks == result.chunks_created
        assert status.index_name == result.index_name
        assert tracker.tracked_runs() == []

    @pytest.mark.asyncio
    async def test_tracker_released_after_run(
        self, memory_store: InMemoryVectorStore, structured_text: str
    ) -> None:
        tracker = ProgressTracker()
        stages: list[IngestionStage] = []
        tracker.register_listener("run-1", lambda _sid, stage, *_: stages.append(stage))

        await _service(memory_store, tracker=tracker).ingest(
            _document(structured_text), status_id="run-1"
        )

        assert stages[-1] is IngestionStage.COMPLETE
        assert tracker.tracked_runs() == []

    @pytest.mark.asyncio
    async def test_lost_status_record_does_not_fail_run(
        self, memory_store: InMemoryVectorStore, structured_text: str
    ) -> None:
        service = _service(
            memory_store, status_store=_ExpiringStatusStore(MemoryCacheProvider())
        )

        result = await service.ingest(_document(structured_text), status_id="run-1")

        assert result.vectors_written == result.chunks_created
        assert await service.get_status("run-1") is None

    @pytest.mark.asyncio
    async def test_get_status_without_store(self, memory_store: InMemoryVectorStore) -> None:
        service = IngestionService(
            chunker=BoundaryAwareChunker(),
            embedding_pipeline=EmbeddingPipeline(FakeEmbeddingProvider(), sleep=SleepRecorder()),
            vector_store=memory_store,
        )
        assert await service.get_status("anything") is None


# ======================================================================
# Reprocessing and deletion
# ======================================================================


class TestReprocessing:
    @pytest.mark.asyncio
    async def test_newer_day_supersedes_older_index(
        self, memory_store: InMemoryVectorStore, structured_text: str
    ) -> None:
        await _service(memory_store, today=date(2026, 10, 18)).ingest(_document(structured_text))
        await _service(memory_store).ingest(_document(structured_text))

        assert await memory_store.list_indices() == ["semantic-doc-1-2026-10-19"]

    @pytest.mark.asyncio
    async def test_same_day_reprocessing_replaces_contents(
        self, memory_store: InMemoryVectorStore, structured_text: str
    ) -> None:
        first = await _service(memory_store).ingest(_document(structured_text))
        second = await _service(memory_store).ingest(
            _document("A much shorter revision of the handbook, with one paragraph only.")
        )

        assert first.index_name == second.index_name
        assert first.chunks_created > second.chunks_created == 1
        assert await _stored_keys(memory_store, second.index_name) == ["doc 1-chunk-0"]

    @pytest.mark.asyncio
    async def test_failed_same_day_rewrite_keeps_previous_vectors(self, structured_text: str) -> None:
        store = _SecondUpsertFailsStore()
        first = await _service(store).ingest(_document(structured_text))
        before = await store.list_keys(first.index_name)

        with pytest.raises(VectorStoreError):
            await _service(store).ingest(
                _document("A much shorter revision of the handbook, with one paragraph only.")
            )

        assert len(before) == first.chunks_created
        assert await store.list_keys(first.index_name) == before
        assert await _stored_keys(store, first.index_name) == before

    @pytest.mark.asyncio
    async def test_other_strategies_kept(
        self, memory_store: InMemoryVectorStore, structured_text: str
    ) -> None:
        await _service(memory_store).ingest(_document(structured_text))
        service = _service(memory_store, strategy=ChunkingStrategy.LINE_BASED)
        await service.ingest(_document(structured_text))

        assert await service.document_indices("doc 1") == [
            "line-based-doc-1-2026-10-19",
            "semantic-doc-1-2026-10-19",
        ]

    @pytest.mark.asyncio
    async def test_other_documents_untouched(
        self, memory_store: InMemoryVectorStore, structured_text: str
    ) -> None:
        service = _service(memory_store)
        await service.ingest(_document(structured_text, document_id="doc 1"))
        await service.ingest(_document(structured_text, document_id="doc 10"))

        assert await service.document_indices("doc 1") == ["semantic-doc-1-2026-10-19"]
        assert len(await memory_store.list_indices()) == 2

    @pytest.mark.asyncio
    async def test_delete_document(
        self, memory_store: InMemoryVectorStore, structured_text: str
    ) -> None:
        await _service(memory_store).ingest(_document(structured_text))
        service = _service(memory_store, strategy=ChunkingStrategy.SLIDING_WINDOW)
        await service.ingest(_document(structured_text))

        assert await service.delete_document("doc 1") == 2
        assert await memory_store.list_indices() == []
        assert await service.delete_document("doc 1") == 0


# ======================================================================
# Failures
# ======================================================================


class TestFailures:
    @pytest.mark.asyncio
    async def test_transient_store_error_retried(self, structured_text: str) -> None:
        store = _FlakyCreateStore([ProviderUnavailableError(message="connection reset")])
        store_sleep = SleepRecorder()

        result = await _service(store, store_sleep=store_sleep).ingest(_document(structured_text))

        assert store.create_calls == 2
        assert store_sleep.delays == [0.5]
        assert result.vectors_written == result.chunks_created

    @pytest.mark.asyncio
    async def test_permanent_store_error_not_retried(self, structured_text: str) -> None:
        store = _FlakyCreateStore([VectorStoreError(message="bad name")])
        with pytest.raises(VectorStoreError):
            await _service(store).ingest(_document(structured_text))
        assert store.create_calls == 1

    @pytest.mark.asyncio
    async def test_store_error_marks_status_failed(self, structured_text: str) -> None:
        service = _service(_BrokenUpsertStore())

        with pytest.raises(VectorStoreError):
            await service.ingest(_document(structured_text), status_id="run-1")

        status = await service.get_status("run-1")
        assert status.state is ProcessingState.FAILED
        assert "disk full" in status.error

    @pytest.mark.asyncio
    async def test_tracker_released_after_failure(self, structured_text: str) -> None:
        tracker = ProgressTracker()
        service = _service(_BrokenUpsertStore(), tracker=tracker)

        with pytest.raises(VectorStoreError):
            await service.ingest(_document(structured_text), status_id="run-1")

        assert tracker.tracked_runs() == []

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped(self, structured_text: str) -> None:
        service = _service(_ExplodingListStore())

        with pytest.raises(PipelineError, match="socket closed"):
            await service.ingest(_document(structured_text), status_id="run-1")

        status = await service.get_status("run-1")
        assert status.state is ProcessingState.FAILED

    @pytest.mark.asyncio
    async def test_chunker_failure_becomes_chunking_error(
        self, memory_store: InMemoryVectorStore
    ) -> None:
        chunker = MagicMock()
        chunker.chunk_document.side_effect = ValueError("bad offsets")
        service = IngestionService(
            chunker=chunker,
            embedding_pipeline=EmbeddingPipeline(FakeEmbeddingProvider(), sleep=SleepRecorder()),
            vector_store=memory_store,
        )

        with pytest.raises(ChunkingError, match="bad offsets"):
            await service.ingest(_document("Some text that never gets chunked."))


# ======================================================================
# Cancellation
# ======================================================================


class TestCancellation:
    @pytest.mark.asyncio
    async def test_abort_policy_raises(
        self, memory_store: InMemoryVectorStore, structured_text: str
    ) -> None:
        service = _service(memory_store, cancel_policy=CancelPolicy.ABORT)
        token = CancelToken()
        token.cancel("user pressed stop")

        with pytest.raises(PipelineCancelledError):
            await service.ingest(_document(structured_text), cancel_token=token, status_id="run-1")

        status = await service.get_status("run-1")
        assert status.state is ProcessingState.CANCELLED
        assert await memory_store.list_indices() == []

    @pytest.mark.asyncio
    async def test_fallback_policy_completes_with_fallbacks(
        self, memory_store: InMemoryVectorStore, structured_text: str
    ) -> None:
        service = _service(memory_store)
        token = CancelToken()
        token.cancel("shutting down")

        result = await service.ingest(_document(structured_text), cancel_token=token, status_id="run-1")

        assert result.cancelled is True
        assert result.fallback_count == result.chunks_created
        assert result.vectors_written == result.chunks_created
        status = await service.get_status("run-1")
        assert status.state is ProcessingState.CANCELLED
        assert status.error == "shutting down"
