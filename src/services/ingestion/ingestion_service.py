"""Orchestrator for the document ingestion pipeline.

Pipeline stages: **chunk -> embed -> create index -> store**.

The :class:`IngestionService` coordinates the chunker, the embedding
pipeline and the vector store without any of them knowing about each
other:

    1. BoundaryAwareChunker -- splits the document into overlapping chunks
    2. EmbeddingPipeline    -- rate-limited embedding with fallback vectors
    3. IVectorStoreProvider -- one index per (strategy, document, day)

Store calls are wrapped in a :class:`~src.utils.retry.RetryPolicy`.  A
write shortfall (fewer vectors written than chunks produced) is logged as
a warning and reported through ``IngestionResult.vectors_written``; it is
not retried automatically.  Reprocessing a document on the same day
upserts over its index and then prunes keys the new chunking dropped, so a
failed write leaves the previous vectors in place; indices from earlier
days for the same strategy are deleted once the new write succeeds.

All dependencies are injected via constructor, so providers can be swapped
without changing this class.
"""

from __future__ import annotations

import asyncio
import re
import time
import uuid
from collections.abc import Awaitable, Callable
from datetime import date

import structlog

from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.document import Chunk, ChunkingStrategy, Document
from src.models.rag import (
    EmbeddingRecord,
    IngestionResult,
    IngestionStage,
    ProcessingState,
    ProcessingStatus,
    VectorRecord,
)
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.status_store import ProcessingStatusStore
from src.services.embedding.pipeline import EmbeddingPipeline
from src.services.ingestion.chunker import BoundaryAwareChunker
from src.utils.concurrency import CancelToken
from src.utils.errors import (
    ChunkingError,
    PipelineCancelledError,
    PipelineError,
    ProviderUnavailableError,
    RateLimitError,
    SectionRAGError,
)
from src.utils.retry import RetryPolicy, SleepFn, exponential_backoff

logger = structlog.get_logger(logger_name=__name__)

_UNSAFE_ID_CHARS = re.compile(r"[^a-z0-9\-_]")
_DASH_RUN = re.compile(r"-+")


def sanitize_document_id(document_id: str) -> str:
    """Lower-case *document_id* and reduce it to ``[a-z0-9-_]``."""
    cleaned = _UNSAFE_ID_CHARS.sub("-", document_id.lower())
    cleaned = _DASH_RUN.sub("-", cleaned).strip("-")
    return cleaned or "document"


def build_index_name(strategy: ChunkingStrategy, document_id: str, on: date) -> str:
    """Return ``{strategy}-{sanitized_document_id}-{YYYY-MM-DD}``."""
    return f"{strategy.value}-{sanitize_document_id(document_id)}-{on.isoformat()}"


def is_transient_store_error(exc: BaseException) -> bool:
    """Store errors worth retrying: throttling and unreachable backends."""
    return isinstance(exc, (RateLimitError, ProviderUnavailableError))


DEFAULT_STORE_RETRY = RetryPolicy(
    max_retries=2,
    backoff=exponential_backoff(500, 2),
    is_retryable=is_transient_store_error,
)


class IngestionService:
    """Orchestrates ingestion: chunk -> embed -> create index -> store.

    Parameters
    ----------
    chunker:
        Splits document text into chunks.
    embedding_pipeline:
        Embeds chunks under the provider's rate limits.
    vector_store:
        Holds one index per ingested document.
    status_store:
        Optional processing status records, one per run.
    progress_tracker:
        Optional progress broadcaster; shared with the embedding pipeline.
    store_retry:
        Retry policy wrapped around every vector-store write.
    today:
        Date source for index names.
    clock:
        Monotonic clock for ``ingestion_time``.
    sleep:
        Delay function used between store retries.
    """

    def __init__(
        self,
        chunker: BoundaryAwareChunker,
        embedding_pipeline: EmbeddingPipeline,
        vector_store: IVectorStoreProvider,
        status_store: ProcessingStatusStore | None = None,
        progress_tracker: ProgressTracker | None = None,
        store_retry: RetryPolicy = DEFAULT_STORE_RETRY,
        today: Callable[[], date] = date.today,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._chunker = chunker
        self._embedding = embedding_pipeline
        self._store = vector_store
        self._status = status_store
        self._tracker = progress_tracker
        self._store_retry = store_retry
        self._today = today
        self._clock = clock
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest(
        self,
        document: Document,
        cancel_token: CancelToken | None = None,
        status_id: str | None = None,
    ) -> IngestionResult:
        """Chunk, embed and store *document*.

        Parameters
        ----------
        document:
            The document to ingest.  Blank text yields an empty result.
        cancel_token:
            Cooperative cancellation, checked by the embedding pipeline.
        status_id:
            Key for the processing status record; generated when omitted.

        Returns
        -------
        IngestionResult
            Counts and timing for the run.  ``vectors_written`` is what the
            store reported, not what was requested.

        Raises
        ------
        ChunkingError
            If the document cannot be chunked.
        PipelineCancelledError
            If cancelled under the abort policy.
        SectionRAGError
            Any other fatal provider or store error.
        """
        start = self._clock()
        status = await self._start_status(document.document_id, status_id)
        run_id = status.status_id if status else (status_id or uuid.uuid4().hex)
        try:
            return await self._run(document, cancel_token, status, run_id, start)
        finally:
            if self._tracker is not None:
                self._tracker.clear(run_id)

    async def _run(
        self,
        document: Document,
        cancel_token: CancelToken | None,
        status: ProcessingStatus | None,
        run_id: str,
        start: float,
    ) -> IngestionResult:
        try:
            chunks = self._chunk(document)
            await self._report(run_id, IngestionStage.CHUNKING, 100.0, f"{len(chunks)} chunks")

            if not chunks:
                logger.info("ingestion_empty_document", document_id=document.document_id)
                if status:
                    await self._write_status(
                        self._status.complete, status.status_id, index_name="", processed_chunks=0
                    )
                return IngestionResult(
                    document_id=document.document_id,
                    ingestion_time=self._clock() - start,
                )

            if status:
                await self._write_status(
                    self._status.update, status.status_id, total_chunks=len(chunks)
                )

            records = await self._embed(chunks, cancel_token, run_id)
            await self._report(run_id, IngestionStage.STORING, 0.0, "Writing vectors")

            index_name = build_index_name(
                self._chunker.config.strategy, document.document_id, self._today()
            )
            written = await self._store_vectors(index_name, document, chunks, records)
            await self._remove_superseded(document.document_id, keep=index_name)

        except PipelineCancelledError as exc:
            if status:
                await self._write_status(self._status.cancel, status.status_id, reason=str(exc))
            raise
        except SectionRAGError as exc:
            if status:
                await self._write_status(self._status.fail, status.status_id, error=str(exc))
            raise
        except Exception as exc:
            if status:
                await self._write_status(self._status.fail, status.status_id, error=str(exc))
            raise PipelineError(
                message=f"Ingestion of '{document.document_id}' failed: {exc}"
            ) from exc

        cancelled = bool(cancel_token and cancel_token.cancelled)
        if status and cancelled:
            await self._write_status(
                self._status.update,
                status.status_id,
                state=ProcessingState.CANCELLED,
                index_name=index_name,
                processed_chunks=len(records),
                error=cancel_token.reason,
            )
        elif status:
            await self._write_status(
                self._status.complete,
                status.status_id,
                index_name=index_name,
                processed_chunks=len(records),
            )
        await self._report(run_id, IngestionStage.COMPLETE, 100.0, index_name)

        result = IngestionResult(
            document_id=document.document_id,
            index_name=index_name,
            chunks_created=len(chunks),
            vectors_written=written,
            fallback_count=sum(1 for r in records if r.is_fallback),
            ingestion_time=self._clock() - start,
            cancelled=cancelled,
        )
        logger.info(
            "ingestion_complete",
            document_id=document.document_id,
            index_name=index_name,
            chunks=result.chunks_created,
            written=result.vectors_written,
            fallbacks=result.fallback_count,
            cancelled=result.cancelled,
            elapsed_s=round(result.ingestion_time, 2),
        )
        return result

    async def ingest_text(
        self,
        text: str,
        document_id: str,
        total_pages: int | None = None,
        cancel_token: CancelToken | None = None,
    ) -> IngestionResult:
        """Convenience wrapper: build a :class:`Document` and ingest it."""
        document = Document(document_id=document_id, text=text, total_pages=total_pages)
        return await self.ingest(document, cancel_token=cancel_token)

    async def get_status(self, status_id: str) -> ProcessingStatus | None:
        """Return the processing status record for *status_id*, if any."""
        if self._status is None:
            return None
        return await self._status.get(status_id)

    async def document_indices(self, document_id: str) -> list[str]:
        """Return every index holding *document_id*, across all strategies."""
        sanitized = re.escape(sanitize_document_id(document_id))
        strategies = "|".join(re.escape(s.value) for s in ChunkingStrategy)
        pattern = re.compile(rf"^(?:{strategies})-{sanitized}-\d{{4}}-\d{{2}}-\d{{2}}$")
        return [name for name in await self._store.list_indices() if pattern.match(name)]

    async def delete_document(self, document_id: str) -> int:
        """Delete every index of *document_id*; returns how many were dropped."""
        deleted = 0
        for name in await self.document_indices(document_id):
            if await self._store.delete_index(name):
                deleted += 1
        logger.info("document_deleted", document_id=document_id, indices_deleted=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _chunk(self, document: Document) -> list[Chunk]:
        try:
            return self._chunker.chunk_document(document)
        except ChunkingError:
            raise
        except Exception as exc:
            raise ChunkingError(
                message=f"Could not chunk '{document.document_id}': {exc}"
            ) from exc

    async def _embed(
        self,
        chunks: list[Chunk],
        cancel_token: CancelToken | None,
        run_id: str | None,
    ) -> list[EmbeddingRecord]:
        mirror = None
        if self._tracker is not None and self._status is not None and run_id is not None:
            mirror = self._mirror_progress
            self._tracker.register_listener(run_id, mirror)
        try:
            return await self._embedding.embed_all(chunks, cancel_token, status_id=run_id)
        finally:
            if mirror is not None:
                self._tracker.unregister_listener(run_id, mirror)

    async def _mirror_progress(
        self, status_id: str, stage: IngestionStage, progress: float, message: str
    ) -> None:
        """Copy embedding progress from the tracker into the status record."""
        changes: dict = {"progress": progress}
        detail = self._tracker.get_status(status_id)["detail"]
        if detail:
            changes["processed_chunks"] = detail["processed"]
        await self._status.update(status_id, **changes)

    async def _store_vectors(
        self,
        index_name: str,
        document: Document,
        chunks: list[Chunk],
        records: list[EmbeddingRecord],
    ) -> int:
        # Same-day reprocessing writes over the existing index; keys the new
        # chunking no longer produces are pruned only after the upsert lands.
        stale: set[str] = set()
        if index_name in await self._store.list_indices():
            stale = set(await self._store.list_keys(index_name))

        await self._store_retry.run(
            lambda: self._store.create_index(index_name, self._embedding.dimension),
            sleep=self._sleep,
            context="create_index",
        )

        vectors = [
            VectorRecord(
                key=chunk.chunk_id,
                vector=record.vector,
                metadata=self._record_metadata(document, chunk, record, len(chunks)),
            )
            for chunk, record in zip(chunks, records, strict=True)
        ]
        written = await self._store_retry.run(
            lambda: self._store.upsert_vectors(index_name, vectors),
            sleep=self._sleep,
            context="upsert_vectors",
        )
        if written < len(vectors):
            logger.warning(
                "upsert_shortfall",
                index_name=index_name,
                requested=len(vectors),
                written=written,
            )

        leftover = sorted(stale - {v.key for v in vectors})
        if leftover:
            await self._store_retry.run(
                lambda: self._store.delete_vectors(index_name, leftover),
                sleep=self._sleep,
                context="delete_vectors",
            )
            logger.info("stale_vectors_removed", index_name=index_name, count=len(leftover))
        return written

    async def _remove_superseded(self, document_id: str, keep: str) -> None:
        strategy = self._chunker.config.strategy.value
        for name in await self.document_indices(document_id):
            if name != keep and name.startswith(f"{strategy}-"):
                await self._store.delete_index(name)
                logger.info("index_superseded", index_name=name, replaced_by=keep)

    def _record_metadata(
        self, document: Document, chunk: Chunk, record: EmbeddingRecord, total_chunks: int
    ) -> dict:
        metadata = chunk.to_metadata()
        metadata["embedding"] = record.provenance.value
        metadata["chunking_strategy"] = self._chunker.config.strategy.value
        metadata["total_chunks"] = total_chunks
        for name in ("title", "author", "filename"):
            value = getattr(document, name)
            if value:
                metadata[name] = value
        return metadata

    async def _write_status(
        self, action: Callable[..., Awaitable], status_id: str, **changes
    ) -> None:
        """Apply a status transition; a lost record must not fail the run."""
        try:
            await action(status_id, **changes)
        except PipelineError as exc:
            logger.warning("status_update_failed", status_id=status_id, error=str(exc))

    async def _start_status(
        self, document_id: str, status_id: str | None
    ) -> ProcessingStatus | None:
        if self._status is None:
            return None
        return await self._status.create(document_id, status_id=status_id)

    async def _report(
        self, run_id: str | None, stage: IngestionStage, progress: float, message: str
    ) -> None:
        if self._tracker is not None and run_id is not None:
            await self._tracker.update(run_id, stage, progress, message)
