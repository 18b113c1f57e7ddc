"""Rate-limited, fault-tolerant embedding of chunk sequences.

Turns a list of chunks into exactly as many
:class:`~src.models.rag.EmbeddingRecord` objects, staying inside a
requests-per-minute budget on the provider.

Scheduling
----------
Chunks are processed in batches of ``burst_size``.  The requests inside a
batch run concurrently; batches run strictly one after another.  When a
batch finishes faster than ``burst_size * min_delay`` the pipeline sleeps
for the remainder, so the request rate never exceeds
``requests_per_minute``.

Failure handling
----------------
- :class:`~src.utils.errors.RateLimitError` is retried with exponential
  backoff (``initial_backoff_ms * backoff_multiplier ** retry``).  Once more
  than ``consecutive_failure_threshold`` provider calls have failed in a
  row, every retry waits an extra ``consecutive_failure_penalty_ms``.
- Any other error, or an exhausted retry budget, produces a deterministic
  fallback vector flagged ``fallback``.  Ingestion never aborts because of
  an embedding failure.

Cancellation is cooperative: the :class:`~src.utils.concurrency.CancelToken`
is checked at every batch boundary, and in-flight requests finish.
"""

from __future__ import annotations

import asyncio
import hashlib
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

import structlog

from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.config import RateLimitConfig
from src.models.document import Chunk
from src.models.rag import (
    EmbeddingProgress,
    EmbeddingProvenance,
    EmbeddingRecord,
    IngestionStage,
)
from src.pipeline.progress_tracker import ProgressTracker
from src.services.embedding.fallback import fallback_vector
from src.utils.concurrency import CancelToken, throttled_gather
from src.utils.errors import EmbeddingError, PipelineCancelledError, RateLimitError
from src.utils.retry import RetryPolicy, SleepFn, exponential_backoff

logger = structlog.get_logger(logger_name=__name__)

_QUERY_CACHE_PREFIX = "query-embedding:"


class CancelPolicy(str, Enum):
    """What happens to chunks not yet embedded when a run is cancelled."""

    FALLBACK = "fallback"  # fallback-embed the rest and return a full result
    ABORT = "abort"  # raise PipelineCancelledError


@dataclass(frozen=True)
class _Outcome:
    record: EmbeddingRecord
    failures: int


class EmbeddingPipeline:
    """Embeds chunks one request at a time under a rate-limit budget.

    Parameters
    ----------
    provider:
        The embedding backend.  Its :meth:`get_dimension` fixes the length
        of every vector, real or fallback.
    config:
        Request budget and retry settings.
    progress_tracker:
        Receives an update after every batch when a ``status_id`` is given.
    cancel_policy:
        Behaviour when a :class:`CancelToken` fires mid-run.
    cache:
        Optional cache for query embeddings (:meth:`embed_query`).
    sleep:
        Awaitable delay function; injected so tests never wait.
    clock:
        Monotonic clock in seconds, used for pacing and ETA.
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        config: RateLimitConfig | None = None,
        progress_tracker: ProgressTracker | None = None,
        cancel_policy: CancelPolicy = CancelPolicy.FALLBACK,
        cache: ICacheProvider | None = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._provider = provider
        self._config = config or RateLimitConfig()
        self._tracker = progress_tracker
        self._cancel_policy = cancel_policy
        self._cache = cache
        self._sleep = sleep
        self._clock = clock
        self._retry = RetryPolicy(
            max_retries=self._config.retry_attempts,
            backoff=exponential_backoff(
                self._config.initial_backoff_ms, self._config.backoff_multiplier
            ),
        )
        # Shared by every run on this pipeline; main.py builds one per process.
        self._consecutive_failures = 0

    @property
    def dimension(self) -> int:
        return self._provider.get_dimension()

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed_all(
        self,
        chunks: Sequence[Chunk],
        cancel_token: CancelToken | None = None,
        status_id: str | None = None,
    ) -> list[EmbeddingRecord]:
        """Embed every chunk, returning one record per chunk in input order.

        Parameters
        ----------
        chunks:
            Chunks to embed.  An empty sequence returns ``[]``.
        cancel_token:
            Checked before each batch.
        status_id:
            Progress-tracker key for this run.

        Raises
        ------
        PipelineCancelledError
            If the token fires and the cancel policy is ``ABORT``.
        """
        if not chunks:
            return []

        dimension = self.dimension
        total = len(chunks)
        burst = self._config.burst_size
        batch_budget = burst * self._config.min_delay_seconds
        started = self._clock()
        records: list[EmbeddingRecord] = []
        fallback_count = 0

        for batch_start in range(0, total, burst):
            if cancel_token is not None and cancel_token.cancelled:
                remaining = chunks[batch_start:]
                if self._cancel_policy is CancelPolicy.ABORT:
                    raise PipelineCancelledError(
                        message=(
                            f"Embedding cancelled after {len(records)}/{total} chunks: "
                            f"{cancel_token.reason}"
                        )
                    )
                logger.warning(
                    "embedding_cancelled",
                    processed=len(records),
                    remaining=len(remaining),
                    reason=cancel_token.reason,
                )
                for chunk in remaining:
                    records.append(self._fallback_record(chunk, dimension, attempts=0))
                fallback_count += len(remaining)
                break

            batch = chunks[batch_start : batch_start + burst]
            batch_began = self._clock()
            results = await throttled_gather([self._embed_chunk(c, dimension) for c in batch])

            # Counters change only here, between batches.
            for chunk, outcome in zip(batch, results):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    logger.error("embedding_task_failed", chunk_id=chunk.chunk_id, error=str(outcome))
                    outcome = _Outcome(self._fallback_record(chunk, dimension, attempts=1), 1)
                if outcome.record.is_fallback:
                    fallback_count += 1
                    self._consecutive_failures += outcome.failures
                else:
                    self._consecutive_failures = 0
                records.append(outcome.record)

            await self._report_progress(status_id, len(records), total, fallback_count, started)

            if batch_start + burst < total:
                elapsed = self._clock() - batch_began
                if elapsed < batch_budget:
                    await self._sleep(batch_budget - elapsed)

        logger.info(
            "embedding_complete",
            total=total,
            fallback_count=fallback_count,
            elapsed_s=round(self._clock() - started, 2),
            provider=self._provider.get_provider_name(),
        )
        return records

    async def embed_query(self, text: str) -> list[float]:
        """Embed a search query with the same retry policy as chunks.

        Falls back to the deterministic vector on failure so a search can
        still rank on keywords and metadata.  Real vectors are cached when a
        cache is configured.
        """
        cache_key = _QUERY_CACHE_PREFIX + hashlib.sha256(text.encode("utf-8")).hexdigest()
        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                return list(cached)

        dimension = self.dimension
        try:
            vector = await self._retry.run(
                lambda: self._provider.embed_single(text),
                sleep=self._sleep,
                context="embed_query",
            )
            if len(vector) != dimension:
                raise EmbeddingError(
                    message=f"Query vector has dimension {len(vector)}, expected {dimension}",
                    provider_name=self._provider.get_provider_name(),
                )
        except Exception as exc:
            logger.warning("query_embedding_fallback", error=str(exc))
            return fallback_vector(text, dimension)

        if self._cache is not None:
            await self._cache.set(cache_key, list(vector))
        return list(vector)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _embed_chunk(self, chunk: Chunk, dimension: int) -> _Outcome:
        """Embed one chunk, retrying rate limits, falling back on anything else."""
        retry = 0
        failures = 0
        while True:
            try:
                vector = await self._provider.embed_single(chunk.text)
                if len(vector) != dimension:
                    raise EmbeddingError(
                        message=f"Provider returned dimension {len(vector)}, expected {dimension}",
                        provider_name=self._provider.get_provider_name(),
                    )
            except Exception as exc:
                failures += 1
                if self._retry.should_retry(exc, retry):
                    delay = self._retry.delay_for(retry) + self._penalty_seconds()
                    logger.info(
                        "embedding_retry",
                        chunk_id=chunk.chunk_id,
                        retry=retry + 1,
                        max_retries=self._retry.max_retries,
                        delay_s=round(delay, 3),
                    )
                    await self._sleep(delay)
                    retry += 1
                    continue
                logger.warning(
                    "embedding_fallback",
                    chunk_id=chunk.chunk_id,
                    attempts=failures,
                    rate_limited=isinstance(exc, RateLimitError),
                    error=str(exc),
                )
                return _Outcome(self._fallback_record(chunk, dimension, attempts=failures), failures)

            record = EmbeddingRecord(
                chunk_id=chunk.chunk_id,
                vector=list(vector),
                provenance=EmbeddingProvenance.REAL,
                attempts=failures + 1,
            )
            return _Outcome(record, failures)

    def _penalty_seconds(self) -> float:
        if self._consecutive_failures > self._config.consecutive_failure_threshold:
            return self._config.consecutive_failure_penalty_ms / 1000.0
        return 0.0

    @staticmethod
    def _fallback_record(chunk: Chunk, dimension: int, attempts: int) -> EmbeddingRecord:
        return EmbeddingRecord(
            chunk_id=chunk.chunk_id,
            vector=fallback_vector(chunk.text, dimension),
            provenance=EmbeddingProvenance.FALLBACK,
            attempts=attempts,
        )

    async def _report_progress(
        self,
        status_id: str | None,
        processed: int,
        total: int,
        fallback_count: int,
        started: float,
    ) -> None:
        elapsed = self._clock() - started
        eta = elapsed / processed * (total - processed) if processed else 0.0
        progress = EmbeddingProgress(
            processed=processed,
            total=total,
            percentage=processed / total * 100.0,
            eta_seconds=max(0.0, eta),
            fallback_count=fallback_count,
        )
        logger.debug(
            "embedding_batch_complete",
            processed=processed,
            total=total,
            percentage=round(progress.percentage, 1),
            eta_s=round(progress.eta_seconds, 1),
        )
        if self._tracker is not None and status_id is not None:
            await self._tracker.update(
                status_id,
                IngestionStage.EMBEDDING,
                progress.percentage,
                f"Embedded {processed}/{total} chunks",
                detail=progress,
            )
