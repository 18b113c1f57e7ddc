"""Processing status records for ingestion runs.

Each ingestion run gets a :class:`~src.models.rag.ProcessingStatus` keyed by
a status ID.  Records live in an injected :class:`ICacheProvider`, so they
expire after the cache TTL instead of accumulating forever.  Records are
stored as JSON-ready dicts so a network cache can hold them too.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import structlog

from src.interfaces.cache_provider import ICacheProvider
from src.models.rag import ProcessingState, ProcessingStatus
from src.utils.errors import PipelineError

logger = structlog.get_logger(logger_name=__name__)

_STATUS_PREFIX = "status:"
_DOCUMENT_PREFIX = "status-document:"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProcessingStatusStore:
    """Create, read and update processing status records.

    Parameters
    ----------
    cache:
        Backing key-value store; its TTL bounds how long records survive.
    now:
        Clock returning aware datetimes; injectable for tests.
    """

    def __init__(self, cache: ICacheProvider, now: Callable[[], datetime] = _utcnow) -> None:
        self._cache = cache
        self._now = now

    async def create(self, document_id: str, status_id: str | None = None) -> ProcessingStatus:
        """Start a new ``processing`` record for *document_id*."""
        timestamp = self._now()
        status = ProcessingStatus(
            status_id=status_id or uuid.uuid4().hex,
            document_id=document_id,
            started_at=timestamp,
            updated_at=timestamp,
        )
        await self._save(status)
        await self._cache.set(_DOCUMENT_PREFIX + document_id, status.status_id)
        logger.debug("status_created", status_id=status.status_id, document_id=document_id)
        return status

    async def get(self, status_id: str) -> ProcessingStatus | None:
        """Return the record for *status_id*, or ``None`` if unknown or expired."""
        raw = await self._cache.get(_STATUS_PREFIX + status_id)
        if raw is None:
            return None
        return ProcessingStatus.model_validate(raw)

    async def get_for_document(self, document_id: str) -> ProcessingStatus | None:
        """Return the most recent record for *document_id*."""
        status_id = await self._cache.get(_DOCUMENT_PREFIX + document_id)
        if status_id is None:
            return None
        return await self.get(status_id)

    async def update(self, status_id: str, **changes: Any) -> ProcessingStatus:
        """Apply *changes* to a record and bump ``updated_at``.

        Raises
        ------
        PipelineError
            If the record does not exist (never created, or expired).
        """
        current = await self.get(status_id)
        if current is None:
            raise PipelineError(message=f"Unknown processing status '{status_id}'")
        data = current.model_dump()
        data.update(changes)
        data["updated_at"] = self._now()
        status = ProcessingStatus.model_validate(data)
        await self._save(status)
        return status

    async def complete(
        self, status_id: str, index_name: str, processed_chunks: int
    ) -> ProcessingStatus:
        return await self.update(
            status_id,
            state=ProcessingState.COMPLETED,
            progress=100.0,
            index_name=index_name,
            processed_chunks=processed_chunks,
        )

    async def fail(self, status_id: str, error: str) -> ProcessingStatus:
        logger.warning("status_failed", status_id=status_id, error=error)
        return await self.update(status_id, state=ProcessingState.FAILED, error=error)

    async def cancel(self, status_id: str, reason: str = "") -> ProcessingStatus:
        return await self.update(
            status_id, state=ProcessingState.CANCELLED, error=reason or None
        )

    async def evict(self, status_id: str) -> None:
        """Drop a record before its TTL runs out."""
        await self._cache.delete(_STATUS_PREFIX + status_id)

    async def _save(self, status: ProcessingStatus) -> None:
        await self._cache.set(_STATUS_PREFIX + status.status_id, status.model_dump(mode="json"))
