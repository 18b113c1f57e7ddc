"""Ingestion progress tracking with callback-based listener notification.

Tracks the current stage and progress percentage for each ingestion run
and broadcasts updates to registered listener callbacks.  Listeners are
keyed by status ID so several documents can be ingested concurrently
without cross-talk.

    EmbeddingPipeline --update()--> ProgressTracker --callback()--> listener(s)

Listener errors are caught and logged so one broken listener cannot block
ingestion or starve the others.  Both sync and async callbacks are
supported.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from src.models.rag import EmbeddingProgress, IngestionStage
from src.utils.logging import get_logger


@dataclass
class _RunStatus:
    """Internal snapshot of one run's progress (mutable, never serialised)."""

    stage: IngestionStage = IngestionStage.CHUNKING
    progress: float = 0.0
    message: str = ""
    detail: EmbeddingProgress | None = None


class ProgressTracker:
    """Tracks and broadcasts ingestion progress via callbacks.

    Each run is identified by a string ``status_id``.  Consumers register
    callbacks that are invoked whenever :meth:`update` is called for that
    run.
    """

    def __init__(self) -> None:
        self._statuses: dict[str, _RunStatus] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def update(
        self,
        status_id: str,
        stage: IngestionStage,
        progress: float,
        message: str = "",
        detail: EmbeddingProgress | None = None,
    ) -> None:
        """Record a progress update and notify all registered listeners.

        Parameters
        ----------
        status_id:
            The ingestion run to update.
        stage:
            The current ingestion stage.
        progress:
            Completion percentage (0.0 - 100.0); clamped.
        message:
            Human-readable status message.
        detail:
            Batch-level embedding progress, when the update comes from the
            embedding pipeline.
        """
        progress = max(0.0, min(100.0, progress))

        self._statuses[status_id] = _RunStatus(
            stage=stage,
            progress=progress,
            message=message,
            detail=detail,
        )

        self._logger.debug(
            "progress_update",
            status_id=status_id,
            stage=stage.value,
            progress=round(progress, 1),
            message=message,
        )

        await self._notify_listeners(status_id, stage, progress, message)

    def register_listener(self, status_id: str, callback: Callable) -> None:
        """Register a callback to receive progress updates for a run.

        Parameters
        ----------
        status_id:
            The ingestion run to listen to.
        callback:
            An async or sync callable accepting
            ``(status_id, stage, progress, message)``.
        """
        listeners = self._listeners.setdefault(status_id, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered",
                status_id=status_id,
                total_listeners=len(listeners),
            )

    def unregister_listener(self, status_id: str, callback: Callable) -> None:
        """Remove a previously registered callback for a run."""
        listeners = self._listeners.get(status_id, [])
        if callback in listeners:
            listeners.remove(callback)
            if not listeners:
                self._listeners.pop(status_id, None)
            self._logger.debug(
                "listener_unregistered",
                status_id=status_id,
                remaining_listeners=len(listeners),
            )

    def get_status(self, status_id: str) -> dict:
        """Return the current stage and progress for a run.

        Returns
        -------
        dict
            Keys: ``stage``, ``progress``, ``message`` and ``detail`` (the
            last :class:`EmbeddingProgress` as a dict, or ``None``).
            Zeroed defaults when the run has not been tracked yet.
        """
        status = self._statuses.get(status_id) or _RunStatus()
        return {
            "stage": status.stage.value,
            "progress": status.progress,
            "message": status.message,
            "detail": status.detail.model_dump() if status.detail else None,
        }

    def tracked_runs(self) -> list[str]:
        """Return the IDs of runs with a stored status or live listeners."""
        return sorted(set(self._statuses) | set(self._listeners))

    def clear(self, status_id: str) -> None:
        """Forget a finished run and its listeners."""
        self._statuses.pop(status_id, None)
        self._listeners.pop(status_id, None)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(
        self,
        status_id: str,
        stage: IngestionStage,
        progress: float,
        message: str,
    ) -> None:
        """Invoke all registered listeners for a run, skipping ones that raise."""
        for callback in list(self._listeners.get(status_id, [])):
            try:
                result = callback(status_id, stage, progress, message)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    status_id=status_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
