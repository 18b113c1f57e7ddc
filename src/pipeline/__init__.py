"""Ingestion run bookkeeping: live progress events and persisted status."""

from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.status_store import ProcessingStatusStore

__all__ = [
    "ProcessingStatusStore",
    "ProgressTracker",
]
