"""Utility modules shared by the ingestion and retrieval layers.

- **errors** -- Exception hierarchy rooted at SectionRAGError; each stage
  raises its own subclass so callers can handle failures granularly.
- **retry** -- Exponential backoff and a small async retry policy with an
  injectable sleep.
- **concurrency** -- asyncio semaphore throttling and a cooperative
  cancellation token.
- **logging** -- structlog setup with coloured console output in development
  and structured JSON in production.
"""

# -- Exception hierarchy ----------------------------------------------------
from src.utils.errors import (
    ChunkingError,
    ConfigurationError,
    EmbeddingError,
    PipelineCancelledError,
    PipelineError,
    ProviderUnavailableError,
    RateLimitError,
    SectionRAGError,
    VectorStoreError,
)

# -- Async concurrency helpers ---------------------------------------------
from src.utils.concurrency import CancelToken, throttled_gather

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

# -- Retry / backoff --------------------------------------------------------
from src.utils.retry import RetryPolicy, exponential_backoff

__all__ = [
    "CancelToken",
    "ChunkingError",
    "ConfigurationError",
    "EmbeddingError",
    "PipelineCancelledError",
    "PipelineError",
    "ProviderUnavailableError",
    "RateLimitError",
    "RetryPolicy",
    "SectionRAGError",
    "VectorStoreError",
    "configure_logging",
    "exponential_backoff",
    "get_logger",
    "throttled_gather",
]
