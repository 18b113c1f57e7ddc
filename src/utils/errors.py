"""Custom exception hierarchy for sectionrag.

All application exceptions inherit from :class:`SectionRAGError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "chromadb") caused the failure.

The hierarchy is organized by pipeline stage:

    SectionRAGError  (base -- catch-all for any sectionrag error)
    +-- ConfigurationError       (invalid component configuration)
    +-- ChunkingError            (segmentation / chunking failure)
    +-- EmbeddingError           (embedding provider call failed)
    |   +-- RateLimitError       (provider throttled the request)
    +-- ProviderUnavailableError (external service down / unreachable)
    +-- VectorStoreError         (index creation, upsert or query failure)
    +-- PipelineError            (ingestion orchestration)
        +-- PipelineCancelledError (caller cancelled an in-flight run)

The embedding pipeline retries only on :class:`RateLimitError`; every other
:class:`EmbeddingError` degrades straight to a fallback vector.
"""


class SectionRAGError(Exception):
    """Base exception for all sectionrag errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  ``__str__`` prefixes the provider name in brackets, e.g.
    ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Configuration / chunking
# ---------------------------------------------------------------------------

class ConfigurationError(SectionRAGError):
    """Raised when a component configuration is invalid.

    Always raised before any processing starts, e.g. when
    ``min_chunk_size > max_chunk_size``.
    """

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ChunkingError(SectionRAGError):
    """Raised when a document cannot be chunked.  Chunking errors are fatal."""

    def __init__(
        self,
        message: str = "Chunking failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External service / provider errors
# ---------------------------------------------------------------------------

class EmbeddingError(SectionRAGError):
    """Raised when an embedding provider call fails for a non-throttling reason."""

    def __init__(
        self,
        message: str = "Embedding request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(EmbeddingError):
    """Raised when a provider signals that its rate limit was exceeded.

    This is the only error the embedding pipeline retries with backoff.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderUnavailableError(SectionRAGError):
    """Raised when an external service or provider is unreachable."""

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class VectorStoreError(SectionRAGError):
    """Raised when a vector-store operation fails (create, upsert, query)."""

    def __init__(
        self,
        message: str = "Vector store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration errors
# ---------------------------------------------------------------------------

class PipelineError(SectionRAGError):
    """Raised when ingestion orchestration fails."""

    def __init__(
        self,
        message: str = "Pipeline orchestration failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class PipelineCancelledError(PipelineError):
    """Raised when a run is cancelled and the caller asked to abort."""

    def __init__(
        self,
        message: str = "Pipeline run was cancelled",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
