"""Retrieval-side data models: embeddings, vector records, queries, results.

Defines Pydantic v2 models for everything downstream of chunking:

1. EMBEDDING: :class:`EmbeddingRecord` pairs a chunk ID with its vector and
   records whether the vector came from the provider or the deterministic
   fallback generator.
2. STORAGE: :class:`VectorRecord` is what gets upserted; :class:`QueryMatch`
   is what a store returns from a top-K query.
3. RETRIEVAL: :class:`Query`, :class:`SectionIntent` and :class:`ScoredResult`
   carry the hybrid-ranking inputs and outputs.
4. BOOKKEEPING: :class:`IngestionResult`, :class:`EmbeddingProgress` and
   :class:`ProcessingStatus` report on ingestion runs.

All models use frozen config to enforce immutability.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EmbeddingProvenance(str, Enum):
    """Where an embedding vector came from."""

    REAL = "real"
    FALLBACK = "fallback"


class IndexCreation(str, Enum):
    """Outcome of an idempotent ``create_index`` call.  Both are success."""

    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


class ScoreConvention(str, Enum):
    """How a vector store's ``QueryMatch.score`` should be read."""

    SIMILARITY = "similarity"  # higher is better, 1.0 == identical
    DISTANCE = "distance"  # lower is better, 0.0 == identical


# ---------------------------------------------------------------------------
# Embedding
# ---------------------------------------------------------------------------
class EmbeddingRecord(BaseModel):
    """One chunk's embedding vector.  One-to-one with :class:`Chunk`."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    vector: list[float]
    provenance: EmbeddingProvenance = EmbeddingProvenance.REAL
    attempts: int = Field(default=1, ge=0, description="Provider calls made for this chunk.")

    @property
    def is_fallback(self) -> bool:
        return self.provenance is EmbeddingProvenance.FALLBACK


class EmbeddingProgress(BaseModel):
    """Snapshot emitted after every embedding batch."""

    model_config = ConfigDict(frozen=True)

    processed: int = Field(ge=0)
    total: int = Field(ge=0)
    percentage: float = Field(ge=0.0, le=100.0)
    eta_seconds: float = Field(ge=0.0)
    fallback_count: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------------
# Vector store I/O
# ---------------------------------------------------------------------------
class VectorRecord(BaseModel):
    """A vector plus metadata, keyed for upsert into a named index."""

    model_config = ConfigDict(frozen=True)

    key: str
    vector: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)


class QueryMatch(BaseModel):
    """One top-K hit returned by a vector store."""

    model_config = ConfigDict(frozen=True)

    key: str
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Query side
# ---------------------------------------------------------------------------
class SectionIntent(BaseModel):
    """Structural reference parsed out of a query, e.g. "section 4.2"."""

    model_config = ConfigDict(frozen=True)

    is_section: bool = False
    section_number: str | None = None
    section_pattern: str | None = Field(
        default=None,
        description="Regex matching the section and its direct subsections.",
    )


class Query(BaseModel):
    """A search query with its derived keyword set and structural intent."""

    model_config = ConfigDict(frozen=True)

    text: str
    keywords: list[str] = Field(default_factory=list)
    intent: SectionIntent = Field(default_factory=SectionIntent)


class MetadataFilter(BaseModel):
    """Optional post-ranking filters applied by :func:`filter_by_metadata`.

    ``page_range`` is an inclusive ``(start, end)`` pair; a result passes
    when its page span overlaps it.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    require_section: bool = False
    document_filter: str | None = Field(
        default=None, description="Keep results whose document_id or filename equals this."
    )
    page_range: tuple[int, int] | None = None
    topic_filter: list[str] = Field(default_factory=list)
    sort_by_metadata: bool = Field(
        default=False,
        description="Re-order by metadata_score - 100 * distance instead of hybrid score.",
    )


class ScoredResult(BaseModel):
    """A candidate chunk with all ranking components.  Never persisted."""

    model_config = ConfigDict(frozen=True)

    key: str
    index_name: str
    content: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    distance: float
    vector_score: float
    keyword_score: float = 0.0
    metadata_score: float = 0.0
    hybrid_score: float = 0.0


class SearchDiagnostic(BaseModel):
    """Non-fatal problem encountered while searching one index."""

    model_config = ConfigDict(frozen=True)

    index_name: str
    message: str


class SearchResponse(BaseModel):
    """Ranked results plus any per-index diagnostics."""

    model_config = ConfigDict(frozen=True)

    query: Query
    results: list[ScoredResult] = Field(default_factory=list)
    diagnostics: list[SearchDiagnostic] = Field(default_factory=list)

    @property
    def partial(self) -> bool:
        """``True`` when at least one index failed and results may be incomplete."""
        return bool(self.diagnostics)


# ---------------------------------------------------------------------------
# Ingestion bookkeeping
# ---------------------------------------------------------------------------
class IngestionResult(BaseModel):
    """Summary of a single document ingestion run.

    ``vectors_written`` is the count the store actually reported, which may
    be lower than ``chunks_created`` after a partial upsert.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    index_name: str = ""
    chunks_created: int = Field(default=0, ge=0)
    vectors_written: int = Field(default=0, ge=0)
    fallback_count: int = Field(default=0, ge=0)
    ingestion_time: float = Field(default=0.0, ge=0.0)
    cancelled: bool = False

    @property
    def write_shortfall(self) -> int:
        return max(0, self.chunks_created - self.vectors_written)


class IngestionStage(str, Enum):
    """Coarse stage reported to progress listeners during ingestion."""

    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    STORING = "storing"
    COMPLETE = "complete"


class ProcessingState(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ProcessingStatus(BaseModel):
    """Status of one ingestion run, held in the processing status store."""

    model_config = ConfigDict(frozen=True)

    status_id: str
    document_id: str
    state: ProcessingState = ProcessingState.PROCESSING
    progress: float = Field(default=0.0, ge=0.0, le=100.0)
    total_chunks: int = Field(default=0, ge=0)
    processed_chunks: int = Field(default=0, ge=0)
    index_name: str | None = None
    error: str | None = None
    started_at: datetime
    updated_at: datetime

    @property
    def elapsed_seconds(self) -> float:
        return (self.updated_at - self.started_at).total_seconds()
