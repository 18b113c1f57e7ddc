"""Domain models, re-exported for ``from src.models import ...``.

The models are split across three submodules by concern:
    - document.py -- source documents, structural segments and chunks
    - config.py   -- validated component configuration (chunking, rate
      limiting, ranking)
    - rag.py      -- embeddings, vector records, queries, ranked results and
      ingestion bookkeeping
"""

from __future__ import annotations

from src.models.config import ChunkingConfig, RankingConfig, RateLimitConfig
from src.models.document import Chunk, ChunkingStrategy, ChunkType, Document, Segment
from src.models.rag import (
    EmbeddingProgress,
    EmbeddingProvenance,
    EmbeddingRecord,
    IndexCreation,
    IngestionResult,
    IngestionStage,
    MetadataFilter,
    ProcessingState,
    ProcessingStatus,
    Query,
    QueryMatch,
    ScoreConvention,
    ScoredResult,
    SearchDiagnostic,
    SearchResponse,
    SectionIntent,
    VectorRecord,
)

__all__ = [
    # document
    "Chunk",
    "ChunkType",
    "ChunkingStrategy",
    "Document",
    "Segment",
    # config
    "ChunkingConfig",
    "RankingConfig",
    "RateLimitConfig",
    # rag
    "EmbeddingProgress",
    "EmbeddingProvenance",
    "EmbeddingRecord",
    "IndexCreation",
    "IngestionResult",
    "IngestionStage",
    "MetadataFilter",
    "ProcessingState",
    "ProcessingStatus",
    "Query",
    "QueryMatch",
    "ScoreConvention",
    "ScoredResult",
    "SearchDiagnostic",
    "SearchResponse",
    "SectionIntent",
    "VectorRecord",
]
