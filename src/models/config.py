"""Closed, validated configuration models for each pipeline component.

Each component takes exactly one of these objects.  Unknown keys are
rejected (``extra="forbid"``) and every model is frozen, so a configuration
cannot drift after the component that owns it has been built.  Any
validation failure surfaces as :class:`~src.utils.errors.ConfigurationError`
at construction time, before processing starts.

The numeric defaults (keyword weights, distance thresholds, backoff timings)
are empirically tuned values; override them per deployment rather than in code.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from src.models.document import ChunkingStrategy
from src.utils.errors import ConfigurationError


class _ComponentConfig(BaseModel):
    """Base for component configs: frozen, closed, ConfigurationError on failure."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise ConfigurationError(
                message=f"Invalid {type(self).__name__}: {exc.errors(include_url=False)}"
            ) from exc

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> Self:
        """Build from a plain mapping (e.g. a YAML section)."""
        return cls(**dict(data or {}))


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------
class ChunkingConfig(_ComponentConfig):
    """Size bounds and strategy for the chunker."""

    max_chunk_size: int = Field(default=1500, gt=0, description="Maximum characters per chunk.")
    min_chunk_size: int = Field(default=200, ge=0, description="Minimum characters per chunk.")
    overlap_size: int = Field(default=200, ge=0, description="Overlap seed length in characters.")
    strategy: ChunkingStrategy = ChunkingStrategy.SEMANTIC

    @model_validator(mode="after")
    def _check_bounds(self) -> ChunkingConfig:
        if self.min_chunk_size > self.max_chunk_size:
            raise ValueError(
                f"min_chunk_size ({self.min_chunk_size}) exceeds "
                f"max_chunk_size ({self.max_chunk_size})"
            )
        if self.overlap_size >= self.max_chunk_size:
            raise ValueError(
                f"overlap_size ({self.overlap_size}) must be smaller than "
                f"max_chunk_size ({self.max_chunk_size})"
            )
        return self


# ---------------------------------------------------------------------------
# Embedding rate limiting
# ---------------------------------------------------------------------------
class RateLimitConfig(_ComponentConfig):
    """Request budget and retry behaviour for the embedding pipeline."""

    requests_per_minute: float = Field(default=20, gt=0)
    burst_size: int = Field(default=2, ge=1, description="Max concurrent in-flight requests.")
    retry_attempts: int = Field(default=3, ge=0)
    backoff_multiplier: float = Field(default=2, ge=1)
    initial_backoff_ms: float = Field(default=2000, ge=0)
    consecutive_failure_threshold: int = Field(
        default=10, ge=0, description="Failures in a row before the penalty delay kicks in."
    )
    consecutive_failure_penalty_ms: float = Field(default=5000, ge=0)

    @property
    def min_delay_seconds(self) -> float:
        """Minimum spacing between requests: ``60000 / requests_per_minute`` ms."""
        return 60.0 / self.requests_per_minute


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------
class RankingConfig(_ComponentConfig):
    """Filtering thresholds and weights for the hybrid ranker."""

    max_distance: float = Field(default=0.3, ge=0)
    min_keyword_score: float = Field(default=0, ge=0)
    top_k: int = Field(default=20, ge=1, description="Candidates fetched per index.")
    top_n: int = Field(default=10, ge=1, description="Results kept after ranking.")
    weight_vector: float = Field(default=0.7, ge=0, le=1)
    require_section: bool = False
    strong_keyword_threshold: float = Field(default=5, ge=0)
    distance_relaxation: float = Field(default=1.5, ge=1)
    keyword_normalizer: float = Field(default=10, gt=0)
    min_content_length: int = Field(
        default=10, ge=0, description="Candidates with less stripped content are dropped."
    )
