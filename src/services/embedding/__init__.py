"""Rate-limited chunk embedding with deterministic fallback vectors."""

from src.services.embedding.fallback import fallback_vector
from src.services.embedding.pipeline import CancelPolicy, EmbeddingPipeline

__all__ = ["CancelPolicy", "EmbeddingPipeline", "fallback_vector"]
