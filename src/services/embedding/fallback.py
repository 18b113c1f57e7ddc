"""Deterministic fallback embedding vectors.

When a chunk cannot be embedded by the provider (retries exhausted,
non-retryable error, or cancellation with the fallback policy) the pipeline
substitutes a pseudo-random unit vector derived from the chunk text.  The
same text always yields the same vector, so re-ingesting a document is
reproducible, and the vector has the provider's dimension so it can share
an index with real embeddings.  Fallback vectors carry no semantics; they
are flagged as such on every :class:`~src.models.rag.EmbeddingRecord`.
"""

from __future__ import annotations

import hashlib

import numpy as np


def fallback_vector(text: str, dimension: int) -> list[float]:
    """Return a unit-length vector of *dimension* seeded by a SHA-256 of *text*.

    Parameters
    ----------
    text:
        The text the vector stands in for.
    dimension:
        Output length; must be positive.
    """
    if dimension <= 0:
        raise ValueError(f"dimension must be positive, got {dimension}")

    seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
    rng = np.random.default_rng(seed)
    vector = rng.standard_normal(dimension)
    norm = np.linalg.norm(vector)
    if norm == 0:
        vector = np.ones(dimension)
        norm = np.sqrt(dimension)
    return (vector / norm).tolist()
