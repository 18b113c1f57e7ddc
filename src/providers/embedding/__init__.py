"""Embedding provider implementations.

Two implementations of IEmbeddingProvider:
    1. OpenAIEmbeddingProvider -- text-embedding-3-small (1536 dims) or any
       OpenAI-compatible endpoint.  Requires an API key.
    2. HashEmbeddingProvider   -- deterministic hash vectors, no network.
       Selected by main.py when no API key is configured.
"""

from src.providers.embedding.hash_embedding_provider import HashEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["HashEmbeddingProvider", "OpenAIEmbeddingProvider"]
