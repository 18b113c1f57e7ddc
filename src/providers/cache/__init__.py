"""Cache providers.

MemoryCacheProvider is a TTLCache-backed store holding processing status
records and cached query embeddings.  It is not shared across processes;
for multi-worker deployments implement ICacheProvider over Redis without
changing any business logic.
"""

from src.providers.cache.memory_cache import MemoryCacheProvider

__all__ = ["MemoryCacheProvider"]
