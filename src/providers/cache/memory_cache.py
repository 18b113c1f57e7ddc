"""In-memory cache provider using cachetools.TTLCache.

Backs the processing status store and the query-embedding cache in a
single-process deployment.  Entries expire after the TTL given at
construction; the least-recently-used entry is evicted when full.
Can be swapped for Redis or another backend via the ICacheProvider
interface.
"""

from __future__ import annotations

from typing import Any

import structlog
from cachetools import TTLCache

from src.interfaces.cache_provider import ICacheProvider

logger = structlog.get_logger(logger_name=__name__)


class MemoryCacheProvider(ICacheProvider):
    """In-memory TTL cache backed by ``cachetools.TTLCache``.

    Parameters
    ----------
    max_size:
        Maximum number of entries before the least-recently-used entry
        is evicted.
    ttl:
        Time-to-live in seconds for every entry.
    timer:
        Clock used by ``TTLCache``; injectable so tests can expire entries
        without sleeping.
    """

    def __init__(self, max_size: int = 1000, ttl: int = 3600, timer: Any | None = None) -> None:
        self._ttl = ttl
        kwargs: dict[str, Any] = {"maxsize": max_size, "ttl": ttl}
        if timer is not None:
            kwargs["timer"] = timer
        self._cache: TTLCache[str, Any] = TTLCache(**kwargs)

    @property
    def ttl(self) -> int:
        return self._ttl

    # ------------------------------------------------------------------
    # ICacheProvider implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Retrieve the cached value for *key*, or ``None`` if missing/expired."""
        value = self._cache.get(key)
        logger.debug("cache_hit" if value is not None else "cache_miss", key=key)
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store *value* under *key*.

        ``TTLCache`` applies one TTL to every entry, so a per-item *ttl*
        other than the construction-time value is ignored with a debug log.
        """
        if ttl is not None and ttl != self._ttl:
            logger.debug("cache_ttl_ignored", key=key, requested=ttl, effective=self._ttl)
        self._cache[key] = value

    async def delete(self, key: str) -> None:
        """Remove *key* from the cache (no-op if absent)."""
        self._cache.pop(key, None)

    async def exists(self, key: str) -> bool:
        """Return ``True`` if *key* is present and not expired."""
        return key in self._cache
