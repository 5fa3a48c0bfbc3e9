"""In-memory TTL cache for hot read paths.

Entries live in named namespaces (``knowledge_bases``, ``documents``,
``document_content``) and expire ``ttl_seconds`` after they were written.
Expired entries are dropped lazily on read and eagerly by
:func:`periodic_cleanup`, which runs as a task in the FastAPI lifespan.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

KNOWLEDGE_BASES = "knowledge_bases"
DOCUMENTS = "documents"
DOCUMENT_CONTENT = "document_content"

NAMESPACES = (KNOWLEDGE_BASES, DOCUMENTS, DOCUMENT_CONTENT)


@dataclass
class CacheEntry:
    value: Any
    stored_at: float = field(default_factory=time.monotonic)


class MemoryCache:
    """Namespaced map of values with a shared time-to-live."""

    def __init__(self, ttl_seconds: int = 300):
        self._ttl = ttl_seconds
        self._data: dict[str, dict[Any, CacheEntry]] = {ns: {} for ns in NAMESPACES}
        self._lock = asyncio.Lock()

    def _is_expired(self, entry: CacheEntry, now: float | None = None) -> bool:
        if now is None:
            now = time.monotonic()
        return (now - entry.stored_at) > self._ttl

    async def get(self, namespace: str, key: Any) -> Any | None:
        async with self._lock:
            bucket = self._data[namespace]
            entry = bucket.get(key)
            if entry is None:
                return None
            if self._is_expired(entry):
                del bucket[key]
                logger.debug("Cache entry expired: %s/%s", namespace, key)
                return None
            return entry.value

    async def set(self, namespace: str, key: Any, value: Any) -> None:
        async with self._lock:
            self._data[namespace][key] = CacheEntry(value=value)

    async def invalidate(self, namespace: str, key: Any | None = None) -> None:
        """Drop one key, or the whole namespace when *key* is None."""
        async with self._lock:
            if key is None:
                self._data[namespace].clear()
            else:
                self._data[namespace].pop(key, None)

    async def cleanup_expired(self) -> int:
        """Remove expired entries from every namespace; return how many."""
        now = time.monotonic()
        removed = 0
        async with self._lock:
            for bucket in self._data.values():
                expired = [k for k, e in bucket.items() if self._is_expired(e, now)]
                for key in expired:
                    del bucket[key]
                removed += len(expired)
        if removed:
            logger.info("Cleaned up %d expired cache entries", removed)
        return removed

    async def clear_all(self) -> None:
        async with self._lock:
            for bucket in self._data.values():
                bucket.clear()

    def size(self) -> int:
        """Number of entries held, expired or not."""
        return sum(len(bucket) for bucket in self._data.values())


# ── Module-level Singleton ───────────────────────────────────

_cache: MemoryCache | None = None


def get_cache() -> MemoryCache:
    """Get the singleton cache instance."""
    global _cache
    if _cache is None:
        from config.settings import get_settings

        ttl = get_settings().cache_ttl
        _cache = MemoryCache(ttl_seconds=ttl)
        logger.info("Initialized MemoryCache (TTL=%ds)", ttl)
    return _cache


# ── Background Cleanup Task ──────────────────────────────────


async def periodic_cleanup(interval_seconds: int = 300) -> None:
    """Background task that periodically sweeps expired cache entries.

    Should be started as an ``asyncio.Task`` in the FastAPI lifespan.
    """
    cache = get_cache()
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await cache.cleanup_expired()
        except Exception:
            logger.exception("Cache cleanup failed")
