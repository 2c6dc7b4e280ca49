"""
Schema-metadata cache.

Read-through TTL cache for database catalogue lookups (table list, column
lists) served by the introspection endpoints.  Keys are plain strings such
as ``"tables"`` or ``"columns:daily_check"``.

The cache is process-local (dict-based) with configurable TTL and max
size, and is safe to share between request threads.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from askguard.core.config import get_settings
from askguard.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_SIZE = 256


@dataclass
class CacheEntry:
    """A single cached value."""
    key: str
    value: Any
    created_at: float
    ttl: float
    hit_count: int = 0

    @property
    def is_expired(self) -> bool:
        return (time.monotonic() - self.created_at) > self.ttl


class SchemaCache:
    """Thread-safe in-memory TTL cache.

    Parameters
    ----------
    ttl : float
        Time-to-live in seconds for each entry.
    max_size : int
        Maximum number of entries. Oldest entries are evicted when full.
    """

    def __init__(self, ttl: float, max_size: int = DEFAULT_MAX_SIZE):
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._ttl = ttl
        self._max_size = max_size
        self._hits = 0
        self._misses = 0

    # ── Public API ──────────────────────────────────────

    def get(self, key: str) -> Any | None:
        """Retrieve a cached value, or ``None`` on miss / expiry."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired:
                del self._store[key]
                self._misses += 1
                return None
            entry.hit_count += 1
            self._hits += 1
            logger.debug("Cache HIT key=%s hits=%d", key, entry.hit_count)
            return entry.value

    def put(self, key: str, value: Any) -> None:
        """Store a value in the cache."""
        with self._lock:
            if len(self._store) >= self._max_size and key not in self._store:
                self._evict_oldest()
            self._store[key] = CacheEntry(
                key=key, value=value, created_at=time.monotonic(), ttl=self._ttl,
            )
            size = len(self._store)
        logger.debug("Cache PUT key=%s size=%d", key, size)

    def get_or_load(self, key: str, loader: Callable[[], T]) -> T:
        """Return the cached value for *key*, calling *loader* on miss.

        Loader exceptions propagate and nothing is cached.
        """
        value = self.get(key)
        if value is not None:
            return value
        value = loader()
        self.put(key, value)
        return value

    def invalidate(self, key: str | None = None) -> int:
        """Remove one entry or flush all. Returns number of entries removed."""
        with self._lock:
            if key is None:
                count = len(self._store)
                self._store.clear()
                return count
            return 1 if self._store.pop(key, None) is not None else 0

    def stats(self) -> dict[str, Any]:
        """Return cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._store),
                "max_size": self._max_size,
                "ttl_seconds": self._ttl,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total, 3) if total else 0.0,
            }

    def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count removed."""
        with self._lock:
            expired = [k for k, v in self._store.items() if v.is_expired]
            for k in expired:
                del self._store[k]
            return len(expired)

    # ── Internals ───────────────────────────────────────

    def _evict_oldest(self) -> None:
        """Remove the entry with the earliest creation time."""
        if not self._store:
            return
        oldest_key = min(self._store, key=lambda k: self._store[k].created_at)
        del self._store[oldest_key]


# ── Module-level singleton ──────────────────────────────

_cache: SchemaCache | None = None
_cache_lock = threading.Lock()


def get_schema_cache() -> SchemaCache:
    """Return the global cache instance (TTL from settings)."""
    global _cache
    with _cache_lock:
        if _cache is None:
            _cache = SchemaCache(ttl=get_settings().schema_cache_ttl_seconds)
        return _cache
