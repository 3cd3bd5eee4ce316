"""Key-value cache collaborators for memoized query results."""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any

logger = logging.getLogger(__name__)


class Cache(ABC):
    """Abstract key-value cache with per-entry time to live."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the cached value, or None on a miss or expiry."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""
        pass


class NullCache(Cache):
    """Cache that never stores anything."""

    def get(self, key: str) -> Any | None:
        return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        pass


class MemoryCache(Cache):
    """Thread-safe LRU cache with expiring entries."""

    def __init__(self, max_size: int = 1000, clock=time.monotonic):
        self.cache: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self.max_size = max_size
        self.hits = 0
        self.misses = 0
        self.lock = threading.RLock()
        self._clock = clock

    def get(self, key: str) -> Any | None:
        with self.lock:
            item = self.cache.get(key)
            if item is not None:
                expires_at, value = item
                if expires_at > self._clock():
                    self.cache.move_to_end(key)
                    self.hits += 1
                    return value
                del self.cache[key]
            self.misses += 1
            return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        with self.lock:
            if key in self.cache:
                self.cache.move_to_end(key)
            elif len(self.cache) >= self.max_size:
                self.cache.popitem(last=False)
            self.cache[key] = (self._clock() + ttl_seconds, value)

    def invalidate(self, key: str) -> None:
        with self.lock:
            self.cache.pop(key, None)

    def clear(self) -> None:
        with self.lock:
            self.cache.clear()

    def stats(self) -> dict[str, int | float]:
        with self.lock:
            total = self.hits + self.misses
            hit_rate = self.hits / total if total > 0 else 0
            return {
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": hit_rate,
                "size": len(self.cache),
            }


def cached_get(cache: Cache, key: str) -> Any | None:
    """Read from ``cache``, treating any cache failure as a miss."""
    try:
        return cache.get(key)
    except Exception as e:
        logger.warning(f"Cache read failed for {key}: {e}")
        return None


def cached_set(cache: Cache, key: str, value: Any, ttl_seconds: int) -> None:
    """Write to ``cache``, logging and ignoring any cache failure."""
    try:
        cache.set(key, value, ttl_seconds)
    except Exception as e:
        logger.warning(f"Cache write failed for {key}: {e}")
