"""
core/security/cache.py

Thread-safe in-process TTL cache used in front of permission lookups.

Entries expire `ttl_seconds` after they were written. When the cache is full,
expired entries are dropped first, then the oldest insertions.
"""
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional, Tuple
import threading
import time


class TTLCache:
    """
    Bounded TTL cache

    Args:
        ttl_seconds: lifetime of an entry
        max_size: maximum number of entries
        clock: monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_size: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._data: "OrderedDict[Hashable, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                self.misses += 1
                return default
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._data[key]
                self.misses += 1
                return default
            self.hits += 1
            return value

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        lifetime = self.ttl_seconds if ttl is None else ttl
        with self._lock:
            if key in self._data:
                del self._data[key]
            elif len(self._data) >= self.max_size:
                self._evict()
            self._data[key] = (self._clock() + lifetime, value)

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        """Drop every string key starting with `prefix`"""
        with self._lock:
            doomed = [k for k in self._data if isinstance(k, str) and k.startswith(prefix)]
            for key in doomed:
                del self._data[key]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self.hits = 0
            self.misses = 0

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_expired_locked()

    def stats(self) -> dict:
        with self._lock:
            return {
                "size": len(self._data),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
                "hits": self.hits,
                "misses": self.misses,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    # caller holds the lock

    def _purge_expired_locked(self) -> int:
        now = self._clock()
        expired = [k for k, (expires_at, _) in self._data.items() if expires_at <= now]
        for key in expired:
            del self._data[key]
        return len(expired)

    def _evict(self) -> None:
        if self._purge_expired_locked():
            return
        self._data.popitem(last=False)


_MISSING = object()

__all__ = ["TTLCache"]
