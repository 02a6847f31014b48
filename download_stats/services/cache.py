import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple

from download_stats.core.settings import settings


logger = logging.getLogger(__name__)


def make_key(operation: str, **params: Any) -> str:
    """Deterministic key from the operation name and every filter parameter."""
    parts = [f"{name}={params[name]}" for name in sorted(params)]
    return ":".join(["dlstats", operation, *parts])


class TTLCache:
    """In-process read-through result cache with fixed expiry and LRU eviction.

    Entries are never invalidated on write; they disappear when their TTL elapses
    or when the cache grows past ``max_entries``.
    """

    def __init__(
        self,
        ttl_seconds: int = 600,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be a positive integer")
        if max_entries <= 0:
            raise ValueError("max_entries must be a positive integer")
        self.ttl = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (expires_at, value)
        self._store: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            item = self._store.get(key)
            if item is None:
                logger.debug("cache miss %s", key)
                return None
            expires_at, value = item
            if expires_at <= now:
                self._store.pop(key, None)
                logger.debug("cache expired %s", key)
                return None
            self._store.move_to_end(key, last=True)
        logger.debug("cache hit %s", key)
        return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + (ttl if ttl is not None else self.ttl)
        with self._lock:
            self._store[key] = (expires_at, value)
            self._store.move_to_end(key, last=True)
            while len(self._store) > self.max_entries:
                self._store.popitem(last=False)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


_result_cache = TTLCache(ttl_seconds=settings.cache_ttl_seconds, max_entries=settings.cache_max_entries)


def get_cache() -> TTLCache:
    return _result_cache
