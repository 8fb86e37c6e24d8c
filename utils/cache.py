"""In-memory TTL cache for the enforcement API.

The dashboard summary cards are cached here.  Entries
expire after a TTL.  A cache may also be bound to a change feed: any object
with a ``drain()`` method returning the changes seen since the previous
call, such as an ``enforcement.events.Subscription``.  Pending changes are
checked before every lookup and, if there are any, the whole cache is
dropped, so a new case or notice shows up on the very next request.
"""

import logging
import threading
import time
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class ChangeFeed(Protocol):
    def drain(self) -> list: ...


class TTLCache:
    """Thread-safe in-memory cache with time-to-live (TTL) expiry.

    At most ``maxsize`` entries are retained; when the cache is full the
    entry closest to expiry is evicted.

    Usage::

        cache = TTLCache(maxsize=32, ttl_seconds=60, invalidate_on=subscription)
        cache.set(("offender_summary", None), summary)
        value = cache.get(("offender_summary", None))  # None if expired/missing
    """

    def __init__(
        self,
        maxsize: int = 128,
        ttl_seconds: float = 300.0,
        invalidate_on: ChangeFeed | None = None,
    ) -> None:
        self._maxsize = maxsize
        self._ttl = ttl_seconds
        self._feed = invalidate_on
        # key -> (value, expires_at)
        self._store: dict[Any, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._invalidations = 0

    def _apply_changes(self) -> None:
        # caller holds the lock
        if self._feed is None:
            return
        changes = self._feed.drain()
        if changes and self._store:
            logger.debug("cache_invalidated changes=%d entries=%d",
                         len(changes), len(self._store))
            self._store.clear()
            self._invalidations += 1

    def get(self, key: Any) -> Any | None:
        """Return cached value for *key*, or ``None`` if absent, expired or
        invalidated by a pending change."""
        with self._lock:
            self._apply_changes()
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            value, expires_at = entry
            if time.monotonic() > expires_at:
                del self._store[key]
                self._misses += 1
                return None
            self._hits += 1
            return value

    def set(self, key: Any, value: Any) -> None:
        expires_at = time.monotonic() + self._ttl
        with self._lock:
            if key not in self._store and len(self._store) >= self._maxsize:
                soonest = min(self._store, key=lambda k: self._store[k][1])
                del self._store[soonest]
            self._store[key] = (value, expires_at)

    def delete(self, key: Any) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        """Remove all entries and reset the counters."""
        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
            self._invalidations = 0

    def stats(self) -> dict[str, int]:
        """Return ``hits``, ``misses``, ``invalidations`` and live ``size``."""
        with self._lock:
            now = time.monotonic()
            for k in [k for k, (_, exp) in self._store.items() if now > exp]:
                del self._store[k]
            return {
                "hits": self._hits,
                "misses": self._misses,
                "invalidations": self._invalidations,
                "size": len(self._store),
            }
