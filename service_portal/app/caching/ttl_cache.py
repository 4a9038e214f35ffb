"""
In-process read-through TTL cache for the portal service.

Entries expire lazily: an expired entry is only dropped when its key is
looked up again. ``delete_by_prefix`` is the only path that removes entries
eagerly, and it is how writers invalidate every filter/page variant of a
listing at once (keys are ``<namespace>:list:<filters...>``).

Concurrent ``get_or_set`` misses on the same key are not coalesced; each
caller runs the loader and the last write wins. Loaders are idempotent reads
so this only costs a duplicate query.
"""

import inspect
import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TYPE_CHECKING, Union

from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


_MISSING = object()

Loader = Callable[[], Union[Any, Awaitable[Any]]]


@dataclass
class CacheEntry:
    """A cached value and its absolute expiry (clock milliseconds)."""
    key: str
    value: Any
    expires_at: float


class TtlCache:
    """Key -> (value, expiry) store with prefix invalidation."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self._store: Dict[str, CacheEntry] = {}
        self._clock = clock
        self.metrics = metrics
        self.logger = get_logger("portal.cache")
        self.hits = 0
        self.misses = 0

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def _lookup(self, key: str) -> Any:
        """Return the live value for key or _MISSING, evicting if expired."""
        entry = self._store.get(key)
        if entry is None:
            return _MISSING
        if self._now_ms() >= entry.expires_at:
            # Only drop the entry we read; a concurrent set may have replaced it
            if self._store.get(key) is entry:
                del self._store[key]
            return _MISSING
        return entry.value

    def _record(self, key: str, hit: bool):
        if hit:
            self.hits += 1
        else:
            self.misses += 1
        if self.metrics is not None:
            namespace = key.split(":", 1)[0]
            metric = "cache_hits_total" if hit else "cache_misses_total"
            self.metrics.increment_counter(metric, namespace=namespace)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a live value, or default when absent or expired."""
        value = self._lookup(key)
        self._record(key, value is not _MISSING)
        return default if value is _MISSING else value

    def contains(self, key: str) -> bool:
        """Check whether key currently holds a live value."""
        return self._lookup(key) is not _MISSING

    def set(self, key: str, value: Any, ttl_ms: float) -> None:
        """Store value under key for ttl_ms milliseconds.

        A non-positive or non-finite TTL stores an entry that is already stale.
        """
        try:
            ttl = float(ttl_ms)
        except (TypeError, ValueError):
            ttl = 0.0
        if not math.isfinite(ttl) or ttl <= 0:
            ttl = 0.0
        self._store[key] = CacheEntry(key=key, value=value, expires_at=self._now_ms() + ttl)

    def delete(self, key: str) -> bool:
        """Remove a single key. Returns True if something was removed."""
        return self._store.pop(key, None) is not None

    def delete_by_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with the literal prefix."""
        doomed = [key for key in self._store if key.startswith(prefix)]
        for key in doomed:
            self._store.pop(key, None)

        if doomed:
            self.logger.debug("Cache prefix invalidated", prefix=prefix, removed=len(doomed))
        return len(doomed)

    async def get_or_set(self, key: str, ttl_ms: float, loader: Loader) -> Any:
        """Return the cached value for key, loading and storing it on a miss."""
        value = self._lookup(key)
        if value is not _MISSING:
            self._record(key, True)
            return value

        self._record(key, False)
        value = loader()
        if inspect.isawaitable(value):
            value = await value

        self.set(key, value, ttl_ms)
        return value

    def clear(self) -> None:
        """Drop every entry."""
        self._store.clear()

    def __len__(self) -> int:
        # Counts stale-but-unread entries too
        return len(self._store)

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        total = self.hits + self.misses
        return {
            "entries": len(self._store),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": (self.hits / total) if total else 0.0,
        }
