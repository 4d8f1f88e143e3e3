"""In-memory TTL cache for expensive upstream lookups.

Per-process cache: each worker process rebuilds its entries from upstream
after a restart. One TTLCache instance exists per cache domain (countries,
standings, team form, odds); instances are built in matchday.runtime and
passed to whoever needs them.

Read-through is composed by callers with get_or_fetch(), not built into the
cache, so each call site picks its own key, fetch strategy and TTL.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable, Optional

from matchday.telemetry.metrics import record_cache_lookup, set_cache_entries

logger = logging.getLogger(__name__)


class CacheMiss(KeyError):
    """Raised by TTLCache.__getitem__ when a key is absent or stale."""


@dataclass(frozen=True)
class CacheEntry:
    """A cached value, when it was stored and how long it stays fresh."""

    key: Hashable
    value: Any
    created_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.created_at < self.ttl


class TTLCache:
    """Key/value store with per-entry expiry.

    A key maps to at most one entry. Entries are never mutated: set() replaces
    the entry wholesale with a new created_at. Stale entries are treated as
    missing and are dropped when looked up.
    """

    def __init__(
        self,
        name: str,
        default_ttl: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.default_ttl = default_ttl
        self._clock = clock
        self._store: dict[Hashable, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def __getitem__(self, key: Hashable) -> Any:
        entry = self._store.get(key)
        if entry is None:
            self._record(hit=False)
            raise CacheMiss(key)

        if not entry.is_fresh(self._clock()):
            del self._store[key]
            self._record(hit=False)
            raise CacheMiss(key)

        self._record(hit=True)
        return entry.value

    def __contains__(self, key: Hashable) -> bool:
        entry = self._store.get(key)
        return entry is not None and entry.is_fresh(self._clock())

    def __len__(self) -> int:
        return len(self._store)

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the fresh value for key, or default on a miss."""
        try:
            return self[key]
        except CacheMiss:
            return default

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        """Store value under key, overwriting any existing entry."""
        self._store[key] = CacheEntry(
            key=key,
            value=value,
            created_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )
        set_cache_entries(self.name, len(self._store))

    def delete(self, key: Hashable) -> bool:
        """Drop a single entry. Returns True if one was present."""
        removed = self._store.pop(key, None) is not None
        set_cache_entries(self.name, len(self._store))
        return removed

    def clear(self) -> int:
        """Remove every entry and return how many were removed."""
        count = len(self._store)
        self._store.clear()
        set_cache_entries(self.name, 0)
        logger.info(f"[CACHE:{self.name}] Cleared {count} entries")
        return count

    def purge_expired(self) -> int:
        """Remove stale entries and return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._store.items() if not entry.is_fresh(now)]
        for key in expired:
            del self._store[key]
        if expired:
            set_cache_entries(self.name, len(self._store))
            logger.info(f"[CACHE:{self.name}] Purged {len(expired)} expired entries")
        return len(expired)

    def age(self, key: Hashable) -> Optional[float]:
        """Seconds since key was stored, or None if there is no entry."""
        entry = self._store.get(key)
        if entry is None:
            return None
        return self._clock() - entry.created_at

    def stats(self) -> dict:
        """Current entry count plus lookup counters."""
        return {
            "name": self.name,
            "total": len(self._store),
            "hits": self._hits,
            "misses": self._misses,
            "default_ttl_seconds": self.default_ttl,
        }

    def _record(self, hit: bool) -> None:
        if hit:
            self._hits += 1
        else:
            self._misses += 1
        record_cache_lookup(self.name, hit)


async def get_or_fetch(
    cache: TTLCache,
    key: Hashable,
    fetch: Callable[[], Awaitable[Any]],
    ttl: Optional[float] = None,
) -> Any:
    """
    Read-through lookup: return the cached value, or fetch, store and return it.

    A failing fetch propagates and leaves the cache untouched, so the next
    call retries upstream immediately.
    """
    try:
        return cache[key]
    except CacheMiss:
        pass

    logger.debug(f"[CACHE:{cache.name}] Miss for {key!r}, fetching")
    value = await fetch()
    cache.set(key, value, ttl)
    return value
