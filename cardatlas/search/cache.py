"""
Search Result Cache: TTL + LRU store for computed result pages.

One instance is created at application startup and passed explicitly to
the search service. It is torn down (cleared) at shutdown.

INVARIANTS:
- Callers never hold a reference to a stored page (copies in, copies out)
- Expired entries are never served
- Entry count never exceeds max_entries (least recently used evicted first)
- With max_bytes set, the estimated size of all entries never exceeds it
- A write tagged with a generation older than the last invalidation is discarded

LOCKING:
A single lock guards the entry map and counters. Every operation holds it
for O(1) work; invalidate_all and purge_expired are O(n) but rare.
"""

import asyncio
import copy
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from threading import Lock

from cardatlas.models.search import SearchResultPage

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_MAX_ENTRIES = 1000
ESTIMATED_ITEM_BYTES = 1024
ESTIMATED_PAGE_OVERHEAD_BYTES = 200


def estimate_page_size(page: SearchResultPage) -> int:
    """Rough in-memory size of a page: a flat cost per card plus pagination metadata."""
    return len(page.items) * ESTIMATED_ITEM_BYTES + ESTIMATED_PAGE_OVERHEAD_BYTES


@dataclass
class CacheEntry:
    """A stored page and its lifetime."""

    key: str
    value: SearchResultPage
    created_at: float
    expires_at: float
    size: int = 0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time cache diagnostics."""

    entries: int
    max_entries: int
    hits: int
    misses: int
    evictions: int
    expirations: int
    invalidations: int
    generation: int
    total_bytes: int = 0
    max_bytes: int | None = None
    oldest_entry_age_seconds: float | None = None
    newest_entry_age_seconds: float | None = None

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


@dataclass
class SearchResultCache:
    """
    Process-wide cache of search result pages.

    Same-key writes are last-write-wins. Invalidation always clears the
    whole cache: filter combinations are too numerous to invalidate
    selectively.
    """

    default_ttl_seconds: float = DEFAULT_TTL_SECONDS
    max_entries: int = DEFAULT_MAX_ENTRIES
    clock: Callable[[], float] = time.monotonic
    max_bytes: int | None = None

    _entries: "OrderedDict[str, CacheEntry]" = field(default_factory=OrderedDict)
    _generation: int = 0
    _total_bytes: int = 0
    _hits: int = 0
    _misses: int = 0
    _evictions: int = 0
    _expirations: int = 0
    _invalidations: int = 0
    _lock: Lock = field(default_factory=Lock)

    def __post_init__(self) -> None:
        if self.default_ttl_seconds <= 0:
            raise ValueError("default_ttl_seconds must be positive")
        if self.max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if self.max_bytes is not None and self.max_bytes < 1:
            raise ValueError("max_bytes must be at least 1")

    @property
    def generation(self) -> int:
        """Counter bumped on every invalidation."""
        with self._lock:
            return self._generation

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> SearchResultPage | None:
        """
        Look up a page by key.

        Returns a copy of the stored page, or None on miss or expiry.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(self.clock()):
                self._remove(key)
                self._expirations += 1
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            value = entry.value

        return copy.deepcopy(value)

    def set(
        self,
        key: str,
        value: SearchResultPage,
        ttl_seconds: float | None = None,
        generation: int | None = None,
    ) -> bool:
        """
        Store a page under key.

        Args:
            key: Cache key from derive_cache_key
            value: Page to store (copied)
            ttl_seconds: Lifetime override, defaults to default_ttl_seconds
            generation: Generation read before computing value. If the cache
                has been invalidated since, the write is discarded.

        Returns:
            True if stored. False if discarded as stale, or larger than
            max_bytes on its own.
        """
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            raise ValueError("ttl_seconds must be positive")

        size = estimate_page_size(value)
        if self.max_bytes is not None and size > self.max_bytes:
            logger.debug(
                "SEARCH_CACHE_ENTRY_TOO_LARGE",
                extra={"cache_key": key, "size": size, "max_bytes": self.max_bytes},
            )
            return False

        stored = copy.deepcopy(value)

        with self._lock:
            if generation is not None and generation != self._generation:
                logger.debug(
                    "SEARCH_CACHE_STALE_WRITE_DISCARDED",
                    extra={"cache_key": key, "generation": generation},
                )
                return False

            now = self.clock()
            if key in self._entries:
                self._remove(key)
            self._entries[key] = CacheEntry(
                key=key,
                value=stored,
                created_at=now,
                expires_at=now + ttl,
                size=size,
            )
            self._total_bytes += size

            while len(self._entries) > self.max_entries or self._over_byte_limit():
                oldest = next(iter(self._entries))
                self._remove(oldest)
                self._evictions += 1

        return True

    def _over_byte_limit(self) -> bool:
        return self.max_bytes is not None and self._total_bytes > self.max_bytes

    def _remove(self, key: str) -> None:
        # Caller holds the lock
        entry = self._entries.pop(key)
        self._total_bytes -= entry.size

    def invalidate_all(self) -> int:
        """
        Drop every entry.

        MUST be called after any card create, update or delete commits.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
            self._total_bytes = 0
            self._generation += 1
            self._invalidations += 1
            generation = self._generation

        logger.info(
            "SEARCH_CACHE_INVALIDATED",
            extra={"entries_removed": removed, "generation": generation},
        )
        return removed

    def purge_expired(self) -> int:
        """Remove expired entries. Returns the number removed."""
        with self._lock:
            now = self.clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                self._remove(key)
            self._expirations += len(expired)

        if expired:
            logger.debug("SEARCH_CACHE_PURGED", extra={"entries_removed": len(expired)})
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            now = self.clock()
            created = [entry.created_at for entry in self._entries.values()]
            return CacheStats(
                entries=len(self._entries),
                max_entries=self.max_entries,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expirations=self._expirations,
                invalidations=self._invalidations,
                generation=self._generation,
                total_bytes=self._total_bytes,
                max_bytes=self.max_bytes,
                oldest_entry_age_seconds=now - min(created) if created else None,
                newest_entry_age_seconds=now - max(created) if created else None,
            )


async def run_cache_janitor(cache: SearchResultCache, interval_seconds: float) -> None:
    """
    Periodically purge expired entries until cancelled.

    Started as a background task by the application lifespan.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        cache.purge_expired()
