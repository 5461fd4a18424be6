"""In-process session cache for aggregated play sources."""

from __future__ import annotations

import structlog

from sourcerr.domain.entities.sources import CacheEntry

log = structlog.get_logger(__name__)


class InMemoryAggregateCache:
    """Bounded map of cache key -> CacheEntry.

    Entries do not expire; once ``max_entries`` is reached, writing a new
    key evicts the entry with the oldest timestamp. Rewriting an existing
    key never evicts.
    """

    def __init__(self, max_entries: int = 8) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._max_entries = max_entries
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, cache_key: str) -> CacheEntry | None:
        return self._entries.get(cache_key)

    def put(self, entry: CacheEntry) -> None:
        if (
            entry.cache_key not in self._entries
            and len(self._entries) >= self._max_entries
        ):
            oldest = min(self._entries.values(), key=lambda e: e.timestamp)
            del self._entries[oldest.cache_key]
            log.debug("aggregate_cache_evicted", cache_key=oldest.cache_key)
        self._entries[entry.cache_key] = entry
