"""Port for the session-scoped aggregate cache."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from sourcerr.domain.entities.sources import CacheEntry


@runtime_checkable
class AggregateCachePort(Protocol):
    """Synchronous lookup so a cache hit can be published without awaiting."""

    def get(self, cache_key: str) -> CacheEntry | None: ...

    def put(self, entry: CacheEntry) -> None: ...
