"""Persistent key/value store for local user data (favorites).

diskcache is synchronous and SQLite-backed. Every call is pushed to a worker
thread and gated by a semaphore so concurrent favorite lookups from parallel
sessions do not pile up on the SQLite write lock.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import structlog
from diskcache import Cache as DiskCache

log = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_DIRECTORY = Path("./.cache/sourcerr")


class DiskcacheAdapter:
    """Async ``CachePort`` over a ``diskcache.Cache`` directory.

    The store is opened by ``async with`` (or an explicit ``__aenter__``).
    Reads on a closed store report "absent"; writes on a closed store raise
    ``RuntimeError`` so a lost favorite is never silent.
    """

    def __init__(
        self,
        directory: str | Path = DEFAULT_DIRECTORY,
        ttl_seconds: int | None = None,
        max_concurrent: int = 10,
    ) -> None:
        self.directory = Path(directory)
        self.default_ttl = ttl_seconds
        self._store: DiskCache | None = None
        self._gate = asyncio.Semaphore(max_concurrent)

    async def __aenter__(self) -> DiskcacheAdapter:
        if self._store is None:
            self._store = await asyncio.to_thread(DiskCache, str(self.directory))
            log.info(
                "favorites_store_opened",
                directory=str(self.directory),
                default_ttl=self.default_ttl,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        store, self._store = self._store, None
        if store is not None:
            await asyncio.to_thread(store.close)
            log.info("favorites_store_closed", directory=str(self.directory))

    async def _on_disk(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        async with self._gate:
            return await asyncio.to_thread(fn, *args, **kwargs)

    def _writable(self) -> DiskCache:
        if self._store is None:
            raise RuntimeError(
                f"store at {self.directory} is not open; use 'async with adapter:'"
            )
        return self._store

    async def get(self, key: str) -> Any:
        if self._store is None:
            return None
        value = await self._on_disk(self._store.get, key, default=None)
        log.debug("store_get", key=key, hit=value is not None)
        return value

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        store = self._writable()
        expire = self.default_ttl if ttl is None else ttl
        await self._on_disk(store.set, key, value, expire=expire)
        log.debug("store_set", key=key, expire=expire)

    async def delete(self, key: str) -> bool:
        store = self._writable()
        removed = bool(await self._on_disk(store.delete, key))
        log.debug("store_delete", key=key, removed=removed)
        return removed

    async def exists(self, key: str) -> bool:
        if self._store is None:
            return False
        # Membership honours expiry.
        return await self._on_disk(self._store.__contains__, key)
