"""Key/value persistence used by the favorites store."""

from __future__ import annotations

from typing import Any, Protocol


class CachePort(Protocol):
    """Async key/value store, opened and closed with ``async with``.

    ``get`` returns ``None`` for a missing or expired key. ``set`` without
    ``ttl`` uses the store's default expiry (which may be "never").
    """

    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def exists(self, key: str) -> bool: ...

    async def aclose(self) -> None: ...

    async def __aenter__(self) -> CachePort: ...

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None: ...
