"""Favorites Port - external store keyed by (provider_id, stable_id)."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from sourcerr.domain.entities.sources import EnrichedResult


@runtime_checkable
class FavoritesStorePort(Protocol):
    async def is_favorited(self, provider_id: str, stable_id: str) -> bool: ...

    async def toggle(self, result: EnrichedResult) -> bool:
        """Flip the favorite flag for *result*; return the new state."""
        ...
