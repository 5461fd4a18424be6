"""Favorites repository backed by CachePort (diskcache)."""

from __future__ import annotations

import json
import time

import structlog

from sourcerr.domain.entities.sources import EnrichedResult
from sourcerr.domain.ports.cache import CachePort

log = structlog.get_logger(__name__)


def favorite_key(provider_id: str, stable_id: str) -> str:
    return f"favorite:{provider_id}+{stable_id}"


def _serialize_favorite(result: EnrichedResult, saved_at: float) -> str:
    """Serialize the favorited source to a JSON string."""
    return json.dumps(
        {
            "provider_id": result.provider_id,
            "provider_name": result.provider_display_name,
            "raw_id": result.raw_id,
            "title": result.title,
            "year": result.raw.year,
            "poster": result.raw.poster,
            "episode_count": result.episode_count,
            "saved_at": saved_at,
        },
        ensure_ascii=False,
    )


class CacheFavoritesStore:
    """Stores favorites via CachePort, one record per (provider, stable id)."""

    def __init__(self, cache: CachePort) -> None:
        self.cache = cache

    async def is_favorited(self, provider_id: str, stable_id: str) -> bool:
        return await self.cache.exists(favorite_key(provider_id, stable_id))

    async def get(self, provider_id: str, stable_id: str) -> dict | None:
        """Load the stored favorite record, if any."""
        data = await self.cache.get(favorite_key(provider_id, stable_id))
        if data is None:
            return None
        try:
            return json.loads(data)
        except json.JSONDecodeError as e:
            log.error(
                "favorite_deserialize_error",
                provider=provider_id,
                stable_id=stable_id,
                error=str(e),
            )
            return None

    async def toggle(self, result: EnrichedResult) -> bool:
        """Flip the favorite flag for *result*; return the new state."""
        key = favorite_key(result.provider_id, result.raw_id)
        if await self.cache.exists(key):
            await self.cache.delete(key)
            log.debug("favorite_removed", key=key)
            return False

        await self.cache.set(key, _serialize_favorite(result, time.time()))
        log.debug("favorite_saved", key=key, title=result.title)
        return True
