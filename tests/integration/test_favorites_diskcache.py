"""Integration tests: favorites persisted through the real DiskcacheAdapter."""

from __future__ import annotations

from pathlib import Path

import pytest
from fakes import make_enriched

from sourcerr.infrastructure.cache.diskcache_adapter import DiskcacheAdapter
from sourcerr.infrastructure.persistence.favorites_store import CacheFavoritesStore

pytestmark = pytest.mark.integration


class TestFavoritesOnDiskcache:
    async def test_toggle_round_trip(self, diskcache: DiskcacheAdapter) -> None:
        store = CacheFavoritesStore(diskcache)
        result = make_enriched("bfzy", name="暴风资源", raw_id="42")

        assert await store.is_favorited("bfzy", "42") is False
        assert await store.toggle(result) is True
        assert await store.is_favorited("bfzy", "42") is True

        record = await store.get("bfzy", "42")
        assert record is not None
        assert record["provider_name"] == "暴风资源"

        assert await store.toggle(result) is False
        assert await store.is_favorited("bfzy", "42") is False
        assert await store.get("bfzy", "42") is None

    async def test_favorites_survive_reopen(self, tmp_path: Path) -> None:
        directory = tmp_path / "favorites"
        result = make_enriched("hnzy", raw_id="7")

        async with DiskcacheAdapter(directory=directory) as cache:
            await CacheFavoritesStore(cache).toggle(result)

        async with DiskcacheAdapter(directory=directory) as cache:
            assert await CacheFavoritesStore(cache).is_favorited("hnzy", "7")

    async def test_closed_cache_reports_nothing(self, tmp_path: Path) -> None:
        adapter = DiskcacheAdapter(directory=tmp_path / "closed")
        store = CacheFavoritesStore(adapter)

        assert await store.is_favorited("bfzy", "1") is False
        with pytest.raises(RuntimeError):
            await store.toggle(make_enriched("bfzy"))
