"""Persistence adapters (session cache, favorites)."""

from .aggregate_cache import InMemoryAggregateCache
from .favorites_store import CacheFavoritesStore

__all__ = ["CacheFavoritesStore", "InMemoryAggregateCache"]
