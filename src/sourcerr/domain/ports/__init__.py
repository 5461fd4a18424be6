from .aggregate_cache import AggregateCachePort
from .cache import CachePort
from .favorites import FavoritesStorePort
from .provider import ProviderClientPort
from .resolution_probe import ResolutionProbePort

__all__ = [
    "AggregateCachePort",
    "CachePort",
    "FavoritesStorePort",
    "ProviderClientPort",
    "ResolutionProbePort",
]
