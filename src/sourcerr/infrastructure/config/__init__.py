from __future__ import annotations

from .load import load_config
from .schema import AggregationConfig, AppConfig, EnvOverrides, ProvidersConfig

__all__ = [
    "AggregationConfig",
    "AppConfig",
    "EnvOverrides",
    "ProvidersConfig",
    "load_config",
]
