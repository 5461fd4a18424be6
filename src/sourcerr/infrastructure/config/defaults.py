"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "sourcerr",
    "environment": "dev",
    "http": {
        "timeout_seconds": 15.0,
        "user_agent": "Sourcerr/0.1.0",
        "max_retries": 3,
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
    "cache": {
        "dir": "./.cache/sourcerr",
        "max_concurrent": 10,
    },
    "providers": {
        "api_base_url": "http://localhost:3000",
        "enabled_all": True,
        "enabled": [],
    },
    "aggregation": {
        "max_play_sources": 8,
        "max_concurrent_source_requests": 3,
        "detail_cache_max_entries": 8,
        "probe_timeout_seconds": 5.0,
    },
}
