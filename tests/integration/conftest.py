"""Shared fixtures for integration tests.

These tests use real infrastructure components (DiskcacheAdapter,
HttpProviderClient, M3U8ResolutionProbe, the composition root) with
mocked HTTP via respx.
"""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest
import respx

from sourcerr.infrastructure.cache.diskcache_adapter import DiskcacheAdapter
from sourcerr.infrastructure.config.schema import AppConfig


@pytest.fixture()
def http_client() -> httpx.AsyncClient:
    """Real httpx.AsyncClient for use with respx mocking."""
    return httpx.AsyncClient()


@pytest.fixture()
async def diskcache(tmp_path: Path) -> DiskcacheAdapter:
    """Real DiskcacheAdapter backed by tmp_path (auto-cleaned)."""
    adapter = DiskcacheAdapter(
        directory=tmp_path / "cache",
        max_concurrent=5,
    )
    async with adapter:
        yield adapter


@pytest.fixture()
def respx_mock() -> respx.MockRouter:
    """Explicit respx mock router for request interception."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture()
def app_config(tmp_path: Path) -> AppConfig:
    """AppConfig pointing at a mocked backend and a throwaway cache dir."""
    return AppConfig.model_validate(
        {
            "http": {"max_retries": 0},
            "cache": {"dir": str(tmp_path / "cache")},
            "providers": {"api_base_url": "http://backend.test"},
            "aggregation": {"probe_timeout_seconds": 2.0},
        }
    )
