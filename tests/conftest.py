"""Shared test fixtures for the sourcerr test suite."""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest
from fakes import FakeProbe, FakeProviderClient

from sourcerr.application.use_cases.request_coordinator import RequestCoordinator
from sourcerr.infrastructure.config.schema import AggregationConfig, ProvidersConfig
from sourcerr.infrastructure.metrics import MetricsCollector
from sourcerr.infrastructure.persistence.aggregate_cache import InMemoryAggregateCache

# ---------------------------------------------------------------------------
# Coordinator wiring
# ---------------------------------------------------------------------------


@pytest.fixture()
def aggregation_config() -> AggregationConfig:
    return AggregationConfig(probe_timeout_seconds=1.0)


@pytest.fixture()
def fake_probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture()
def mock_favorites() -> AsyncMock:
    """Mock FavoritesStorePort."""
    store = AsyncMock()
    store.is_favorited = AsyncMock(return_value=False)
    store.toggle = AsyncMock(return_value=True)
    return store


@pytest.fixture()
def make_coordinator(
    aggregation_config: AggregationConfig,
    fake_probe: FakeProbe,
    mock_favorites: AsyncMock,
) -> Callable[..., RequestCoordinator]:
    """Factory: RequestCoordinator over a FakeProviderClient."""

    def _make(
        providers: FakeProviderClient,
        *,
        selection: ProvidersConfig | None = None,
        cache: InMemoryAggregateCache | None = None,
        metrics: MetricsCollector | None = None,
        config: AggregationConfig | None = None,
    ) -> RequestCoordinator:
        return RequestCoordinator(
            providers=providers,
            probe=fake_probe,
            cache=cache if cache is not None else InMemoryAggregateCache(),
            config=config or aggregation_config,
            selection=selection or ProvidersConfig(),
            favorites=mock_favorites,
            metrics=metrics,
        )

    return _make


# ---------------------------------------------------------------------------
# Mock port fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_cache() -> AsyncMock:
    """Mock CachePort."""
    cache = AsyncMock()
    cache.get = AsyncMock(return_value=None)
    cache.set = AsyncMock()
    cache.delete = AsyncMock(return_value=True)
    cache.exists = AsyncMock(return_value=False)
    cache.aclose = AsyncMock()
    return cache
