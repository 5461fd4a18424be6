from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import httpx
import structlog

from sourcerr.application.use_cases.request_coordinator import RequestCoordinator
from sourcerr.infrastructure.cache.diskcache_adapter import DiskcacheAdapter
from sourcerr.infrastructure.common.retry_transport import RetryTransport
from sourcerr.infrastructure.config.schema import AppConfig
from sourcerr.infrastructure.metrics import MetricsCollector
from sourcerr.infrastructure.persistence.aggregate_cache import InMemoryAggregateCache
from sourcerr.infrastructure.persistence.favorites_store import CacheFavoritesStore
from sourcerr.infrastructure.probe.m3u8_probe import M3U8ResolutionProbe
from sourcerr.infrastructure.providers.http_client import HttpProviderClient

log = structlog.get_logger(__name__)


@dataclass
class Services:
    """Wired application services, valid inside ``build_services``."""

    config: AppConfig
    http_client: httpx.AsyncClient
    cache: DiskcacheAdapter
    metrics: MetricsCollector
    coordinator: RequestCoordinator


@asynccontextmanager
async def build_services(config: AppConfig) -> AsyncIterator[Services]:
    """Composition root: initialize and clean up all resources.

    Order matters:
        1. Cache (favorites store depends on it)
        2. HTTP client (provider client + probe share it)
        3. Adapters
        4. Request coordinator
    """
    # ========== 1) Cache ==========
    cache = DiskcacheAdapter(
        directory=config.cache.directory,
        max_concurrent=config.cache.max_concurrent,
    )
    await cache.__aenter__()
    log.info("cache_initialized", directory=str(config.cache.directory))

    # ========== 2) HTTP Client (shared resource) ==========
    http_client = httpx.AsyncClient(
        transport=RetryTransport(
            httpx.AsyncHTTPTransport(),
            max_retries=config.http_max_retries,
        ),
        timeout=httpx.Timeout(config.http_timeout_seconds),
        headers={"User-Agent": config.http_user_agent},
        follow_redirects=True,
    )
    log.info("http_client_initialized")

    # ========== 3) Adapters ==========
    metrics = MetricsCollector()
    providers = HttpProviderClient(
        base_url=config.providers.api_base_url,
        http_client=http_client,
    )
    probe = M3U8ResolutionProbe(
        http_client, timeout=config.aggregation.probe_timeout_seconds
    )
    favorites = CacheFavoritesStore(cache)
    aggregate_cache = InMemoryAggregateCache(
        max_entries=config.aggregation.detail_cache_max_entries
    )

    # ========== 4) Coordinator ==========
    coordinator = RequestCoordinator(
        providers=providers,
        probe=probe,
        cache=aggregate_cache,
        config=config.aggregation,
        selection=config.providers,
        favorites=favorites,
        metrics=metrics,
    )
    log.info(
        "services_ready",
        api_base_url=config.providers.api_base_url,
        max_play_sources=config.aggregation.max_play_sources,
    )

    try:
        yield Services(
            config=config,
            http_client=http_client,
            cache=cache,
            metrics=metrics,
            coordinator=coordinator,
        )
    finally:
        # ========== Cleanup (reverse order) ==========
        await coordinator.aclose()

        await http_client.aclose()
        log.info("http_client_closed")

        await cache.aclose()
        log.info("cache_closed")
