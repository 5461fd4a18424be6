"""Provider Port - how the engine reaches third-party play source providers."""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from sourcerr.domain.entities.sources import ProviderInfo, RawResult


@runtime_checkable
class ProviderClientPort(Protocol):
    """Async interface to the provider backend.

    Implementations must:
      - raise ``SearchCancelledError`` once *signal* is set
      - raise a ``ProviderError`` subclass on failure, distinguishable
        from an empty result list
    """

    async def list_providers(self) -> list[ProviderInfo]:
        """Return the catalogue of providers the backend exposes."""
        ...

    async def search(
        self,
        provider_id: str,
        query: str,
        signal: asyncio.Event | None = None,
    ) -> list[RawResult]:
        """Query a single provider."""
        ...

    async def search_all(
        self,
        query: str,
        signal: asyncio.Event | None = None,
    ) -> list[RawResult]:
        """Query every provider at once through the aggregated endpoint."""
        ...
