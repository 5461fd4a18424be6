"""Provider backend client: async httpx implementation of ProviderClientPort."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Any, TypeVar

import httpx
import structlog

from sourcerr.domain.entities.sources import ProviderInfo, RawResult
from sourcerr.domain.exceptions import (
    ProviderPayloadError,
    ProviderRequestError,
    SearchCancelledError,
)

log = structlog.get_logger(__name__)

T = TypeVar("T")

_AGGREGATE = "*"


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _optional_text(value: Any) -> str | None:
    text = _text(value)
    return text or None


def _to_raw_result(item: Any, *, fallback_provider: str) -> RawResult:
    """Map one backend search item onto a RawResult.

    Backend shape: ``{id, title, poster, episodes[], source, source_name,
    year, desc}``. Blank episode URLs are dropped.
    """
    if not isinstance(item, dict):
        raise TypeError(f"search item must be an object, got {type(item).__name__}")
    episodes = item.get("episodes") or []
    if not isinstance(episodes, list):
        raise TypeError("episodes must be a list")

    provider_id = _text(item.get("source")) or fallback_provider
    return RawResult(
        provider_id=provider_id,
        provider_display_name=_text(item.get("source_name")) or provider_id,
        title=_text(item.get("title")),
        episodes=tuple(url for url in (_text(e) for e in episodes) if url),
        raw_id=_text(item.get("id")),
        year=_optional_text(item.get("year")),
        description=_optional_text(item.get("desc")),
        poster=_optional_text(item.get("poster")),
    )


class HttpProviderClient:
    """Async client for the aggregator backend using httpx.

    Implements ``ProviderClientPort`` from domain.ports.provider.

    Endpoints:
      - ``GET /api/search/resources``: provider catalogue
      - ``GET /api/search/one?q=&resourceId=``: one provider
      - ``GET /api/search?q=``: every provider at once
    """

    def __init__(self, *, base_url: str, http_client: httpx.AsyncClient) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_client

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _cancellable(
        self,
        awaitable: Awaitable[T],
        signal: asyncio.Event | None,
        provider_id: str,
    ) -> T:
        """Await *awaitable* unless *signal* fires first.

        The request never outlives this call, also when the caller itself
        is cancelled.
        """
        if signal is None:
            return await awaitable

        request = asyncio.ensure_future(awaitable)
        signal_wait = asyncio.create_task(signal.wait())
        try:
            await asyncio.wait(
                {request, signal_wait}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            signal_wait.cancel()
            abandoned = not request.done()
            if abandoned:
                request.cancel()

        if abandoned:
            raise SearchCancelledError(provider_id)
        return request.result()

    async def _get_json(
        self,
        path: str,
        *,
        provider_id: str,
        signal: asyncio.Event | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        """GET *path* and decode JSON; map failures onto ProviderError types."""
        url = f"{self._base_url}{path}"
        if signal is not None and signal.is_set():
            raise SearchCancelledError(provider_id)
        try:
            resp = await self._cancellable(
                self._http.get(url, params=params), signal, provider_id
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ProviderRequestError(
                provider_id,
                f"{path} returned HTTP {exc.response.status_code}",
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderRequestError(
                provider_id, f"{path} failed: {type(exc).__name__}"
            ) from exc

        if signal is not None and signal.is_set():
            raise SearchCancelledError(provider_id)

        try:
            return resp.json()
        except ValueError as exc:
            raise ProviderPayloadError(
                provider_id, f"{path} returned invalid JSON"
            ) from exc

    def _parse_results(self, payload: Any, provider_id: str) -> list[RawResult]:
        if not isinstance(payload, dict) or not isinstance(
            payload.get("results", []), list
        ):
            raise ProviderPayloadError(provider_id, "expected {'results': [...]}")
        try:
            return [
                _to_raw_result(item, fallback_provider=provider_id)
                for item in payload.get("results", [])
            ]
        except TypeError as exc:
            raise ProviderPayloadError(provider_id, str(exc)) from exc

    # ------------------------------------------------------------------
    # Public API (ProviderClientPort)
    # ------------------------------------------------------------------

    async def list_providers(self) -> list[ProviderInfo]:
        payload = await self._get_json("/api/search/resources", provider_id=_AGGREGATE)
        if not isinstance(payload, list):
            raise ProviderPayloadError(_AGGREGATE, "expected a provider list")

        providers: list[ProviderInfo] = []
        for site in payload:
            if not isinstance(site, dict) or not _text(site.get("key")):
                log.debug("provider_catalogue_entry_skipped", entry=site)
                continue
            key = _text(site["key"])
            providers.append(
                ProviderInfo(
                    key=key,
                    name=_text(site.get("name")) or key,
                    api=_text(site.get("api")),
                )
            )
        log.debug("provider_catalogue_loaded", count=len(providers))
        return providers

    async def search(
        self,
        provider_id: str,
        query: str,
        signal: asyncio.Event | None = None,
    ) -> list[RawResult]:
        """Query one provider; keeps only items whose title equals *query*."""
        payload = await self._get_json(
            "/api/search/one",
            provider_id=provider_id,
            signal=signal,
            params={"q": query, "resourceId": provider_id},
        )
        results = self._parse_results(payload, provider_id)
        matching = [r for r in results if r.title == query]
        log.debug(
            "provider_search_response",
            provider=provider_id,
            total=len(results),
            matching=len(matching),
        )
        return matching

    async def search_all(
        self,
        query: str,
        signal: asyncio.Event | None = None,
    ) -> list[RawResult]:
        payload = await self._get_json(
            "/api/search",
            provider_id=_AGGREGATE,
            signal=signal,
            params={"q": query},
        )
        results = self._parse_results(payload, _AGGREGATE)
        log.debug("aggregate_search_response", total=len(results))
        return results
