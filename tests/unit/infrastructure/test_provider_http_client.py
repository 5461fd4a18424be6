"""Tests for HttpProviderClient (aggregator backend adapter)."""

from __future__ import annotations

import asyncio

import httpx
import pytest
import respx

from sourcerr.domain.exceptions import (
    ProviderPayloadError,
    ProviderRequestError,
    SearchCancelledError,
)
from sourcerr.infrastructure.providers.http_client import HttpProviderClient

_BASE = "http://backend.test"


@pytest.fixture()
def http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient()


@pytest.fixture()
def client(http_client: httpx.AsyncClient) -> HttpProviderClient:
    return HttpProviderClient(base_url=f"{_BASE}/", http_client=http_client)


def _item(**overrides: object) -> dict:
    item = {
        "id": "42",
        "title": "X",
        "poster": "https://img.test/x.jpg",
        "episodes": ["https://cdn.test/1.m3u8", "", "https://cdn.test/2.m3u8"],
        "source": "bfzy",
        "source_name": "暴风资源",
        "year": 2019,
        "desc": "  a show  ",
    }
    item.update(overrides)
    return item


class TestListProviders:
    @respx.mock
    async def test_parses_catalogue(self, client: HttpProviderClient) -> None:
        respx.get(f"{_BASE}/api/search/resources").respond(
            200,
            json=[
                {"key": "bfzy", "name": "暴风资源", "api": "https://a.test"},
                {"key": "hnzy"},
                {"name": "no key"},
                "garbage",
            ],
        )

        providers = await client.list_providers()

        assert [p.key for p in providers] == ["bfzy", "hnzy"]
        assert providers[0].name == "暴风资源"
        assert providers[0].api == "https://a.test"
        assert providers[1].name == "hnzy"

    @respx.mock
    async def test_non_list_payload(self, client: HttpProviderClient) -> None:
        respx.get(f"{_BASE}/api/search/resources").respond(200, json={"oops": 1})

        with pytest.raises(ProviderPayloadError):
            await client.list_providers()


class TestSearch:
    @respx.mock
    async def test_maps_items_and_filters_title(
        self, client: HttpProviderClient
    ) -> None:
        route = respx.get(f"{_BASE}/api/search/one").respond(
            200,
            json={"results": [_item(), _item(id="43", title="X 2")]},
        )

        results = await client.search("bfzy", "X")

        assert route.called
        request = route.calls.last.request
        assert request.url.params["q"] == "X"
        assert request.url.params["resourceId"] == "bfzy"

        (only,) = results
        assert only.provider_id == "bfzy"
        assert only.provider_display_name == "暴风资源"
        assert only.raw_id == "42"
        assert only.episodes == ("https://cdn.test/1.m3u8", "https://cdn.test/2.m3u8")
        assert only.year == "2019"
        assert only.description == "a show"

    @respx.mock
    async def test_missing_source_falls_back_to_requested_provider(
        self, client: HttpProviderClient
    ) -> None:
        respx.get(f"{_BASE}/api/search/one").respond(
            200, json={"results": [_item(source=None, source_name="")]}
        )

        (only,) = await client.search("hnzy", "X")

        assert only.provider_id == "hnzy"
        assert only.provider_display_name == "hnzy"

    @respx.mock
    async def test_http_error_status(self, client: HttpProviderClient) -> None:
        respx.get(f"{_BASE}/api/search/one").respond(502)

        with pytest.raises(ProviderRequestError) as exc_info:
            await client.search("bfzy", "X")
        assert exc_info.value.provider_id == "bfzy"
        assert "502" in str(exc_info.value)

    @respx.mock
    async def test_transport_error(self, client: HttpProviderClient) -> None:
        respx.get(f"{_BASE}/api/search/one").mock(
            side_effect=httpx.ConnectError("refused")
        )

        with pytest.raises(ProviderRequestError):
            await client.search("bfzy", "X")

    @respx.mock
    async def test_invalid_json(self, client: HttpProviderClient) -> None:
        respx.get(f"{_BASE}/api/search/one").respond(200, text="<html>")

        with pytest.raises(ProviderPayloadError):
            await client.search("bfzy", "X")

    @respx.mock
    async def test_bad_episode_shape(self, client: HttpProviderClient) -> None:
        respx.get(f"{_BASE}/api/search/one").respond(
            200, json={"results": [_item(episodes="not-a-list")]}
        )

        with pytest.raises(ProviderPayloadError):
            await client.search("bfzy", "X")

    @respx.mock
    async def test_cancelled_before_request(self, client: HttpProviderClient) -> None:
        route = respx.get(f"{_BASE}/api/search/one").respond(
            200, json={"results": [_item()]}
        )
        signal = asyncio.Event()
        signal.set()

        with pytest.raises(SearchCancelledError):
            await client.search("bfzy", "X", signal)
        assert not route.called

    @respx.mock
    async def test_cancelled_while_in_flight(self, client: HttpProviderClient) -> None:
        signal = asyncio.Event()

        def _respond(request: httpx.Request) -> httpx.Response:
            signal.set()
            return httpx.Response(200, json={"results": [_item()]})

        respx.get(f"{_BASE}/api/search/one").mock(side_effect=_respond)

        with pytest.raises(SearchCancelledError):
            await client.search("bfzy", "X", signal)

    @respx.mock
    async def test_caller_cancellation_cancels_request(
        self, client: HttpProviderClient
    ) -> None:
        started = asyncio.Event()
        completed: list[bool] = []

        async def _slow(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(0.2)
            completed.append(True)
            return httpx.Response(200, json={"results": []})

        respx.get(f"{_BASE}/api/search/one").mock(side_effect=_slow)

        task = asyncio.create_task(client.search("bfzy", "X", asyncio.Event()))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await asyncio.sleep(0.3)
        assert completed == []


class TestSearchAll:
    @respx.mock
    async def test_returns_every_provider(self, client: HttpProviderClient) -> None:
        route = respx.get(f"{_BASE}/api/search").respond(
            200,
            json={
                "results": [
                    _item(source="bfzy"),
                    _item(source="hnzy", title="X (2019)"),
                ]
            },
        )

        results = await client.search_all("X")

        assert route.calls.last.request.url.params["q"] == "X"
        assert [r.provider_id for r in results] == ["bfzy", "hnzy"]

    @respx.mock
    async def test_payload_without_results_list(
        self, client: HttpProviderClient
    ) -> None:
        respx.get(f"{_BASE}/api/search").respond(200, json={"results": "nope"})

        with pytest.raises(ProviderPayloadError) as exc_info:
            await client.search_all("X")
        assert exc_info.value.provider_id == "*"
