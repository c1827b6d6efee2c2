from __future__ import annotations

import httpx
import pytest

from dexmirror.core.errors import UpstreamPayloadError, UpstreamUnavailable
from dexmirror.data_pipeline.fetcher import PokeApiClient
from dexmirror.metrics import metrics_snapshot

BASE = "https://pokeapi.test/api/v2"


def _client(handler) -> PokeApiClient:
    transport = httpx.MockTransport(handler)
    return PokeApiClient(base_url=BASE, client=httpx.AsyncClient(transport=transport))


@pytest.mark.asyncio
async def test_fetch_pokemon_returns_decoded_payload():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"id": 25, "name": "pikachu"})

    client = _client(handler)
    data = await client.fetch_pokemon(25)
    await client.close()

    assert data == {"id": 25, "name": "pikachu"}
    assert seen == [f"{BASE}/pokemon/25"]


@pytest.mark.asyncio
async def test_not_found_raises_with_status():
    client = _client(lambda request: httpx.Response(404, text="Not Found"))

    with pytest.raises(UpstreamUnavailable) as exc:
        await client.fetch_pokemon(99999)

    assert exc.value.status_code == 404
    assert exc.value.not_found is True
    assert metrics_snapshot()["upstream_errors_last_hour"] == 1


@pytest.mark.asyncio
async def test_transport_error_raises_upstream_unavailable():
    def handler(request):
        raise httpx.ConnectError("boom", request=request)

    client = _client(handler)
    with pytest.raises(UpstreamUnavailable) as exc:
        await client.fetch_pokemon(1)

    assert exc.value.status_code is None
    assert exc.value.url == f"{BASE}/pokemon/1"


@pytest.mark.asyncio
async def test_non_json_body_is_a_payload_error():
    client = _client(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(UpstreamPayloadError):
        await client.fetch_pokemon(1)


@pytest.mark.asyncio
async def test_resource_index_returns_results_list():
    def handler(request):
        assert request.url.params["limit"] == "1000"
        return httpx.Response(200, json={"count": 1, "results": [{"name": "normal", "url": f"{BASE}/type/1/"}]})

    client = _client(handler)
    results = await client.fetch_resource_index("type")
    assert results == [{"name": "normal", "url": f"{BASE}/type/1/"}]


@pytest.mark.asyncio
async def test_resource_index_without_results_is_a_payload_error():
    client = _client(lambda request: httpx.Response(200, json={"count": 0}))
    with pytest.raises(UpstreamPayloadError):
        await client.fetch_resource_index("stat")


@pytest.mark.asyncio
async def test_ping_reports_reachability():
    ok = _client(lambda request: httpx.Response(200, json={"results": []}))
    down = _client(lambda request: httpx.Response(503))
    assert await ok.ping() is True
    assert await down.ping() is False
