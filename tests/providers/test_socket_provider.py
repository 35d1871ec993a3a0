"""
Tests for the Socket API client against a mocked transport.
"""

import httpx
import pytest

from routerunner.providers.socket import SocketApiError, SocketProvider


def make_provider(handler, base_url="https://api.socket.tech") -> SocketProvider:
    return SocketProvider(
        api_key="test-key",
        base_url=base_url,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_build_next_tx_unwraps_result():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True, "result": {"userTxIndex": 1}})

    result = await make_provider(handler).build_next_tx(77)

    assert result == {"userTxIndex": 1}
    request = seen[0]
    assert request.url.path == "/v2/route/build-next-tx"
    assert request.url.params["activeRouteId"] == "77"
    assert request.headers["API-KEY"] == "test-key"


@pytest.mark.asyncio
async def test_submit_tx_hash_sends_route_params():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True, "result": True})

    await make_provider(handler).submit_tx_hash(77, 0, "0xabc")

    params = seen[0].url.params
    assert seen[0].url.path == "/v2/route/prepare"
    assert params["activeRouteId"] == "77"
    assert params["userTxIndex"] == "0"
    assert params["txHash"] == "0xabc"


@pytest.mark.asyncio
async def test_status_is_uppercased():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "result": "completed"})

    assert await make_provider(handler).get_tx_status(77, 0, "0xabc") == "COMPLETED"


@pytest.mark.asyncio
async def test_unsuccessful_envelope_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "message": "Route not found"})

    with pytest.raises(SocketApiError) as exc_info:
        await make_provider(handler).build_next_tx(77)

    assert "Route not found" in str(exc_info.value)
    assert exc_info.value.payload["success"] is False


@pytest.mark.asyncio
async def test_server_error_raises_status_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, json={"success": False})

    with pytest.raises(httpx.HTTPStatusError):
        await make_provider(handler).get_supported_chains()


@pytest.mark.asyncio
async def test_falls_back_to_next_host_on_missing_route():
    hosts = []

    def handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        if request.url.host == "old.example":
            return httpx.Response(404)
        return httpx.Response(200, json={"success": True, "result": [{"chainId": 1}]})

    provider = make_provider(handler, base_url="https://old.example,https://new.example")

    chains = await provider.get_supported_chains()

    assert chains == [{"chainId": 1}]
    assert hosts == ["old.example", "new.example"]
