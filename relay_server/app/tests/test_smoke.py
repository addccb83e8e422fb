"""
Smoke Client Tests
"""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from relay_server import smoke


@pytest.mark.asyncio
async def test_send_sample_order_posts_through_proxy():
    """Test that the sample order is posted with the backend's headers"""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"code": 0, "data": {"orderId": "12345"}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await smoke.send_sample_order("http://relay.test/proxy", "key-1", client=client)

    assert result["status"] == 200
    assert result["body"] == {"code": 0, "data": {"orderId": "12345"}}
    assert isinstance(result["elapsed_ms"], int)

    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/proxy"
    assert request.headers["x-api-key"] == "key-1"
    assert request.headers["x-request-id"].startswith("req-")
    assert json.loads(request.content)["data"]["currency"] == "IDR"


def test_main_returns_zero_on_success():
    result = {"status": 200, "elapsed_ms": 5, "body": {"code": 0}}

    with patch.object(smoke, "send_sample_order", AsyncMock(return_value=result)):
        assert smoke.main(["--url", "http://relay.test/proxy"]) == 0


def test_main_returns_one_on_error_status():
    result = {"status": 503, "elapsed_ms": 5, "body": {"code": -9999}}

    with patch.object(smoke, "send_sample_order", AsyncMock(return_value=result)):
        assert smoke.main([]) == 1


def test_main_returns_one_when_unreachable():
    failure = httpx.ConnectError("Connection refused")

    with patch.object(smoke, "send_sample_order", AsyncMock(side_effect=failure)):
        assert smoke.main([]) == 1
