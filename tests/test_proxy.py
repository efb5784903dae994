"""Tests for the proxy module."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest
from starlette.requests import Request
from starlette.websockets import WebSocket

from vitehost.cli.dev.proxy import ProxyManager
from vitehost.constants import VITEHOST_PROXY_HEADER


@pytest.fixture
def proxy() -> ProxyManager:
    return ProxyManager(target_url="https://localhost:3000/")


@pytest.fixture
def mock_request() -> Mock:
    req = Mock(spec=Request)
    req.url.path = "/"
    req.url.query = ""
    req.url.scheme = "http"
    req.method = "GET"
    req.headers = {"user-agent": "test"}
    req.client.host = "127.0.0.1"
    req.body = AsyncMock(return_value=b"")
    return req


@pytest.fixture
def mock_response() -> Mock:
    resp = Mock()
    resp.content = b"ok"
    resp.status_code = 200
    resp.headers = httpx.Headers({"content-type": "text/plain"})
    resp.headers.multi_items = lambda: [("content-type", "text/plain")]
    return resp


class TestProxyManager:
    """Tests for ProxyManager initialization, handoff, and HTTP client."""

    def test_init_strips_trailing_slash(self, proxy: ProxyManager) -> None:
        assert proxy.target_url == "https://localhost:3000"
        assert ProxyManager().target_url is None

    def test_set_target(self) -> None:
        proxy = ProxyManager()
        proxy.set_target("https://localhost:3000/")
        assert proxy.target_url == "https://localhost:3000"

    @pytest.mark.asyncio
    async def test_http_client_lifecycle(self, proxy: ProxyManager) -> None:
        client1 = await proxy._get_http_client()
        assert client1 is await proxy._get_http_client()
        await client1.aclose()
        assert client1 is not await proxy._get_http_client()
        await proxy.shutdown()


class TestProxyHttp:
    """Tests for HTTP proxying."""

    @pytest.mark.asyncio
    async def test_not_ready_before_handoff(self, mock_request: Mock) -> None:
        proxy = ProxyManager()
        with patch.object(proxy, "_get_http_client") as m:
            resp = await proxy.proxy_http(mock_request)
        assert resp.status_code == 503
        assert resp.body == b"Dev server is not ready"
        m.assert_not_called()

    @pytest.mark.asyncio
    async def test_forwards_to_target(
        self, proxy: ProxyManager, mock_request: Mock, mock_response: Mock
    ) -> None:
        mock_request.headers = {"connection": "keep-alive", "x-custom": "val"}
        with patch.object(proxy, "_get_http_client") as m:
            m.return_value = AsyncMock(request=AsyncMock(return_value=mock_response))
            resp = await proxy.proxy_http(mock_request)
            assert resp.status_code == 200
            assert resp.body == b"ok"
            headers = m.return_value.request.call_args.kwargs["headers"]
            assert "connection" not in headers
            assert headers["x-custom"] == "val"
            assert headers[VITEHOST_PROXY_HEADER] == "true"

    @pytest.mark.asyncio
    async def test_path_and_query(
        self, proxy: ProxyManager, mock_request: Mock, mock_response: Mock
    ) -> None:
        mock_request.url.path = "/src/main.ts"
        mock_request.url.query = "t=1"
        with patch.object(proxy, "_get_http_client") as m:
            m.return_value = AsyncMock(request=AsyncMock(return_value=mock_response))
            await proxy.proxy_http(mock_request)
            url = m.return_value.request.call_args.kwargs["url"]
            assert url == "https://localhost:3000/src/main.ts?t=1"

    @pytest.mark.asyncio
    async def test_error_handling(
        self, proxy: ProxyManager, mock_request: Mock
    ) -> None:
        for error, code in [
            (httpx.ConnectError(""), 502),
            (httpx.TimeoutException(""), 504),
            (httpx.RemoteProtocolError(""), 500),
        ]:
            with patch.object(proxy, "_get_http_client") as m:
                m.return_value = AsyncMock(request=AsyncMock(side_effect=error))
                assert (await proxy.proxy_http(mock_request)).status_code == code

    @pytest.mark.asyncio
    async def test_shutdown_and_no_client(
        self, proxy: ProxyManager, mock_request: Mock, mock_response: Mock
    ) -> None:
        proxy.accepting_connections = False
        assert (await proxy.proxy_http(mock_request)).status_code == 503
        proxy.accepting_connections = True
        mock_request.client = None
        with patch.object(proxy, "_get_http_client") as m:
            m.return_value = AsyncMock(request=AsyncMock(return_value=mock_response))
            await proxy.proxy_http(mock_request)
            assert (
                m.return_value.request.call_args.kwargs["headers"]["x-forwarded-for"]
                == "unknown"
            )


class TestProxyWebSocket:
    """Tests for WebSocket proxying."""

    @pytest.mark.asyncio
    async def test_rejects_before_handoff(self) -> None:
        proxy = ProxyManager()
        mock_ws = AsyncMock(spec=WebSocket)
        await proxy.proxy_websocket(mock_ws)
        mock_ws.close.assert_called_with(code=1001, reason="Dev server is not available")
        mock_ws.accept.assert_not_called()

    @pytest.mark.asyncio
    async def test_connect_failure(self, proxy: ProxyManager) -> None:
        mock_ws = AsyncMock(spec=WebSocket)
        mock_ws.url.path = "/"
        mock_ws.url.query = "token=abc"
        mock_ws.scope = {"subprotocols": ["vite-hmr"]}
        with patch(
            "vitehost.cli.dev.proxy.ws_connect",
            AsyncMock(side_effect=OSError("refused")),
        ) as connect:
            await proxy.proxy_websocket(mock_ws)
        assert connect.call_args.args[0] == "wss://localhost:3000/?token=abc"
        assert connect.call_args.kwargs["subprotocols"] == ["vite-hmr"]
        mock_ws.accept.assert_not_called()
        mock_ws.close.assert_called_with(
            code=1011, reason="Failed to connect to dev server"
        )


class TestProxyShutdown:
    """Tests for graceful shutdown."""

    @pytest.mark.asyncio
    async def test_shutdown(self, proxy: ProxyManager) -> None:
        await proxy._get_http_client()
        task = asyncio.create_task(asyncio.sleep(10))
        proxy._active_websockets.add(task)
        await proxy.shutdown(timeout=1.0)
        assert proxy.accepting_connections is False
        assert proxy._http_client is None
        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_websocket_count(self, proxy: ProxyManager) -> None:
        assert proxy.active_websocket_count == 0
        task = asyncio.create_task(asyncio.sleep(0.1))
        proxy._active_websockets.add(task)
        assert proxy.active_websocket_count == 1
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
