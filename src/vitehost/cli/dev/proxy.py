"""HTTP and WebSocket reverse proxy in front of the vite dev server.

The proxy starts without a target and answers 503 until the supervisor hands
off the dev server endpoint via `set_target`. WebSocket connections are
forwarded too so that vite's HMR socket keeps working through the proxy.
"""

from __future__ import annotations

import asyncio
import ssl
from typing import TYPE_CHECKING

import httpx
import websockets
from starlette.requests import Request
from starlette.responses import Response
from starlette.websockets import WebSocket, WebSocketDisconnect
from websockets.asyncio.client import ClientConnection
from websockets.asyncio.client import connect as ws_connect

from vitehost.cli.dev.logging import DevLogComponent, get_logger
from vitehost.constants import VITEHOST_PROXY_HEADER

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = get_logger(DevLogComponent.PROXY)

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)


def _dev_ssl_context() -> ssl.SSLContext:
    # The dev server presents the local development certificate.
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class ProxyManager:
    """Forwards requests to the dev server once it has been handed off.

    Attributes:
        target_url: Base URL of the dev server (e.g., "https://localhost:3000"),
            None until handoff
        accepting_connections: Flag to control whether new connections are accepted
    """

    def __init__(self, target_url: str | None = None) -> None:
        self.target_url: str | None = target_url.rstrip("/") if target_url else None
        self.accepting_connections: bool = True

        # Track active WebSocket connections for graceful shutdown
        self._active_websockets: set[asyncio.Task[None]] = set()
        self._ws_lock: asyncio.Lock = asyncio.Lock()

        self._http_client: httpx.AsyncClient | None = None

    def set_target(self, endpoint: str) -> None:
        """Direct subsequent traffic to endpoint (the supervisor's handoff)."""
        self.target_url = endpoint.rstrip("/")
        logger.info(f"Proxying requests to {self.target_url}")

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(60.0, connect=10.0),
                follow_redirects=False,
                verify=False,
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
            )
        return self._http_client

    def _forward_headers(
        self, headers: Mapping[str, str], client_host: str, scheme: str
    ) -> dict[str, str]:
        forwarded = {
            k: v
            for k, v in headers.items()
            if k.lower() not in HOP_BY_HOP_HEADERS and k.lower() != "host"
        }
        forwarded["x-forwarded-for"] = client_host
        forwarded["x-forwarded-proto"] = scheme
        forwarded["x-forwarded-host"] = headers.get("host", "")
        forwarded[VITEHOST_PROXY_HEADER] = "true"
        return forwarded

    async def proxy_http(self, request: Request) -> Response:
        """Proxy an HTTP request to the dev server.

        Args:
            request: The incoming Starlette request

        Returns:
            Response from the dev server, or a plain-text error response
        """
        if not self.accepting_connections:
            return Response(
                content="Server is shutting down",
                status_code=503,
                media_type="text/plain",
            )
        if self.target_url is None:
            return Response(
                content="Dev server is not ready",
                status_code=503,
                media_type="text/plain",
            )

        target_url = f"{self.target_url}{request.url.path}"
        if request.url.query:
            target_url = f"{target_url}?{request.url.query}"

        client_host = request.client.host if request.client else "unknown"
        headers = self._forward_headers(request.headers, client_host, request.url.scheme)

        try:
            client = await self._get_http_client()
            body = await request.body()

            response = await client.request(
                method=request.method,
                url=target_url,
                headers=headers,
                content=body,
            )

            response_headers: dict[str, str] = {}
            for key, value in response.headers.multi_items():
                if key.lower() not in HOP_BY_HOP_HEADERS:
                    response_headers[key] = value

            return Response(
                content=response.content,
                status_code=response.status_code,
                headers=response_headers,
                media_type=response.headers.get("content-type"),
            )

        except httpx.ConnectError as e:
            logger.warning(f"Failed to connect to dev server: {e}")
            return Response(
                content="Failed to connect to dev server",
                status_code=502,
                media_type="text/plain",
            )
        except httpx.TimeoutException:
            return Response(
                content="Request timed out",
                status_code=504,
                media_type="text/plain",
            )
        except httpx.HTTPError as e:
            logger.error(f"Proxy error: {e}")
            return Response(
                content=f"Proxy error: {e}",
                status_code=500,
                media_type="text/plain",
            )

    async def proxy_websocket(self, websocket: WebSocket) -> None:
        """Proxy a WebSocket connection (vite HMR) to the dev server.

        Args:
            websocket: The incoming Starlette WebSocket connection
        """
        if not self.accepting_connections or self.target_url is None:
            await websocket.close(code=1001, reason="Dev server is not available")
            return

        ws_target = self.target_url.replace("http://", "ws://").replace(
            "https://", "wss://"
        )
        target_url = f"{ws_target}{websocket.url.path}"
        if websocket.url.query:
            target_url = f"{target_url}?{websocket.url.query}"

        subprotocols: list[str] = list(websocket.scope.get("subprotocols") or [])

        target_ws: ClientConnection | None = None
        try:
            target_ws = await ws_connect(
                target_url,
                subprotocols=subprotocols or None,  # pyright: ignore[reportArgumentType]
                ssl=_dev_ssl_context() if target_url.startswith("wss://") else None,
            )
        except (OSError, websockets.exceptions.WebSocketException) as e:
            logger.warning(f"WebSocket proxy error: {e}")
            await websocket.close(code=1011, reason="Failed to connect to dev server")
            return

        await websocket.accept(subprotocol=target_ws.subprotocol)
        active_target_ws = target_ws

        async def forward_to_target() -> None:
            """Forward messages from client to target."""
            try:
                while True:
                    data = await websocket.receive()
                    if data["type"] == "websocket.disconnect":
                        break
                    if data.get("text") is not None:
                        await active_target_ws.send(data["text"])
                    elif data.get("bytes") is not None:
                        await active_target_ws.send(data["bytes"])
            except (WebSocketDisconnect, websockets.exceptions.ConnectionClosed):
                pass

        async def forward_to_client() -> None:
            """Forward messages from target to client."""
            try:
                async for message in active_target_ws:
                    if isinstance(message, str):
                        await websocket.send_text(message)
                    else:
                        await websocket.send_bytes(message)
            except (WebSocketDisconnect, websockets.exceptions.ConnectionClosed):
                pass

        current_task = asyncio.current_task()
        if current_task:
            async with self._ws_lock:
                self._active_websockets.add(current_task)

        try:
            forward_task = asyncio.create_task(forward_to_target())
            backward_task = asyncio.create_task(forward_to_client())

            # Wait for either direction to complete
            _, pending = await asyncio.wait(
                [forward_task, backward_task],
                return_when=asyncio.FIRST_COMPLETED,
            )
            for task in pending:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        finally:
            if current_task:
                async with self._ws_lock:
                    self._active_websockets.discard(current_task)

            await target_ws.close()
            try:
                await websocket.close()
            except RuntimeError:
                # Already closed by the client.
                pass

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Stop accepting connections, close WebSockets and the HTTP client.

        The dev server itself is left running.

        Args:
            timeout: Maximum time to wait for connections to close
        """
        logger.info("Shutting down proxy...")
        self.accepting_connections = False

        async with self._ws_lock:
            tasks = list(self._active_websockets)

        if tasks:
            logger.info(f"Closing {len(tasks)} active WebSocket connection(s)...")
            for task in tasks:
                task.cancel()

            try:
                await asyncio.wait_for(
                    asyncio.gather(*tasks, return_exceptions=True),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("Timeout waiting for WebSocket connections to close")

        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

        logger.info("Proxy shutdown complete")

    @property
    def active_websocket_count(self) -> int:
        """Return the number of active WebSocket connections."""
        return len(self._active_websockets)
