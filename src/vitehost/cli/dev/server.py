"""FastAPI proxy application that fronts the supervised vite dev server.

Architecture:
- The supervisor brings vite up first, on the same event loop that later runs
  uvicorn, so the output drains keep running while the proxy serves.
- Traffic is handed off to `ProxyManager`, which forwards every HTTP path and
  WebSocket to the dev server.
- On shutdown the proxy is closed and the output drains are stopped. The dev
  server process is not signalled, but its stdout and stderr pipes close with
  this process, so a vite started here usually exits on its next write.
  Reuse on the next start applies to dev servers started outside vitehost
  (for example `npm run dev` in another terminal).
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import Response

from vitehost.cli.dev.logging import DevLogComponent, get_logger
from vitehost.cli.dev.proxy import ProxyManager
from vitehost.cli.dev.supervisor import DevServerSupervisor
from vitehost.models import ServerConfig

logger = get_logger(DevLogComponent.SUPERVISOR)


def create_app(proxy: ProxyManager) -> FastAPI:
    """Create the proxy application forwarding everything through proxy."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        try:
            yield
        finally:
            await proxy.shutdown()

    app = FastAPI(lifespan=lifespan, openapi_url=None, docs_url=None, redoc_url=None)

    @app.websocket("/{path:path}")
    async def websocket_proxy(websocket: WebSocket, path: str) -> None:
        await proxy.proxy_websocket(websocket)

    @app.api_route(
        "/{path:path}",
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"],
    )
    async def http_proxy(request: Request, path: str) -> Response:
        return await proxy.proxy_http(request)

    return app


async def serve(config: ServerConfig, host: str, port: int) -> None:
    """Supervise the dev server, then serve the proxy until interrupted.

    Raises:
        DevServerStartupError: If the dev server cannot be brought up; the
            proxy is not started in that case.
    """
    proxy = ProxyManager()
    supervisor = DevServerSupervisor(config, handoff=proxy.set_target)
    await supervisor.start()

    server = uvicorn.Server(
        uvicorn.Config(
            create_app(proxy),
            host=host,
            port=port,
            log_config=None,
            access_log=False,
        )
    )
    logger.info(f"Proxy listening on http://{host}:{port}")
    try:
        await server.serve()
    finally:
        # Stopping the drains leaves the dev server writing into closed pipes.
        for task in list(supervisor.drain_tasks):
            task.cancel()
        await asyncio.gather(*supervisor.drain_tasks, return_exceptions=True)


def run_dev_server(config: ServerConfig, host: str, port: int) -> None:
    """Blocking entry point for `vitehost dev serve`."""
    asyncio.run(serve(config, host, port))
