"""Dev commands for the vitehost CLI."""

import logging
from pathlib import Path
from typing import Annotated

from dotenv import load_dotenv
from pydantic import ValidationError
from rich.markup import escape
from typer import Argument, Exit, Option, Typer

from vitehost.cli.dev.logging import configure_dev_logging
from vitehost.cli.dev.process_control import find_listeners_for_port, is_port_active
from vitehost.cli.dev.provision import ensure_artifacts
from vitehost.cli.dev.server import run_dev_server
from vitehost.constants import (
    DEFAULT_DEV_SERVER_PORT,
    DEFAULT_PROXY_HOST,
    DEFAULT_PROXY_PORT,
    DEFAULT_STARTUP_TIMEOUT,
)
from vitehost.errors import DevServerStartupError, ProvisioningError
from vitehost.models import ServerConfig
from vitehost.utils import console, progress_spinner


# Create the dev app (subcommand group)
dev_app = Typer(name="dev", help="Supervise the vite development server")


def _load_dotenv(source_dir: Path) -> None:
    dotenv_path = source_dir / ".env"
    if dotenv_path.exists():
        console.print(f"🔍 Loading .env file from {dotenv_path.resolve()}")
        load_dotenv(dotenv_path)


@dev_app.command(name="serve", help="Start the dev server (if needed) and proxy to it")
def dev_serve(
    source_dir: Annotated[
        Path | None,
        Argument(
            help="The frontend source directory. If not provided, current working directory will be used"
        ),
    ] = None,
    port: Annotated[
        int,
        Option(envvar="VITEHOST_PORT", help="Port the vite dev server listens on"),
    ] = DEFAULT_DEV_SERVER_PORT,
    timeout: Annotated[
        float,
        Option(
            "--timeout",
            envvar="VITEHOST_STARTUP_TIMEOUT",
            help="Seconds to wait for the dev server to report readiness",
        ),
    ] = DEFAULT_STARTUP_TIMEOUT,
    http: Annotated[
        bool,
        Option("--http", help="Talk plain HTTP to the dev server instead of HTTPS"),
    ] = False,
    proxy_host: Annotated[
        str,
        Option(envvar="VITEHOST_PROXY_HOST", help="Host the proxy binds to"),
    ] = DEFAULT_PROXY_HOST,
    proxy_port: Annotated[
        int,
        Option(envvar="VITEHOST_PROXY_PORT", help="Port the proxy listens on"),
    ] = DEFAULT_PROXY_PORT,
    verbose: Annotated[
        bool, Option("--verbose", "-v", help="Show debug logs")
    ] = False,
):
    """Start the dev server (if needed) and proxy to it."""
    if source_dir is None:
        source_dir = Path.cwd()
    _load_dotenv(source_dir)

    try:
        config = ServerConfig(
            source_directory=source_dir.resolve(),
            port=port,
            startup_timeout=timeout,
            scheme="http" if http else "https",
        )
    except ValidationError as e:
        console.print(f"[red]❌ Invalid configuration: {escape(str(e))}[/red]")
        raise Exit(code=1)

    configure_dev_logging(level=logging.DEBUG if verbose else logging.INFO)

    try:
        run_dev_server(config, host=proxy_host, port=proxy_port)
    except DevServerStartupError as e:
        console.print(f"[red]❌ {escape(str(e))}[/red]")
        raise Exit(code=1)
    except KeyboardInterrupt:
        console.print("[bold yellow]🛑 Proxy stopped[/bold yellow]")


@dev_app.command(name="provision", help="Create devcert.pfx and vite.config.js if missing")
def dev_provision(
    source_dir: Annotated[
        Path | None,
        Argument(
            help="The frontend source directory. If not provided, current working directory will be used"
        ),
    ] = None,
):
    """Create devcert.pfx and vite.config.js if missing."""
    if source_dir is None:
        source_dir = Path.cwd()

    try:
        with progress_spinner(
            "🔐 Provisioning dev certificate...", "✅ Dev certificate ready"
        ):
            artifacts = ensure_artifacts(source_dir.resolve())
    except ProvisioningError as e:
        console.print(f"[red]❌ {escape(str(e))}[/red]")
        raise Exit(code=1)

    if artifacts.created:
        console.print(f"[green]✓[/green] Created {artifacts.identity_file}")
        console.print(f"[green]✓[/green] Created {artifacts.config_file}")
    else:
        console.print("[dim]Dev certificate and config already present, nothing to do[/dim]")


@dev_app.command(name="status", help="Check whether the dev server port is listening")
def dev_status(
    port: Annotated[
        int,
        Option(envvar="VITEHOST_PORT", help="Port the vite dev server listens on"),
    ] = DEFAULT_DEV_SERVER_PORT,
):
    """Check whether the dev server port is listening."""
    if not is_port_active(port):
        console.print(f"[yellow]No dev server listening on port {port}[/yellow]")
        raise Exit(code=1)

    pids = find_listeners_for_port(port)
    if pids:
        console.print(
            f"[green]✓[/green] Dev server listening on port {port} "
            f"(pid {', '.join(str(pid) for pid in pids)})"
        )
    else:
        console.print(f"[green]✓[/green] Dev server listening on port {port}")
