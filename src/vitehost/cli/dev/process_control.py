"""Port probing, process launching and process tracking for vitehost dev.

Design goals:
- Probing a port never raises; an unreadable listener table means "not running".
- Launched dev servers get their own session/process group so they outlive the
  supervising call.
- Output streams are handed back unread; draining is the caller's job.
"""

from __future__ import annotations

import asyncio
import os
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import ClassVar

import psutil
from pydantic import BaseModel, ConfigDict

from vitehost.cli.dev.logging import DevLogComponent, get_logger
from vitehost.constants import STREAM_READ_LIMIT
from vitehost.errors import LaunchError


logger = get_logger(DevLogComponent.PROCESS_CONTROL)


class TrackedProcess(BaseModel):
    """A process we started.

    create_time protects against PID reuse. pgid identifies the process group
    on POSIX (npm -> node handoff keeps the group).
    """

    pid: int | None = None
    create_time: float | None = None
    pgid: int | None = None

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)


def _get_pgid_safe(pid: int) -> int | None:
    # Windows doesn't have pgid.
    if os.name == "nt":
        return None
    try:
        return os.getpgid(pid)
    except OSError:
        return None


def track_process(pid: int) -> TrackedProcess | None:
    """Create a TrackedProcess for a running PID, recording create_time and pgid."""
    try:
        proc = psutil.Process(pid)
        return TrackedProcess(
            pid=pid,
            create_time=float(proc.create_time()),
            pgid=_get_pgid_safe(pid),
        )
    except (psutil.Error, OSError):
        return None


# === Port Probe ===


def _is_listener(conn: object, port: int) -> bool:
    laddr = getattr(conn, "laddr", None)
    if not laddr:
        return False
    if getattr(laddr, "port", None) != port:
        return False
    return getattr(conn, "status", None) == psutil.CONN_LISTEN


def _scan_listeners(port: int) -> tuple[bool, set[int]]:
    """Return (found, pids) for LISTEN sockets bound to port.

    Tries the system-wide table first and falls back to per-process connections,
    which works for same-user processes where the system-wide call is denied
    (notably macOS).
    """
    found = False
    pids: set[int] = set()
    access_denied = False
    try:
        for conn in psutil.net_connections(kind="inet"):
            if not _is_listener(conn, port):
                continue
            found = True
            if conn.pid:
                pids.add(int(conn.pid))
    except (psutil.AccessDenied, PermissionError):
        access_denied = True
    except (psutil.Error, OSError) as e:
        logger.debug(f"Listing TCP listeners failed: {e}")
        access_denied = True

    if found or not access_denied:
        return found, pids

    try:
        processes = list(psutil.process_iter(["pid"]))
    except (psutil.Error, OSError) as e:
        logger.debug(f"Listing processes failed: {e}")
        return False, pids

    for proc in processes:
        try:
            conns = proc.net_connections(kind="inet")
        except (psutil.Error, OSError):
            continue
        if any(_is_listener(c, port) for c in conns):
            found = True
            pids.add(int(proc.pid))
    return found, pids


def is_port_active(port: int) -> bool:
    """Return True if a TCP listener on the local host is bound to port.

    Enumeration failures are treated as "not running"; if the port is really
    taken by an unrelated process the launch will fail on its own.
    """
    found, _ = _scan_listeners(port)
    return found


def find_listeners_for_port(port: int) -> list[int]:
    """Return PIDs that have a LISTEN socket bound to the port (best-effort)."""
    _, pids = _scan_listeners(port)
    return sorted(pids)


# === Process Launcher ===


class ManagedProcess:
    """A launched dev server with its two unread output streams.

    The supervisor owns this object for the dev session but does not own the
    process lifetime: nothing here stops the process.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        command: Sequence[str],
        cwd: Path,
        tracked: TrackedProcess | None = None,
    ) -> None:
        self.process: asyncio.subprocess.Process = process
        self.command: list[str] = list(command)
        self.cwd: Path = cwd
        self.tracked: TrackedProcess | None = tracked

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def stdout(self) -> asyncio.StreamReader:
        assert self.process.stdout is not None, "stdout must be piped"
        return self.process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader:
        assert self.process.stderr is not None, "stderr must be piped"
        return self.process.stderr

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""
        return await self.process.wait()

    def __repr__(self) -> str:
        return f"ManagedProcess(pid={self.pid}, command={self.command!r}, cwd={str(self.cwd)!r})"


async def launch_process(command: Sequence[str], cwd: Path) -> ManagedProcess:
    """Start command in cwd with stdin, stdout and stderr piped.

    Raises:
        LaunchError: If the command is empty, cwd is not a directory, or the
            executable cannot be started.
    """
    if not command:
        raise LaunchError("No dev server command configured")
    if not cwd.is_dir():
        raise LaunchError(f"Working directory does not exist: {cwd}")

    # Create process group/session so the dev server is detached from our own
    # signal handling and its whole tree can be found later.
    creationflags = 0
    start_new_session = False
    if os.name == "nt":
        creationflags = subprocess.CREATE_NEW_PROCESS_GROUP  # type: ignore[attr-defined]
    else:
        start_new_session = True

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=cwd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=STREAM_READ_LIMIT,
            start_new_session=start_new_session,
            creationflags=creationflags,
        )
    except FileNotFoundError as e:
        raise LaunchError(f"Executable not found: {command[0]}") from e
    except OSError as e:
        raise LaunchError(f"Failed to start {' '.join(command)}: {e}") from e

    logger.debug(f"Started {' '.join(command)} pid={process.pid} cwd={cwd}")
    return ManagedProcess(
        process,
        command=command,
        cwd=cwd,
        tracked=track_process(process.pid),
    )
