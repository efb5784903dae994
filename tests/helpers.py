from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from pathlib import Path
from unittest.mock import Mock

from typing_extensions import override

from vitehost.cli.dev.process_control import ManagedProcess


class RecordingHandler(logging.Handler):
    """Collects (level, message) pairs in emission order."""

    def __init__(self) -> None:
        super().__init__()
        self.entries: list[tuple[str, str]] = []

    @override
    def emit(self, record: logging.LogRecord) -> None:
        self.entries.append((record.levelname, record.getMessage()))

    def messages(self, level: str | None = None) -> list[str]:
        return [msg for lvl, msg in self.entries if level is None or lvl == level]


def make_stream(lines: Iterable[str] = (), *, eof: bool = False) -> asyncio.StreamReader:
    """A StreamReader pre-fed with lines; left open unless eof is set."""
    stream = asyncio.StreamReader()
    for line in lines:
        stream.feed_data(f"{line}\n".encode())
    if eof:
        stream.feed_eof()
    return stream


def make_managed_process(
    stdout: asyncio.StreamReader, stderr: asyncio.StreamReader, cwd: Path
) -> ManagedProcess:
    process = Mock(spec=asyncio.subprocess.Process)
    process.pid = 4242
    process.returncode = None
    process.stdout = stdout
    process.stderr = stderr
    return ManagedProcess(process, command=["npm", "run", "dev"], cwd=cwd)
