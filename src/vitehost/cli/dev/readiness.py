"""Readiness gate and output drains for the dev server process."""

from __future__ import annotations

import asyncio
import logging

from vitehost.constants import DEV_SERVER_READY_MESSAGE
from vitehost.errors import StreamFaultError
from vitehost.models import ReadinessOutcome


class ReadinessGate:
    """Single-assignment readiness signal shared by the drains and the supervisor.

    The first call to `resolve` wins; every later call is a no-op that returns
    False. Resolution has no await between the `done()` check and
    `set_result`, so it is atomic with respect to other tasks on the loop.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[ReadinessOutcome] = (
            asyncio.get_running_loop().create_future()
        )

    @property
    def is_resolved(self) -> bool:
        return self._future.done()

    @property
    def outcome(self) -> ReadinessOutcome | None:
        """The resolved outcome, or None while still pending."""
        if not self._future.done():
            return None
        return self._future.result()

    def resolve(self, outcome: ReadinessOutcome) -> bool:
        """Resolve the gate. Returns True only for the call that set it."""
        if self._future.done():
            return False
        self._future.set_result(outcome)
        return True

    def set_ready(self) -> bool:
        return self.resolve(ReadinessOutcome.ready())

    def set_failed(self, error: BaseException) -> bool:
        return self.resolve(ReadinessOutcome.failed(error))

    async def wait(self, timeout: float) -> ReadinessOutcome:
        """Wait up to timeout seconds for the gate.

        On timeout a `timed_out` outcome is returned and the gate stays open;
        drains may still resolve it later.
        """
        try:
            return await asyncio.wait_for(asyncio.shield(self._future), timeout)
        except asyncio.TimeoutError:
            return ReadinessOutcome.timed_out()


def _decode(line: bytes) -> str:
    return line.decode("utf-8", errors="replace").strip()


async def _read_line(
    stream: asyncio.StreamReader, logger: logging.Logger, stream_name: str
) -> bytes | None:
    """Read one line, or return None if it overran the read limit and was dropped."""
    try:
        return await stream.readline()
    except ValueError:
        # A fault set on the stream is re-raised as is; anything else is an
        # overrun, which readline has already discarded from the buffer.
        if stream.exception() is not None:
            raise
        logger.warning(f"{stream_name}: skipped a line longer than the read limit")
        return None


def _stream_fault(
    gate: ReadinessGate, logger: logging.Logger, stream_name: str, exc: Exception
) -> None:
    logger.error(f"{stream_name} of the dev server failed: {exc!r}")
    error = StreamFaultError("'npm run dev' failed.")
    error.__cause__ = exc
    gate.set_failed(error)


async def drain_stdout(
    stream: asyncio.StreamReader,
    gate: ReadinessGate,
    logger: logging.Logger,
    ready_message: str = DEV_SERVER_READY_MESSAGE,
) -> None:
    """Log stdout lines at INFO until EOF, opening the gate on the ready message."""
    try:
        while True:
            line = await _read_line(stream, logger, "stdout")
            if line is None:
                continue
            if not line:
                break
            text = _decode(line)
            if not text:
                continue
            logger.info(text)
            if not gate.is_resolved and ready_message in text:
                gate.set_ready()
    except Exception as e:
        _stream_fault(gate, logger, "stdout", e)


async def drain_stderr(
    stream: asyncio.StreamReader,
    gate: ReadinessGate,
    logger: logging.Logger,
) -> None:
    """Log every stderr line at ERROR until EOF."""
    try:
        while True:
            line = await _read_line(stream, logger, "stderr")
            if line is None:
                continue
            if not line:
                break
            logger.error(_decode(line))
    except Exception as e:
        _stream_fault(gate, logger, "stderr", e)
