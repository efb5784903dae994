"""Centralized logging for `vitehost dev` (component loggers and CLI formatting)."""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel

from vitehost.models import LogChannel
from vitehost.utils import PrefixedLogHandler


class DevLogComponent(str, Enum):
    """Where a log originated (used for fine-grained filtering)."""

    SUPERVISOR = "supervisor"
    PROVISION = "provision"
    PROCESS_CONTROL = "process_control"
    PROXY = "proxy"
    UI = "ui"


_COMPONENT_DEFAULT_CHANNEL: dict[DevLogComponent, LogChannel] = {
    DevLogComponent.SUPERVISOR: LogChannel.VITEHOST,
    DevLogComponent.PROVISION: LogChannel.VITEHOST,
    DevLogComponent.PROCESS_CONTROL: LogChannel.VITEHOST,
    DevLogComponent.PROXY: LogChannel.VITEHOST,
    DevLogComponent.UI: LogChannel.UI,
}

_CHANNEL_COLOR: dict[LogChannel, str] = {
    LogChannel.VITEHOST: "bright_blue",
    LogChannel.UI: "cyan",
}


class _DevLogState(BaseModel):
    configured: bool = False


_STATE = _DevLogState()


def configure_dev_logging(*, level: int = logging.INFO) -> None:
    """Route all dev loggers to the console with `[vitehost]`/`[ui]` prefixes."""
    for component in DevLogComponent:
        channel = _COMPONENT_DEFAULT_CHANNEL.get(component, LogChannel.VITEHOST)
        logger = logging.getLogger(f"vitehost.dev.{component.value}")
        logger.setLevel(level)
        logger.handlers.clear()
        handler = PrefixedLogHandler(
            prefix=f"[{channel.value}]", color=_CHANNEL_COLOR[channel]
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.propagate = False

    # uvicorn runs the proxy; keep its own output on the vitehost channel.
    for name in ("uvicorn", "uvicorn.error"):
        uv = logging.getLogger(name)
        uv.setLevel(level)
        uv.handlers.clear()
        h = PrefixedLogHandler(
            prefix=f"[{LogChannel.VITEHOST.value}]",
            color=_CHANNEL_COLOR[LogChannel.VITEHOST],
        )
        h.setFormatter(logging.Formatter("%(message)s"))
        uv.addHandler(h)
        uv.propagate = False

    _STATE.configured = True


def get_logger(component: DevLogComponent) -> logging.Logger:
    """Get a dev logger for a component (do not call stdlib logging directly)."""
    logger = logging.getLogger(f"vitehost.dev.{component.value}")
    if not _STATE.configured:
        # Avoid "No handlers could be found" warnings in contexts that don't configure dev logging.
        if not logger.handlers:
            logger.addHandler(logging.NullHandler())
    return logger
