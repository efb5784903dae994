"""Centralized Pydantic models, enums, and type aliases for vitehost."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vitehost.constants import (
    DEFAULT_CERT_EXPORT_COMMAND,
    DEFAULT_DEV_SERVER_PORT,
    DEFAULT_HOST,
    DEFAULT_LAUNCH_COMMAND,
    DEFAULT_SCHEME,
    DEFAULT_STARTUP_TIMEOUT,
    DEV_SERVER_READY_MESSAGE,
)


# === Enums ===


class LogChannel(str, Enum):
    """Logical log channel for dev logging."""

    VITEHOST = "vitehost"
    UI = "ui"


class ReadinessStatus(str, Enum):
    """How a supervision run ended."""

    READY = "ready"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class SupervisorState(str, Enum):
    """States of a single supervision run."""

    IDLE = "idle"
    PROBE_PORT = "probe_port"
    PROVISIONING = "provisioning"
    LAUNCHING = "launching"
    AWAITING_READINESS = "awaiting_readiness"
    READY = "ready"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (
            SupervisorState.READY,
            SupervisorState.FAILED,
            SupervisorState.TIMED_OUT,
        )


# === Configuration ===


class ServerConfig(BaseModel):
    """Immutable input to a supervision run.

    All default values are defined in `vitehost.constants` and should not be
    repeated elsewhere.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    source_directory: Path
    port: int = DEFAULT_DEV_SERVER_PORT
    startup_timeout: float = Field(default=DEFAULT_STARTUP_TIMEOUT, gt=0)
    host: str = DEFAULT_HOST
    scheme: Literal["http", "https"] = DEFAULT_SCHEME
    launch_command: list[str] = Field(
        default_factory=lambda: list(DEFAULT_LAUNCH_COMMAND)
    )
    cert_export_command: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CERT_EXPORT_COMMAND)
    )
    ready_message: str = DEV_SERVER_READY_MESSAGE

    @field_validator("port", mode="before")
    @classmethod
    def _default_port(cls, value: Any) -> Any:  # pyright: ignore[reportExplicitAny]
        # An unset port (None or 0) falls back to the default dev server port.
        if value is None or value == 0:
            return DEFAULT_DEV_SERVER_PORT
        return value

    @field_validator("port")
    @classmethod
    def _check_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError(f"Invalid port: {value}")
        return value

    @property
    def endpoint(self) -> str:
        """Local URL of the dev server, used for the handoff."""
        return f"{self.scheme}://{self.host}:{self.port}"


# === Results ===


class ProvisionedArtifacts(BaseModel):
    """TLS identity and generated config file in a source directory.

    `passphrase` is only known when this run created the files.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    identity_file: Path
    config_file: Path
    passphrase: str | None = None
    created: bool = False


class CommandResult(BaseModel):
    """Result of running a one-shot external command."""

    command: list[str]
    cwd: str
    returncode: int
    stdout: str
    stderr: str
    duration_ms: int


class ReadinessOutcome(BaseModel):
    """Tagged result of waiting for the dev server: ready, failed or timed out."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        frozen=True, arbitrary_types_allowed=True
    )

    status: ReadinessStatus
    error: BaseException | None = None

    @classmethod
    def ready(cls) -> ReadinessOutcome:
        return cls(status=ReadinessStatus.READY)

    @classmethod
    def failed(cls, error: BaseException) -> ReadinessOutcome:
        return cls(status=ReadinessStatus.FAILED, error=error)

    @classmethod
    def timed_out(cls) -> ReadinessOutcome:
        return cls(status=ReadinessStatus.TIMED_OUT)

    @property
    def is_ready(self) -> bool:
        return self.status == ReadinessStatus.READY
