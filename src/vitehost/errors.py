"""Errors raised while starting the dev server."""

from __future__ import annotations


class DevServerStartupError(Exception):
    """Base class for every way a supervision run can fail."""


class ProvisioningError(DevServerStartupError):
    """The external TLS identity export command failed."""

    def __init__(self, message: str, *, returncode: int | None = None, output: str = ""):
        super().__init__(message)
        self.returncode: int | None = returncode
        self.output: str = output

    def __str__(self) -> str:
        base = super().__str__()
        if self.output:
            return f"{base}\n{self.output}"
        return base


class LaunchError(DevServerStartupError):
    """The dev server process could not be started."""


class StreamFaultError(DevServerStartupError):
    """An output stream of the dev server ended abnormally."""


class StartupTimeoutError(DevServerStartupError, TimeoutError):
    """The dev server did not announce readiness within the startup timeout."""

    def __init__(self, timeout: float):
        super().__init__(
            f"Dev server did not report readiness within {timeout:g} seconds"
        )
        self.timeout: float = timeout
