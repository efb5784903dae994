"""Dev server supervision: probe, provision, launch, wait for readiness, hand off.

The supervisor starts `npm run dev` (unless something already listens on the
configured port), drains its output in two background tasks and waits, bounded
by the startup timeout, for vite to print its ready message. Once ready it
hands the endpoint to the traffic-forwarding collaborator.

The dev server process is not owned past readiness: it keeps running after
`start()` returns, and also after a startup timeout, together with its drain
tasks. It is not signalled, but it only outlives the host process while
something else reads its pipes: once the host exits, its output pipes close.
Stopping it earlier is left to the developer.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path

from vitehost.cli.dev.logging import DevLogComponent, get_logger
from vitehost.cli.dev.process_control import (
    ManagedProcess,
    is_port_active,
    launch_process,
)
from vitehost.cli.dev.provision import ensure_artifacts
from vitehost.cli.dev.readiness import ReadinessGate, drain_stderr, drain_stdout
from vitehost.errors import DevServerStartupError, StartupTimeoutError
from vitehost.models import (
    ProvisionedArtifacts,
    ReadinessOutcome,
    ReadinessStatus,
    ServerConfig,
    SupervisorState,
)
from vitehost.utils import platform_command

Handoff = Callable[[str], None]
PortProbe = Callable[[int], bool]
Provisioner = Callable[[Path, Sequence[str]], ProvisionedArtifacts]
Launcher = Callable[[Sequence[str], Path], Awaitable[ManagedProcess]]


class DevServerSupervisor:
    """Runs one supervision of the vite dev server.

    Attributes:
        config: Supervision input
        state: Current state of the run
        process: The launched dev server, if this run started one
        artifacts: Provisioning result, if provisioning ran
        drain_tasks: Background tasks reading the dev server output
    """

    def __init__(
        self,
        config: ServerConfig,
        handoff: Handoff,
        *,
        logger: logging.Logger | None = None,
        output_logger: logging.Logger | None = None,
        port_probe: PortProbe | None = None,
        provisioner: Provisioner | None = None,
        launcher: Launcher | None = None,
    ) -> None:
        self.config: ServerConfig = config
        self.state: SupervisorState = SupervisorState.IDLE
        self.process: ManagedProcess | None = None
        self.artifacts: ProvisionedArtifacts | None = None
        self.drain_tasks: set[asyncio.Task[None]] = set()

        self._handoff: Handoff = handoff
        self._logger: logging.Logger = logger or get_logger(DevLogComponent.SUPERVISOR)
        self._output_logger: logging.Logger = output_logger or get_logger(
            DevLogComponent.UI
        )
        self._port_probe: PortProbe = port_probe or is_port_active
        self._provisioner: Provisioner = provisioner or ensure_artifacts
        self._launcher: Launcher = launcher or launch_process

    def _transition(self, state: SupervisorState) -> None:
        self._logger.debug(f"Supervisor: {self.state.value} -> {state.value}")
        self.state = state

    async def start(self) -> ReadinessOutcome:
        """Bring the dev server up and hand off to it.

        Returns:
            The ready outcome.

        Raises:
            ProvisioningError: The certificate export failed.
            LaunchError: The dev server could not be started.
            StreamFaultError: An output stream failed before readiness.
            StartupTimeoutError: No ready message within the startup timeout.
        """
        if self.state.is_terminal:
            raise RuntimeError(f"Supervisor already ran (state: {self.state.value})")
        if self.state != SupervisorState.IDLE:
            raise RuntimeError(
                f"Supervisor is already running (state: {self.state.value})"
            )

        self._transition(SupervisorState.PROBE_PORT)
        if self._port_probe(self.config.port):
            self._logger.info(
                f"Dev server already listening on port {self.config.port}, skipping launch"
            )
            return self._complete_ready()

        try:
            self._transition(SupervisorState.PROVISIONING)
            self.artifacts = await asyncio.to_thread(
                self._provisioner,
                self.config.source_directory,
                self.config.cert_export_command,
            )

            self._transition(SupervisorState.LAUNCHING)
            command = platform_command(self.config.launch_command)
            self._logger.info(
                f"Starting `{' '.join(self.config.launch_command)}` in {self.config.source_directory}"
            )
            self.process = await self._launcher(command, self.config.source_directory)
        except DevServerStartupError as e:
            self._transition(SupervisorState.FAILED)
            self._logger.error(f"Dev server startup failed: {e}")
            raise

        self._transition(SupervisorState.AWAITING_READINESS)
        outcome = await self._await_readiness(self.process)

        if outcome.status == ReadinessStatus.READY:
            return self._complete_ready()

        if outcome.status == ReadinessStatus.FAILED:
            self._transition(SupervisorState.FAILED)
            assert outcome.error is not None
            raise outcome.error

        self._transition(SupervisorState.TIMED_OUT)
        self._logger.error(
            f"Dev server did not report readiness within {self.config.startup_timeout:g}s; "
            "leaving it running"
        )
        raise StartupTimeoutError(self.config.startup_timeout)

    async def _await_readiness(self, process: ManagedProcess) -> ReadinessOutcome:
        gate = ReadinessGate()
        for coro in (
            drain_stdout(
                process.stdout, gate, self._output_logger, self.config.ready_message
            ),
            drain_stderr(process.stderr, gate, self._output_logger),
        ):
            task = asyncio.create_task(coro)
            # Keep a strong reference; the loop only holds weak ones.
            self.drain_tasks.add(task)
            task.add_done_callback(self.drain_tasks.discard)

        return await gate.wait(self.config.startup_timeout)

    def _complete_ready(self) -> ReadinessOutcome:
        self._transition(SupervisorState.READY)
        endpoint = self.config.endpoint
        self._logger.info(f"Dev server ready, forwarding traffic to {endpoint}")
        self._handoff(endpoint)
        return ReadinessOutcome.ready()


async def use_vite_development_server(
    config: ServerConfig, handoff: Handoff
) -> DevServerSupervisor:
    """Supervise the dev server described by config and hand off once ready.

    Returns the supervisor so callers can reach the launched process.
    """
    supervisor = DevServerSupervisor(config, handoff)
    await supervisor.start()
    return supervisor
