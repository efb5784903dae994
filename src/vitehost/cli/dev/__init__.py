"""Dev command group for vitehost CLI."""

from vitehost.cli.dev.process_control import ManagedProcess, is_port_active, launch_process
from vitehost.cli.dev.provision import ensure_artifacts
from vitehost.cli.dev.readiness import ReadinessGate, drain_stderr, drain_stdout
from vitehost.cli.dev.supervisor import DevServerSupervisor, use_vite_development_server

__all__ = [
    "DevServerSupervisor",
    "ManagedProcess",
    "ReadinessGate",
    "drain_stderr",
    "drain_stdout",
    "ensure_artifacts",
    "is_port_active",
    "launch_process",
    "use_vite_development_server",
]
