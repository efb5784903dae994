"""Idempotent provisioning of the dev certificate and vite config.

On the first run in a source directory the local development certificate is
exported to `devcert.pfx` with a fresh passphrase, and `vite.config.js` is
rendered to point vite at it. Once both files exist nothing is done again.
"""

from __future__ import annotations

import subprocess
import time
import uuid
from collections.abc import Sequence
from pathlib import Path

import jinja2

from vitehost.cli.dev.logging import DevLogComponent, get_logger
from vitehost.constants import (
    CONFIG_FILE_NAME,
    CONFIG_TEMPLATE_NAME,
    DEFAULT_CERT_EXPORT_COMMAND,
    IDENTITY_FILE_NAME,
)
from vitehost.errors import ProvisioningError
from vitehost.models import CommandResult, ProvisionedArtifacts
from vitehost.utils import ensure_dir, platform_command

logger = get_logger(DevLogComponent.PROVISION)

_jinja2_env = jinja2.Environment(
    loader=jinja2.PackageLoader("vitehost", "templates"),
    keep_trailing_newline=True,
    autoescape=False,
)


def artifact_paths(directory: Path) -> tuple[Path, Path]:
    """Return the (identity file, config file) paths inside directory."""
    return directory / IDENTITY_FILE_NAME, directory / CONFIG_FILE_NAME


def run_command(cmd: list[str], cwd: Path) -> CommandResult:
    """Run a one-shot command to completion, capturing its output."""
    start = time.perf_counter()
    result = subprocess.run(
        cmd,
        cwd=cwd,
        stdin=subprocess.DEVNULL,
        capture_output=True,
        text=True,
    )
    return CommandResult(
        command=cmd,
        cwd=str(cwd),
        returncode=result.returncode,
        stdout=result.stdout or "",
        stderr=result.stderr or "",
        duration_ms=int((time.perf_counter() - start) * 1000),
    )


def render_vite_config(identity_file: Path, passphrase: str) -> str:
    """Render vite.config.js referencing the identity file by name."""
    template = _jinja2_env.get_template(CONFIG_TEMPLATE_NAME)
    return template.render(identity_file_name=identity_file.name, passphrase=passphrase)


def export_identity(
    identity_file: Path,
    passphrase: str,
    export_command: Sequence[str] = DEFAULT_CERT_EXPORT_COMMAND,
) -> CommandResult:
    """Export the development certificate to identity_file.

    Raises:
        ProvisioningError: If the export command is missing or exits non-zero.
    """
    cmd = platform_command([*export_command, "-ep", str(identity_file), "-p", passphrase])
    try:
        result = run_command(cmd, cwd=identity_file.parent)
    except OSError as e:
        raise ProvisioningError(
            f"Failed to run {' '.join(export_command)}: {e}"
        ) from e

    if result.returncode != 0:
        output = "\n".join(s.strip() for s in (result.stderr, result.stdout) if s.strip())
        raise ProvisioningError(
            f"Exporting the development certificate failed with exit code {result.returncode}",
            returncode=result.returncode,
            output=output,
        )
    return result


def ensure_artifacts(
    directory: Path,
    export_command: Sequence[str] = DEFAULT_CERT_EXPORT_COMMAND,
) -> ProvisionedArtifacts:
    """Make sure devcert.pfx and vite.config.js exist in directory.

    If both files are already present this is a no-op: no command runs and no
    file is written, and the returned passphrase is None.

    Args:
        directory: Frontend source directory
        export_command: Certificate export command, without the
            `-ep <file> -p <passphrase>` arguments

    Raises:
        ProvisioningError: If the certificate export fails. The config file is
            not written in that case.
    """
    identity_file, config_file = artifact_paths(directory)
    if identity_file.exists() and config_file.exists():
        logger.debug(f"Dev certificate and config already present in {directory}")
        return ProvisionedArtifacts(
            identity_file=identity_file, config_file=config_file
        )

    ensure_dir(directory)
    passphrase = uuid.uuid4().hex
    logger.info(f"Exporting dev certificate to {identity_file} for Vite")
    logger.debug(f"Export password: {passphrase}")

    result = export_identity(identity_file, passphrase, export_command)
    if result.stdout.strip():
        logger.info(result.stdout.strip())

    config_file.write_text(
        render_vite_config(identity_file, passphrase), encoding="utf-8"
    )
    logger.info(f"Created Vite config: {config_file}")

    return ProvisionedArtifacts(
        identity_file=identity_file,
        config_file=config_file,
        passphrase=passphrase,
        created=True,
    )
