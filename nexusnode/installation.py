"""Making sure the container runtime and the reverse proxy are installed."""

from __future__ import annotations

import logging
import shutil
import subprocess
from typing import Sequence

logger = logging.getLogger("nexusnode.installation")

_DOCKER_INSTALL = "apt-get update -qq && apt-get install -y docker.io"
_CADDY_INSTALL = "apt-get update -qq && apt-get install -y caddy"


class InstallationError(RuntimeError):
    """A setup step failed."""


def is_command_available(name: str) -> bool:
    """Return True if the program can be found on PATH."""
    return shutil.which(name) is not None


def run_command(args: Sequence[str]) -> str:
    """Run a command, log its outcome and return its standard output."""
    line = " ".join(args)
    try:
        result = subprocess.run(list(args), capture_output=True, text=True)
    except OSError as exc:
        logger.error("Command failed: %s\nError: %s", line, exc)
        raise InstallationError(f"command {line} failed: {exc}") from exc
    if result.returncode != 0:
        logger.error(
            "Command failed: %s\nOutput: %s\nError: %s", line, result.stdout, result.stderr
        )
        raise InstallationError(
            f"command {line} failed with exit status {result.returncode}: {result.stderr}"
        )
    logger.info("Command succeeded: %s\nOutput: %s", line, result.stdout)
    return result.stdout


def install_docker() -> None:
    """Install the container runtime and enable its service."""
    run_command(["sh", "-c", _DOCKER_INSTALL])
    logger.info("Enabling and starting Docker service...")
    try:
        run_command(["systemctl", "enable", "--now", "docker"])
    except InstallationError as exc:
        raise InstallationError(f"failed to enable/start Docker: {exc}") from exc
    logger.info("Docker service enabled and started successfully.")


def install_caddy() -> None:
    """Install the reverse proxy."""
    run_command(["sh", "-c", _CADDY_INSTALL])


def _step(args: list[str], failure: str) -> None:
    try:
        run_command(args)
    except InstallationError as exc:
        raise InstallationError(f"{failure}: {exc}") from exc


def test_docker() -> None:
    """Restart the runtime and run a throwaway container to prove it works."""
    _step(["systemctl", "enable", "docker"], "Failed to enable docker")
    _step(["systemctl", "restart", "docker"], "Failed to restart docker")
    logger.info("Successfully restarted Docker")
    _step(["docker", "pull", "alpine"], "Failed to pull Alpine image")
    _step(
        ["docker", "run", "--name", "alpine-test", "-d", "alpine", "sleep", "10"],
        "Failed to run Alpine container",
    )
    _step(["docker", "rm", "-f", "alpine-test"], "Failed to delete Alpine container")
    logger.info("Successfully deleted Alpine container.")


def ensure_docker_and_caddy() -> None:
    """Install what is missing, check the runtime and start the proxy."""
    if not is_command_available("docker"):
        logger.info("Docker is not installed. Installing Docker...")
        try:
            install_docker()
        except InstallationError as exc:
            raise InstallationError(f"Failed to install Docker: {exc}") from exc
    else:
        logger.info("Docker is already installed.")

    test_docker()

    if not is_command_available("caddy"):
        logger.info("Caddy is not installed. Installing Caddy...")
        try:
            install_caddy()
        except InstallationError as exc:
            raise InstallationError(f"Failed to install Caddy: {exc}") from exc
    else:
        logger.info("Caddy is already installed.")

    _step(["systemctl", "restart", "caddy"], "Failed to restart caddy")
    logger.info("Caddy Started Successfully")