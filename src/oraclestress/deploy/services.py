"""Restarts the local chain services stack before a run."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from oraclestress.deploy.commands import CommandRunner, run_command
from oraclestress.errors import CommandError, ConfigurationError
from oraclestress.models.config import SshConfig, resolve_path

logger = logging.getLogger(__name__)

STACK_NAME = "services"


class ServiceRestarter:
    """Redeploys the docker stack, locally or over SSH.

    Raises:
        ConfigurationError: At construction, if a remote host is set
            without key_path, user and yaml_path.
    """

    def __init__(
        self,
        ssh: SshConfig,
        base_dir: Path,
        runner: CommandRunner = run_command,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if ssh.remote_host != "local":
            missing = [f for f in ("key_path", "user", "yaml_path") if not getattr(ssh, f)]
            if missing:
                raise ConfigurationError(
                    f"ssh.remote_host is '{ssh.remote_host}' but ssh.{', ssh.'.join(missing)} "
                    f"{'is' if len(missing) == 1 else 'are'} not set"
                )
        self.ssh = ssh
        self._base_dir = base_dir
        self._runner = runner
        self._sleep = sleep

    def restart_args(self) -> list[str]:
        if self.ssh.remote_host == "local":
            compose = resolve_path(self._base_dir, self.ssh.compose_file)
            script = (
                f"docker stack rm {STACK_NAME} || true; sleep 10; "
                f"docker stack deploy -c {compose} {STACK_NAME}"
            )
            return ["bash", "-c", script]
        script = (
            f"docker stack rm {STACK_NAME} || true; sleep 10; "
            f"docker stack deploy -c {self.ssh.yaml_path} {STACK_NAME} || true; sleep 20;"
        )
        return [
            "ssh",
            "-o", "UserKnownHostsFile=/dev/null",
            "-o", "StrictHostKeyChecking=no",
            "-i", str(self.ssh.key_path),
            "-p", str(self.ssh.port),
            f"{self.ssh.user}@{self.ssh.remote_host}",
            script,
        ]

    async def restart(self) -> bool:
        """Restart the stack and wait for it to settle. Failures are logged, not raised."""
        logger.info("Restarting services on %s", self.ssh.remote_host)
        try:
            await self._runner(self.restart_args(), "Initialise Services")
        except CommandError:
            logger.exception("Failed to restart services")
            return False
        await self._sleep(self.ssh.settle_seconds)
        logger.info("Services restarted")
        return True
