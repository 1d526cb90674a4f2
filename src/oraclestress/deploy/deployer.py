"""Oracle deployment through the dockerised deployer image.

Deploy policy: on failure, remove whatever was half-deployed and try
once more. A second failure raises DeploymentToolError, which ends the
process. Removal itself is best effort.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from oraclestress.deploy.commands import CommandRunner, run_command
from oraclestress.errors import CommandError, DeploymentToolError
from oraclestress.models.config import DeployerConfig, resolve_path

logger = logging.getLogger(__name__)

DEPLOY_FAILURE_TEXT = "Failed"
REMOVE_FAILURE_TEXT = "Error"
REMOVE_OKAY_TEXT = "S3 bucket does not exist"
REMOVE_ATTEMPTS = 2
GCP_CREDENTIALS_MOUNT = "/app/gcp.json"


class OracleDeployer:
    """Runs ``deploy`` and ``remove`` in the deployer container.

    Args:
        config: Deployer settings.
        base_dir: Directory relative paths in the config resolve against.
        runner: Command runner, replaceable in tests.
    """

    def __init__(
        self,
        config: DeployerConfig,
        base_dir: Path,
        runner: CommandRunner = run_command,
    ) -> None:
        self.config = config
        self.work_dir = resolve_path(base_dir, config.work_dir).resolve()
        self.env_file = resolve_path(self.work_dir, config.env_file)
        self.gcp_credentials = (
            resolve_path(base_dir, config.gcp_credentials).resolve()
            if config.gcp_credentials
            else None
        )
        self._runner = runner

    def _docker_args(self, *command: str) -> list[str]:
        args = [
            "docker", "run", "-i", "--rm",
            "--env-file", str(self.env_file),
            "-e", f"USER_ID={os.getuid()}",
            "-e", f"GROUP_ID={os.getgid()}",
        ]
        if self.gcp_credentials is not None:
            args += [
                "-v", f"{self.gcp_credentials}:{GCP_CREDENTIALS_MOUNT}",
                "-e", f"GOOGLE_APPLICATION_CREDENTIALS={GCP_CREDENTIALS_MOUNT}",
            ]
        args += [
            "-v", f"{self.work_dir}:/app/config",
            "-v", f"{self.work_dir}:/app/output",
            self.config.image,
            *command,
        ]
        if self.config.skip_version_check:
            args.append("--skip-version-check")
        if self.config.debug:
            args.append("--debug")
        return args

    def deploy_args(self) -> list[str]:
        return self._docker_args("deploy")

    def remove_args(self) -> list[str]:
        return self._docker_args("remove", "-r", "output/receipt.json")

    async def _deploy_once(self) -> None:
        await self._runner(self.deploy_args(), "Deploy Airnode", failure_text=DEPLOY_FAILURE_TEXT)

    async def deploy(self) -> None:
        """Deploy, with one remove-and-redeploy on failure.

        Raises:
            DeploymentToolError: If the redeploy fails too.
        """
        try:
            await self._deploy_once()
            return
        except CommandError as exc:
            logger.warning("Deploy failed (%s); removing and retrying once", exc)

        await self.remove()
        try:
            await self._deploy_once()
        except CommandError as exc:
            raise DeploymentToolError(f"Oracle deployment failed twice: {exc}") from exc

    async def remove(self) -> bool:
        """Remove the deployment. Returns False if every attempt failed."""
        for attempt in range(1, REMOVE_ATTEMPTS + 1):
            try:
                await self._runner(
                    self.remove_args(),
                    "Remove Airnode",
                    failure_text=REMOVE_FAILURE_TEXT,
                    okay_text=REMOVE_OKAY_TEXT,
                )
                return True
            except CommandError as exc:
                logger.warning("Remove attempt %d/%d failed: %s", attempt, REMOVE_ATTEMPTS, exc)
        return False
