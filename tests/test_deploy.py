"""Tests for the deployer, the command runner, config rendering and service restarts."""

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from oraclestress.deploy.commands import line_fails, run_command
from oraclestress.deploy.deployer import OracleDeployer
from oraclestress.deploy.render import (
    build_oracle_config,
    build_secrets,
    default_template,
    write_deployment_files,
)
from oraclestress.deploy.services import ServiceRestarter
from oraclestress.errors import CommandError, ConfigurationError, DeploymentToolError
from oraclestress.models.config import (
    CloudProviderConfig,
    DeployerConfig,
    RequestSet,
    SshConfig,
    StressTestConfig,
)

RRP_A = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
RRP_B = "0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0"


class FakeRunner:
    """Records commands; fails according to a script of booleans."""

    def __init__(self, failures: list[bool] | None = None) -> None:
        self.failures = list(failures or [])
        self.calls: list[tuple[list[str], str]] = []

    async def __call__(self, args, label, *, failure_text=None, okay_text=None, cwd=None) -> str:
        self.calls.append((list(args), label))
        if self.failures and self.failures.pop(0):
            raise CommandError(f"{label} failed", command=" ".join(args), returncode=1)
        return ""

    def verbs(self) -> list[str]:
        return ["deploy" if "deploy" in args else "remove" for args, _ in self.calls]


def _config(**overrides) -> StressTestConfig:
    return StressTestConfig(test_runs=[RequestSet(request_count=1, wallet_count=1)], **overrides)


class TestCommands:
    """Test output-based failure detection."""

    def test_line_fails(self):
        assert line_fails("Deployment Failed", "Failed", None)
        assert not line_fails("all good", "Failed", None)
        assert not line_fails("Error: S3 bucket does not exist", "Error", "S3 bucket does not exist")
        assert not line_fails("anything", None, None)

    @pytest.mark.asyncio
    async def test_run_command_returns_output(self):
        output = await run_command(["echo", "deployed"], "Deploy")
        assert output == "deployed"

    @pytest.mark.asyncio
    async def test_failure_text_fails_zero_exit(self):
        with pytest.raises(CommandError, match="reported failure"):
            await run_command(["echo", "Deployment Failed"], "Deploy", failure_text="Failed")

    @pytest.mark.asyncio
    async def test_nonzero_exit(self):
        with pytest.raises(CommandError) as exc_info:
            await run_command(["false"], "Remove")
        assert exc_info.value.returncode == 1

    @pytest.mark.asyncio
    async def test_missing_output_stream(self, monkeypatch):
        async def no_pipe(*args, **kwargs):
            return SimpleNamespace(stdout=None)

        monkeypatch.setattr("oraclestress.deploy.commands.asyncio.create_subprocess_exec", no_pipe)
        with pytest.raises(CommandError, match="no output stream"):
            await run_command(["echo", "hi"], "Deploy")


class TestOracleDeployer:
    """Test deploy/remove policy."""

    def test_docker_args(self, tmp_path: Path):
        deployer = OracleDeployer(DeployerConfig(work_dir="deploy"), tmp_path, runner=FakeRunner())
        args = deployer.deploy_args()
        assert args[:4] == ["docker", "run", "-i", "--rm"]
        assert "api3/airnode-deployer:latest" in args
        assert args[-2:] == ["deploy", "--debug"]
        assert f"{(tmp_path / 'deploy').resolve()}:/app/config" in args

    def test_remove_args_with_gcp_credentials(self, tmp_path: Path):
        deployer = OracleDeployer(
            DeployerConfig(gcp_credentials="gcp.json", debug=False, skip_version_check=True),
            tmp_path,
            runner=FakeRunner(),
        )
        args = deployer.remove_args()
        assert "GOOGLE_APPLICATION_CREDENTIALS=/app/gcp.json" in args
        assert args[-4:] == ["remove", "-r", "output/receipt.json", "--skip-version-check"]

    @pytest.mark.asyncio
    async def test_deploy_success(self, tmp_path: Path):
        runner = FakeRunner()
        await OracleDeployer(DeployerConfig(), tmp_path, runner=runner).deploy()
        assert runner.verbs() == ["deploy"]

    @pytest.mark.asyncio
    async def test_deploy_failure_removes_and_redeploys(self, tmp_path: Path):
        runner = FakeRunner([True, False, False])
        await OracleDeployer(DeployerConfig(), tmp_path, runner=runner).deploy()
        assert runner.verbs() == ["deploy", "remove", "deploy"]

    @pytest.mark.asyncio
    async def test_second_failure_is_fatal(self, tmp_path: Path):
        runner = FakeRunner([True, False, True])
        with pytest.raises(DeploymentToolError):
            await OracleDeployer(DeployerConfig(), tmp_path, runner=runner).deploy()

    @pytest.mark.asyncio
    async def test_remove_is_best_effort(self, tmp_path: Path):
        runner = FakeRunner([True, True])
        assert await OracleDeployer(DeployerConfig(), tmp_path, runner=runner).remove() is False
        assert runner.verbs() == ["remove", "remove"]


class TestRender:
    """Test config.json and secrets.env rendering."""

    def test_one_chain_per_rrp(self):
        rendered = build_oracle_config(_config(), [RRP_A, RRP_B], stage="abc123")
        assert [c["contracts"]["AirnodeRrp"] for c in rendered["chains"]] == [RRP_A, RRP_B]
        assert all(c["id"] == "31337" for c in rendered["chains"])
        assert rendered["nodeSettings"]["stage"] == "abc123"
        assert rendered["nodeSettings"]["nodeVersion"] == "0.0.1"
        assert rendered["nodeSettings"]["cloudProvider"] == {"type": "aws", "region": "us-east-1"}

    def test_random_stage(self):
        stage = build_oracle_config(_config(), [RRP_A])["nodeSettings"]["stage"]
        assert len(stage) == 6

    def test_template_is_not_mutated(self):
        template = default_template("0x" + "00" * 32)
        build_oracle_config(_config(), [RRP_A], template)
        assert template["chains"] == []

    def test_gcp_provider_setting(self):
        config = _config(cloud_provider=CloudProviderConfig(type="gcp", region="us-east1", project_id="p1"))
        setting = build_oracle_config(config, [RRP_A])["nodeSettings"]["cloudProvider"]
        assert setting == {"type": "gcp", "region": "us-east1", "projectId": "p1"}

    def test_secrets_for_mocked_provider(self):
        config = _config(test_type="MockedProvider")
        secrets = dict(line.split("=", 1) for line in build_secrets(config, RRP_A, 40).splitlines())
        assert secrets["PROVIDER_URL"] == "https://mockedrpc.api3mock.link/40/"
        assert secrets["AIRNODE_RRP_ADDRESS"] == RRP_A
        assert secrets["CHAIN_ID"] == "31337"
        assert len(secrets) == 6

    def test_write_deployment_files(self, tmp_path: Path):
        config = _config(deployer=DeployerConfig(work_dir="out"))
        stage = write_deployment_files(config, tmp_path, [RRP_A], request_count=2)

        written = json.loads((tmp_path / "out" / "config.json").read_text())
        assert written["nodeSettings"]["stage"] == stage
        assert "PROVIDER_URL=http://127.0.0.1:8545" in (tmp_path / "out" / "secrets.env").read_text()
        assert not list((tmp_path / "out").glob("*.tmp"))

    def test_custom_template(self, tmp_path: Path):
        (tmp_path / "template.json").write_text(json.dumps({"nodeSettings": {"logLevel": "DEBUG"}}))
        config = _config(deployer=DeployerConfig(config_template="template.json"))
        write_deployment_files(config, tmp_path, [RRP_A], request_count=1)
        written = json.loads((tmp_path / "config.json").read_text())
        assert written["nodeSettings"]["logLevel"] == "DEBUG"


class TestServiceRestarter:
    """Test local and remote restarts."""

    def test_remote_requires_credentials(self, tmp_path: Path):
        with pytest.raises(ConfigurationError, match="key_path"):
            ServiceRestarter(SshConfig(remote_host="10.0.0.5", user="ubuntu"), tmp_path)

    def test_remote_args(self, tmp_path: Path):
        ssh = SshConfig(remote_host="10.0.0.5", user="ubuntu", key_path="id_rsa", yaml_path="/srv/stack.yml")
        args = ServiceRestarter(ssh, tmp_path).restart_args()
        assert args[0] == "ssh"
        assert "ubuntu@10.0.0.5" in args
        assert "/srv/stack.yml" in args[-1]

    def test_local_args(self, tmp_path: Path):
        args = ServiceRestarter(SshConfig(), tmp_path).restart_args()
        assert args[:2] == ["bash", "-c"]
        assert str(tmp_path / "docker-compose.yml") in args[2]

    @pytest.mark.asyncio
    async def test_restart_waits_to_settle(self, tmp_path: Path):
        sleeps: list[float] = []

        async def sleep(seconds: float) -> None:
            sleeps.append(seconds)

        restarter = ServiceRestarter(SshConfig(settle_seconds=3), tmp_path, runner=FakeRunner(), sleep=sleep)
        assert await restarter.restart() is True
        assert sleeps == [3]

    @pytest.mark.asyncio
    async def test_restart_failure_is_logged_not_raised(self, tmp_path: Path):
        async def sleep(seconds: float) -> None:
            pass

        restarter = ServiceRestarter(SshConfig(), tmp_path, runner=FakeRunner([True]), sleep=sleep)
        assert await restarter.restart() is False
