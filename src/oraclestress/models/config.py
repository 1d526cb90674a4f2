"""Stress-test configuration model.

Captures stressconfig.yaml fields with defaults matching a local
HardHat setup. A single StressTestConfig is loaded at startup and
passed explicitly to every component that needs it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, model_validator

TestType = Literal[
    "MockedProvider",
    "HardHatProvider",
    "OpenEthereumProvider",
    "RopstenProvider",
]

DEFAULT_MASTER_MNEMONIC = "test test test test test test test test test test test junk"
DEFAULT_ORACLE_MNEMONIC = (
    "skate viable exhibit general garment shrug enough crucial oblige victory ritual fringe"
)
DEFAULT_ENDPOINT_ID = "0xf466b8feec41e9e50815e0c9dca4db1ff959637e564bb13fefa99e9f9f90453c"
DEFAULT_CHAIN_ID = 31337


class RequestSet(BaseModel):
    """Shape of one test run: requests x wallets x chains."""

    model_config = {"extra": "forbid", "frozen": True}

    request_count: int = Field(ge=1)
    wallet_count: int = Field(ge=1)
    chain_count: int = Field(default=1, ge=1)

    def describe(self) -> str:
        return (
            f"{self.request_count} request(s), {self.wallet_count} wallet(s), "
            f"{self.chain_count} chain(s)"
        )


class RpcConfig(BaseModel):
    """JSON-RPC endpoint used by the stress tester itself."""

    model_config = {"extra": "forbid"}

    url: str = "http://127.0.0.1:8545"
    max_attempts: int = Field(default=5, ge=1)
    retry_delay_ms: int = Field(default=50, ge=0)
    timeout_s: float = Field(default=5.0, gt=0)


class CloudProviderConfig(BaseModel):
    """Where the oracle is deployed and whose logs are polled."""

    model_config = {"extra": "forbid"}

    type: Literal["aws", "gcp"] = "aws"
    region: str = "us-east-1"
    project_id: str | None = None

    @model_validator(mode="after")
    def _gcp_needs_project(self) -> CloudProviderConfig:
        if self.type == "gcp" and not self.project_id:
            raise ValueError("project_id is required when type is 'gcp'")
        return self

    def as_oracle_setting(self) -> dict[str, str]:
        """Render the cloudProvider block of the oracle's config.json."""
        setting = {"type": self.type, "region": self.region}
        if self.project_id:
            setting["projectId"] = self.project_id
        return setting


class PostgresConfig(BaseModel):
    """Relational metrics sink. Any SQLAlchemy URL is accepted via ``url``."""

    model_config = {"extra": "forbid"}

    enabled: bool = False
    url: str | None = None
    user: str = "postgres"
    password: str = ""
    host: str = "localhost"
    port: int = 5432
    database: str = "stress_tests"

    def sqlalchemy_url(self) -> str:
        if self.url:
            return self.url
        return (
            f"postgresql+psycopg2://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )


class JsonOutputConfig(BaseModel):
    """Append-only JSON results file."""

    model_config = {"extra": "forbid"}

    enabled: bool = True
    file_path: str = "results.json"


class SshConfig(BaseModel):
    """How chain services are restarted between runs.

    ``remote_host: local`` restarts the docker stack on this machine;
    any other value requires key_path, user and yaml_path.
    """

    model_config = {"extra": "forbid"}

    remote_host: str = "local"
    key_path: str | None = None
    user: str | None = None
    port: int = 22
    yaml_path: str | None = None
    compose_file: str = "docker-compose.yml"
    settle_seconds: float = Field(default=20.0, ge=0)


class FundingConfig(BaseModel):
    """Balance policy for sponsor and sponsor-wallet top-ups (wei)."""

    model_config = {"extra": "forbid"}

    top_up_wei: int = Field(default=10**17, ge=0)
    low_water_mark_wei: int = Field(default=5 * 10**16, ge=0)
    confirmation_timeout_s: float = Field(default=120.0, gt=0)


class PollingConfig(BaseModel):
    """Metrics polling bounds and the completion predicate."""

    model_config = {"extra": "forbid"}

    max_attempts: int = Field(default=16, ge=1)
    interval_ms: int = Field(default=10_000, ge=0)
    settle_delay_ms: int = Field(default=40_000, ge=0)
    expected_components: int = Field(default=4, ge=1)
    block_window: int = Field(default=1000, ge=1)


class ContractsConfig(BaseModel):
    """Location of compiled Hardhat artifacts."""

    model_config = {"extra": "forbid"}

    artifacts_dir: str = "artifacts"
    rrp: str = "contracts/AirnodeRrp.sol"
    requester: str = "contracts/Requester.sol"


class DeployerConfig(BaseModel):
    """Dockerised oracle deployer invocation."""

    model_config = {"extra": "forbid"}

    image: str = "api3/airnode-deployer:latest"
    work_dir: str = "."
    env_file: str = "aws.env"
    gcp_credentials: str | None = None
    config_template: str | None = None
    skip_version_check: bool = False
    debug: bool = True
    mined_wait_s: float = Field(default=10.0, ge=0)


class StressTestConfig(BaseModel):
    """Top-level configuration loaded from stressconfig.yaml."""

    model_config = {"extra": "forbid"}

    test_runs: list[RequestSet] = Field(min_length=1)
    run_repeats: int = Field(default=1, ge=1)
    tries: int = Field(default=3, ge=1)
    test_type: TestType = "HardHatProvider"
    rpc: RpcConfig = Field(default_factory=RpcConfig)
    mocked_provider_url: str = "https://mockedrpc.api3mock.link"
    oracle_provider_url: str | None = None
    master_mnemonic: str = DEFAULT_MASTER_MNEMONIC
    oracle_mnemonic: str = DEFAULT_ORACLE_MNEMONIC
    endpoint_id: str = DEFAULT_ENDPOINT_ID
    chain_id: int = DEFAULT_CHAIN_ID
    random_length: int = Field(default=10, ge=1, le=31)
    max_batch_size: int = Field(default=5, ge=1)
    node_version: str | None = None
    comment: str | None = None
    cloud_provider: CloudProviderConfig = Field(default_factory=CloudProviderConfig)
    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    json_output: JsonOutputConfig = Field(default_factory=JsonOutputConfig)
    ssh: SshConfig = Field(default_factory=SshConfig)
    funding: FundingConfig = Field(default_factory=FundingConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    contracts: ContractsConfig = Field(default_factory=ContractsConfig)
    deployer: DeployerConfig = Field(default_factory=DeployerConfig)

    @property
    def manual_mining(self) -> bool:
        """HardHat only produces blocks when asked to."""
        return self.test_type == "HardHatProvider"

    @property
    def remote_chain(self) -> bool:
        return self.test_type == "RopstenProvider"

    @property
    def restart_services(self) -> bool:
        return self.test_type not in ("RopstenProvider", "MockedProvider")

    def oracle_provider_url_for(self, request_count: int | None = None) -> str:
        """URL the deployed oracle should use to reach the chain.

        The mocked provider encodes the request count in its path so it
        can fabricate that many request logs.
        """
        if self.oracle_provider_url:
            return self.oracle_provider_url
        if self.test_type == "MockedProvider":
            base = self.mocked_provider_url.rstrip("/")
            return f"{base}/{request_count or 100}/"
        return self.rpc.url


def resolve_path(base_dir: Path, value: str) -> Path:
    """Resolve a config path relative to the config file's directory."""
    path = Path(value).expanduser()
    if path.is_absolute():
        return path
    return base_dir / path
