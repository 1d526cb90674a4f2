"""oraclestress data models - re-exports all public model classes."""

from oraclestress.models.config import (
    CloudProviderConfig,
    ContractsConfig,
    DeployerConfig,
    FundingConfig,
    JsonOutputConfig,
    PollingConfig,
    PostgresConfig,
    RequestSet,
    RpcConfig,
    SshConfig,
    StressTestConfig,
)
from oraclestress.models.metrics import (
    LogRecord,
    OnChainMetrics,
    OutputMetrics,
    RunOutcome,
    RunSetReport,
)

__all__ = [
    "CloudProviderConfig",
    "ContractsConfig",
    "DeployerConfig",
    "FundingConfig",
    "JsonOutputConfig",
    "LogRecord",
    "OnChainMetrics",
    "OutputMetrics",
    "PollingConfig",
    "PostgresConfig",
    "RequestSet",
    "RpcConfig",
    "RunOutcome",
    "RunSetReport",
    "SshConfig",
    "StressTestConfig",
]
