"""RunCoordinator: one run, a run with retries, and a full run-set.

A run sets up every chain in order, stopping at the first failure, renders
and deploys the oracle, polls its metrics and persists one
OutputMetrics. A run-set repeats runs per RequestSet, then gives every
RequestSet that never succeeded one more pass before removing the
deployment.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from functools import partial
from pathlib import Path
from typing import Protocol

import httpx

from oraclestress.chain.pipeline import ChainSetupPipeline, load_contract_artifacts
from oraclestress.chain.rpc import ResilientRpcClient
from oraclestress.chain.types import ChainDeployment
from oraclestress.chain.wallet import SequencedSigner, account_from_mnemonic
from oraclestress.deploy.deployer import OracleDeployer
from oraclestress.deploy.render import write_deployment_files
from oraclestress.deploy.services import ServiceRestarter
from oraclestress.errors import WalletOperationError
from oraclestress.metrics.backends import get_backend
from oraclestress.metrics.onchain import collect_on_chain_metrics
from oraclestress.metrics.poller import MetricsPoller
from oraclestress.models.config import RequestSet, StressTestConfig, resolve_path
from oraclestress.models.metrics import OnChainMetrics, OutputMetrics, RunOutcome, RunSetReport
from oraclestress.storage.database import MetricsDatabase
from oraclestress.storage.json_store import MetricsFileStore

logger = logging.getLogger(__name__)

MANUAL_MINING_INTERVAL_MS = 15_000


class MetricsSink(Protocol):
    async def save(self, result: OutputMetrics) -> None: ...


def build_sinks(config: StressTestConfig, base_dir: Path) -> list[MetricsSink]:
    """Enabled result sinks, JSON file first."""
    sinks: list[MetricsSink] = []
    if config.json_output.enabled:
        sinks.append(MetricsFileStore(resolve_path(base_dir, config.json_output.file_path)))
    if config.postgres.enabled:
        sinks.append(MetricsDatabase(config.postgres.sqlalchemy_url()))
    return sinks


def _now_ms() -> int:
    return int(time.time() * 1000)


class RunCoordinator:
    """Drives stress runs end to end.

    Args:
        config: Run configuration.
        rpc: Shared RPC client.
        master: Nonce-managed funding signer.
        pipeline: Per-chain setup.
        deployer: Oracle deploy/remove.
        poller: Metrics polling.
        write_deployment: Renders oracle config for (rrp_addresses,
            request_count) and returns the deployment stage.
        sinks: Where OutputMetrics are persisted.
        services: Chain services restarter, if this test type uses one.
        test_key: Shared by every result of this process.
        sleep: Injectable sleep for tests.
    """

    def __init__(
        self,
        config: StressTestConfig,
        *,
        rpc: ResilientRpcClient,
        master: SequencedSigner,
        pipeline: ChainSetupPipeline,
        deployer: OracleDeployer,
        poller: MetricsPoller,
        write_deployment: Callable[[list[str], int], str],
        sinks: list[MetricsSink] | None = None,
        services: ServiceRestarter | None = None,
        test_key: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.rpc = rpc
        self.master = master
        self.pipeline = pipeline
        self.deployer = deployer
        self.poller = poller
        self._write_deployment = write_deployment
        self.sinks = sinks or []
        self.services = services
        self.test_key = test_key or str(uuid.uuid4())
        self._sleep = sleep
        self.results: list[OutputMetrics] = []

    @classmethod
    def from_config(
        cls,
        config: StressTestConfig,
        base_dir: Path,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> RunCoordinator:
        """Wire real components from configuration.

        Raises:
            ConfigurationError: If SSH settings are incomplete.
            FileNotFoundError: If contract artifacts are missing.
        """
        rpc = ResilientRpcClient.from_config(config.rpc, transport=transport)
        master = SequencedSigner(account_from_mnemonic(config.master_mnemonic), rpc, config.chain_id)
        rrp_artifact, requester_artifact = load_contract_artifacts(config, base_dir)
        poller = MetricsPoller(
            get_backend(config.cloud_provider),
            partial(collect_on_chain_metrics, rpc, block_window=config.polling.block_window),
            config.polling,
        )
        return cls(
            config,
            rpc=rpc,
            master=master,
            pipeline=ChainSetupPipeline(config, rpc, master, rrp_artifact, requester_artifact),
            deployer=OracleDeployer(config.deployer, base_dir),
            poller=poller,
            write_deployment=partial(write_deployment_files, config, base_dir),
            sinks=build_sinks(config, base_dir),
            services=ServiceRestarter(config.ssh, base_dir) if config.restart_services else None,
        )

    async def aclose(self) -> None:
        await self.rpc.aclose()
        for sink in self.sinks:
            if isinstance(sink, MetricsDatabase):
                sink.close()

    async def _prepare_manual_mining(self) -> None:
        """Stop automining, mine once, then mine on a fixed interval."""
        await self.rpc.set_automine(False)
        await self.rpc.set_interval_mining(0)
        await self.rpc.mine()
        await self.rpc.set_interval_mining(MANUAL_MINING_INTERVAL_MS)

    async def _setup_chains(self, request_set: RequestSet) -> list[ChainDeployment]:
        """Set up chains one at a time, stopping at the first that fails."""
        deployments: list[ChainDeployment] = []
        for index in range(request_set.chain_count):
            deployments.append(await self.pipeline.run(index, request_set.wallet_count))
        return deployments

    async def _persist(self, result: OutputMetrics) -> None:
        self.results.append(result)
        for sink in self.sinks:
            try:
                await sink.save(result)
            except Exception:
                logger.exception("Failed to persist result to %s", type(sink).__name__)

    async def run_once(self, request_set: RequestSet) -> OutputMetrics:
        """One full run attempt. Always persists and returns one OutputMetrics.

        Raises:
            DeploymentToolError: If the oracle cannot be deployed.
        """
        run_start = _now_ms()
        logger.info("Run %s: %s", self.test_key, request_set.describe())

        await self.deployer.remove()
        if self.services is not None:
            await self.services.restart()
        await self.master.nonces.reset()
        if self.config.manual_mining:
            await self._prepare_manual_mining()

        try:
            deployments = await self._setup_chains(request_set)
        except WalletOperationError as exc:
            logger.error("Chain setup failed: %s", exc)
            metrics = OutputMetrics(success=False, on_chain_metrics=OnChainMetrics.unavailable())
        else:
            rrp_addresses = [d.rrp_address for d in deployments]
            logger.info("Requests submitted on %d chain(s); waiting for them to be mined",
                        len(deployments))
            stage = self._write_deployment(rrp_addresses, request_set.request_count)
            await self._sleep(self.config.deployer.mined_wait_s)
            await self.deployer.deploy()
            metrics = await self.poller.collect(stage, rrp_addresses)

        run_end = _now_ms()
        result = metrics.model_copy(
            update={
                "test_key": self.test_key,
                "test_type": self.config.test_type,
                "comment": self.config.comment,
                "request_count": request_set.request_count,
                "wallet_count": request_set.wallet_count,
                "chain_count": request_set.chain_count,
                "run_start": run_start,
                "run_end": run_end,
                "run_delta_ms": run_end - run_start,
            }
        )
        await self._persist(result)
        logger.info("Run finished: success=%s in %.1fs", result.success, result.run_delta_ms / 1000)
        return result

    async def run_with_retries(self, request_set: RequestSet) -> RunOutcome:
        """Repeat run_once with the same RequestSet until it succeeds or tries run out."""
        tries = self.config.tries
        for attempt in range(1, tries + 1):
            result = await self.run_once(request_set)
            if result.success:
                return RunOutcome(request_set=request_set, success=True, tries_remaining=tries - attempt)
            logger.warning("Attempt %d/%d for %s failed", attempt, tries, request_set.describe())
        return RunOutcome(request_set=request_set, success=False, tries_remaining=0)

    async def run_set(
        self,
        request_sets: list[RequestSet],
        repeats: int | None = None,
    ) -> list[RequestSet]:
        """Run every set ``repeats`` times (default run_repeats); return those that succeeded."""
        repeats = self.config.run_repeats if repeats is None else repeats
        succeeded: list[RequestSet] = []
        for request_set in request_sets:
            for _ in range(repeats):
                outcome = await self.run_with_retries(request_set)
                if outcome.success and request_set not in succeeded:
                    succeeded.append(request_set)
        return succeeded

    async def run_all(self) -> RunSetReport:
        """Run the configured sets, re-run the ones that never succeeded, then clean up."""
        request_sets = self.config.test_runs
        succeeded = await self.run_set(request_sets)
        missing = [rs for rs in request_sets if rs not in succeeded]

        rerun: list[RequestSet] = []
        if missing:
            logger.info("Re-running %d request set(s) with missing results", len(missing))
            rerun = await self.run_set(missing, repeats=1)

        await self.deployer.remove()
        return RunSetReport(succeeded=succeeded, missing=missing, rerun_succeeded=rerun)
