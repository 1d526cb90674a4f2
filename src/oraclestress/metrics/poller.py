"""MetricsPoller: poll cloud logs until the oracle has visibly finished.

The poller counts down from ``max_attempts - 1`` to 0. Each round it
sleeps, fetches LogRecords and applies the completion predicate. On
success, or when the last round is reached, it waits a settle delay for
on-chain events to finalise, reconciles them, and returns exactly one
OutputMetrics. Exhaustion is not an error: it yields success=False.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from oraclestress.metrics.backends import LogBackend
from oraclestress.models.config import PollingConfig
from oraclestress.models.metrics import LogRecord, OnChainMetrics, OutputMetrics

logger = logging.getLogger(__name__)

Reconciler = Callable[[list[str]], Awaitable[OnChainMetrics]]

MIN_DURATION_MS = 10
MIN_MEMORY = 10


def is_complete(records: list[LogRecord], expected: int, reports_memory: bool) -> bool:
    """Exactly ``expected`` named components, each with real duration and memory.

    Under- and over-reporting both fail the predicate.
    """
    named = [r for r in records if len(r.name) > 1]
    if len(named) != expected:
        return False
    if len([r for r in records if r.duration_ms > MIN_DURATION_MS]) != expected:
        return False
    if reports_memory and len([r for r in records if r.memory_usage > MIN_MEMORY]) != expected:
        return False
    return True


class MetricsPoller:
    """Bounded polling of a log backend with on-chain reconciliation.

    Args:
        backend: Cloud log backend for the deployed oracle.
        reconcile: Coroutine function summing on-chain metrics for a list
            of RRP addresses.
        polling: Attempt bound, interval, settle delay and expected
            component count.
        sleep: Injectable sleep for tests.
    """

    def __init__(
        self,
        backend: LogBackend,
        reconcile: Reconciler,
        polling: PollingConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._backend = backend
        self._reconcile = reconcile
        self.polling = polling or PollingConfig()
        self._sleep = sleep
        self.attempts_made = 0

    async def _on_chain(self, rrp_addresses: list[str]) -> OnChainMetrics:
        try:
            return await self._reconcile(rrp_addresses)
        except Exception:
            logger.exception("On-chain reconciliation failed")
            return OnChainMetrics.unavailable()

    async def _finish(
        self,
        records: list[LogRecord],
        success: bool,
        rrp_addresses: list[str],
    ) -> OutputMetrics:
        await self._sleep(self.polling.settle_delay_ms / 1000)
        return OutputMetrics(
            success=success,
            metrics=records,
            on_chain_metrics=await self._on_chain(rrp_addresses),
        )

    async def collect(self, stage: str, rrp_addresses: list[str]) -> OutputMetrics:
        """Poll until complete or out of attempts; never raises for backend faults."""
        expected = self.polling.expected_components
        self.attempts_made = 0

        for remaining in range(self.polling.max_attempts - 1, -1, -1):
            await self._sleep(self.polling.interval_ms / 1000)
            self.attempts_made += 1
            try:
                records = await self._backend.fetch_records(stage)
            except Exception as exc:
                logger.warning("Log fetch failed (%d attempt(s) left): %s", remaining, exc)
                continue

            success = is_complete(records, expected, self._backend.reports_memory)
            logger.info(
                "Metrics poll: %d component(s), expected %d, %d attempt(s) left",
                len(records), expected, remaining,
            )
            if success or remaining == 0:
                if not success:
                    logger.warning("Metrics did not complete within %d attempt(s)",
                                   self.polling.max_attempts)
                return await self._finish(records, success, rrp_addresses)

        logger.warning("Metrics polling exhausted without a usable log fetch")
        return OutputMetrics(
            success=False,
            metrics=[],
            on_chain_metrics=await self._on_chain(rrp_addresses),
        )
