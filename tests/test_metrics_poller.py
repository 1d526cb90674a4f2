"""Tests for the bounded metrics poller and its completion predicate."""

from __future__ import annotations

import pytest

from oraclestress.metrics.backends import LogBackend, LogEvent
from oraclestress.metrics.poller import MetricsPoller, is_complete
from oraclestress.models.config import CloudProviderConfig, PollingConfig
from oraclestress.models.metrics import LogRecord, OnChainMetrics

POLLING = PollingConfig(max_attempts=4, interval_ms=1000, settle_delay_ms=5000, expected_components=4)


def _record(name: str, duration: float = 100.0, memory: float = 80.0) -> LogRecord:
    return LogRecord(name=name, duration_ms=duration, memory_usage=memory)


def _complete(count: int = 4) -> list[LogRecord]:
    return [_record(f"component-{i}") for i in range(count)]


class ScriptedBackend(LogBackend):
    """Returns a scripted sequence of record lists, one per fetch."""

    def __init__(self, script: list[list[LogRecord] | Exception], reports_memory: bool = True) -> None:
        super().__init__(CloudProviderConfig())
        self.script = list(script)
        self.reports_memory = reports_memory
        self.fetches = 0

    async def list_components(self, stage: str) -> list[str]:
        return []

    async def read_logs(self, name: str) -> list[LogEvent]:
        return []

    async def fetch_records(self, stage: str) -> list[LogRecord]:
        self.fetches += 1
        item = self.script[min(self.fetches - 1, len(self.script) - 1)]
        if isinstance(item, Exception):
            raise item
        return item


class Recorder:
    def __init__(self) -> None:
        self.sleeps: list[float] = []
        self.reconciled: list[list[str]] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)

    async def reconcile(self, addresses: list[str]) -> OnChainMetrics:
        self.reconciled.append(addresses)
        return OnChainMetrics(successful_fulfilments=2, made_requests_on_chain=2)


class TestIsComplete:
    """Test the completion predicate."""

    def test_exact_count(self):
        assert is_complete(_complete(4), 4, reports_memory=True)

    def test_under_reporting(self):
        assert not is_complete(_complete(3), 4, reports_memory=True)

    def test_over_reporting(self):
        assert not is_complete(_complete(5), 4, reports_memory=True)

    def test_short_durations_do_not_count(self):
        records = _complete(3) + [_record("component-3", duration=5)]
        assert not is_complete(records, 4, reports_memory=True)

    def test_memory_required_when_reported(self):
        records = _complete(3) + [_record("component-3", memory=0)]
        assert not is_complete(records, 4, reports_memory=True)
        assert is_complete(records, 4, reports_memory=False)

    def test_single_character_names_ignored(self):
        records = _complete(3) + [_record("x")]
        assert not is_complete(records, 4, reports_memory=True)


class TestMetricsPoller:
    """Test polling rounds, exhaustion and reconciliation."""

    @pytest.mark.asyncio
    async def test_completes_on_third_round(self):
        recorder = Recorder()
        backend = ScriptedBackend([_complete(2), _complete(3), _complete(4)])
        poller = MetricsPoller(backend, recorder.reconcile, POLLING, sleep=recorder.sleep)

        output = await poller.collect("abc123", ["0xrrp"])

        assert output.success is True
        assert len(output.metrics) == 4
        assert poller.attempts_made == 3
        assert output.on_chain_metrics.successful_fulfilments == 2
        assert recorder.reconciled == [["0xrrp"]]
        assert recorder.sleeps == [1.0, 1.0, 1.0, 5.0]

    @pytest.mark.asyncio
    async def test_exhaustion_yields_unsuccessful_result(self):
        recorder = Recorder()
        backend = ScriptedBackend([_complete(3)])
        poller = MetricsPoller(backend, recorder.reconcile, POLLING, sleep=recorder.sleep)

        output = await poller.collect("abc123", ["0xrrp"])

        assert output.success is False
        assert len(output.metrics) == 3
        assert backend.fetches == POLLING.max_attempts
        assert recorder.sleeps[-1] == 5.0

    @pytest.mark.asyncio
    async def test_fetch_errors_are_retried(self):
        recorder = Recorder()
        backend = ScriptedBackend([RuntimeError("aws down"), _complete(4)])
        poller = MetricsPoller(backend, recorder.reconcile, POLLING, sleep=recorder.sleep)

        output = await poller.collect("abc123", [])
        assert output.success is True
        assert poller.attempts_made == 2

    @pytest.mark.asyncio
    async def test_every_fetch_fails(self):
        recorder = Recorder()
        backend = ScriptedBackend([RuntimeError("aws down")])
        poller = MetricsPoller(backend, recorder.reconcile, POLLING, sleep=recorder.sleep)

        output = await poller.collect("abc123", ["0xrrp"])
        assert output.success is False
        assert output.metrics == []
        assert recorder.reconciled == [["0xrrp"]]

    @pytest.mark.asyncio
    async def test_reconcile_failure_marks_unavailable(self):
        recorder = Recorder()

        async def broken(addresses):
            raise ConnectionError("node gone")

        poller = MetricsPoller(ScriptedBackend([_complete(4)]), broken, POLLING, sleep=recorder.sleep)
        output = await poller.collect("abc123", ["0xrrp"])

        assert output.success is True
        assert output.on_chain_metrics == OnChainMetrics.unavailable()

    @pytest.mark.asyncio
    async def test_backend_without_memory(self):
        recorder = Recorder()
        records = [_record(f"fn-{i}", memory=0) for i in range(4)]
        backend = ScriptedBackend([records], reports_memory=False)
        poller = MetricsPoller(backend, recorder.reconcile, POLLING, sleep=recorder.sleep)

        assert (await poller.collect("abc123", [])).success is True
