"""Tests for cloud log backends and LogRecord normalisation."""

from __future__ import annotations

import pytest

from oraclestress.errors import CommandError
from oraclestress.metrics import aws as aws_module
from oraclestress.metrics import gcp as gcp_module
from oraclestress.metrics.aws import CloudWatchBackend
from oraclestress.metrics.backends import LogEvent, get_backend, run_json_command
from oraclestress.metrics.gcp import CloudFunctionsBackend
from oraclestress.models.config import CloudProviderConfig

AWS = CloudProviderConfig(type="aws", region="us-east-1")
GCP = CloudProviderConfig(type="gcp", region="us-east1", project_id="stress-project")


def _events(*messages: str) -> list[LogEvent]:
    return [LogEvent(timestamp=i, message=m) for i, m in enumerate(messages)]


class TestCloudWatchRecords:
    """Test Lambda REPORT parsing."""

    def test_worst_duration_and_memory(self):
        backend = CloudWatchBackend(AWS)
        record = backend.to_record(
            "/aws/lambda/airnode-abc123-callApi",
            _events(
                "REPORT RequestId: 1\tDuration: 120.50 ms\tBilled Duration: 121 ms\tMax Memory Used: 88 MB",
                "REPORT RequestId: 2\tDuration: 340.25 ms\tBilled Duration: 341 ms\tMax Memory Used: 91 MB",
            ),
        )
        assert record.duration_ms == 340.25
        assert record.memory_usage == 91
        assert record.timed_out is False
        assert record.failed is False
        assert len(record.logs) == 2

    def test_timeout_and_failure_flags(self):
        backend = CloudWatchBackend(AWS)
        record = backend.to_record(
            "/aws/lambda/airnode-abc123-startCoordinator",
            _events("Task timed out after 20.02 seconds", "ERROR something broke"),
        )
        assert record.timed_out is True
        assert record.failed is True

    def test_fulfilments_counted_for_request_handler_only(self):
        backend = CloudWatchBackend(AWS)
        lines = _events(
            "Transaction 0x1 submitted for Request 0xaa",
            "Transaction 0x2 submitted for Request 0xbb",
        )
        handler = backend.to_record("/aws/lambda/airnode-abc123-processProviderRequests", lines)
        other = backend.to_record("/aws/lambda/airnode-abc123-callApi", lines)
        assert handler.fulfilled_requests_count == 2
        assert other.fulfilled_requests_count == 0

    def test_no_reports(self):
        record = CloudWatchBackend(AWS).to_record("x-callApi", [])
        assert record.duration_ms == 0.0
        assert record.memory_usage == 0.0

    @pytest.mark.asyncio
    async def test_fetch_records_filters_by_stage(self, monkeypatch):
        calls: list[tuple[str, ...]] = []

        async def fake_command(*args: str):
            calls.append(args)
            if "describe-log-groups" in args:
                return {
                    "logGroups": [
                        {"logGroupName": "/aws/lambda/airnode-abc123-callApi"},
                        {"logGroupName": "/aws/lambda/airnode-zzz999-callApi"},
                    ]
                }
            return {"events": [{"timestamp": 1, "message": "REPORT\tDuration: 50.0 ms\tMax Memory Used: 70 MB"}]}

        monkeypatch.setattr(aws_module, "run_json_command", fake_command)
        records = await CloudWatchBackend(AWS).fetch_records("abc123")

        assert [r.name for r in records] == ["/aws/lambda/airnode-abc123-callApi"]
        assert records[0].duration_ms == 50.0
        assert calls[0][:2] == ("aws", "logs")


class TestCloudFunctionsRecords:
    """Test Cloud Functions parsing."""

    def test_duration_without_memory(self):
        backend = CloudFunctionsBackend(GCP)
        record = backend.to_record(
            "airnode-abc123-callApi",
            _events("Function execution took 812 ms, finished with status: 'ok'"),
        )
        assert backend.reports_memory is False
        assert record.duration_ms == 812
        assert record.memory_usage == 0.0

    def test_timeout(self):
        record = CloudFunctionsBackend(GCP).to_record(
            "airnode-abc123-callApi",
            _events("Function execution took 60002 ms, finished with status: 'timeout'"),
        )
        assert record.timed_out is True

    @pytest.mark.asyncio
    async def test_lists_entry_points_for_stage(self, monkeypatch):
        async def fake_command(*args: str):
            if "list" in args:
                return [
                    {"name": "projects/p/locations/r/functions/airnode-abc123-run", "entryPoint": "callApi"},
                    {"name": "projects/p/locations/r/functions/airnode-abc123-x", "entryPoint": "other"},
                    {"name": "projects/p/locations/r/functions/airnode-qqq-run", "entryPoint": "callApi"},
                ]
            return [{"time_utc": "2026-01-01T00:00:00Z", "log": "Function execution took 5 ms"}]

        monkeypatch.setattr(gcp_module, "run_json_command", fake_command)
        backend = CloudFunctionsBackend(GCP)
        assert await backend.list_components("abc123") == ["airnode-abc123-run"]
        events = await backend.read_logs("airnode-abc123-run")
        assert events[0].timestamp > 0


class TestGetBackend:
    """Test provider resolution."""

    def test_aws(self):
        assert isinstance(get_backend(AWS), CloudWatchBackend)

    def test_gcp(self):
        assert isinstance(get_backend(GCP), CloudFunctionsBackend)


class TestRunJsonCommand:
    """Test the subprocess wrapper."""

    @pytest.mark.asyncio
    async def test_parses_stdout(self):
        assert await run_json_command("echo", '{"ok": true}') == {"ok": True}

    @pytest.mark.asyncio
    async def test_empty_output(self):
        assert await run_json_command("true") == []

    @pytest.mark.asyncio
    async def test_nonzero_exit(self):
        with pytest.raises(CommandError) as exc_info:
            await run_json_command("false")
        assert exc_info.value.returncode == 1

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        with pytest.raises(CommandError, match="invalid JSON"):
            await run_json_command("echo", "not json")
