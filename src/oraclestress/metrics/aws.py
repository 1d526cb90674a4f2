"""CloudWatch log backend using the aws CLI."""

from __future__ import annotations

import re
import time

from oraclestress.metrics.backends import LogBackend, LogEvent, run_json_command

LOG_GROUP_PREFIX = "/aws/lambda/airnode-"


class CloudWatchBackend(LogBackend):
    """Lambda logs: REPORT lines carry duration and max memory."""

    reports_memory = True
    duration_pattern = re.compile(r"\tDuration: ([\d.]+) ms")
    memory_pattern = re.compile(r"Max Memory Used: ([\d.]+) MB")
    timeout_marker = "Task timed out after"
    lookback_ms = 2 * 60 * 60 * 1000

    def _base_args(self) -> list[str]:
        return ["aws", "logs", "--region", self.provider.region, "--output", "json"]

    async def list_components(self, stage: str) -> list[str]:
        data = await run_json_command(
            *self._base_args(),
            "describe-log-groups",
            "--log-group-name-prefix",
            LOG_GROUP_PREFIX,
        )
        groups = data.get("logGroups", []) if isinstance(data, dict) else []
        return [
            group["logGroupName"]
            for group in groups
            if stage in group.get("logGroupName", "")
        ]

    async def read_logs(self, name: str) -> list[LogEvent]:
        start = int(time.time() * 1000) - self.lookback_ms
        data = await run_json_command(
            *self._base_args(),
            "filter-log-events",
            "--log-group-name",
            name,
            "--start-time",
            str(start),
        )
        events = data.get("events", []) if isinstance(data, dict) else []
        return [LogEvent(timestamp=e.get("timestamp", 0), message=e.get("message", "")) for e in events]
