"""Cloud Functions log backend using the gcloud CLI."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from oraclestress.metrics.backends import LogBackend, LogEvent, run_json_command

ENTRY_POINTS = frozenset(
    {"processProviderRequests", "startCoordinator", "initializeProvider", "callApi"}
)


class CloudFunctionsBackend(LogBackend):
    """Cloud Functions logs; memory usage is not reported."""

    reports_memory = False
    duration_pattern = re.compile(r"Function execution took (\d+) ms")
    memory_pattern = None
    timeout_marker = "finished with status: 'timeout'"
    lookback = timedelta(minutes=122)

    def _project_args(self) -> list[str]:
        return ["--project", self.provider.project_id or "", "--format", "json"]

    async def list_components(self, stage: str) -> list[str]:
        data = await run_json_command(
            "gcloud", "beta", "functions", "list", "--regions", self.provider.region,
            *self._project_args(),
        )
        functions = data if isinstance(data, list) else []
        names = []
        for fn in functions:
            name = fn.get("name", "").rsplit("/", 1)[-1]
            if stage in name and fn.get("entryPoint") in ENTRY_POINTS:
                names.append(name)
        return names

    async def read_logs(self, name: str) -> list[LogEvent]:
        since = datetime.now(timezone.utc) - self.lookback
        data = await run_json_command(
            "gcloud", "beta", "functions", "logs", "read", name,
            "--region", self.provider.region,
            "--start-time", since.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "--limit", "1000",
            *self._project_args(),
        )
        entries = data if isinstance(data, list) else []
        events = []
        for entry in entries:
            stamp = entry.get("time_utc") or entry.get("timestamp") or ""
            try:
                millis = int(datetime.fromisoformat(stamp.replace("Z", "+00:00")).timestamp() * 1000)
            except ValueError:
                millis = 0
            events.append(LogEvent(timestamp=millis, message=entry.get("log", "") or ""))
        return events
