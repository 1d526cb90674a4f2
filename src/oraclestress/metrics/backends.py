"""Cloud log backends and the LogRecord normaliser they share.

A backend only has to list the oracle's components for a deployment
stage and return their raw log events; ``fetch_records`` turns those
into LogRecords the same way for every provider.
"""

from __future__ import annotations

import asyncio
import importlib
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass

from oraclestress.errors import CommandError
from oraclestress.models.config import CloudProviderConfig
from oraclestress.models.metrics import LogRecord

logger = logging.getLogger(__name__)

FAILURE_MARKERS: tuple[str, ...] = ("Exception", "Failed", "ERROR", "Runtime exited with error")
FULFILMENT_MARKER = "submitted for Request"
REQUEST_HANDLER = "processProviderRequests"


@dataclass(frozen=True)
class LogEvent:
    timestamp: int
    message: str


class LogBackend(ABC):
    """Reads an oracle deployment's logs from a cloud provider.

    Subclasses set the regexes used to pull duration and memory out of
    invocation reports and the text that marks a timed-out invocation.
    """

    reports_memory: bool = True
    duration_pattern: re.Pattern[str]
    memory_pattern: re.Pattern[str] | None = None
    timeout_marker: str = ""

    def __init__(self, provider: CloudProviderConfig) -> None:
        self.provider = provider

    @abstractmethod
    async def list_components(self, stage: str) -> list[str]:
        """Names of the deployed components for ``stage``."""

    @abstractmethod
    async def read_logs(self, name: str) -> list[LogEvent]:
        """Recent log events for one component."""

    def to_record(self, name: str, events: list[LogEvent]) -> LogRecord:
        """Normalise raw events: worst duration and memory, failure flags."""
        messages = [e.message for e in events]
        durations = [
            float(m.group(1)) for msg in messages if (m := self.duration_pattern.search(msg))
        ]
        memory = [
            float(m.group(1))
            for msg in messages
            if self.memory_pattern is not None and (m := self.memory_pattern.search(msg))
        ]
        fulfilled = 0
        if REQUEST_HANDLER in name:
            fulfilled = sum(msg.count(FULFILMENT_MARKER) for msg in messages)
        return LogRecord(
            name=name,
            duration_ms=max(durations, default=0.0),
            memory_usage=max(memory, default=0.0),
            logs=messages,
            timed_out=bool(self.timeout_marker)
            and any(self.timeout_marker in msg for msg in messages),
            failed=any(marker in msg for msg in messages for marker in FAILURE_MARKERS),
            fulfilled_requests_count=fulfilled,
        )

    async def fetch_records(self, stage: str) -> list[LogRecord]:
        """One LogRecord per component of ``stage``, fetched concurrently."""
        names = await self.list_components(stage)
        batches = await asyncio.gather(*(self.read_logs(name) for name in names))
        return [self.to_record(name, events) for name, events in zip(names, batches)]


async def run_json_command(*args: str) -> object:
    """Run a cloud CLI and parse its JSON stdout.

    Raises:
        CommandError: On a nonzero exit or unparseable output.
    """
    process = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    command = " ".join(args)
    if process.returncode != 0:
        raise CommandError(
            f"{args[0]} exited with {process.returncode}: {stderr.decode(errors='replace').strip()}",
            command=command,
            returncode=process.returncode,
            output=stderr.decode(errors="replace"),
        )
    text = stdout.decode(errors="replace").strip()
    if not text:
        return []
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise CommandError(f"{args[0]} returned invalid JSON: {exc}", command=command) from exc


# Provider type -> backend class path
BUILTIN_BACKENDS: dict[str, str] = {
    "aws": "oraclestress.metrics.aws.CloudWatchBackend",
    "gcp": "oraclestress.metrics.gcp.CloudFunctionsBackend",
}


def get_backend(provider: CloudProviderConfig) -> LogBackend:
    """Resolve the log backend for a cloud provider config.

    Raises:
        ValueError: If the provider type has no backend.
    """
    dotted_path = BUILTIN_BACKENDS.get(provider.type)
    if dotted_path is None:
        available = ", ".join(sorted(BUILTIN_BACKENDS))
        raise ValueError(f"Unknown cloud provider '{provider.type}'. Available: {available}.")
    module_path, _, class_name = dotted_path.rpartition(".")
    cls = getattr(importlib.import_module(module_path), class_name)
    return cls(provider)
