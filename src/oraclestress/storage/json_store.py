"""JSON file sink for run metrics.

Results accumulate in one JSON array. Every append rewrites the file
atomically (write to .tmp, then rename) so an interrupted run never
leaves a truncated results file.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

from pydantic import TypeAdapter

from oraclestress.models.metrics import OutputMetrics

logger = logging.getLogger(__name__)

_RESULTS = TypeAdapter(list[OutputMetrics])


class MetricsFileStore:
    """Append-only JSON array of OutputMetrics."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = asyncio.Lock()

    def load_all(self) -> list[OutputMetrics]:
        """Read every stored result; an absent or empty file is an empty list."""
        if not self.path.exists():
            return []
        content = self.path.read_text(encoding="utf-8").strip()
        if not content:
            return []
        return _RESULTS.validate_json(content)

    def append(self, result: OutputMetrics) -> int:
        """Append one result and return the new total."""
        results = self.load_all()
        results.append(result)

        data = [r.model_dump(mode="json") for r in results]
        content = json.dumps(data, indent=2, ensure_ascii=False)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = self.path.with_name(self.path.name + ".tmp")
        tmp_file.write_text(content, encoding="utf-8")
        tmp_file.replace(self.path)
        return len(results)

    async def save(self, result: OutputMetrics) -> None:
        async with self._lock:
            total = await asyncio.to_thread(self.append, result)
        logger.info("Appended result %d to %s", total, self.path)

    def for_test_key(self, test_key: str) -> list[OutputMetrics]:
        return [r for r in self.load_all() if r.test_key == test_key]
