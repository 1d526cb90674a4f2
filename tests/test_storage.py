"""Tests for the JSON and SQL metrics sinks."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from oraclestress.models.metrics import LogRecord, OnChainMetrics, OutputMetrics
from oraclestress.storage.database import MetricsDatabase
from oraclestress.storage.json_store import MetricsFileStore


def _result(test_key: str = "key-1", success: bool = True, request_count: int = 2) -> OutputMetrics:
    return OutputMetrics(
        test_key=test_key,
        test_type="HardHatProvider",
        comment="nightly",
        request_count=request_count,
        wallet_count=request_count,
        chain_count=1,
        run_start=1_700_000_000_000,
        run_end=1_700_000_090_000,
        run_delta_ms=90_000,
        success=success,
        metrics=[LogRecord(name="airnode-abc123-callApi", duration_ms=120.5, memory_usage=88)],
        on_chain_metrics=OnChainMetrics(successful_fulfilments=2, made_requests_on_chain=2),
    )


class TestMetricsFileStore:
    """Tests for the append-only JSON file."""

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert MetricsFileStore(tmp_path / "results.json").load_all() == []

    def test_empty_file_is_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "results.json"
        path.write_text("")
        assert MetricsFileStore(path).load_all() == []

    def test_append_accumulates(self, tmp_path: Path) -> None:
        store = MetricsFileStore(tmp_path / "nested" / "results.json")
        assert store.append(_result("a")) == 1
        assert store.append(_result("b")) == 2

        loaded = store.load_all()
        assert [r.test_key for r in loaded] == ["a", "b"]
        assert loaded[0].metrics[0].duration_ms == 120.5
        assert not list((tmp_path / "nested").glob("*.tmp"))

    def test_file_is_a_json_array(self, tmp_path: Path) -> None:
        path = tmp_path / "results.json"
        MetricsFileStore(path).append(_result())
        data = json.loads(path.read_text())
        assert isinstance(data, list)
        assert data[0]["on_chain_metrics"]["made_requests_on_chain"] == 2

    def test_for_test_key(self, tmp_path: Path) -> None:
        store = MetricsFileStore(tmp_path / "results.json")
        store.append(_result("a"))
        store.append(_result("b"))
        store.append(_result("a", success=False))
        assert [r.success for r in store.for_test_key("a")] == [True, False]

    @pytest.mark.asyncio
    async def test_concurrent_saves_keep_every_result(self, tmp_path: Path) -> None:
        import asyncio

        store = MetricsFileStore(tmp_path / "results.json")
        await asyncio.gather(*(store.save(_result(f"k{i}")) for i in range(8)))
        assert sorted(r.test_key for r in store.load_all()) == [f"k{i}" for i in range(8)]


class TestMetricsDatabase:
    """Tests for the SQLAlchemy sink on in-memory SQLite."""

    def test_insert_and_fetch(self) -> None:
        db = MetricsDatabase("sqlite://")
        try:
            row_id = db.insert(_result("a"))
            assert row_id == 1
            rows = db.fetch()
            assert len(rows) == 1
            row = rows[0]
            assert row.test_key == "a"
            assert row.run_delta == 90_000
            assert row.metrics[0]["name"] == "airnode-abc123-callApi"
            assert row.on_chain_metrics["successful_fulfilments"] == 2
            assert row.comment == "nightly"
        finally:
            db.close()

    def test_fetch_by_test_key(self) -> None:
        db = MetricsDatabase("sqlite://")
        try:
            db.insert(_result("a"))
            db.insert(_result("b"))
            db.insert(_result("a", request_count=5))
            assert [r.request_count for r in db.fetch("a")] == [2, 5]
        finally:
            db.close()

    @pytest.mark.asyncio
    async def test_async_save(self) -> None:
        db = MetricsDatabase("sqlite://")
        try:
            await db.save(_result("async"))
            assert db.fetch("async")[0].success is True
        finally:
            db.close()
