"""Run result models.

LogRecord is produced per cloud component by the log backends,
OutputMetrics is the write-once record persisted for each run attempt.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from oraclestress.models.config import RequestSet


class LogRecord(BaseModel):
    """Normalised view of one oracle component's cloud logs."""

    name: str
    duration_ms: float = 0.0
    memory_usage: float = 0.0
    logs: list[str] = Field(default_factory=list)
    timed_out: bool = False
    failed: bool = False
    fulfilled_requests_count: int = 0


class OnChainMetrics(BaseModel):
    """Request/fulfilment counts reconstructed from chain events.

    Every field is -1 when reconciliation itself could not be done.
    """

    failed_fulfilments: int = 0
    successful_fulfilments: int = 0
    made_requests_on_chain: int = 0
    outstanding_requests: int = 0

    @classmethod
    def unavailable(cls) -> OnChainMetrics:
        return cls(
            failed_fulfilments=-1,
            successful_fulfilments=-1,
            made_requests_on_chain=-1,
            outstanding_requests=-1,
        )

    def __add__(self, other: OnChainMetrics) -> OnChainMetrics:
        return OnChainMetrics(
            failed_fulfilments=self.failed_fulfilments + other.failed_fulfilments,
            successful_fulfilments=self.successful_fulfilments + other.successful_fulfilments,
            made_requests_on_chain=self.made_requests_on_chain + other.made_requests_on_chain,
            outstanding_requests=self.outstanding_requests + other.outstanding_requests,
        )


class OutputMetrics(BaseModel):
    """Terminal record for one run attempt.

    Timestamps are epoch milliseconds. ``success`` reflects the
    metrics completion predicate, never an exception.
    """

    test_key: str = ""
    test_type: str = ""
    comment: str | None = None
    request_count: int = 0
    wallet_count: int = 0
    chain_count: int = 0
    run_start: int = 0
    run_end: int = 0
    run_delta_ms: int = 0
    success: bool = False
    metrics: list[LogRecord] = Field(default_factory=list)
    on_chain_metrics: OnChainMetrics = Field(default_factory=OnChainMetrics)


class RunOutcome(BaseModel):
    """Result of running one RequestSet with retries."""

    request_set: RequestSet
    success: bool
    tries_remaining: int = 0


class RunSetReport(BaseModel):
    """Summary of a full run-set including the missing-results pass."""

    succeeded: list[RequestSet] = Field(default_factory=list)
    missing: list[RequestSet] = Field(default_factory=list)
    rerun_succeeded: list[RequestSet] = Field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        still_missing = [rs for rs in self.missing if rs not in self.rerun_succeeded]
        return not still_missing
