"""Cloud log polling and on-chain reconciliation."""

from oraclestress.metrics.backends import LogBackend, LogEvent, get_backend
from oraclestress.metrics.onchain import collect_on_chain_metrics, reconcile_logs
from oraclestress.metrics.poller import MetricsPoller, is_complete

__all__ = [
    "LogBackend",
    "LogEvent",
    "MetricsPoller",
    "collect_on_chain_metrics",
    "get_backend",
    "is_complete",
    "reconcile_logs",
]
