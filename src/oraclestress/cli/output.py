"""Rich terminal output for run results."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from rich import box
from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from oraclestress.models.metrics import OutputMetrics, RunSetReport


_SUCCESS_STYLES: dict[bool, tuple[str, str]] = {
    True: ("✓ PASS", "bold green"),
    False: ("✗ FAIL", "bold red"),
}


def _stamp(epoch_ms: int) -> str:
    if not epoch_ms:
        return "-"
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _on_chain(result: OutputMetrics) -> str:
    m = result.on_chain_metrics
    if m.made_requests_on_chain < 0:
        return "unavailable"
    return (
        f"{m.successful_fulfilments}/{m.made_requests_on_chain} fulfilled, "
        f"{m.failed_fulfilments} failed, {m.outstanding_requests} outstanding"
    )


def render_results_table(results: list[OutputMetrics], console: Console) -> None:
    """One row per run attempt."""
    table = Table(box=box.ROUNDED)
    table.add_column("Started")
    table.add_column("Result")
    table.add_column("Requests", justify="right")
    table.add_column("Wallets", justify="right")
    table.add_column("Chains", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Components", justify="right")
    table.add_column("On-chain")

    for result in results:
        symbol, style = _SUCCESS_STYLES[result.success]
        table.add_row(
            _stamp(result.run_start),
            f"[{style}]{symbol}[/{style}]",
            str(result.request_count),
            str(result.wallet_count),
            str(result.chain_count),
            f"{result.run_delta_ms / 1000:.1f}s",
            str(len(result.metrics)),
            _on_chain(result),
        )
    console.print(table)


def render_components(result: OutputMetrics, console: Console) -> None:
    """Per-component breakdown for one run."""
    table = Table(box=box.SIMPLE)
    table.add_column("Component")
    table.add_column("Duration", justify="right")
    table.add_column("Memory", justify="right")
    table.add_column("Fulfilled", justify="right")
    table.add_column("Flags")
    for record in result.metrics:
        flags = [f for f, on in (("timed out", record.timed_out), ("failed", record.failed)) if on]
        table.add_row(
            record.name,
            f"{record.duration_ms:.0f} ms",
            f"{record.memory_usage:.0f}" if record.memory_usage else "-",
            str(record.fulfilled_requests_count),
            ", ".join(flags) or "-",
        )
    console.print(table)


def render_run_report(report: RunSetReport, console: Console) -> None:
    """Headline for a finished run-set."""
    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    symbol, style = _SUCCESS_STYLES[report.all_succeeded]
    table.add_row("Verdict", f"[{style}]{symbol}[/{style}]")
    table.add_row("Succeeded", ", ".join(rs.describe() for rs in report.succeeded) or "-")
    if report.missing:
        table.add_row("Re-run", ", ".join(rs.describe() for rs in report.missing))
        table.add_row("Re-run succeeded", ", ".join(rs.describe() for rs in report.rerun_succeeded) or "-")
    console.print(table)
