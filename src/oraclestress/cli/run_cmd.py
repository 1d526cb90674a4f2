"""oraclestress run -- execute every configured request set.

Loads and validates the config, wires a RunCoordinator, runs the full
run-set including the missing-results pass, and exits 0 only when
every request set eventually succeeded.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from oraclestress.cli.output import render_results_table, render_run_report
from oraclestress.errors import ConfigurationError, DeploymentToolError
from oraclestress.execution.coordinator import RunCoordinator
from oraclestress.loader.validator import load_config
from oraclestress.logging_config import setup_logging
from oraclestress.models.config import StressTestConfig
from oraclestress.models.metrics import OutputMetrics, RunSetReport

console = Console(stderr=True)


def run(
    config_path: str = typer.Argument("stressconfig.yaml", help="Path to the stress-test config"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Also append logs to this file"),
) -> None:
    """Run the configured stress tests and record their metrics."""
    setup_logging(log_level, Path(log_file) if log_file else None)
    filepath = Path(config_path)

    try:
        config = load_config(filepath)
        report, results = asyncio.run(_run_async(config, filepath.resolve().parent))
    except ConfigurationError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc}")
        raise typer.Exit(code=1)
    except DeploymentToolError as exc:
        console.print(f"[bold red]Fatal deployment error:[/bold red] {exc}")
        raise typer.Exit(code=1)
    except FileNotFoundError as exc:
        console.print(f"[bold red]Missing file:[/bold red] {exc}")
        raise typer.Exit(code=1)

    output_console = Console()
    if results:
        render_results_table(results, output_console)
    render_run_report(report, output_console)

    if not report.all_succeeded:
        raise typer.Exit(code=1)


async def _run_async(
    config: StressTestConfig,
    base_dir: Path,
) -> tuple[RunSetReport, list[OutputMetrics]]:
    coordinator = RunCoordinator.from_config(config, base_dir)
    try:
        report = await coordinator.run_all()
    finally:
        await coordinator.aclose()
    return report, coordinator.results
