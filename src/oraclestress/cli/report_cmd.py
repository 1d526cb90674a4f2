"""oraclestress report -- show stored results from the JSON output file."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from oraclestress.cli.output import render_components, render_results_table
from oraclestress.storage.json_store import MetricsFileStore


def report(
    results_path: str = typer.Argument("results.json", help="JSON results file"),
    test_key: Optional[str] = typer.Option(None, "--test-key", help="Only this test key"),
    details: bool = typer.Option(False, "--details", help="Per-component breakdown"),
    failures: bool = typer.Option(False, "--failures", help="Only failed runs"),
) -> None:
    """Display stored run results."""
    console = Console()
    path = Path(results_path)
    if not path.exists():
        console.print(f"[yellow]No results found at {path}[/yellow]")
        raise typer.Exit(code=1)

    store = MetricsFileStore(path)
    results = store.for_test_key(test_key) if test_key else store.load_all()
    if failures:
        results = [r for r in results if not r.success]
    if not results:
        console.print("[dim]No matching results.[/dim]")
        return

    render_results_table(results, console)
    if details:
        for result in results:
            console.print(f"[bold]{result.test_key}[/bold] {result.request_count} request(s)")
            render_components(result, console)

    passed = sum(1 for r in results if r.success)
    console.print(f"{passed}/{len(results)} run(s) succeeded")
