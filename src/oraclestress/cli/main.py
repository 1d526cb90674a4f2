"""oraclestress CLI entry point."""

import typer

from oraclestress import __version__
from oraclestress.cli.derive_cmd import derive_sponsor_wallet
from oraclestress.cli.report_cmd import report as report_cmd
from oraclestress.cli.run_cmd import run
from oraclestress.cli.validate_cmd import validate

app = typer.Typer(
    name="oraclestress",
    help="Stress-test runner for request/response blockchain oracles",
    no_args_is_help=True,
)

# Register subcommands
app.command(name="derive-sponsor-wallet")(derive_sponsor_wallet)
app.command(name="report")(report_cmd)
app.command()(run)
app.command()(validate)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"oraclestress {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Stress-test runner for request/response blockchain oracles."""
