"""oraclestress validate -- check config files without running anything."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from oraclestress.loader.errors import ErrorFormatter
from oraclestress.loader.validator import validate_config_file


def validate(
    configs: Optional[list[str]] = typer.Argument(
        None, help="Config files to validate (default: ./stressconfig.yaml)"
    ),
    ci: bool = typer.Option(False, "--ci", help="CI-friendly concise output"),
) -> None:
    """Validate stress-test config files.

    Reports every YAML and schema error at once. Exits 0 if all files
    are valid, 1 otherwise.
    """
    formatter = ErrorFormatter(ci_mode=ci)
    files = [Path(c) for c in configs] if configs else [Path.cwd() / "stressconfig.yaml"]

    invalid = 0
    for filepath in files:
        if not filepath.exists():
            typer.echo(f"Error: File not found: {filepath}", err=True)
            invalid += 1
            continue

        _config, errors = validate_config_file(filepath)
        if errors:
            invalid += 1
            source = filepath.read_text(encoding="utf-8")
            typer.echo(formatter.format_all(errors, source, str(filepath)), err=not ci)
        else:
            typer.echo(f"  {filepath} ... valid")

    typer.echo(f"\n{len(files) - invalid}/{len(files)} configs valid")
    if invalid:
        raise typer.Exit(code=1)
