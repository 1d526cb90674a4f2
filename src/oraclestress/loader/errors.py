"""Config error formatter with rich human output and concise CI output."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from oraclestress.loader.validator import ValidationErrorDetail


# Pydantic error type prefix -> error code; first match wins
ERROR_CODES: list[tuple[str, str]] = [
    ("extra_forbidden", "E001"),
    ("missing", "E002"),
    ("literal_error", "E005"),
    ("yaml_syntax_error", "E006"),
    ("empty", "E007"),
    ("too_short", "E008"),
    ("greater_than", "E003"),
    ("less_than", "E003"),
    ("value_error", "E003"),
    ("_type", "E004"),
    ("_parsing", "E004"),
]

ERROR_DESCRIPTIONS: dict[str, str] = {
    "E001": "unknown field",
    "E002": "required field missing",
    "E003": "invalid value",
    "E004": "type mismatch",
    "E005": "invalid choice",
    "E006": "YAML syntax error",
    "E007": "empty config",
    "E008": "empty list",
}


def error_code_for(error_type: str) -> str:
    for key, code in ERROR_CODES:
        if key in error_type:
            return code
    return "E999"


class ErrorFormatter:
    """Formats config validation errors.

    Human mode prints Rust-style annotated snippets pointing at the
    offending key. CI mode prints one ``file:line:col -- field: msg``
    line per error.

    Args:
        ci_mode: Force CI output. None auto-detects from the CI
            environment variable.
    """

    def __init__(self, ci_mode: bool | None = None) -> None:
        if ci_mode is None:
            ci_mode = os.environ.get("CI", "").lower() in ("true", "1", "yes")
        self.ci_mode = ci_mode

    def format_error(
        self,
        error: ValidationErrorDetail,
        source_lines: list[str],
        filename: str,
    ) -> str:
        if self.ci_mode:
            suffix = f" ({error.suggestion})" if error.suggestion else ""
            return (
                f"{filename}:{error.line or 0}:{error.col or 0} -- "
                f"{error.field}: {error.message}{suffix}"
            )
        return self._format_rich(error, source_lines, filename)

    def _format_rich(
        self,
        error: ValidationErrorDetail,
        source_lines: list[str],
        filename: str,
    ) -> str:
        """Render an annotated error.

        Example::

            error[E001]: unknown field
              --> stressconfig.yaml:4:3
               |
             4 |   max_atempts: 16
               |   ^^^^^^^^^^^ Extra inputs are not permitted
               |
               = help: Did you mean 'max_attempts'?
        """
        code = error_code_for(error.type)
        lines = [f"error[{code}]: {ERROR_DESCRIPTIONS.get(code, 'validation error')}"]

        line_idx = (error.line or 0) - 1
        if error.line is None or not 0 <= line_idx < len(source_lines):
            location = f"{filename}:{error.line}" if error.line else filename
            lines += [f"  --> {location}", "   |", f"   | {error.field}: {error.message}", "   |"]
        else:
            src_line = source_lines[line_idx].rstrip()
            number = str(error.line)
            gutter = " " * len(number)
            lines += [f"  --> {filename}:{error.line}:{error.col or 1}", "   |"]
            lines.append(f" {number} | {src_line}")
            key = error.field.split(".")[-1]
            start = src_line.find(key)
            if start >= 0:
                lines.append(f" {gutter} | {' ' * start}{'^' * len(key)} {error.message}")
            else:
                lines.append(f" {gutter} | {error.message}")
            lines.append("   |")

        if error.suggestion:
            lines.append(f"   = help: {error.suggestion}")
        return "\n".join(lines)

    def format_all(
        self,
        errors: list[ValidationErrorDetail],
        source: str,
        filename: str,
    ) -> str:
        """Format every error, separated by blank lines."""
        source_lines = source.splitlines()
        return "\n\n".join(self.format_error(e, source_lines, filename) for e in errors)
