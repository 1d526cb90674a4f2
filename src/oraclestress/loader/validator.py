"""Config validation combining line-tracked YAML parsing with Pydantic.

Two stages: parse YAML with line tracking, then validate against
StressTestConfig. Errors from both stages are enriched with source
positions and collected for batch reporting.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, get_origin

from pydantic import BaseModel, ValidationError

from oraclestress.errors import ConfigurationError
from oraclestress.loader.yaml_parser import (
    YAMLParseError,
    parse_yaml_file,
    parse_yaml_with_lines,
)
from oraclestress.models.config import StressTestConfig


@dataclass
class ValidationErrorDetail:
    """A single validation error with source position and context.

    Attributes:
        field: Dotted path of the offending field.
        message: Human-readable error description.
        type: Pydantic error type string (e.g. 'missing', 'extra_forbidden').
        line: 1-indexed line number in the source YAML, or None if unknown.
        col: 1-indexed column number in the source YAML, or None if unknown.
        suggestion: 'Did you mean X?' suggestion for typos, or None.
        input_value: The invalid input value, if available.
    """

    field: str
    message: str
    type: str
    line: int | None = None
    col: int | None = None
    suggestion: str | None = None
    input_value: Any = field(default=None)


def _find_line_for_field(
    field_path: str,
    line_map: dict[str, tuple[int, int]],
) -> tuple[int | None, int | None]:
    """Look up a field's position, falling back to its nearest parent."""
    parts = field_path.split(".")
    while parts:
        prefix = ".".join(parts)
        if prefix in line_map:
            return line_map[prefix]
        parts.pop()
    return None, None


def _model_at(loc: tuple[str | int, ...]) -> type[BaseModel] | None:
    """Walk StressTestConfig along loc and return the model owning the last key."""
    model: type[BaseModel] = StressTestConfig
    for part in loc[:-1]:
        if isinstance(part, int) or str(part).isdigit():
            continue
        info = model.model_fields.get(str(part))
        if info is None:
            return None
        annotation = info.annotation
        candidates = [annotation, *getattr(annotation, "__args__", ())]
        nested = next(
            (
                c
                for c in candidates
                if get_origin(c) is None and isinstance(c, type) and issubclass(c, BaseModel)
            ),
            None,
        )
        if nested is None:
            return None
        model = nested
    return model


def _get_suggestion(loc: tuple[str | int, ...]) -> str | None:
    """Suggest the closest valid field name for an unknown key."""
    if not loc:
        return None
    model = _model_at(loc)
    if model is None:
        return None
    matches = difflib.get_close_matches(str(loc[-1]), list(model.model_fields), n=1, cutoff=0.6)
    if matches:
        return f"Did you mean '{matches[0]}'?"
    return None


def validate_config(
    raw_data: dict[str, Any],
    line_map: dict[str, tuple[int, int]],
) -> tuple[StressTestConfig | None, list[ValidationErrorDetail]]:
    """Validate parsed YAML data against StressTestConfig.

    Returns:
        Tuple of (config, []) on success, or (None, errors) on failure.
    """
    try:
        return StressTestConfig.model_validate(raw_data), []
    except ValidationError as e:
        errors: list[ValidationErrorDetail] = []
        for err in e.errors():
            loc = err.get("loc", ())
            field_path = ".".join(str(part) for part in loc)
            error_type = err.get("type", "unknown")
            line, col = _find_line_for_field(field_path, line_map)
            suggestion = _get_suggestion(loc) if error_type == "extra_forbidden" else None
            errors.append(
                ValidationErrorDetail(
                    field=field_path or "<root>",
                    message=err.get("msg", "Validation error"),
                    type=error_type,
                    line=line,
                    col=col,
                    suggestion=suggestion,
                    input_value=err.get("input"),
                )
            )
        return None, errors


def _yaml_error(exc: YAMLParseError) -> list[ValidationErrorDetail]:
    return [
        ValidationErrorDetail(
            field="<yaml>",
            message=exc.message,
            type="yaml_syntax_error",
            line=exc.line,
            col=exc.column,
        )
    ]


def validate_config_file(
    filepath: Path,
) -> tuple[StressTestConfig | None, list[ValidationErrorDetail]]:
    """Validate a stress-test config file, returning all errors at once."""
    try:
        raw_data, line_map = parse_yaml_file(filepath)
    except YAMLParseError as e:
        return None, _yaml_error(e)

    if raw_data is None:
        return None, [
            ValidationErrorDetail(
                field="<yaml>",
                message="File is empty or is not a mapping",
                type="empty_file",
            )
        ]
    return validate_config(raw_data, line_map)


def validate_config_string(
    source: str,
    filename: str = "<string>",
) -> tuple[StressTestConfig | None, list[ValidationErrorDetail]]:
    """Validate a stress-test config held in a string."""
    try:
        raw_data, line_map = parse_yaml_with_lines(source, filename=filename)
    except YAMLParseError as e:
        return None, _yaml_error(e)

    if raw_data is None:
        return None, [
            ValidationErrorDetail(
                field="<yaml>",
                message="Input is empty or is not a mapping",
                type="empty_input",
            )
        ]
    return validate_config(raw_data, line_map)


def load_config(filepath: Path) -> StressTestConfig:
    """Load a config file or raise ConfigurationError listing every problem.

    Raises:
        ConfigurationError: If the file is missing or fails validation.
    """
    if not filepath.exists():
        raise ConfigurationError(f"Config file not found: {filepath}")

    config, errors = validate_config_file(filepath)
    if errors or config is None:
        summary = "; ".join(
            f"{e.field}: {e.message}" + (f" (line {e.line})" if e.line else "")
            for e in errors
        )
        raise ConfigurationError(f"Invalid config {filepath}: {summary}")
    return config
