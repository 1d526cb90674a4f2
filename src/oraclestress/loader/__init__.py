"""Config loader - YAML parsing, validation, and error reporting."""

from oraclestress.loader.validator import (
    ValidationErrorDetail,
    load_config,
    validate_config_file,
    validate_config_string,
)
from oraclestress.loader.yaml_parser import (
    YAMLParseError,
    parse_yaml_file,
    parse_yaml_with_lines,
)

__all__ = [
    "ValidationErrorDetail",
    "YAMLParseError",
    "load_config",
    "parse_yaml_file",
    "parse_yaml_with_lines",
    "validate_config_file",
    "validate_config_string",
]
