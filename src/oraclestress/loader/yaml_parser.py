"""Config YAML parser with line tracking.

A PyYAML SafeLoader subclass records the source position of every key
so validation errors can point at the offending line of
stressconfig.yaml. An ``!env`` tag pulls secrets such as database
passwords or mnemonics from the environment instead of the file.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml


class YAMLParseError(Exception):
    """Raised when the config file is not valid YAML.

    Attributes:
        line: 1-indexed line number where the error occurred.
        column: 1-indexed column number where the error occurred.
        message: Human-readable description of the syntax error.
        filename: Name of the file being parsed, or '<string>'.
    """

    def __init__(
        self,
        message: str,
        line: int | None = None,
        column: int | None = None,
        filename: str = "<string>",
    ) -> None:
        self.message = message
        self.line = line
        self.column = column
        self.filename = filename
        super().__init__(message)


class LineTrackingLoader(yaml.SafeLoader):
    """SafeLoader that maps dotted key paths to (line, column), 1-indexed.

    Sequence items contribute their index to the path, so the second
    entry of ``test_runs`` is reported as ``test_runs.1.wallet_count``.
    """

    def __init__(self, stream: str) -> None:
        super().__init__(stream)
        self.line_map: dict[str, tuple[int, int]] = {}
        self._path: list[str] = []

    def _record(self, key: str, node: yaml.Node) -> None:
        if node.start_mark is None:
            return
        full_key = ".".join([*self._path, key])
        self.line_map[full_key] = (node.start_mark.line + 1, node.start_mark.column + 1)

    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> dict[Any, Any]:
        self.flatten_mapping(node)
        mapping: dict[Any, Any] = {}
        for key_node, value_node in node.value:
            key = self.construct_object(key_node, deep=deep)
            if not isinstance(key, str):
                mapping[key] = self.construct_object(value_node, deep=deep)
                continue

            self._record(key, key_node)
            self._path.append(key)
            try:
                mapping[key] = self.construct_object(value_node, deep=deep)
            finally:
                self._path.pop()
        return mapping

    def construct_sequence(self, node: yaml.SequenceNode, deep: bool = False) -> list[Any]:
        items = []
        for idx, child in enumerate(node.value):
            self._path.append(str(idx))
            try:
                items.append(self.construct_object(child, deep=deep))
            finally:
                self._path.pop()
        return items

    def construct_yaml_map(self, node: yaml.MappingNode) -> Any:
        yield self.construct_mapping(node, deep=True)

    def construct_yaml_seq(self, node: yaml.SequenceNode) -> Any:
        yield self.construct_sequence(node, deep=True)


def _env_constructor(loader: LineTrackingLoader, node: yaml.ScalarNode) -> str:
    """Resolve ``!env NAME`` or ``!env NAME:default`` from os.environ."""
    spec = loader.construct_scalar(node)
    name, _, default = spec.partition(":")
    value = os.environ.get(name.strip())
    if value is None:
        if default:
            return default
        raise yaml.constructor.ConstructorError(
            None, None, f"environment variable '{name.strip()}' is not set", node.start_mark
        )
    return value


LineTrackingLoader.add_constructor("tag:yaml.org,2002:map", LineTrackingLoader.construct_yaml_map)
LineTrackingLoader.add_constructor("tag:yaml.org,2002:seq", LineTrackingLoader.construct_yaml_seq)
LineTrackingLoader.add_constructor("!env", _env_constructor)


def parse_yaml_with_lines(
    source: str,
    filename: str = "<string>",
) -> tuple[dict | None, dict[str, tuple[int, int]]]:
    """Parse YAML and return (data, line_map).

    Returns (None, {}) when the document is empty or is not a mapping.

    Raises:
        YAMLParseError: If the YAML contains syntax errors.
    """
    loader = LineTrackingLoader(source)
    try:
        data = loader.get_single_data()
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        raise YAMLParseError(
            message=str(e),
            line=mark.line + 1 if mark is not None else None,
            column=mark.column + 1 if mark is not None else None,
            filename=filename,
        ) from e
    finally:
        loader.dispose()

    if not isinstance(data, dict):
        return None, {}
    return data, loader.line_map


def parse_yaml_file(filepath: Path) -> tuple[dict | None, dict[str, tuple[int, int]]]:
    """Parse a YAML file and return (data, line_map).

    Raises:
        YAMLParseError: If the file contains YAML syntax errors.
        FileNotFoundError: If the file does not exist.
    """
    content = filepath.read_text(encoding="utf-8")
    return parse_yaml_with_lines(content, filename=str(filepath))
