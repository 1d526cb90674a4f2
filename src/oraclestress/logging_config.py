"""Logging setup for the oraclestress package.

Console output goes through rich's RichHandler so log lines and the
CLI's tables share one stderr console. An optional plain-text file
handler keeps a full record of long runs.
"""

from __future__ import annotations

import logging
import logging.config
import os
from pathlib import Path
from typing import Any

DEFAULT_LOG_LEVEL = "INFO"


def build_logging_config(
    level: str | None = None,
    log_file: Path | None = None,
) -> dict[str, Any]:
    """Build a dictConfig mapping for the package loggers.

    Args:
        level: Level name for the ``oraclestress`` logger. Falls back to
            the LOG_LEVEL environment variable, then INFO.
        log_file: Optional path for an appending plain-text log file.

    Returns:
        A dict suitable for ``logging.config.dictConfig``.
    """
    effective_level = (level or os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL)).upper()
    handlers = ["console"]

    config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": "%(message)s", "datefmt": "[%X]"},
            "file": {
                "format": "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "rich.logging.RichHandler",
                "formatter": "console",
                "rich_tracebacks": True,
                "show_path": False,
            },
        },
        "loggers": {
            "oraclestress": {
                "level": effective_level,
                "handlers": handlers,
                "propagate": False,
            },
            # Libraries are capped so request/SQL chatter stays out of run output
            "httpx": {"level": "WARNING", "handlers": handlers, "propagate": False},
            "httpcore": {"level": "WARNING", "handlers": handlers, "propagate": False},
            "sqlalchemy": {"level": "WARNING", "handlers": handlers, "propagate": False},
        },
        "root": {"level": "WARNING", "handlers": handlers},
    }

    if log_file is not None:
        config["handlers"]["file"] = {
            "class": "logging.FileHandler",
            "formatter": "file",
            "filename": str(log_file),
            "mode": "a",
            "encoding": "utf-8",
        }
        handlers.append("file")

    return config


def setup_logging(level: str | None = None, log_file: Path | None = None) -> None:
    """Apply the logging configuration."""
    logging.config.dictConfig(build_logging_config(level, log_file))
