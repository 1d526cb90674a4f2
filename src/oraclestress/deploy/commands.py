"""Streaming subprocess runner for deployment and service tooling.

The deployer can exit 0 after printing a failure, so success is judged
on output as well as exit code: a line containing ``failure_text``
fails the command unless the same line also contains ``okay_text``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from oraclestress.errors import CommandError

logger = logging.getLogger(__name__)


class CommandRunner(Protocol):
    async def __call__(
        self,
        args: Sequence[str],
        label: str,
        *,
        failure_text: str | None = None,
        okay_text: str | None = None,
        cwd: Path | None = None,
    ) -> str: ...


def line_fails(line: str, failure_text: str | None, okay_text: str | None) -> bool:
    if not failure_text or failure_text not in line:
        return False
    return not (okay_text and okay_text in line)


async def run_command(
    args: Sequence[str],
    label: str,
    *,
    failure_text: str | None = None,
    okay_text: str | None = None,
    cwd: Path | None = None,
) -> str:
    """Run a command, logging each output line as ``label : line``.

    Returns:
        Combined stdout/stderr.

    Raises:
        CommandError: On a nonzero exit or a failing output line.
    """
    command = " ".join(args)
    logger.info("%s : %s", label, command)
    process = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
        cwd=cwd,
    )
    if process.stdout is None:
        raise CommandError(f"{label} has no output stream", command=command)

    lines: list[str] = []
    failed_line: str | None = None
    async for raw in process.stdout:
        line = raw.decode(errors="replace").rstrip()
        lines.append(line)
        logger.info("%s : %s", label, line)
        if failed_line is None and line_fails(line, failure_text, okay_text):
            failed_line = line

    returncode = await process.wait()
    output = "\n".join(lines)
    if returncode != 0:
        raise CommandError(
            f"{label} exited with status {returncode}",
            command=command,
            returncode=returncode,
            output=output,
        )
    if failed_line is not None:
        raise CommandError(
            f"{label} reported failure: {failed_line}",
            command=command,
            output=output,
        )
    return output
