"""Exception taxonomy for stress runs.

Only ConfigurationError and DeploymentToolError are allowed to end a
process. Everything else is caught and logged by the component that
owns the failing operation.
"""

from __future__ import annotations


class StressTestError(Exception):
    """Base class for all oraclestress errors."""


class ConfigurationError(StressTestError):
    """Configuration is invalid or incomplete. Fatal at startup."""


class TransientNetworkError(StressTestError):
    """A network call failed in a way that may succeed on retry."""


class WalletOperationError(StressTestError):
    """A step of the per-wallet funding protocol failed.

    Raised inside a wallet branch and caught at the branch boundary so
    sibling wallets keep running.
    """


class CommandError(StressTestError):
    """An external command failed by exit code or by watched output.

    Attributes:
        command: The command line that was run.
        returncode: Process exit status, or None if the process was
            judged failed from its output alone.
        output: Captured combined stdout/stderr.
    """

    def __init__(
        self,
        message: str,
        command: str = "",
        returncode: int | None = None,
        output: str = "",
    ) -> None:
        self.command = command
        self.returncode = returncode
        self.output = output
        super().__init__(message)


class DeploymentToolError(StressTestError):
    """The oracle deployment failed twice in a row. Fatal."""
