"""Typed results and the retry combinator used at every I/O boundary.

``retry_call`` never raises for failures of the wrapped operation: it
returns a ``Result`` whose ``kind`` tells the caller whether retries
were exhausted on a transient fault or the remote side rejected the
call outright.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

import httpx

from oraclestress.errors import TransientNetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Exception types considered transient (network-level issues)
TRANSIENT_EXCEPTIONS: tuple[type[Exception], ...] = (
    TimeoutError,
    ConnectionError,
    httpx.TransportError,
    TransientNetworkError,
)

# HTTP status codes considered transient (rate-limit, server errors)
TRANSIENT_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503, 504})


class FailureKind(str, Enum):
    """Why a call produced no value."""

    transient = "transient"
    rejected = "rejected"
    error = "error"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of one logical call, possibly spanning several attempts."""

    value: T | None = None
    kind: FailureKind | None = None
    error: str | None = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.kind is None

    @classmethod
    def success(cls, value: T, attempts: int = 1) -> Result[T]:
        return cls(value=value, attempts=attempts)

    @classmethod
    def failure(cls, kind: FailureKind, error: str, attempts: int = 1) -> Result[T]:
        return cls(kind=kind, error=error, attempts=attempts)


class RejectedError(Exception):
    """The remote side answered with an error. Never retried."""


@dataclass(frozen=True)
class RetryPolicy:
    """How many times and how far apart to retry.

    With ``backoff`` 1.0 the delay is fixed; larger values grow it
    geometrically up to ``max_delay``. ``jitter`` draws the actual
    sleep uniformly from [0, delay].
    """

    max_attempts: int = 5
    delay: float = 0.05
    backoff: float = 1.0
    max_delay: float = 30.0
    jitter: bool = False

    def delay_for(self, attempt: int) -> float:
        """Sleep before ``attempt`` (2-indexed: the first retry is attempt 2)."""
        delay = min(self.delay * (self.backoff ** (attempt - 2)), self.max_delay)
        if self.jitter:
            return random.uniform(0, delay)  # noqa: S311
        return delay


def _is_transient(exc: BaseException) -> bool:
    """Check if an exception represents a transient error.

    Matches known transient exception types, then looks for an HTTP
    status on the exception or on an attached httpx response.
    """
    if isinstance(exc, TRANSIENT_EXCEPTIONS):
        return True

    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    response = getattr(exc, "response", None)
    if status is None and isinstance(response, httpx.Response):
        status = response.status_code
    return status is not None and status in TRANSIENT_STATUS_CODES


async def retry_call(
    factory: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    label: str = "call",
    on_retry: Callable[[int, int], Any] | None = None,
) -> Result[T]:
    """Run ``factory`` until it succeeds, fails permanently, or attempts run out.

    Each attempt after the first emits a retry event: a WARNING log
    record carrying ``attempt`` and ``max_attempts`` in its extras, and
    a call to ``on_retry(attempt, max_attempts)`` when given.

    Args:
        factory: Callable that creates a new awaitable each call.
        policy: Attempt bound and spacing. Defaults to RetryPolicy().
        label: Name used in log lines.
        on_retry: Optional observer for retry events.

    Returns:
        Result with the value, or a failure of kind ``transient``
        (attempts exhausted), ``rejected`` (RejectedError raised) or
        ``error`` (any other exception).
    """
    policy = policy or RetryPolicy()
    last_error = ""

    for attempt in range(1, policy.max_attempts + 1):
        if attempt > 1:
            logger.warning(
                "Retrying %s (attempt %d/%d): %s",
                label,
                attempt,
                policy.max_attempts,
                last_error,
                extra={"attempt": attempt, "max_attempts": policy.max_attempts},
            )
            if on_retry is not None:
                on_retry(attempt, policy.max_attempts)
            await asyncio.sleep(policy.delay_for(attempt))

        try:
            value = await factory()
        except RejectedError as exc:
            return Result.failure(FailureKind.rejected, str(exc), attempts=attempt)
        except Exception as exc:
            if not _is_transient(exc):
                logger.debug("%s failed permanently", label, exc_info=True)
                return Result.failure(
                    FailureKind.error, f"{type(exc).__name__}: {exc}", attempts=attempt
                )
            last_error = f"{type(exc).__name__}: {exc}"
            continue
        return Result.success(value, attempts=attempt)

    return Result.failure(FailureKind.transient, last_error, attempts=policy.max_attempts)
