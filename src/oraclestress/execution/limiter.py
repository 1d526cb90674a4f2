"""ConcurrencyLimiter: a fixed worker pool fed by a typed command channel.

At most K scheduled operations run at once; the rest wait in FIFO
order. There is no cancellation. A scheduled job always runs, and its
outcome (value or exception) is delivered to the awaiting caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from oraclestress.execution.channel import ChannelClosed, CommandChannel

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _Job(Generic[T]):
    """Run ``factory`` and settle ``future`` with its outcome."""

    factory: Callable[[], Awaitable[T]]
    future: asyncio.Future[T]
    label: str = field(default="job")


class ConcurrencyLimiter:
    """Bounds in-flight operations of one kind.

    Use as an async context manager: workers start on entry, and on
    exit the channel is closed and every queued job is run to
    completion before the workers stop.

        async with ConcurrencyLimiter(5, name="wallets") as limiter:
            receipts = await asyncio.gather(
                *(limiter.schedule(lambda w=w: fund(w)) for w in wallets)
            )

    Args:
        max_concurrent: K, the number of worker tasks.
        name: Used in log lines and worker task names.
    """

    def __init__(self, max_concurrent: int, name: str = "limiter") -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.max_concurrent = max_concurrent
        self.name = name
        self._channel: CommandChannel[_Job[Any]] = CommandChannel()
        self._workers: list[asyncio.Task[None]] = []
        self._running = 0
        self.max_observed = 0

    @property
    def running(self) -> int:
        return self._running

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(), name=f"{self.name}-worker-{i}")
            for i in range(self.max_concurrent)
        ]

    async def close(self) -> None:
        """Close the channel and wait for workers to drain it."""
        await self._channel.close()
        if self._workers:
            await asyncio.gather(*self._workers)
            self._workers = []

    async def __aenter__(self) -> ConcurrencyLimiter:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def schedule(self, factory: Callable[[], Awaitable[T]], label: str = "job") -> T:
        """Queue ``factory`` and wait for its result.

        Raises:
            ChannelClosed: If the limiter has been closed.
            Exception: Whatever the job itself raised.
        """
        self.start()
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        await self._channel.send(_Job(factory=factory, future=future, label=label))
        return await future

    async def _worker(self) -> None:
        while True:
            try:
                job = await self._channel.receive()
            except ChannelClosed:
                return
            await self._run(job)

    async def _run(self, job: _Job[Any]) -> None:
        self._running += 1
        self.max_observed = max(self.max_observed, self._running)
        try:
            value = await job.factory()
        except Exception as exc:
            if not job.future.done():
                job.future.set_exception(exc)
        else:
            if not job.future.done():
                job.future.set_result(value)
        finally:
            self._running -= 1
