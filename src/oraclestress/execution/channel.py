"""Bounded FIFO channel with explicit close.

Producers ``send`` typed commands, consumers ``receive`` them in order.
Closing the channel wakes every waiter: pending receivers drain what is
left and then get ChannelClosed, so workers shut down without sentinel
messages.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Generic, TypeVar

T = TypeVar("T")


class ChannelClosed(Exception):
    """Raised on send to a closed channel or receive from a drained one."""


class CommandChannel(Generic[T]):
    """An asyncio channel of commands of type T.

    Args:
        capacity: Maximum buffered items; ``send`` waits while full.
            Zero or negative means unbounded.
    """

    def __init__(self, capacity: int = 0) -> None:
        self._capacity = capacity
        self._items: deque[T] = deque()
        self._closed = False
        self._cond = asyncio.Condition()

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._items)

    def _full(self) -> bool:
        return self._capacity > 0 and len(self._items) >= self._capacity

    async def send(self, item: T) -> None:
        async with self._cond:
            await self._cond.wait_for(lambda: self._closed or not self._full())
            if self._closed:
                raise ChannelClosed("send on closed channel")
            self._items.append(item)
            self._cond.notify_all()

    async def receive(self) -> T:
        async with self._cond:
            await self._cond.wait_for(lambda: self._closed or bool(self._items))
            if not self._items:
                raise ChannelClosed("channel closed and drained")
            item = self._items.popleft()
            self._cond.notify_all()
            return item

    async def close(self) -> None:
        """Stop accepting sends. Buffered items are still delivered."""
        async with self._cond:
            self._closed = True
            self._cond.notify_all()
