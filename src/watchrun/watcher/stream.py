"""Bounded, closeable async stream used for watcher output.

Behaves like a buffered channel: ``put`` waits while the buffer is full,
iteration waits for items and stops once the stream is closed and drained.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Generic, TypeVar

T = TypeVar("T")


class StreamClosed(Exception):
    """Raised when publishing to a closed stream."""


class BoundedStream(Generic[T]):
    def __init__(self, maxsize: int) -> None:
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self._maxsize = maxsize
        self._items: deque[T] = deque()
        self._cond = asyncio.Condition()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._items)

    async def put(self, item: T) -> None:
        """Publish ``item``, waiting while the buffer is full."""
        async with self._cond:
            await self._cond.wait_for(
                lambda: self._closed or len(self._items) < self._maxsize
            )
            if self._closed:
                raise StreamClosed("stream is closed")
            self._items.append(item)
            self._cond.notify_all()

    def offer(self, item: T) -> bool:
        """Publish without waiting. Returns False if full or closed."""
        if self._closed or len(self._items) >= self._maxsize:
            return False
        self._items.append(item)
        asyncio.ensure_future(self._wake())
        return True

    async def _wake(self) -> None:
        async with self._cond:
            self._cond.notify_all()

    async def close(self) -> None:
        async with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __aiter__(self) -> BoundedStream[T]:
        return self

    async def __anext__(self) -> T:
        async with self._cond:
            await self._cond.wait_for(lambda: self._items or self._closed)
            if not self._items:
                raise StopAsyncIteration
            item = self._items.popleft()
            self._cond.notify_all()
            return item
