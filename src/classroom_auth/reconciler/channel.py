"""Latest-value channel for provider session-change events.

A depth-1 queue: publishing while an item is still pending replaces it.
Only the latest provider session matters, so a slow consumer skips
intermediate events instead of building a backlog. publish() never blocks,
which keeps provider callbacks non-blocking.
"""

from __future__ import annotations

__all__ = ["LatestValueChannel"]

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")


class LatestValueChannel(Generic[T]):
    """Single-consumer channel that keeps only the newest pending item."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=1)
        self._replaced = 0

    @property
    def replaced(self) -> int:
        """Number of pending items overwritten before they were received."""
        return self._replaced

    @property
    def pending(self) -> bool:
        return not self._queue.empty()

    def publish(self, item: T) -> None:
        """Publish an item, replacing any item not yet received."""
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self._queue.task_done()
            self._replaced += 1
            self._queue.put_nowait(item)

    async def receive(self) -> T:
        """Wait for the next item."""
        item = await self._queue.get()
        self._queue.task_done()
        return item
