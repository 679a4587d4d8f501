"""Fan-out of one async stream to a primary consumer and bounded side consumers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Generic, TypeVar

from ccrouter.streaming.sse import aclose_quietly

logger = logging.getLogger(__name__)

T = TypeVar("T")

_END = object()


class StreamBroadcast(Generic[T]):
    """Tee ``source`` so side consumers observe it without slowing the primary.

    The primary consumer drives the source and receives every item in order.
    Each subscriber gets its own bounded queue; when a queue is full the item
    is dropped for that subscriber (counted in ``dropped``) instead of making
    the primary wait. Subscribers must be created before iterating
    ``primary()``.
    """

    def __init__(self, source: AsyncIterable[T], max_buffer: int = 1024) -> None:
        self._source = source
        self._max_buffer = max_buffer
        self._queues: list[asyncio.Queue[object]] = []
        self.dropped = 0
        self._started = False

    def subscribe(self) -> AsyncIterator[T]:
        if self._started:
            raise RuntimeError("Cannot subscribe after the broadcast has started")
        queue: asyncio.Queue[object] = asyncio.Queue(maxsize=self._max_buffer)
        self._queues.append(queue)
        return self._drain(queue)

    async def _drain(self, queue: asyncio.Queue[object]) -> AsyncIterator[T]:
        try:
            while True:
                item = await queue.get()
                if item is _END:
                    return
                yield item  # type: ignore[misc]
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    def _offer(self, queue: asyncio.Queue[object], item: object) -> None:
        try:
            queue.put_nowait(item)
        except asyncio.QueueFull:
            self.dropped += 1

    def _close_queues(self) -> None:
        for queue in list(self._queues):
            if queue.full():
                # Make room so the end marker always gets through
                queue.get_nowait()
                self.dropped += 1
            queue.put_nowait(_END)

    async def primary(self) -> AsyncIterator[T]:
        self._started = True
        try:
            async for item in self._source:
                for queue in list(self._queues):
                    self._offer(queue, item)
                yield item
        finally:
            self._close_queues()
            await aclose_quietly(self._source)
            if self.dropped:
                logger.debug(f"Broadcast dropped {self.dropped} items for slow subscribers")
