from __future__ import annotations

import asyncio
from typing import AsyncIterator

from mentor.models.progress import ProgressSnapshot

_CLOSED = object()


class SnapshotChannel:
    """Progress sink backed by a bounded queue.

    Producers never block: when the queue is full the oldest snapshot is
    dropped, so a slow consumer only ever misses intermediate states.
    """

    def __init__(self, maxsize: int = 64):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, maxsize))
        self._closed = False
        self.dropped = 0

    def _put(self, item: object) -> None:
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()
                self.dropped += 1

    def __call__(self, snapshot: ProgressSnapshot) -> None:
        if self._closed:
            return
        self._put(snapshot)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._put(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[ProgressSnapshot]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ProgressSnapshot]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
