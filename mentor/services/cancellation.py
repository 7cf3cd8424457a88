"""Race long-running awaits against a caller-owned cancellation event."""
from __future__ import annotations

import asyncio
from typing import AsyncIterable, AsyncIterator, Awaitable, TypeVar

T = TypeVar("T")


def raise_if_cancelled(cancel: asyncio.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise asyncio.CancelledError("analysis cancelled")


async def cancellable(awaitable: Awaitable[T], cancel: asyncio.Event | None) -> T:
    """Await ``awaitable`` unless ``cancel`` fires first.

    The in-flight operation is cancelled when the event wins the race, and
    ``asyncio.CancelledError`` is raised to the caller.
    """
    if cancel is None:
        return await awaitable
    if cancel.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise asyncio.CancelledError("analysis cancelled")

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for pending in (task, waiter):
            if not pending.done():
                pending.cancel()
    if task.done() and not task.cancelled():
        return task.result()
    raise asyncio.CancelledError("analysis cancelled")


async def iterate_cancellable(
    iterable: AsyncIterable[T],
    cancel: asyncio.Event | None,
) -> AsyncIterator[T]:
    iterator = iterable.__aiter__()
    while True:
        try:
            item = await cancellable(iterator.__anext__(), cancel)
        except StopAsyncIteration:
            return
        yield item
