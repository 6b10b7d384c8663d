"""Abort signal helpers.

An abort signal is a plain :class:`asyncio.Event`. Setting it cancels the
operation currently awaited through these helpers and raises
:class:`RequestAbortedError` in the caller.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import TYPE_CHECKING, Any, TypeVar

from pagewright.core.errors import RequestAbortedError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable

T = TypeVar("T")


def raise_if_aborted(signal: asyncio.Event | None) -> None:
    """Raise RequestAbortedError if the signal has already fired."""
    if signal is not None and signal.is_set():
        raise RequestAbortedError()


async def run_abortable(awaitable: Awaitable[T], signal: asyncio.Event | None) -> T:
    """Await *awaitable*, cancelling it if *signal* fires first."""
    if signal is None:
        return await awaitable
    if signal.is_set():
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise RequestAbortedError()

    task: asyncio.Future[T] = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(signal.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task.done():
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise RequestAbortedError()


async def abortable_sleep(delay: float, signal: asyncio.Event | None) -> None:
    """Sleep for *delay* seconds, waking early with an abort if *signal* fires."""
    if signal is None:
        await asyncio.sleep(delay)
        return
    raise_if_aborted(signal)
    try:
        await asyncio.wait_for(signal.wait(), timeout=delay)
    except TimeoutError:
        return
    raise RequestAbortedError()


async def _next_item(iterator: AsyncIterator[Any]) -> tuple[bool, Any]:
    try:
        return True, await iterator.__anext__()
    except StopAsyncIteration:
        return False, None


async def iterate_abortable(
    iterator: AsyncIterator[T], signal: asyncio.Event | None
) -> AsyncIterator[T]:
    """Re-yield items from *iterator*, aborting while waiting on any item."""
    while True:
        has_item, item = await run_abortable(_next_item(iterator), signal)
        if not has_item:
            return
        yield item


async def close_stream(stream: Any) -> None:
    """Release the connection behind an SDK stream.

    Async generators expose ``aclose``; SDK ``AsyncStream`` objects expose an
    awaitable ``close``. Objects with neither are left alone.
    """
    closer = getattr(stream, "aclose", None) or getattr(stream, "close", None)
    if closer is None:
        return
    result = closer()
    if inspect.isawaitable(result):
        await result
