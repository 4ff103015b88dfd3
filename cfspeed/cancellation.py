"""
Cancellation primitives shared by every probe.

A run is cancelled through a single :class:`asyncio.Event` handed to the
engine at start.  Probes race their request against that event so the
underlying HTTP exchange is torn down as soon as it fires, instead of
waiting for the transfer to finish.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")


class SpeedTestCancelled(Exception):
    """The run was cancelled through its signal.  Not a failure."""


def raise_if_cancelled(signal: Optional[asyncio.Event]) -> None:
    if signal is not None and signal.is_set():
        raise SpeedTestCancelled("speed test cancelled")


async def abortable(aw: Awaitable[T], signal: Optional[asyncio.Event]) -> T:
    """Await *aw*, aborting it with ``SpeedTestCancelled`` once *signal* fires."""
    if signal is None:
        return await aw

    task = asyncio.ensure_future(aw)
    if signal.is_set():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise SpeedTestCancelled("speed test cancelled")

    waiter = asyncio.ensure_future(signal.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        waiter.cancel()
        await asyncio.gather(task, waiter, return_exceptions=True)
        raise

    waiter.cancel()
    if task.done():
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise SpeedTestCancelled("speed test cancelled")
