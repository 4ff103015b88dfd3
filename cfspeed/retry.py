"""
Retry wrapper used around every network probe.

Linear backoff: after the failed attempt with index ``i`` (0-based) wait
``BACKOFF_STEP * (i + 1)`` seconds, so 300 ms, then 600 ms, and so on.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from .cancellation import SpeedTestCancelled, abortable, raise_if_cancelled
from .constants import BACKOFF_STEP, DEFAULT_RETRIES

T = TypeVar("T")

logger = logging.getLogger(__name__)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    retries: int = DEFAULT_RETRIES,
    signal: Optional[asyncio.Event] = None,
    *,
    backoff: float = BACKOFF_STEP,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run *operation* up to ``retries + 1`` times and return its first success.

    The error of the final attempt propagates unchanged.  A fired *signal*
    stops the loop immediately with ``SpeedTestCancelled``; a cancelled
    operation is never retried.
    """
    if retries < 0:
        raise ValueError("retries must be >= 0")

    for attempt in range(retries + 1):
        raise_if_cancelled(signal)
        try:
            return await operation()
        except SpeedTestCancelled:
            raise
        except Exception as exc:
            # An abort can surface as a connection error; report it as what it is.
            if signal is not None and signal.is_set():
                raise SpeedTestCancelled("speed test cancelled") from exc
            if attempt == retries:
                raise
            delay = backoff * (attempt + 1)
            logger.warning(
                "Attempt %d/%d failed (%s); retrying in %.1fs",
                attempt + 1, retries + 1, exc, delay,
            )
            await abortable(sleep(delay), signal)
