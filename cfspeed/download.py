"""
Download speed test module.

One timed HTTPS GET per configured size.  The clock runs from just before
the request until the last body byte has been read, so the result covers
the full transfer and not only the response headers.
"""
from __future__ import annotations

import asyncio
import logging
import secrets
import time
from typing import Callable, Optional

import aiohttp

from .cancellation import abortable, raise_if_cancelled
from .constants import CHUNK_SIZE, DOWNLOAD_URL
from .stats import ThroughputSample

logger = logging.getLogger(__name__)


def _cache_buster() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(6)}"


class DownloadTester:
    """Sized, single-flow download prober."""

    def __init__(
        self,
        url: str = DOWNLOAD_URL,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.url = url
        self.clock = clock

    async def measure(
        self,
        session: aiohttp.ClientSession,
        size_bytes: int,
        signal: Optional[asyncio.Event] = None,
    ) -> ThroughputSample:
        raise_if_cancelled(signal)
        sample = await abortable(self._fetch(session, size_bytes), signal)
        logger.debug(
            "Download %d bytes in %.3fs (%.2f Mbps)",
            sample.size_bytes, sample.duration_seconds, sample.mbps,
        )
        return sample

    async def _fetch(self, session: aiohttp.ClientSession, size_bytes: int) -> ThroughputSample:
        params = {"bytes": str(size_bytes), "ts": _cache_buster()}
        headers = {"Accept-Encoding": "identity"}
        received = 0

        start = self.clock()
        async with session.get(self.url, params=params, headers=headers) as resp:
            resp.raise_for_status()
            while True:
                chunk = await resp.content.read(CHUNK_SIZE)
                if not chunk:
                    break
                received += len(chunk)
        elapsed = self.clock() - start

        if received != size_bytes:
            logger.debug("Expected %d bytes, received %d", size_bytes, received)

        return ThroughputSample(size_bytes=size_bytes, duration_seconds=elapsed)
