"""
Upload speed test module.

Each probe POSTs a freshly generated random payload so nothing on the path
can compress or cache it.  The payload is built before the clock starts;
timing covers the request and the full response body.
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Callable, Optional

import aiohttp

from .cancellation import abortable, raise_if_cancelled
from .constants import UPLOAD_URL
from .stats import ThroughputSample

logger = logging.getLogger(__name__)


class UploadTester:
    """Sized, single-flow upload prober."""

    HEADERS = {
        "Content-Type": "application/octet-stream",
        # Keep the pooled connection open past this request.
        "Connection": "keep-alive",
    }

    def __init__(
        self,
        url: str = UPLOAD_URL,
        clock: Callable[[], float] = time.perf_counter,
        payload_factory: Callable[[int], bytes] = os.urandom,
    ) -> None:
        self.url = url
        self.clock = clock
        self.payload_factory = payload_factory

    async def measure(
        self,
        session: aiohttp.ClientSession,
        size_bytes: int,
        signal: Optional[asyncio.Event] = None,
    ) -> ThroughputSample:
        raise_if_cancelled(signal)
        sample = await abortable(self._post(session, size_bytes), signal)
        logger.debug(
            "Upload %d bytes in %.3fs (%.2f Mbps)",
            sample.size_bytes, sample.duration_seconds, sample.mbps,
        )
        return sample

    async def _post(self, session: aiohttp.ClientSession, size_bytes: int) -> ThroughputSample:
        payload = self.payload_factory(size_bytes)
        params = {"bytes": str(size_bytes)}

        start = self.clock()
        async with session.post(
            self.url, params=params, data=payload, headers=self.HEADERS,
        ) as resp:
            resp.raise_for_status()
            await resp.read()
        elapsed = self.clock() - start

        return ThroughputSample(size_bytes=size_bytes, duration_seconds=elapsed)
