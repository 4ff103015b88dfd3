"""
HTTP latency measurement against the Cloudflare download endpoint.

Probe flow::

    1. GET  {DOWNLOAD_URL}?bytes=0&ts={epoch_ms}-{attempt}
    2. Drain the (empty) body.
    3. Record the elapsed wall-clock time in milliseconds.
    4. Repeat for LATENCY_ATTEMPTS samples, strictly one at a time.

Any non-2xx reply fails the whole measurement; retries happen one level
up, around the full set of attempts.
"""
from __future__ import annotations

import asyncio
import logging
import statistics
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import aiohttp

from .cancellation import abortable, raise_if_cancelled
from .constants import DOWNLOAD_URL, LATENCY_ATTEMPTS
from .stats import calculate_jitter

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LatencyMetrics:
    """Aggregated latency data for one run, all values in milliseconds."""

    average: float
    min: float
    max: float
    jitter: float
    samples: Tuple[float, ...]

    @classmethod
    def from_samples(cls, samples: Sequence[float]) -> LatencyMetrics:
        if not samples:
            raise ValueError("at least one latency sample is required")
        return cls(
            average=statistics.fmean(samples),
            min=min(samples),
            max=max(samples),
            jitter=calculate_jitter(samples),
            samples=tuple(samples),
        )

    def to_dict(self) -> dict:
        return {
            "average": round(self.average, 3),
            "min": round(self.min, 3),
            "max": round(self.max, 3),
            "jitter": round(self.jitter, 3),
            "samples": [round(s, 3) for s in self.samples],
        }


# ---------------------------------------------------------------------------
# Tester
# ---------------------------------------------------------------------------

class LatencyTester:
    """Time a series of zero-byte downloads."""

    def __init__(
        self,
        attempts: int = LATENCY_ATTEMPTS,
        url: str = DOWNLOAD_URL,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.attempts = attempts
        self.url = url
        self.clock = clock

    async def measure(
        self,
        session: aiohttp.ClientSession,
        signal: Optional[asyncio.Event] = None,
    ) -> LatencyMetrics:
        samples = []
        for i in range(self.attempts):
            raise_if_cancelled(signal)
            samples.append(await abortable(self._ping_once(session, i), signal))

        metrics = LatencyMetrics.from_samples(samples)
        logger.debug(
            "Latency avg=%.1fms min=%.1fms max=%.1fms jitter=%.2fms",
            metrics.average, metrics.min, metrics.max, metrics.jitter,
        )
        return metrics

    # -- Internals ----------------------------------------------------------

    async def _ping_once(self, session: aiohttp.ClientSession, attempt: int) -> float:
        """One zero-byte request; returns the round trip in ms."""
        params = {"bytes": "0", "ts": f"{int(time.time() * 1000)}-{attempt}"}

        start = self.clock()
        async with session.get(self.url, params=params) as resp:
            resp.raise_for_status()
            await resp.read()
        return (self.clock() - start) * 1000
