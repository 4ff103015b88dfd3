"""
Speed test orchestrator.

Runs the stages in a fixed order -- latency, download, then (optionally)
upload -- one probe at a time, and emits a progress event after every
completed step::

    2          entering latency
    20         latency done
    20..75     after each download size (55 points spread evenly)
    80..98     after each upload size (18 points spread evenly)
    100        completed

Progress is an int in [0, 100] that never goes down within a run.  A
failure emits ``error`` at the last percent and re-raises the original
exception; a cancellation emits nothing further.
"""
from __future__ import annotations

import asyncio
import enum
import functools
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

import aiohttp

from .cancellation import SpeedTestCancelled, raise_if_cancelled
from .constants import (
    COMMON_HEADERS,
    DEFAULT_RETRIES,
    DOWNLOAD_SIZES,
    PROGRESS_DONE,
    PROGRESS_DOWNLOAD_SPAN,
    PROGRESS_LATENCY_DONE,
    PROGRESS_LATENCY_START,
    PROGRESS_UPLOAD_SPAN,
    PROGRESS_UPLOAD_START,
    UPLOAD_SIZES,
)
from .download import DownloadTester
from .latency import LatencyMetrics, LatencyTester
from .retry import with_retry
from .stats import ThroughputSample, average_throughput
from .upload import UploadTester

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------

class Phase(str, enum.Enum):
    IDLE = "idle"
    LATENCY = "latency"
    DOWNLOAD = "download"
    UPLOAD = "upload"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressEvent:
    percent: int
    phase: Phase


ProgressCallback = Callable[[int, Phase], None]


class ProgressReporter:
    """
    Forward-only progress channel for one run.

    Every event goes, in order, to the synchronous *callback* and/or the
    *queue* (``put_nowait``).  Values are rounded, clamped to [0, 100] and
    held at the previous maximum so observers never see progress go back.
    """

    def __init__(
        self,
        callback: Optional[ProgressCallback] = None,
        queue: Optional[asyncio.Queue] = None,
    ) -> None:
        self._callback = callback
        self._queue = queue
        self._percent = 0

    def report(self, value: float, phase: Phase) -> ProgressEvent:
        percent = max(self._percent, min(100, max(0, round(value))))
        self._percent = percent
        event = ProgressEvent(percent=percent, phase=phase)
        if self._callback is not None:
            self._callback(percent, phase)
        if self._queue is not None:
            self._queue.put_nowait(event)
        return event

    def fail(self) -> ProgressEvent:
        return self.report(self._percent, Phase.ERROR)


# ---------------------------------------------------------------------------
# Configuration / result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RunConfig:
    """Per-invocation settings.  Never shared between runs."""

    enable_upload: bool = True
    retries: int = DEFAULT_RETRIES
    signal: Optional[asyncio.Event] = None
    on_progress: Optional[ProgressCallback] = None
    progress_queue: Optional[asyncio.Queue] = None

    def __post_init__(self) -> None:
        if self.retries < 0:
            raise ValueError("retries must be >= 0")


@dataclass(frozen=True)
class SpeedTestResult:
    """Everything a completed run produced."""

    download_mbps: float
    upload_mbps: Optional[float]
    latency: Optional[LatencyMetrics]
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "download_mbps": round(self.download_mbps, 3),
            "upload_mbps": round(self.upload_mbps, 3) if self.upload_mbps is not None else None,
            "latency": self.latency.to_dict() if self.latency else None,
        }


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

def _new_session() -> aiohttp.ClientSession:
    # One connection, no overall timeout: callers bound a run by cancelling it.
    connector = aiohttp.TCPConnector(limit=1, force_close=False)
    timeout = aiohttp.ClientTimeout(total=None, connect=10)
    return aiohttp.ClientSession(headers=COMMON_HEADERS, connector=connector, timeout=timeout)


class SpeedTestRunner:
    """
    Sequences the probers for a single run.

    The runner holds no per-run state, so one instance can serve any number
    of runs; callers must not start a second run while one is in flight.
    """

    def __init__(
        self,
        *,
        latency_tester: Optional[LatencyTester] = None,
        download_tester: Optional[DownloadTester] = None,
        upload_tester: Optional[UploadTester] = None,
        download_sizes: Sequence[int] = DOWNLOAD_SIZES,
        upload_sizes: Sequence[int] = UPLOAD_SIZES,
    ) -> None:
        self.latency_tester = latency_tester or LatencyTester()
        self.download_tester = download_tester or DownloadTester()
        self.upload_tester = upload_tester or UploadTester()
        self.download_sizes = tuple(download_sizes)
        self.upload_sizes = tuple(upload_sizes)

    async def run(
        self,
        config: Optional[RunConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> SpeedTestResult:
        config = config or RunConfig()
        if session is None:
            async with _new_session() as own:
                return await self._run(config, own)
        return await self._run(config, session)

    async def _run(self, config: RunConfig, session: aiohttp.ClientSession) -> SpeedTestResult:
        reporter = ProgressReporter(config.on_progress, config.progress_queue)
        try:
            return await self._stages(config, session, reporter)
        except SpeedTestCancelled:
            logger.info("Speed test cancelled")
            raise
        except Exception as exc:
            logger.error("Speed test failed: %s", exc)
            reporter.fail()
            raise

    async def _stages(
        self,
        config: RunConfig,
        session: aiohttp.ClientSession,
        reporter: ProgressReporter,
    ) -> SpeedTestResult:
        signal = config.signal

        # -- Latency --------------------------------------------------------
        raise_if_cancelled(signal)
        reporter.report(PROGRESS_LATENCY_START, Phase.LATENCY)
        latency = await with_retry(
            functools.partial(self.latency_tester.measure, session, signal),
            config.retries,
            signal,
        )
        reporter.report(PROGRESS_LATENCY_DONE, Phase.LATENCY)
        logger.info("Latency %.1f ms (jitter %.2f ms)", latency.average, latency.jitter)

        # -- Download -------------------------------------------------------
        download_samples: List[ThroughputSample] = []
        total = len(self.download_sizes)
        for done, size in enumerate(self.download_sizes, start=1):
            sample = await with_retry(
                functools.partial(self.download_tester.measure, session, size, signal),
                config.retries,
                signal,
            )
            download_samples.append(sample)
            reporter.report(
                PROGRESS_LATENCY_DONE + done / total * PROGRESS_DOWNLOAD_SPAN,
                Phase.DOWNLOAD,
            )
        download_mbps = average_throughput(download_samples)
        logger.info("Download %.2f Mbps", download_mbps)

        # -- Upload ---------------------------------------------------------
        upload_mbps: Optional[float] = None
        if config.enable_upload:
            upload_samples: List[ThroughputSample] = []
            total = len(self.upload_sizes)
            for done, size in enumerate(self.upload_sizes, start=1):
                sample = await with_retry(
                    functools.partial(self.upload_tester.measure, session, size, signal),
                    config.retries,
                    signal,
                )
                upload_samples.append(sample)
                reporter.report(
                    PROGRESS_UPLOAD_START + done / total * PROGRESS_UPLOAD_SPAN,
                    Phase.UPLOAD,
                )
            upload_mbps = average_throughput(upload_samples)
            logger.info("Upload %.2f Mbps", upload_mbps)

        raise_if_cancelled(signal)
        reporter.report(PROGRESS_DONE, Phase.COMPLETED)

        return SpeedTestResult(
            download_mbps=download_mbps,
            upload_mbps=upload_mbps,
            latency=latency,
            timestamp=datetime.now(timezone.utc),
        )


async def run_speed_test(
    *,
    enable_upload: bool = True,
    retries: int = DEFAULT_RETRIES,
    signal: Optional[asyncio.Event] = None,
    on_progress: Optional[ProgressCallback] = None,
    progress_queue: Optional[asyncio.Queue] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> SpeedTestResult:
    """Run one full measurement with the default probers."""
    config = RunConfig(
        enable_upload=enable_upload,
        retries=retries,
        signal=signal,
        on_progress=on_progress,
        progress_queue=progress_queue,
    )
    return await SpeedTestRunner().run(config, session=session)
