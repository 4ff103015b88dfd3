"""
Network measurement statistics.

Pure functions and lightweight dataclasses -- no I/O, no side effects.
Everything here is deterministic and easy to unit-test.
"""
from __future__ import annotations

import statistics
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ThroughputSample:
    """One sized download or upload probe."""

    size_bytes: int
    duration_seconds: float

    @property
    def mbps(self) -> float:
        return calculate_mbps(self.size_bytes, self.duration_seconds)

    def to_dict(self) -> dict:
        return {
            "size_bytes": self.size_bytes,
            "duration_seconds": round(self.duration_seconds, 6),
            "mbps": round(self.mbps, 3),
        }


# ---------------------------------------------------------------------------
# Pure helper functions
# ---------------------------------------------------------------------------

def calculate_mbps(size_bytes: int, duration_seconds: float) -> float:
    """Megabits per second for *size_bytes* moved in *duration_seconds*."""
    return size_bytes * 8 / duration_seconds / 1_000_000


def calculate_jitter(samples: Sequence[float]) -> float:
    """
    Mean absolute deviation of *samples* from their mean.

    This is deliberately not the standard deviation, nor the
    consecutive-difference jitter some tools report: results must match
    the Cloudflare speed page numerically.
    """
    if not samples:
        return 0.0
    avg = statistics.fmean(samples)
    return statistics.fmean(abs(s - avg) for s in samples)


def average_throughput(samples: Iterable[ThroughputSample]) -> float:
    """Unweighted mean of sample ``mbps``; ``0.0`` when there are none."""
    values: List[float] = [s.mbps for s in samples]
    if not values:
        return 0.0
    return statistics.fmean(values)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def format_value(value: Optional[float]) -> str:
    """Card-style number: ``--`` when missing, no decimals from 100 up."""
    if value is None or value != value:  # NaN
        return "--"
    if value >= 100:
        return f"{value:.0f}"
    return f"{value:.2f}"


def format_speed(speed_mbps: Optional[float]) -> str:
    """Human-readable speed string."""
    if speed_mbps is None:
        return "--"
    if speed_mbps >= 1000:
        return f"{speed_mbps / 1000:.2f} Gbps"
    return f"{speed_mbps:.2f} Mbps"


def format_latency(latency_ms: float) -> str:
    """Human-readable latency string."""
    if latency_ms >= 1000:
        return f"{latency_ms / 1000:.2f} s"
    return f"{latency_ms:.1f} ms"
