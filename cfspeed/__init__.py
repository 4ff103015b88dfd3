"""Cloudflare speed test engine -- probes, retries, and aggregation."""

from .cancellation import SpeedTestCancelled
from .download import DownloadTester
from .latency import LatencyMetrics, LatencyTester
from .metadata import ClientInfo, get_network_identity
from .retry import with_retry
from .runner import (
    Phase,
    ProgressEvent,
    ProgressReporter,
    RunConfig,
    SpeedTestResult,
    SpeedTestRunner,
    run_speed_test,
)
from .stats import (
    ThroughputSample,
    average_throughput,
    calculate_jitter,
    calculate_mbps,
    format_latency,
    format_speed,
    format_value,
)
from .upload import UploadTester

__all__ = [
    "ClientInfo",
    "DownloadTester",
    "LatencyMetrics",
    "LatencyTester",
    "Phase",
    "ProgressEvent",
    "ProgressReporter",
    "RunConfig",
    "SpeedTestCancelled",
    "SpeedTestResult",
    "SpeedTestRunner",
    "ThroughputSample",
    "UploadTester",
    "average_throughput",
    "calculate_jitter",
    "calculate_mbps",
    "format_latency",
    "format_speed",
    "format_value",
    "get_network_identity",
    "run_speed_test",
    "with_retry",
]
