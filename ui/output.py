"""
Output formatting -- JSON export and plain text.
"""
from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

from cfspeed.runner import SpeedTestResult
from cfspeed.stats import format_value


def create_result_json(
    result: SpeedTestResult,
    isp: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the JSON document for one run."""
    doc = result.to_dict()
    doc["isp"] = isp
    doc["upload_enabled"] = result.upload_mbps is not None
    return doc


def save_json(result: Dict[str, Any], filepath: str) -> None:
    """Write *result* to *filepath* atomically (write-tmp then rename)."""
    dir_path = os.path.dirname(filepath) or "."
    tmp = os.path.join(dir_path, f".tmp_{os.path.basename(filepath)}")

    try:
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(result, fh, indent=2, ensure_ascii=False)
        os.replace(tmp, filepath)
    except OSError as exc:
        # Clean up partial temp file
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise OSError(f"Failed to save JSON to {filepath}: {exc}") from exc


# ---------------------------------------------------------------------------
# Plain-text helpers
# ---------------------------------------------------------------------------

def format_text_result(result: SpeedTestResult, isp: Optional[str] = None) -> str:
    sep = "=" * 40
    mid = "-" * 40
    ping = result.latency.average if result.latency else None
    jitter = result.latency.jitter if result.latency else None
    return (
        f"{sep}\n"
        f"Speed Test Results\n"
        f"{sep}\n"
        f"ISP: {isp or '--'}\n"
        f"{mid}\n"
        f"Download: {format_value(result.download_mbps)} Mbps\n"
        f"Upload: {format_value(result.upload_mbps)} Mbps\n"
        f"Ping: {format_value(ping)} ms\n"
        f"Jitter: {format_value(jitter)} ms\n"
        f"{sep}"
    )
