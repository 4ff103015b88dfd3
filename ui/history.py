"""
Run history persistence and display helpers.

Results are stored as JSON-lines in ``~/.cfspeed/history.jsonl``.  Each
line is one finished run (``SpeedTestResult.to_dict()`` plus an optional
``isp``).  The file is rewritten through a temp file on every save and
only the most recent entries are kept.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

_DEFAULT_DIR = os.path.join(Path.home(), ".cfspeed")
_DEFAULT_FILE = "history.jsonl"
MAX_ENTRIES = 5


def _history_path() -> str:
    return os.path.join(_DEFAULT_DIR, _DEFAULT_FILE)


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

def load_history(limit: int = MAX_ENTRIES) -> List[Dict[str, Any]]:
    """Return the most recent *limit* entries, newest first."""
    path = _history_path()
    if not os.path.isfile(path):
        return []

    entries: List[Dict[str, Any]] = []
    with open(path, encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Skipping corrupt history line")
                continue
            if isinstance(entry, dict):
                entries.append(entry)

    if limit <= 0:
        return []
    return list(reversed(entries[-limit:]))


# ---------------------------------------------------------------------------
# Write
# ---------------------------------------------------------------------------

def save_result(
    result: Dict[str, Any],
    isp: Optional[str] = None,
    limit: int = MAX_ENTRIES,
) -> str:
    """Record *result*, keeping only the newest *limit* entries.  Returns the path."""
    path = _history_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)

    entry = dict(result)
    if isp:
        entry["isp"] = isp

    # load_history is newest-first; the file is oldest-first.
    kept = list(reversed(load_history(limit=max(limit - 1, 0))))
    kept.append(entry)

    tmp = f"{path}.tmp"
    with open(tmp, "w", encoding="utf-8") as fh:
        for item in kept:
            fh.write(json.dumps(item, ensure_ascii=False) + "\n")
    os.replace(tmp, path)

    return path


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------

def format_history_table(entries: List[Dict[str, Any]]) -> List[dict]:
    """
    Flatten history entries for tabular display.  Each row has:
    timestamp, isp, ping, jitter, download, upload (``None`` when missing).
    """
    from datetime import datetime

    rows = []
    for e in entries:
        ts_raw = e.get("timestamp") or ""
        try:
            ts = datetime.fromisoformat(ts_raw).strftime("%Y-%m-%d %H:%M")
        except (ValueError, TypeError):
            ts = ts_raw[:16] if ts_raw else "?"

        latency = e.get("latency")
        if not isinstance(latency, dict):
            latency = {}

        rows.append({
            "timestamp": ts,
            "isp": e.get("isp") or "",
            "ping": latency.get("average"),
            "jitter": latency.get("jitter"),
            "download": e.get("download_mbps"),
            "upload": e.get("upload_mbps"),
        })
    return rows


def sparkline(values: List[float]) -> str:
    """Single-line Unicode sparkline chart."""
    if not values:
        return ""
    bars = "▁▂▃▄▅▆▇█"
    lo, hi = min(values), max(values)
    span = hi - lo if hi > lo else 1.0
    return "".join(
        bars[min(int((v - lo) / span * (len(bars) - 1)), len(bars) - 1)]
        for v in values
    )
