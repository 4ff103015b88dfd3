"""
Shared constants used across all engine modules.

Endpoints, probe sizes, and retry tunables live here so every prober and
the orchestrator agree on them.
"""

# ---------------------------------------------------------------------------
# Cloudflare speed endpoints
# ---------------------------------------------------------------------------

DOWNLOAD_URL = "https://speed.cloudflare.com/__down"
UPLOAD_URL = "https://speed.cloudflare.com/__up"
META_URL = "https://speed.cloudflare.com/meta"
META_TIMEOUT = 5.0               # seconds, bounds the metadata lookup

# ---------------------------------------------------------------------------
# HTTP headers
# ---------------------------------------------------------------------------

USER_AGENT = "cfspeed/0.1 (+https://speed.cloudflare.com)"

COMMON_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
}

# ---------------------------------------------------------------------------
# Probe sizes (bytes), run in this order
# ---------------------------------------------------------------------------

MIB = 1024 * 1024

DOWNLOAD_SIZES = (1 * MIB, 5 * MIB, 10 * MIB)
UPLOAD_SIZES = (1 * MIB, 2 * MIB)

LATENCY_ATTEMPTS = 8

# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------

DEFAULT_RETRIES = 2
BACKOFF_STEP = 0.3               # seconds, multiplied by the retry number

# ---------------------------------------------------------------------------
# Progress breakpoints (percent)
# ---------------------------------------------------------------------------

PROGRESS_LATENCY_START = 2
PROGRESS_LATENCY_DONE = 20
PROGRESS_DOWNLOAD_SPAN = 55      # 20 -> 75
PROGRESS_UPLOAD_START = 80
PROGRESS_UPLOAD_SPAN = 18        # 80 -> 98
PROGRESS_DONE = 100

# ---------------------------------------------------------------------------
# Data transfer
# ---------------------------------------------------------------------------

CHUNK_SIZE = 256 * 1024          # body drain read size
