"""
Shared constants used across all probe modules.

Centralises endpoints, phase budgets, transfer sizes, and default headers
so they live in exactly one place.
"""

# ---------------------------------------------------------------------------
# HTTP headers (caching disabled for every request)
# ---------------------------------------------------------------------------

USER_AGENT = "speedprobe/0.1 (+aiohttp)"

COMMON_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Accept-Encoding": "identity",
    "Cache-Control": "no-cache, no-store",
    "Pragma": "no-cache",
}

UPLOAD_HEADERS = {"Content-Type": "application/octet-stream"}

# ---------------------------------------------------------------------------
# Default measurement endpoints
# ---------------------------------------------------------------------------

DEFAULT_PING_URL = "https://www.google.com/generate_204"
DEFAULT_DOWNLOAD_URL = "https://speed.cloudflare.com/__down"
DEFAULT_UPLOAD_URL = "https://speed.cloudflare.com/__up"

DOWNLOAD_SIZE_PARAM = "bytes"
CACHE_BUST_PARAM = "cachebust"

# ---------------------------------------------------------------------------
# Latency
# ---------------------------------------------------------------------------

DEFAULT_PING_COUNT = 5
PING_TIMEOUT = 5.0               # seconds per round trip

# ---------------------------------------------------------------------------
# Phase budgets (seconds)
# ---------------------------------------------------------------------------

DOWNLOAD_DURATION = 8.0
UPLOAD_DURATION = 6.0
MIN_DURATION = 1.0
MAX_DURATION = 300.0

# ---------------------------------------------------------------------------
# Data transfer
# ---------------------------------------------------------------------------

DOWNLOAD_REQUEST_BYTES = 10 * 1024 * 1024   # 10 MiB, larger than one budget
UPLOAD_PAYLOAD_SIZE = 1024 * 1024           # 1 MiB opaque POST body
UPLOAD_MAX_ITERATIONS = 10
MAX_UPLOAD_ITERATIONS = 1000

CONNECT_TIMEOUT = 5.0
SOCK_READ_TIMEOUT = 5.0

# ---------------------------------------------------------------------------
# Rate math
# ---------------------------------------------------------------------------

BITS_PER_BYTE = 8
BITS_PER_MEGABIT = 1_000_000     # decimal megabits, not 2**20
MIN_ELAPSED_SECONDS = 0.001      # denominator floor for the first sample
