"""
Measurement endpoints and HTTP session setup.

Any equivalent ping / bulk-download / upload-sink endpoints can be used;
the defaults point at public ones.  All HTTP work for a phase goes through
a single ``aiohttp.ClientSession`` built by :func:`open_session`.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import aiohttp

from .constants import (
    CACHE_BUST_PARAM,
    COMMON_HEADERS,
    CONNECT_TIMEOUT,
    DEFAULT_DOWNLOAD_URL,
    DEFAULT_PING_URL,
    DEFAULT_UPLOAD_URL,
    DOWNLOAD_SIZE_PARAM,
    SOCK_READ_TIMEOUT,
)

_SCHEMES = ("http", "https")


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Endpoints:
    """The three URLs a probe run talks to."""

    ping_url: str = DEFAULT_PING_URL
    download_url: str = DEFAULT_DOWNLOAD_URL
    upload_url: str = DEFAULT_UPLOAD_URL

    # -- Constructors -------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Endpoints:
        return cls(
            ping_url=data.get("ping_url") or DEFAULT_PING_URL,
            download_url=data.get("download_url") or DEFAULT_DOWNLOAD_URL,
            upload_url=data.get("upload_url") or DEFAULT_UPLOAD_URL,
        )

    # -- Validation ---------------------------------------------------------

    def validate(self) -> None:
        """Raise ``ValueError`` if any URL is not an absolute http(s) URL."""
        for name in ("ping_url", "download_url", "upload_url"):
            url = getattr(self, name)
            try:
                require_http_url(url)
            except aiohttp.InvalidURL:
                raise ValueError(f"{name} must be an absolute http(s) URL, got {url!r}") from None

    # -- Serialisation ------------------------------------------------------

    def to_dict(self) -> Dict[str, str]:
        return {
            "ping_url": self.ping_url,
            "download_url": self.download_url,
            "upload_url": self.upload_url,
        }


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------

def require_http_url(url: str) -> str:
    """Return *url* unchanged, or raise ``aiohttp.InvalidURL`` if it cannot be requested."""
    parts = urlsplit(url)
    if parts.scheme not in _SCHEMES or not parts.netloc:
        raise aiohttp.InvalidURL(url)
    return url


def cache_buster(suffix: Optional[object] = None) -> str:
    """Millisecond timestamp, optionally suffixed (``<ms>-<suffix>``)."""
    stamp = str(int(time.time() * 1000))
    return stamp if suffix is None else f"{stamp}-{suffix}"


def download_params(request_bytes: int, bust: str) -> Dict[str, str]:
    return {DOWNLOAD_SIZE_PARAM: str(request_bytes), CACHE_BUST_PARAM: bust}


def upload_params(bust: str) -> Dict[str, str]:
    return {CACHE_BUST_PARAM: bust}


def open_session(total_timeout: Optional[float] = None) -> aiohttp.ClientSession:
    """
    Build a single-connection session with caching disabled.

    Bodies are not auto-decompressed so the bytes counted are the bytes
    that crossed the wire.
    """
    connector = aiohttp.TCPConnector(limit=1)
    timeout = aiohttp.ClientTimeout(
        total=total_timeout,
        connect=CONNECT_TIMEOUT,
        sock_read=SOCK_READ_TIMEOUT,
    )
    return aiohttp.ClientSession(
        headers=COMMON_HEADERS,
        connector=connector,
        timeout=timeout,
        auto_decompress=False,
    )
