"""
Download speed test module.

One streaming GET against a bulk-data endpoint sized well beyond what a
phase budget can consume.  The body is read in whatever chunks the
transport yields; a ``SpeedSample`` is emitted after every chunk and the
final rate is total bytes over wall-clock time.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import aiohttp

from .cancel import CancelToken, ProbeCancelled
from .constants import DOWNLOAD_DURATION, DOWNLOAD_REQUEST_BYTES
from .endpoints import (
    Endpoints,
    cache_buster,
    download_params,
    open_session,
    require_http_url,
)
from .stats import ByteRateWindow, Clock, SpeedSample, TransferResult

logger = logging.getLogger(__name__)


@dataclass
class DownloadResult(TransferResult):
    """Download phase result."""


class DownloadTester:
    """
    Single-stream download tester.

    The budget and the cancellation token are both checked before blocking
    on the next chunk, so a phase overruns its budget by at most one read.
    A read already in flight is aborted by the token.
    """

    def __init__(
        self,
        duration_seconds: float = DOWNLOAD_DURATION,
        request_bytes: int = DOWNLOAD_REQUEST_BYTES,
        clock: Clock = time.perf_counter,
    ) -> None:
        self.duration_seconds = duration_seconds
        self.request_bytes = request_bytes
        self._clock = clock
        self.on_progress: Optional[Callable[[SpeedSample], None]] = None

    async def test(
        self,
        endpoints: Endpoints,
        token: Optional[CancelToken] = None,
        on_progress: Optional[Callable[[SpeedSample], None]] = None,
    ) -> DownloadResult:
        token = token or CancelToken()
        emit = on_progress or self.on_progress
        result = DownloadResult()
        window = ByteRateWindow(self.duration_seconds, clock=self._clock)
        params = download_params(self.request_bytes, cache_buster())

        try:
            async with open_session() as session:
                window.start()
                try:
                    resp = await token.race(self._open(session, endpoints.download_url, params))
                    try:
                        await self._read_body(resp, token, window, result, emit)
                    finally:
                        resp.close()
                finally:
                    result.duration_ms = window.elapsed() * 1000

        except ProbeCancelled:
            result.cancelled = True
        except (aiohttp.InvalidURL, ValueError) as exc:
            logger.warning("Download endpoint is malformed: %s", exc)
            result.error = f"Invalid download URL: {exc}"
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            logger.warning("Download ended early after %d bytes: %r", window.total_bytes, exc)
            result.error = str(exc) or exc.__class__.__name__

        result.bytes_total = window.total_bytes
        result.calculate()

        logger.debug(
            "Download: %d bytes in %.0f ms -> %.1f Mbps%s",
            result.bytes_total, result.duration_ms, result.speed_mbps,
            " (cancelled)" if result.cancelled else "",
        )
        return result

    # -- Internals ----------------------------------------------------------

    @staticmethod
    async def _open(
        session: aiohttp.ClientSession,
        url: str,
        params: Dict[str, str],
    ) -> aiohttp.ClientResponse:
        resp = await session.get(require_http_url(url), params=params)
        if resp.status >= 400:
            resp.release()
            resp.raise_for_status()
        return resp

    async def _read_body(
        self,
        resp: aiohttp.ClientResponse,
        token: CancelToken,
        window: ByteRateWindow,
        result: DownloadResult,
        emit: Optional[Callable[[SpeedSample], None]],
    ) -> None:
        while True:
            if token.cancelled:
                raise ProbeCancelled()
            if window.expired():
                logger.debug("Download budget of %.1f s reached", self.duration_seconds)
                return

            chunk = await token.race(resp.content.readany())
            if not chunk:
                return

            sample = window.add(len(chunk))
            result.samples.append(sample)
            if emit:
                emit(sample)
