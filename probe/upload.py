"""
Upload speed test module.

One opaque payload is generated once and POSTed repeatedly, one request at
a time, until the iteration cap or the phase budget is reached.  Every
completed POST counts the full payload and emits a ``SpeedSample``.
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Optional

import aiohttp

from .cancel import CancelToken, ProbeCancelled
from .constants import (
    UPLOAD_DURATION,
    UPLOAD_HEADERS,
    UPLOAD_MAX_ITERATIONS,
    UPLOAD_PAYLOAD_SIZE,
)
from .endpoints import (
    Endpoints,
    cache_buster,
    open_session,
    require_http_url,
    upload_params,
)
from .stats import ByteRateWindow, Clock, SpeedSample, TransferResult

logger = logging.getLogger(__name__)


@dataclass
class UploadResult(TransferResult):
    """Upload phase result."""

    requests: int = 0

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["requests"] = self.requests
        return data


class UploadTester:
    """
    Sequential upload tester using HTTPS POST.

    Budget and cancellation are checked before each POST.  A POST already
    in flight either completes or is aborted by the token, whichever
    happens first.
    """

    def __init__(
        self,
        duration_seconds: float = UPLOAD_DURATION,
        payload_size: int = UPLOAD_PAYLOAD_SIZE,
        max_iterations: int = UPLOAD_MAX_ITERATIONS,
        clock: Clock = time.perf_counter,
    ) -> None:
        self.duration_seconds = duration_seconds
        self.max_iterations = max_iterations
        # Random bytes so nothing along the path can compress the body
        self._payload = os.urandom(payload_size)
        self._clock = clock
        self.on_progress: Optional[Callable[[SpeedSample], None]] = None

    @property
    def payload_size(self) -> int:
        return len(self._payload)

    async def test(
        self,
        endpoints: Endpoints,
        token: Optional[CancelToken] = None,
        on_progress: Optional[Callable[[SpeedSample], None]] = None,
    ) -> UploadResult:
        token = token or CancelToken()
        emit = on_progress or self.on_progress
        result = UploadResult()
        window = ByteRateWindow(self.duration_seconds, clock=self._clock)
        run_stamp = cache_buster()

        try:
            async with open_session() as session:
                window.start()
                try:
                    for i in range(self.max_iterations):
                        if token.cancelled:
                            raise ProbeCancelled()
                        if window.expired():
                            logger.debug("Upload budget of %.1f s reached", self.duration_seconds)
                            break

                        bust = f"{run_stamp}-{i}"
                        await token.race(self._post(session, endpoints.upload_url, bust))
                        result.requests += 1

                        sample = window.add(self.payload_size)
                        result.samples.append(sample)
                        if emit:
                            emit(sample)
                finally:
                    result.duration_ms = window.elapsed() * 1000

        except ProbeCancelled:
            result.cancelled = True
        except (aiohttp.InvalidURL, ValueError) as exc:
            logger.warning("Upload endpoint is malformed: %s", exc)
            result.error = f"Invalid upload URL: {exc}"
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            logger.warning("Upload ended early after %d requests: %r", result.requests, exc)
            result.error = str(exc) or exc.__class__.__name__

        result.bytes_total = window.total_bytes
        result.calculate()

        logger.debug(
            "Upload: %d bytes in %.0f ms -> %.1f Mbps%s",
            result.bytes_total, result.duration_ms, result.speed_mbps,
            " (cancelled)" if result.cancelled else "",
        )
        return result

    async def _post(self, session: aiohttp.ClientSession, url: str, bust: str) -> None:
        """One POST; the response body is read and ignored."""
        async with session.post(
            require_http_url(url),
            params=upload_params(bust),
            data=self._payload,
            headers=UPLOAD_HEADERS,
        ) as resp:
            resp.raise_for_status()
            await resp.read()
