"""
HTTP round-trip latency measurement.

Flow::

    1. GET {ping_url} with caching disabled
    2. Time the round trip, whether it succeeds or errors
    3. Repeat sequentially for the desired number of samples
    4. Sort ascending and report the second-lowest value

The minimum is skipped because it tends to reflect connection reuse or
caching; the high end is dropped because of contention and the first
request's TLS handshake.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

import aiohttp

from .cancel import CancelToken, ProbeCancelled
from .constants import DEFAULT_PING_COUNT, PING_TIMEOUT
from .endpoints import Endpoints, open_session, require_http_url
from .stats import Clock

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reduction
# ---------------------------------------------------------------------------

def pick_representative(pings: List[float]) -> Optional[int]:
    """Second-smallest timing in whole milliseconds, or ``None`` if empty."""
    if not pings:
        return None
    ordered = sorted(pings)
    value = ordered[1] if len(ordered) > 1 else ordered[0]
    return int(round(value))


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------

@dataclass
class LatencyResult:
    """Timed round trips for one run."""

    pings: List[float] = field(default_factory=list)
    failures: int = 0
    ping_ms: Optional[int] = None
    cancelled: bool = False
    error: Optional[str] = None

    def calculate(self) -> None:
        self.ping_ms = pick_representative(self.pings)

    def to_dict(self) -> dict:
        return {
            "pings": [round(p, 1) for p in self.pings],
            "failures": self.failures,
            "ping_ms": self.ping_ms,
            "cancelled": self.cancelled,
            "error": self.error,
        }


# ---------------------------------------------------------------------------
# Tester
# ---------------------------------------------------------------------------

class LatencyTester:
    """Time sequential lightweight GETs against the ping endpoint."""

    def __init__(
        self,
        ping_count: int = DEFAULT_PING_COUNT,
        timeout: float = PING_TIMEOUT,
        clock: Clock = time.perf_counter,
    ) -> None:
        self.ping_count = ping_count
        self.timeout = timeout
        self._clock = clock

    async def test(
        self,
        endpoints: Endpoints,
        token: Optional[CancelToken] = None,
    ) -> LatencyResult:
        token = token or CancelToken()
        result = LatencyResult()

        async with open_session(total_timeout=self.timeout) as session:
            for _ in range(self.ping_count):
                if token.cancelled:
                    result.cancelled = True
                    break

                start = self._clock()
                try:
                    await token.race(self._ping_once(session, endpoints.ping_url))
                except ProbeCancelled:
                    result.cancelled = True
                    break
                except (aiohttp.InvalidURL, ValueError) as exc:
                    # Nothing left the machine, so there is no timing to keep.
                    logger.warning("Ping endpoint is malformed: %s", exc)
                    result.error = f"Invalid ping URL: {exc}"
                    break
                except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
                    result.failures += 1
                    logger.debug("Ping failed after %.1f ms: %r",
                                 (self._clock() - start) * 1000, exc)

                result.pings.append((self._clock() - start) * 1000)

        result.calculate()
        logger.debug("Latency samples %s -> %s ms", result.pings, result.ping_ms)
        return result

    @staticmethod
    async def _ping_once(session: aiohttp.ClientSession, url: str) -> None:
        """One round trip; the body is read and discarded."""
        async with session.get(require_http_url(url), allow_redirects=False) as resp:
            await resp.read()
