"""
Probe orchestration.

``ThroughputProbe`` drives ping, download and upload in strict sequence,
owns the run's ``CancelToken``, and exposes its progress as immutable
``ProbeState`` snapshots.  Observers either poll ``probe.state`` or
``subscribe()`` a callback that is invoked synchronously after each
snapshot is published.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .cancel import CancelToken
from .download import DownloadResult, DownloadTester
from .endpoints import Endpoints
from .grading import QualityGrade, classify_speed
from .latency import LatencyResult, LatencyTester
from .stats import SpeedSample
from .upload import UploadResult, UploadTester

logger = logging.getLogger(__name__)

Listener = Callable[["ProbeState"], None]


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

class Phase(str, Enum):
    IDLE = "idle"
    PING = "ping"
    DOWNLOAD = "download"
    UPLOAD = "upload"
    DONE = "done"


@dataclass(frozen=True)
class ProbeResult:
    """Final figures of an uninterrupted run."""

    download_mbps: float
    upload_mbps: float
    ping_ms: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "download_mbps": self.download_mbps,
            "upload_mbps": self.upload_mbps,
            "ping_ms": self.ping_ms,
        }


@dataclass(frozen=True)
class ProbeState:
    """Read-only snapshot of what a caller should render."""

    phase: Phase = Phase.IDLE
    progress_percent: float = 0.0
    rate_mbps: float = 0.0
    result: Optional[ProbeResult] = None
    grade: Optional[QualityGrade] = None

    @property
    def running(self) -> bool:
        return self.phase not in (Phase.IDLE, Phase.DONE)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class ThroughputProbe:
    """
    Run latency, download and upload phases against *endpoints*.

    Starting while a run is active cancels that run first.  Cancelling
    voids the run: the state returns to idle and no result is produced.
    """

    def __init__(
        self,
        endpoints: Optional[Endpoints] = None,
        reference_mbps: Optional[float] = None,
        *,
        latency_tester: Optional[LatencyTester] = None,
        download_tester: Optional[DownloadTester] = None,
        upload_tester: Optional[UploadTester] = None,
    ) -> None:
        self.endpoints = endpoints or Endpoints()
        self.reference_mbps = reference_mbps
        self.latency_tester = latency_tester or LatencyTester()
        self.download_tester = download_tester or DownloadTester()
        self.upload_tester = upload_tester or UploadTester()

        self.latency_result: Optional[LatencyResult] = None
        self.download_result: Optional[DownloadResult] = None
        self.upload_result: Optional[UploadResult] = None

        self._state = ProbeState()
        self._listeners: List[Listener] = []
        self._token: Optional[CancelToken] = None
        self._task: Optional[asyncio.Task] = None

    # -- Observable state ---------------------------------------------------

    @property
    def state(self) -> ProbeState:
        return self._state

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a function that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _publish(self, **changes: Any) -> None:
        self._state = dataclasses.replace(self._state, **changes)
        state = self._state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("State listener %r failed", listener)

    def _publish_for(self, token: CancelToken, **changes: Any) -> None:
        # A cancelled or superseded run must never write state again.
        if token is self._token and not token.cancelled:
            self._publish(**changes)

    # -- Commands -----------------------------------------------------------

    def start(self) -> asyncio.Task:
        """Begin a new run on the running loop and return its task."""
        loop = asyncio.get_running_loop()
        self.cancel()
        superseded = self._task if self._task is not None and not self._task.done() else None

        token = CancelToken()
        self._token = token
        self.latency_result = self.download_result = self.upload_result = None
        self._state = ProbeState()
        self._publish(phase=Phase.PING)

        logger.info("Probe run started against %s", self.endpoints.download_url)
        self._task = loop.create_task(self._run(token, superseded))
        return self._task

    async def run(self) -> Optional[ProbeResult]:
        """Start a run and wait for it; ``None`` means it was cancelled."""
        task = self.start()
        try:
            return await task
        except asyncio.CancelledError:
            self.cancel()
            raise

    def cancel(self) -> None:
        """Abort the active run.  A no-op when nothing is running."""
        token = self._token
        if token is None or token.cancelled or not self._state.running:
            return

        logger.info("Probe run cancelled during %s phase", self._state.phase.value)
        token.cancel()
        self._publish(phase=Phase.IDLE, progress_percent=0.0, rate_mbps=0.0)

    # -- Run ----------------------------------------------------------------

    async def _run(
        self,
        token: CancelToken,
        superseded: Optional[asyncio.Task] = None,
    ) -> Optional[ProbeResult]:
        try:
            if superseded is not None:
                # The previous run's connection is released before this one sends anything.
                for outcome in await asyncio.gather(superseded, return_exceptions=True):
                    if isinstance(outcome, Exception):
                        logger.warning("Superseded probe run failed: %r", outcome)
                if token.cancelled:
                    return None
            return await self._run_phases(token)
        except asyncio.CancelledError:
            if token is self._token:
                self.cancel()
            raise

    async def _run_phases(self, token: CancelToken) -> Optional[ProbeResult]:
        def on_sample(sample: SpeedSample) -> None:
            self._publish_for(
                token,
                rate_mbps=sample.rate_mbps,
                progress_percent=sample.progress_percent,
            )

        latency = await self.latency_tester.test(self.endpoints, token)
        if token.cancelled:
            return None

        self._publish_for(token, phase=Phase.DOWNLOAD, progress_percent=0.0, rate_mbps=0.0)
        download = await self.download_tester.test(self.endpoints, token, on_progress=on_sample)
        if token.cancelled:
            return None

        self._publish_for(token, phase=Phase.UPLOAD, progress_percent=0.0, rate_mbps=0.0)
        upload = await self.upload_tester.test(self.endpoints, token, on_progress=on_sample)
        if token.cancelled:
            return None

        result = ProbeResult(
            download_mbps=download.speed_mbps,
            upload_mbps=upload.speed_mbps,
            ping_ms=latency.ping_ms,
        )
        grade = classify_speed(result.download_mbps, self.reference_mbps)

        self.latency_result = latency
        self.download_result = download
        self.upload_result = upload
        self._publish_for(
            token,
            phase=Phase.DONE,
            progress_percent=100.0,
            result=result,
            grade=grade,
        )
        logger.info(
            "Probe run finished: ping=%s ms, down=%.1f Mbps, up=%.1f Mbps",
            result.ping_ms, result.download_mbps, result.upload_mbps,
        )
        return result
