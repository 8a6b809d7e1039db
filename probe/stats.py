"""
Throughput statistics.

Pure rate math, the per-phase byte-rate window, and lightweight result
dataclasses.  Apart from the injectable clock there is no I/O here, so
everything is deterministic and easy to unit-test.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .constants import BITS_PER_BYTE, BITS_PER_MEGABIT, MIN_ELAPSED_SECONDS

Clock = Callable[[], float]


# ---------------------------------------------------------------------------
# Pure helper functions
# ---------------------------------------------------------------------------

def calculate_rate_mbps(total_bytes: int, elapsed_seconds: float) -> float:
    """Decimal megabits per second, rounded to one decimal place."""
    elapsed = max(elapsed_seconds, MIN_ELAPSED_SECONDS)
    mbps = total_bytes * BITS_PER_BYTE / elapsed / BITS_PER_MEGABIT
    return round(mbps, 1)


def calculate_progress(elapsed_seconds: float, budget_seconds: float) -> float:
    """Share of the phase budget used, as a percentage clamped to 0..100."""
    if budget_seconds <= 0:
        return 100.0
    return max(0.0, min(100.0, elapsed_seconds / budget_seconds * 100))


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SpeedSample:
    """One live reading taken after a chunk or POST completes."""

    elapsed_ms: float
    cumulative_bytes: int
    rate_mbps: float
    progress_percent: float

    def to_dict(self) -> dict:
        return {
            "elapsed_ms": round(self.elapsed_ms, 1),
            "bytes": self.cumulative_bytes,
            "rate_mbps": self.rate_mbps,
            "progress": round(self.progress_percent, 1),
        }


@dataclass
class TransferResult:
    """Outcome of a download or upload phase."""

    speed_mbps: float = 0.0
    bytes_total: int = 0
    duration_ms: float = 0.0
    samples: List[SpeedSample] = field(default_factory=list)
    cancelled: bool = False
    error: Optional[str] = None

    def calculate(self) -> None:
        """Derive the final rate; a cancelled phase is void and reports 0."""
        if self.cancelled or self.bytes_total <= 0:
            self.speed_mbps = 0.0
            return
        self.speed_mbps = calculate_rate_mbps(self.bytes_total, self.duration_ms / 1000)

    @property
    def rates(self) -> List[float]:
        return [s.rate_mbps for s in self.samples]

    def to_dict(self) -> dict:
        return {
            "speed_mbps": self.speed_mbps,
            "bytes_total": self.bytes_total,
            "duration_ms": round(self.duration_ms, 2),
            "samples": [s.to_dict() for s in self.samples],
            "cancelled": self.cancelled,
            "error": self.error,
        }


# ---------------------------------------------------------------------------
# Byte-rate window
# ---------------------------------------------------------------------------

class ByteRateWindow:
    """
    Accumulates bytes for one phase and turns them into ``SpeedSample``s.

    ``start()`` resets the counters, so one window can be reused across
    runs.  Progress never moves backwards within a phase, even if the
    clock does.
    """

    def __init__(self, budget_seconds: float, clock: Clock = time.perf_counter) -> None:
        self.budget_seconds = budget_seconds
        self._clock = clock
        self._started = 0.0
        self._progress = 0.0
        self.total_bytes = 0

    def start(self) -> None:
        self._started = self._clock()
        self._progress = 0.0
        self.total_bytes = 0

    def elapsed(self) -> float:
        return max(0.0, self._clock() - self._started)

    def expired(self) -> bool:
        return self.elapsed() > self.budget_seconds

    def add(self, n: int) -> SpeedSample:
        self.total_bytes += max(0, n)
        elapsed = self.elapsed()
        self._progress = max(self._progress, calculate_progress(elapsed, self.budget_seconds))
        return SpeedSample(
            elapsed_ms=elapsed * 1000,
            cumulative_bytes=self.total_bytes,
            rate_mbps=calculate_rate_mbps(self.total_bytes, elapsed),
            progress_percent=self._progress,
        )


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def format_speed(speed_mbps: float) -> str:
    """Human-readable speed string."""
    if speed_mbps >= 1000:
        return f"{speed_mbps / 1000:.2f} Gbps"
    return f"{speed_mbps:.1f} Mbps"


def format_latency(latency_ms: Optional[float]) -> str:
    """Human-readable latency string; ``None`` means unavailable."""
    if latency_ms is None:
        return "N/A"
    if latency_ms >= 1000:
        return f"{latency_ms / 1000:.2f} s"
    return f"{latency_ms:.0f} ms"
