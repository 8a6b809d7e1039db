"""Throughput probe library -- latency, download and upload measurement."""

from .cancel import CancelToken, ProbeCancelled
from .download import DownloadResult, DownloadTester
from .endpoints import Endpoints
from .grading import QualityGrade, classify_speed, plan_verdict
from .latency import LatencyResult, LatencyTester, pick_representative
from .runner import Phase, ProbeResult, ProbeState, ThroughputProbe
from .stats import (
    ByteRateWindow,
    SpeedSample,
    TransferResult,
    calculate_progress,
    calculate_rate_mbps,
    format_latency,
    format_speed,
)
from .upload import UploadResult, UploadTester

__all__ = [
    "ByteRateWindow",
    "CancelToken",
    "DownloadResult",
    "DownloadTester",
    "Endpoints",
    "LatencyResult",
    "LatencyTester",
    "Phase",
    "ProbeCancelled",
    "ProbeResult",
    "ProbeState",
    "QualityGrade",
    "SpeedSample",
    "ThroughputProbe",
    "TransferResult",
    "UploadResult",
    "UploadTester",
    "calculate_progress",
    "calculate_rate_mbps",
    "classify_speed",
    "format_latency",
    "format_speed",
    "pick_representative",
    "plan_verdict",
]
