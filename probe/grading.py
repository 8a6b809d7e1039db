"""
Speed grading against the subscriber's provisioned bandwidth.

Pure functions only.  The thresholds are fixed and applied with ``>=`` at
both boundaries.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional


class QualityGrade(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    BELOW_EXPECTED = "Below Expected"


# ---------------------------------------------------------------------------
# Grading
# ---------------------------------------------------------------------------

_THRESHOLDS = [
    (0.8, QualityGrade.EXCELLENT),
    (0.5, QualityGrade.GOOD),
]

GRADE_COLORS = {
    QualityGrade.EXCELLENT: "green",
    QualityGrade.GOOD: "yellow",
    QualityGrade.BELOW_EXPECTED: "red",
}

# Download share of the plan the subscriber is told "matches" it.
MATCHES_PLAN_RATIO = 0.8


def _usable(reference_mbps: Optional[float]) -> bool:
    return reference_mbps is not None and reference_mbps > 0


def classify_speed(
    download_mbps: float,
    reference_mbps: Optional[float],
) -> Optional[QualityGrade]:
    """Grade *download_mbps* against *reference_mbps*; ``None`` if no plan."""
    if not _usable(reference_mbps):
        return None

    ratio = download_mbps / reference_mbps

    for threshold, grade in _THRESHOLDS:
        if ratio >= threshold:
            return grade

    return QualityGrade.BELOW_EXPECTED


def plan_ratio(download_mbps: float, reference_mbps: Optional[float]) -> Optional[float]:
    """Measured / plan as a fraction (0..1+), or ``None`` without a plan."""
    if not _usable(reference_mbps):
        return None
    return download_mbps / reference_mbps


# ---------------------------------------------------------------------------
# Verdict text
# ---------------------------------------------------------------------------

def plan_verdict(download_mbps: float, reference_mbps: Optional[float]) -> Optional[str]:
    """One-line message comparing the result with the package speed."""
    if not _usable(reference_mbps):
        return None

    plan = f"{reference_mbps:g} Mbps"
    if download_mbps >= reference_mbps * MATCHES_PLAN_RATIO:
        return f"Your speed matches your package ({plan})"
    return f"Speed is below your package ({plan}). Try again or contact support."
