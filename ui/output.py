"""
Output formatting -- JSON export and plain text.
"""
from __future__ import annotations

import json
import os
import statistics
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from probe.grading import QualityGrade, plan_ratio, plan_verdict
from probe.runner import ProbeResult


def create_result_json(
    result: ProbeResult,
    endpoints: Dict[str, Any],
    latency_results: Dict[str, Any],
    download_results: Dict[str, Any],
    upload_results: Dict[str, Any],
    grade: Optional[QualityGrade] = None,
    plan_mbps: Optional[float] = None,
) -> Dict[str, Any]:
    """Build a JSON-serialisable summary of one probe run."""
    pings: List[float] = latency_results.get("pings", [])

    if pings:
        rtt = {
            "min": min(pings),
            "max": max(pings),
            "median": statistics.median(pings),
        }
    else:
        rtt = {"min": None, "max": None, "median": None}

    output: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "endpoints": endpoints,
        "ping": result.ping_ms,
        "download": {
            "speed_mbps": result.download_mbps,
            "bytes": download_results.get("bytes_total", 0),
            "duration_ms": download_results.get("duration_ms", 0),
            "samples": download_results.get("samples", []),
            "error": download_results.get("error"),
        },
        "upload": {
            "speed_mbps": result.upload_mbps,
            "bytes": upload_results.get("bytes_total", 0),
            "duration_ms": upload_results.get("duration_ms", 0),
            "requests": upload_results.get("requests", 0),
            "samples": upload_results.get("samples", []),
            "error": upload_results.get("error"),
        },
        "latency": {
            "samples": pings,
            "failures": latency_results.get("failures", 0),
            "rtt": rtt,
        },
    }

    if plan_mbps:
        ratio = plan_ratio(result.download_mbps, plan_mbps)
        output["plan"] = {
            "mbps": plan_mbps,
            "ratio": round(ratio, 3) if ratio is not None else None,
            "grade": grade.value if grade is not None else None,
            "verdict": plan_verdict(result.download_mbps, plan_mbps),
        }

    return output


def save_json(result: Dict[str, Any], filepath: str) -> None:
    """Write *result* to *filepath* atomically (write-tmp then rename)."""
    dir_path = os.path.dirname(filepath) or "."
    tmp = os.path.join(dir_path, f".{os.path.basename(filepath)}.partial")

    try:
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(result, fh, indent=2, ensure_ascii=False)
        os.replace(tmp, filepath)
    except OSError as exc:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise OSError(f"Could not write results to {filepath}: {exc}") from exc


# ---------------------------------------------------------------------------
# Plain-text helpers
# ---------------------------------------------------------------------------

def format_text_result(
    result: ProbeResult,
    grade: Optional[QualityGrade] = None,
    plan_mbps: Optional[float] = None,
) -> str:
    ping = f"{result.ping_ms} ms" if result.ping_ms is not None else "unavailable"
    lines = [
        f"Ping: {ping}",
        f"Download: {result.download_mbps:.1f} Mbps",
        f"Upload: {result.upload_mbps:.1f} Mbps",
    ]
    if grade is not None and plan_mbps:
        lines.append(f"Grade: {grade.value} (package {plan_mbps:g} Mbps)")
    return "\n".join(lines)
