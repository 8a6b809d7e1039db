#!/usr/bin/env python3
"""
Speed probe CLI -- one latency / download / upload run from the terminal.

Usage::

    python speedprobe.py                      # rich dashboard
    python speedprobe.py --simple             # plain text
    python speedprobe.py --json               # JSON to stdout
    python speedprobe.py -o result.json       # save to file
    python speedprobe.py --plan 100           # grade vs package speed
    python speedprobe.py --download-url URL   # use another endpoint
    python speedprobe.py --set plan=100       # persist a config value
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, Optional

from probe.config import (
    DEFAULTS,
    coerce_value,
    config_path,
    load_config,
    set_config_value,
)
from probe.constants import MAX_DURATION, MAX_UPLOAD_ITERATIONS, MIN_DURATION
from probe.download import DownloadTester
from probe.endpoints import Endpoints
from probe.latency import LatencyTester
from probe.runner import ThroughputProbe
from probe.upload import UploadTester
from ui.dashboard import (
    LiveView,
    console,
    print_banner,
    print_final_results,
    print_round_trips,
    print_transfer_summary,
)
from ui.logging_setup import configure_logging
from ui.output import create_result_json, format_text_result, save_json

# Settings that a command-line flag of the same name can override.
_OVERRIDABLE = (
    "plan",
    "ping_url",
    "download_url",
    "upload_url",
    "download_duration",
    "upload_duration",
    "download_bytes",
    "upload_chunk_bytes",
    "upload_iterations",
)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def _resolve_settings(args: argparse.Namespace, config: Dict[str, Any]) -> Dict[str, Any]:
    """Config file values, overridden by any flag given on the command line."""
    settings = dict(config)
    for key in _OVERRIDABLE:
        value = getattr(args, key, None)
        if value is not None:
            settings[key] = value
    if getattr(args, "verbose", False):
        settings["log_level"] = "DEBUG"
    return settings


def _number(settings: Dict[str, Any], key: str, kind: type) -> Any:
    value = settings[key]
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a number, got {value!r}") from None


def _validate(settings: Dict[str, Any]) -> None:
    """Raise ``ValueError`` if any setting is malformed or out of range."""
    for key in ("download_duration", "upload_duration"):
        if not MIN_DURATION <= _number(settings, key, float) <= MAX_DURATION:
            raise ValueError(f"{key} must be between {MIN_DURATION} and {MAX_DURATION} s")
    if not 1 <= _number(settings, "upload_iterations", int) <= MAX_UPLOAD_ITERATIONS:
        raise ValueError(f"upload_iterations must be between 1 and {MAX_UPLOAD_ITERATIONS}")
    for key in ("download_bytes", "upload_chunk_bytes"):
        if _number(settings, key, int) <= 0:
            raise ValueError(f"{key} must be positive")
    if settings["plan"] is not None and _number(settings, "plan", float) < 0:
        raise ValueError("plan must not be negative")
    for key in ("ping_url", "download_url", "upload_url"):
        if settings[key] is not None and not isinstance(settings[key], str):
            raise ValueError(f"{key} must be a string, got {settings[key]!r}")
    Endpoints.from_dict(settings).validate()


def build_probe(settings: Dict[str, Any]) -> ThroughputProbe:
    """Wire a ``ThroughputProbe`` from validated settings."""
    plan = float(settings["plan"] or 0)
    return ThroughputProbe(
        endpoints=Endpoints.from_dict(settings),
        reference_mbps=plan if plan > 0 else None,
        latency_tester=LatencyTester(),
        download_tester=DownloadTester(
            duration_seconds=float(settings["download_duration"]),
            request_bytes=int(settings["download_bytes"]),
        ),
        upload_tester=UploadTester(
            duration_seconds=float(settings["upload_duration"]),
            payload_size=int(settings["upload_chunk_bytes"]),
            max_iterations=int(settings["upload_iterations"]),
        ),
    )


# ---------------------------------------------------------------------------
# Core run
# ---------------------------------------------------------------------------

async def run_probe(
    settings: Dict[str, Any],
    *,
    json_output: bool = False,
    simple: bool = False,
    output_file: Optional[str] = None,
) -> Optional[dict]:
    """Execute one probe run and return a JSON-serialisable dict."""
    show_ui = not json_output and not simple
    probe = build_probe(settings)
    plan = probe.reference_mbps

    view = None
    if show_ui:
        print_banner(probe.endpoints, plan)
        view = LiveView()
        probe.subscribe(view)

    try:
        result = await probe.run()
    finally:
        if view is not None:
            view.close()

    if result is None:
        console.print("[yellow]Test cancelled[/yellow]")
        return None

    grade = probe.state.grade

    if show_ui:
        print_round_trips(probe.latency_result)
        print_transfer_summary(probe.download_result, probe.upload_result)
        print_final_results(result, grade, plan)
    elif simple:
        print(format_text_result(result, grade, plan))

    result_json = create_result_json(
        result,
        endpoints=probe.endpoints.to_dict(),
        latency_results=probe.latency_result.to_dict(),
        download_results=probe.download_result.to_dict(),
        upload_results=probe.upload_result.to_dict(),
        grade=grade,
        plan_mbps=plan,
    )

    if json_output:
        print(json.dumps(result_json, indent=2))

    if output_file:
        save_json(result_json, output_file)
        if not json_output:
            console.print(f"[green]Results saved to:[/green] {output_file}")

    return result_json


def _set_value(assignment: str) -> str:
    """Persist one ``KEY=VALUE`` pair; returns the config file path."""
    key, sep, raw = assignment.partition("=")
    if not sep:
        raise ValueError("--set expects KEY=VALUE")
    key = key.strip()
    try:
        value = coerce_value(key, raw.strip())
    except KeyError:
        raise ValueError(f"Unknown config key {key!r}; known keys: {', '.join(DEFAULTS)}") from None
    return set_config_value(key, value)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main() -> None:
    parser = argparse.ArgumentParser(
        description="Speed probe -- latency, download and upload measurement",
    )
    # Output modes
    parser.add_argument("--json", "-j", action="store_true", help="Output results as JSON")
    parser.add_argument("--output", "-o", type=str, metavar="FILE", help="Save results to JSON file")
    parser.add_argument("--simple", "-s", action="store_true", help="Simple output mode (no dashboard)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    # Grading
    parser.add_argument("--plan", type=float, metavar="MBPS", help="Your package speed in Mbps for grading")

    # Endpoints
    parser.add_argument("--ping-url", dest="ping_url", metavar="URL", help="Latency endpoint")
    parser.add_argument("--download-url", dest="download_url", metavar="URL", help="Bulk download endpoint")
    parser.add_argument("--upload-url", dest="upload_url", metavar="URL", help="Upload sink endpoint")

    # Phase parameters
    parser.add_argument("--download-duration", type=float, metavar="SECS", help="Download budget in seconds (default: 8)")
    parser.add_argument("--upload-duration", type=float, metavar="SECS", help="Upload budget in seconds (default: 6)")
    parser.add_argument("--download-bytes", type=int, metavar="N", help="Bytes requested from the download endpoint")
    parser.add_argument("--upload-chunk-bytes", type=int, metavar="N", help="Size of each upload POST body")
    parser.add_argument("--upload-iterations", type=int, metavar="N", help="Maximum number of upload POSTs (default: 10)")

    # Config
    parser.add_argument("--set", metavar="KEY=VALUE", help="Persist a config value and exit")
    parser.add_argument("--show-config", action="store_true", help="Print the effective config and exit")

    args = parser.parse_args()

    if args.set:
        try:
            path = _set_value(args.set)
        except ValueError as exc:
            console.print(f"[red]Error: {exc}[/red]")
            sys.exit(1)
        console.print(f"[green]Saved to:[/green] {path}")
        return

    settings = _resolve_settings(args, load_config())

    if args.show_config:
        console.print(f"[dim]{config_path()}[/dim]")
        console.print_json(json.dumps(settings))
        return

    try:
        _validate(settings)
    except ValueError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)

    configure_logging(settings.get("log_level", "WARNING"), console=console)

    try:
        asyncio.run(
            run_probe(
                settings,
                json_output=args.json,
                simple=args.simple,
                output_file=args.output,
            )
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Test cancelled by user[/yellow]")
        sys.exit(1)
    except Exception as exc:
        console.print(f"\n[red]Error: {exc}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
