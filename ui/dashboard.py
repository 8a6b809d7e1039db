"""
Terminal rendering of probe runs with ``rich``.

Nothing here measures anything: ``LiveView`` draws ``ProbeState``
snapshots while a run is in progress, and the ``print_*`` helpers render
the per-phase results a finished ``ThroughputProbe`` keeps.
"""
from __future__ import annotations

from typing import Iterable, List, Optional

from rich import box
from rich.console import Console, Group
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
)
from rich.table import Table
from rich.text import Text

from probe.endpoints import Endpoints
from probe.grading import GRADE_COLORS, QualityGrade, plan_ratio, plan_verdict
from probe.latency import LatencyResult
from probe.runner import Phase, ProbeResult, ProbeState
from probe.stats import TransferResult, format_latency, format_speed

console = Console()

_SPARK = "▁▂▃▄▅▆▇█"
_TREND_WIDTH = 24


# ---------------------------------------------------------------------------
# Sparklines
# ---------------------------------------------------------------------------

def sparkline(values: Iterable[float]) -> str:
    """Scale *values* onto eight block characters; empty input gives ``""``."""
    points = list(values)
    if not points:
        return ""
    floor, ceiling = min(points), max(points)
    if ceiling == floor:
        return _SPARK[0] * len(points)
    steps = len(_SPARK) - 1
    return "".join(_SPARK[round((p - floor) / (ceiling - floor) * steps)] for p in points)


def downsample(values: List[float], width: int) -> List[float]:
    """Average *values* into at most *width* consecutive buckets."""
    if len(values) <= width:
        return list(values)
    size = len(values) / width
    buckets = []
    for i in range(width):
        chunk = values[int(i * size):int((i + 1) * size)]
        buckets.append(sum(chunk) / len(chunk))
    return buckets


# ---------------------------------------------------------------------------
# Result panels
# ---------------------------------------------------------------------------

def print_banner(endpoints: Endpoints, plan_mbps: Optional[float] = None) -> None:
    grid = Table.grid(padding=(0, 2))
    grid.add_column(style="dim", justify="right")
    grid.add_column()
    grid.add_row("ping", endpoints.ping_url)
    grid.add_row("download", endpoints.download_url)
    grid.add_row("upload", endpoints.upload_url)
    if plan_mbps:
        grid.add_row("package", f"{plan_mbps:g} Mbps")

    console.print()
    console.print(
        Panel(grid, title="[bold cyan]Speed Probe[/bold cyan]", border_style="cyan", expand=False)
    )


def print_round_trips(result: LatencyResult) -> None:
    """One row per timed round trip, in the order they were sent."""
    pings = result.pings
    if not pings:
        reason = f": {result.error}" if result.error else ""
        console.print(Text(f"No round trips were timed{reason}", style="yellow"))
        return

    ranked = sorted(range(len(pings)), key=pings.__getitem__)
    reported = ranked[1] if len(ranked) > 1 else ranked[0]

    table = Table(title="Round Trips", box=box.SIMPLE)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Time", justify="right")
    table.add_column("")
    for i, elapsed in enumerate(pings):
        marker = Text("◀ reported", style="bold yellow") if i == reported else ""
        table.add_row(str(i + 1), format_latency(elapsed), marker)
    if result.failures:
        table.caption = f"{result.failures} of {len(pings)} requests failed"
    console.print(table)


def print_transfer_summary(download: TransferResult, upload: TransferResult) -> None:
    table = Table(title="Transfers", box=box.SIMPLE_HEAVY)
    table.add_column("Phase", style="bold")
    table.add_column("Rate", justify="right")
    table.add_column("Data", justify="right")
    table.add_column("Time", justify="right")
    table.add_column("Trend")

    phases = (("Download", "green", download), ("Upload", "blue", upload))
    for name, color, result in phases:
        table.add_row(
            name,
            Text(format_speed(result.speed_mbps), style=f"bold {color}"),
            f"{result.bytes_total / 1_000_000:.1f} MB",
            f"{result.duration_ms / 1000:.1f} s",
            Text(sparkline(downsample(result.rates, _TREND_WIDTH)), style=color),
        )
    console.print(table)

    for name, _, result in phases:
        if result.error:
            console.print(Text(f"{name} ended early: {result.error}", style="yellow"))


def print_final_results(
    result: ProbeResult,
    grade: Optional[QualityGrade] = None,
    plan_mbps: Optional[float] = None,
) -> None:
    figures = Table.grid(padding=(0, 4))
    for _ in range(3):
        figures.add_column(justify="center")
    figures.add_row(
        Text("Ping", style="dim"),
        Text("Download", style="dim"),
        Text("Upload", style="dim"),
    )
    figures.add_row(
        Text(format_latency(result.ping_ms), style="bold yellow"),
        Text(format_speed(result.download_mbps), style="bold green"),
        Text(format_speed(result.upload_mbps), style="bold blue"),
    )

    body = [figures]
    if grade is not None and plan_mbps:
        ratio = plan_ratio(result.download_mbps, plan_mbps) or 0.0
        body.append(Text())
        body.append(Text.assemble(
            ("Grade ", "dim"),
            (grade.value, f"bold {GRADE_COLORS[grade]}"),
            (f"  {ratio:.0%} of {plan_mbps:g} Mbps", "dim"),
        ))

    verdict = plan_verdict(result.download_mbps, plan_mbps)
    if verdict:
        body.append(Text(verdict, style="green" if grade is QualityGrade.EXCELLENT else "yellow"))

    console.print()
    console.print(Panel(Group(*body), title="[bold]Results[/bold]", border_style="cyan", expand=False))
    console.print()


# ---------------------------------------------------------------------------
# Live view
# ---------------------------------------------------------------------------

_STEP_NAMES = {
    Phase.PING: "Latency",
    Phase.DOWNLOAD: "Download",
    Phase.UPLOAD: "Upload",
}


class PhaseBar:
    """Transient progress bar for one transfer phase."""

    def __init__(self, label: str) -> None:
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("{task.description}", style="bold"),
            BarColumn(),
            TaskProgressColumn(),
            TextColumn("{task.fields[rate]}", style="cyan"),
            console=console,
            transient=True,
        )
        self._task_id = self._progress.add_task(label, total=100, rate="...")
        self._progress.start()

    def show(self, percent: float, rate_mbps: float) -> None:
        rate = format_speed(rate_mbps) if rate_mbps > 0 else "..."
        self._progress.update(self._task_id, completed=percent, rate=rate)

    def close(self) -> None:
        self._progress.stop()


class LiveView:
    """
    ``ThroughputProbe`` listener: a heading per phase, a bar during the
    transfers and a one-line figure once each transfer ends.

    Pass an instance to ``probe.subscribe()`` and ``close()`` it when the
    run is over.
    """

    def __init__(self) -> None:
        self._phase = Phase.IDLE
        self._bar: Optional[PhaseBar] = None
        self._rate = 0.0

    def __call__(self, state: ProbeState) -> None:
        if state.phase is not self._phase:
            self._leave(state.phase)
            self._enter(state.phase)
        if self._bar is not None:
            self._rate = state.rate_mbps
            self._bar.show(state.progress_percent, state.rate_mbps)

    def _leave(self, next_phase: Phase) -> None:
        if self._bar is None:
            return
        self.close()
        if next_phase is not Phase.IDLE:
            console.print(f"  {_STEP_NAMES[self._phase]}: [cyan]{format_speed(self._rate)}[/cyan]")

    def _enter(self, phase: Phase) -> None:
        self._phase = phase
        if phase is Phase.PING:
            console.print("[bold]Measuring latency...[/bold]")
        elif phase in (Phase.DOWNLOAD, Phase.UPLOAD):
            self._rate = 0.0
            self._bar = PhaseBar(_STEP_NAMES[phase])
        elif phase is Phase.IDLE:
            console.print("[yellow]Test stopped[/yellow]")

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None
