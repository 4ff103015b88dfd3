"""
Rich-based terminal dashboard for speed test results.

All formatting helpers live in ``cfspeed.stats`` -- this module only does
presentation via the ``rich`` library.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from cfspeed.latency import LatencyMetrics
from cfspeed.runner import Phase, SpeedTestResult
from cfspeed.stats import format_latency, format_speed, format_value

from .history import format_history_table, sparkline

console = Console()

PHASE_LABELS = {
    Phase.IDLE: "Waiting to start",
    Phase.LATENCY: "Measuring latency",
    Phase.DOWNLOAD: "Testing download",
    Phase.UPLOAD: "Testing upload",
    Phase.COMPLETED: "Test complete",
    Phase.ERROR: "Something went wrong",
}


# ---------------------------------------------------------------------------
# Histogram helper
# ---------------------------------------------------------------------------

def create_histogram(values: List[float]) -> str:
    """Return a single-line Unicode bar-chart."""
    return sparkline(values) or "No data"


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------

def print_header(isp: Optional[str] = None) -> None:
    subtitle = f"[dim]ISP · {isp}[/dim]" if isp else "[dim]Latency, jitter, download and upload[/dim]"
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Cloudflare Speed Test[/bold cyan]\n" + subtitle,
            border_style="cyan",
        )
    )
    console.print()


def print_latency_details(latency: LatencyMetrics) -> None:
    """Print latency statistics and a per-sample histogram."""
    table = Table(title="Latency Details", box=box.ROUNDED)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Average", format_latency(latency.average))
    table.add_row("Min", format_latency(latency.min))
    table.add_row("Max", format_latency(latency.max))
    table.add_row("Jitter", f"{latency.jitter:.2f} ms")
    table.add_row("Samples", str(len(latency.samples)))
    console.print(table)

    console.print(
        Panel(
            f"[cyan]{create_histogram(list(latency.samples))}[/cyan]",
            title="Ping Samples",
        )
    )


def print_final_results(result: SpeedTestResult, isp: Optional[str] = None) -> None:
    ping = result.latency.average if result.latency else None
    jitter = result.latency.jitter if result.latency else None

    lines = []
    if isp:
        lines.append(f"[bold cyan]ISP:[/bold cyan] {isp}\n")
    lines.append(
        f"[bold white]   Download:[/bold white]  "
        f"[bold green]{format_value(result.download_mbps)} Mbps[/bold green]"
    )
    lines.append(
        f"[bold white]   Upload:[/bold white]  "
        f"[bold blue]{format_value(result.upload_mbps)} Mbps[/bold blue]"
    )
    lines.append(
        f"[bold white]   Ping:[/bold white]  [bold yellow]{format_value(ping)} ms[/bold yellow]  "
        f"[dim](jitter: {format_value(jitter)} ms)[/dim]"
    )

    console.print()
    console.print(
        Panel.fit("\n".join(lines), title="[bold]Results[/bold]", border_style="cyan")
    )
    console.print()


def print_history(entries: List[Dict[str, Any]]) -> None:
    """Print past runs, newest first."""
    if not entries:
        console.print("[dim]No test history yet.[/dim]")
        return

    table = Table(title="Recent Tests", box=box.ROUNDED)
    table.add_column("When", style="dim")
    table.add_column("ISP")
    table.add_column("Download", justify="right", style="green")
    table.add_column("Upload", justify="right", style="blue")
    table.add_column("Ping", justify="right", style="yellow")
    table.add_column("Jitter", justify="right")

    rows = format_history_table(entries)
    for row in rows:
        table.add_row(
            row["timestamp"],
            row["isp"] or "--",
            format_speed(row["download"]),
            format_speed(row["upload"]),
            format_value(row["ping"]),
            format_value(row["jitter"]),
        )
    console.print(table)

    downloads = [r["download"] for r in reversed(rows) if r["download"] is not None]
    if len(downloads) > 1:
        console.print(f"  Download trend: [green]{sparkline(downloads)}[/green]")


# ---------------------------------------------------------------------------
# Progress display
# ---------------------------------------------------------------------------

class ProgressDisplay:
    """Drives a ``rich`` progress bar from engine progress events."""

    def __init__(self) -> None:
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description}"),
            BarColumn(bar_width=40),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            console=console,
        )
        self._task_id = None

    def start(self) -> None:
        self.progress.start()
        self._task_id = self.progress.add_task(PHASE_LABELS[Phase.IDLE], total=100)

    def update(self, percent: int, phase: Phase) -> None:
        if self._task_id is None:
            return
        self.progress.update(
            self._task_id,
            completed=percent,
            description=PHASE_LABELS.get(phase, str(phase)),
        )

    def stop(self) -> None:
        self.progress.stop()
