"""Console rendering and progress helpers for the sendvideo CLI."""
from __future__ import annotations

from typing import Any, Dict, Optional

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table

console = Console()


def _human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size >= 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.2f} {units[unit_idx]}"


def render_configuration_summary(config: Dict[str, Any], target: Optional[Console] = None) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]sendvideo[/bold green]",
        subtitle="[dim]folder upload monitor[/dim]",
        border_style="blue",
    )
    (target or console).print(panel)


class UploadProgressReporter:
    """
    Progress bar per file, fed with (bytes_sent, total_bytes, label).

    One bar is shown while a file uploads and is replaced by a single
    "Uploaded" line when it reaches 100%.
    """

    def __init__(self, target: Optional[Console] = None):
        self._console = target or console
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[filename]}", justify="left"),
            BarColumn(bar_width=30),
            TextColumn("[progress.percentage]{task.percentage:>6.2f}%"),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            expand=False,
            console=self._console,
            transient=True,
        )
        self._tasks: Dict[str, TaskID] = {}

    def __call__(self, bytes_sent: int, total_bytes: int, label: str) -> None:
        if total_bytes <= 0:
            return

        task_id = self._tasks.get(label)
        if task_id is None:
            if not self._tasks:
                self._progress.start()
            task_id = self._progress.add_task("upload", filename=label[:60], total=total_bytes)
            self._tasks[label] = task_id

        self._progress.update(task_id, completed=bytes_sent, total=total_bytes)

        if bytes_sent >= total_bytes:
            self._finish(label, total_bytes)

    def _finish(self, label: str, total_bytes: int) -> None:
        task_id = self._tasks.pop(label)
        self._progress.remove_task(task_id)
        if not self._tasks:
            self._progress.stop()
        self._console.print(f"[green]Sent:[/green] {label} ({_human_size(total_bytes)})")

    def close(self) -> None:
        for task_id in self._tasks.values():
            self._progress.remove_task(task_id)
        self._tasks.clear()
        self._progress.stop()
