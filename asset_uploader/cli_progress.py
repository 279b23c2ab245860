"""Console rendering and progress helpers for the asset-up CLI."""
from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.live import Live
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

from .models import ItemStatus, UploadItem


console = Console()

STATUS_STYLES = {
    ItemStatus.PENDING: "dim",
    ItemStatus.TRANSFERRING: "cyan",
    ItemStatus.CONFIRMING: "blue",
    ItemStatus.COMPLETED: "green",
    ItemStatus.FAILED: "red",
}


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


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]asset-up[/bold green]",
        subtitle="[dim]asset uploader CLI[/dim]",
        border_style="blue",
    )
    console.print(panel)


def render_batch_summary(items: List[UploadItem]) -> None:
    """Render the final per-file status table."""
    table = Table(title="Upload results", show_lines=False)
    table.add_column("File", style="bold")
    table.add_column("Size", justify="right")
    table.add_column("Status")
    table.add_column("Detail", style="dim")

    for item in items:
        style = STATUS_STYLES.get(item.status, "white")
        detail = item.error_message or (item.key or "")
        table.add_row(
            item.file_name,
            _human_size(item.file_ref.size),
            f"[{style}]{item.status.value}[/{style}]",
            detail,
        )
    console.print(table)


class BatchUploadProgressDisplay:
    """Event-based console display for a batch upload."""

    def __init__(self, live: bool = True):
        self._tasks: Dict[str, TaskID] = {}
        self._totals: Dict[str, int] = {}
        self._stats = {"completed": 0, "failed": 0}
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            expand=False,
            console=console,
        )
        self._live: Optional[Live] = (
            Live(self._progress, console=console, refresh_per_second=5) if live else None
        )

    def start(self) -> None:
        if self._live is not None:
            self._live.start()

    def stop(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None

    @property
    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def _timeline(self, status: str, item: UploadItem, error: Optional[str] = None) -> None:
        stamp = time.strftime("%H:%M:%S")
        color = "green" if status == "DONE" else "red"
        cause = f" cause={error}" if error else ""
        self._progress.console.print(
            f"[dim]{stamp}[/dim] [{color}]{status:<4}[/{color}] "
            f"{item.file_name} {_human_size(item.file_ref.size)}{cause}"
        )

    def on_item_start(self, item: UploadItem) -> None:
        total = max(item.file_ref.size, 1)
        self._totals[item.id] = total
        self._tasks[item.id] = self._progress.add_task(
            "upload", label=item.file_name[:48], total=total
        )

    def on_item_progress(self, item_id: str, percent: float) -> None:
        task_id = self._tasks.get(item_id)
        if task_id is None:
            return
        self._progress.update(task_id, completed=self._totals[item_id] * percent / 100)

    def _finish_task(self, item: UploadItem) -> None:
        task_id = self._tasks.pop(item.id, None)
        if task_id is not None:
            self._progress.remove_task(task_id)

    def on_item_complete(self, item: UploadItem) -> None:
        self._stats["completed"] += 1
        self._finish_task(item)
        self._timeline("DONE", item)

    def on_item_fail(self, item: UploadItem) -> None:
        self._stats["failed"] += 1
        self._finish_task(item)
        self._timeline("FAIL", item, item.error_message)
