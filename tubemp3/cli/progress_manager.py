"""
Rich progress display for local downloads, driven by the acquirer's real byte counts.
"""

from rich.console import Console
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


class ProgressManager:
    """
    Shows one transfer bar. The total is the source's size estimate when it
    has one; without it the bar shows bytes received only.
    """

    def __init__(self, console: Console, description: str = "Downloading"):
        self.console = console
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=30),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            DownloadColumn(),
            "•",
            TransferSpeedColumn(),
            "•",
            TimeRemainingColumn(),
            console=console,
            transient=True,
        )
        self._description = description
        self._task_id: TaskID | None = None

    def __enter__(self) -> "ProgressManager":
        self.progress.start()
        self._task_id = self.progress.add_task(self._description, total=None)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.progress.stop()
        return False

    def update(self, bytes_written: int, total: int | None) -> None:
        """Progress callback accepted by `StreamAcquirer.acquire`."""
        if self._task_id is None:
            return
        if total and total >= bytes_written:
            self.progress.update(self._task_id, completed=bytes_written, total=total)
        else:
            self.progress.update(self._task_id, completed=bytes_written)
