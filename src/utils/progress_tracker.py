"""
Progress Tracker Module

Wraps rich library for a progress bar over generation stages.

Example Usage:
    from src.utils.progress_tracker import ProgressTracker

    tracker = ProgressTracker()
    tracker.start_phase("Career content generation", total_items=7)
    tracker.stage_finished("recommendations", "ready")
    tracker.complete_phase()
"""

from typing import Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

STATUS_STYLES = {
    "ready": "green",
    "failed": "red",
    "idle": "yellow",
    "generating": "blue",
}


class ProgressTracker:
    """Manages a progress bar for stage generation using rich library."""

    def __init__(self, console: Optional[Console] = None) -> None:
        """Initialize ProgressTracker with an optional rich Console."""
        self.console = console or Console()
        self.progress: Optional[Progress] = None
        self.task_id: Optional[TaskID] = None
        self.phase_name: str = ""
        self.total_items: int = 0
        self.completed_items: int = 0

    def start_phase(self, phase_name: str, total_items: int) -> None:
        """
        Start a progress bar.

        Args:
            phase_name: Description shown next to the bar
            total_items: Number of stages to be processed
        """
        self.phase_name = phase_name
        self.total_items = total_items
        self.completed_items = 0

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TextColumn("({task.completed}/{task.total})"),
            TimeElapsedColumn(),
            console=self.console,
        )
        self.progress.start()
        self.task_id = self.progress.add_task(description=phase_name, total=total_items)

    def increment(self, amount: int = 1) -> None:
        """Advance the bar by ``amount`` stages."""
        if self.progress is None or self.task_id is None:
            return

        self.completed_items += amount
        self.progress.update(self.task_id, advance=amount)

    def stage_finished(self, stage: str, status: str) -> None:
        """Advance by one and print the stage's final status above the bar."""
        if self.progress is None or self.task_id is None:
            return

        style = STATUS_STYLES.get(status, "white")
        self.progress.console.print(f"  {stage}: [{style}]{status}[/{style}]")
        self.increment()

    def complete_phase(self) -> None:
        """Fill the bar, stop the display and print a summary line."""
        if self.progress is None or self.task_id is None:
            return

        if self.completed_items < self.total_items:
            self.progress.update(self.task_id, completed=self.total_items)

        self.progress.stop()
        self.console.print(
            f"[bold green]{self.phase_name} complete:[/bold green] "
            f"{self.completed_items}/{self.total_items} stages processed"
        )

        self.progress = None
        self.task_id = None
        self.phase_name = ""
        self.total_items = 0
        self.completed_items = 0

    def is_active(self) -> bool:
        """True while a progress bar is displayed."""
        return self.progress is not None and self.task_id is not None
