"""CLI progress display for sync operations.

This module provides a Rich-based progress display that works with the
SyncProgressTracker from the sync engine.
"""

from typing import Optional

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from .sync.progress import SyncPhase, SyncProgressInfo, SyncProgressTracker

PHASE_DESCRIPTIONS = {
    SyncPhase.RESUMING: "Resuming interrupted sync...",
    SyncPhase.SCANNING: "Scanning local files...",
    SyncPhase.DIFFING: "Comparing with last sync...",
    SyncPhase.EXECUTING: "Syncing files...",
    SyncPhase.COMMITTING: "Saving sync state...",
}


class SyncProgressDisplay:
    """Rich-based progress display for sync operations.

    Shows the current phase as the task description and, while operations
    run, a bar of completed operations against the ledger total.

    Examples:
        >>> display = SyncProgressDisplay()
        >>> with display:
        ...     engine = SyncEngine(..., progress=display.create_tracker())
        ...     engine.sync()
    """

    def __init__(self) -> None:
        """Initialize the progress display."""
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None

    def create_tracker(self) -> SyncProgressTracker:
        """Create a SyncProgressTracker that updates this display."""
        return SyncProgressTracker(callback=self._handle_event)

    def _handle_event(self, info: SyncProgressInfo) -> None:
        """Handle a progress event from the tracker."""
        if self._progress is None or self._task is None:
            return

        if info.phase in (SyncPhase.IDLE, SyncPhase.ERROR):
            self._progress.update(self._task, visible=False)
            return

        description = PHASE_DESCRIPTIONS.get(info.phase, info.phase.value)
        if info.phase in (SyncPhase.EXECUTING, SyncPhase.RESUMING) and info.total:
            self._progress.update(
                self._task,
                description=description,
                total=info.total,
                completed=info.done,
                visible=True,
            )
        else:
            self._progress.update(
                self._task, description=description, total=None, visible=True
            )

    def start(self) -> None:
        """Start the progress display."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            transient=True,
        )
        self._progress.start()
        self._task = self._progress.add_task("Starting...", total=None)

    def stop(self) -> None:
        """Stop the progress display."""
        if self._progress is not None:
            self._progress.stop()
        self._progress = None
        self._task = None

    def __enter__(self) -> "SyncProgressDisplay":
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()
