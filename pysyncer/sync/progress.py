"""Progress reporting for sync runs.

Progress is informational only; nothing in the engine depends on it.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class SyncPhase(str, Enum):
    """States of the sync orchestrator."""

    IDLE = "idle"
    RESUMING = "resuming"
    SCANNING = "scanning"
    DIFFING = "diffing"
    EXECUTING = "executing"
    COMMITTING = "committing"
    ERROR = "error"


@dataclass
class SyncProgressInfo:
    """Snapshot of sync progress passed to listeners."""

    phase: SyncPhase
    done: int = 0
    total: int = 0
    message: Optional[str] = None


class SyncProgressTracker:
    """Collects phase changes and operation counts and forwards them.

    The executor calls ``on_operations`` from worker threads, so updates are
    serialized with a lock before the callback runs.
    """

    def __init__(self, callback: Optional[Callable[[SyncProgressInfo], None]] = None):
        self.callback = callback
        self._lock = threading.Lock()
        self.phase = SyncPhase.IDLE
        self.done = 0
        self.total = 0
        self.message: Optional[str] = None

    def on_phase(self, phase: SyncPhase, message: Optional[str] = None) -> None:
        with self._lock:
            self.phase = phase
            self.message = message
            if phase in (SyncPhase.SCANNING, SyncPhase.RESUMING):
                self.done = 0
                self.total = 0
            self._emit()

    def on_operations(self, done: int, total: int) -> None:
        with self._lock:
            self.done = done
            self.total = total
            self._emit()

    def _emit(self) -> None:
        if self.callback is not None:
            self.callback(
                SyncProgressInfo(
                    phase=self.phase,
                    done=self.done,
                    total=self.total,
                    message=self.message,
                )
            )
