"""Durable storage for the sync engine's state.

The whole PersistedState is written as one JSON document. Every save goes to
a temporary file in the same directory which is then renamed over the old
file, so a crash mid-write leaves either the previous or the new state on
disk, never a mix of both.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional, Protocol

from ..exceptions import StateStoreError
from .models import PersistedState

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    """Durable key-value store holding one PersistedState."""

    def load(self) -> Optional[PersistedState]: ...

    def save(self, state: PersistedState) -> None: ...

    def clear(self) -> bool: ...


class JsonStateStore:
    """Stores PersistedState in a JSON file.

    Examples:
        >>> store = JsonStateStore(Path("~/.config/pysyncer/sync_state/abc.json"))
        >>> state = store.load() or PersistedState()
        >>> store.save(state)
    """

    def __init__(self, path: Path):
        """Initialize state store.

        Args:
            path: File holding the state (parent directories are created)
        """
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def load(self) -> Optional[PersistedState]:
        """Load persisted state.

        Returns:
            PersistedState if found and readable, None otherwise
        """
        if not self.path.exists():
            logger.debug(f"No sync state found at {self.path}")
            return None

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load sync state: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed sync state at {self.path}")
            return None

        state = PersistedState.from_dict(data)
        logger.debug(
            "Loaded sync state (baseline: %s files, pending: %s)",
            state.baseline_snapshot.file_count if state.baseline_snapshot else None,
            state.pending_ledger.total_count if state.pending_ledger else None,
        )
        return state

    def save(self, state: PersistedState) -> None:
        """Replace the persisted state.

        Raises:
            StateStoreError: If the state could not be written
        """
        payload = json.dumps(state.to_dict(), indent=2)
        with self._lock:
            tmp_name: Optional[str] = None
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
                )
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self.path)
                tmp_name = None
            except OSError as e:
                raise StateStoreError(
                    f"Failed to save sync state to {self.path}: {e}"
                ) from e
            finally:
                if tmp_name is not None:
                    Path(tmp_name).unlink(missing_ok=True)
        logger.debug(f"Saved sync state to {self.path}")

    def clear(self) -> bool:
        """Delete the persisted state.

        Returns:
            True if state was cleared, False if no state existed
        """
        with self._lock:
            if self.path.exists():
                self.path.unlink()
                logger.debug(f"Cleared sync state at {self.path}")
                return True
        return False
