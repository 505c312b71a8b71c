"""Core sync engine that orchestrates pushing a local tree to a provider."""

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..exceptions import ProviderError, SyncerConfigError, SyncInProgressError
from ..providers.base import CloudProvider, ProviderResult
from ..utils import DEFAULT_CONCURRENCY, DEFAULT_MAX_RETRIES, now_timestamp
from .comparator import build_push_plan, summarize_plan
from .executor import OperationExecutor
from .ledger import create_pending_sync, remaining_operations
from .models import (
    LOCAL_INDEX_SCHEMA_VERSION,
    SYNC_DATA_SCHEMA_VERSION,
    LocalSnapshot,
    OperationStatus,
    PendingSyncLedger,
    PersistedState,
    SyncOperation,
)
from .progress import SyncPhase, SyncProgressTracker
from .scanner import LocalFileStore, SnapshotBuilder, get_tree_id
from .state import StateStore

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Statistics of a successful sync."""

    uploads: int = 0
    deletes: int = 0
    resumed: int = 0
    """Operations completed from a previously interrupted sync"""

    remote_initialized: bool = True
    """Whether the remote already had a sync marker before this sync"""

    last_successful_sync_at: Optional[float] = None

    @property
    def total_actions(self) -> int:
        return self.uploads + self.deletes + self.resumed


@dataclass
class SyncPlan:
    """What the next sync would do (dry run)."""

    operations: list[SyncOperation] = field(default_factory=list)
    pending: list[SyncOperation] = field(default_factory=list)
    """Unfinished operations of an interrupted sync, run before the plan"""

    remote_initialized: bool = True


@dataclass
class SyncStatus:
    """Summary of the persisted state."""

    tree_id: str
    baseline_files: int
    pending_total: int
    pending_remaining: int
    pending_failed: int
    last_successful_sync_at: Optional[float]


class SyncEngine:
    """Keeps a provider in agreement with a local tree.

    A sync resumes any interrupted operation set first, then scans the tree,
    diffs it against the last agreed baseline, executes the resulting plan and
    commits the scanned snapshot as the new baseline. State is persisted after
    every step so an interrupted sync can be resumed.

    Examples:
        >>> store = LocalFileStore(Path("/home/user/notes"))
        >>> engine = SyncEngine(store, FolderProvider(Path("/mnt/backup")),
        ...                     JsonStateStore(Path("state.json")))
        >>> result = engine.sync()
        >>> print(f"Uploaded {result.uploads} files")
    """

    def __init__(
        self,
        file_store: LocalFileStore,
        provider: Optional[CloudProvider],
        state_store: StateStore,
        credentials: str = "",
        tree_name: Optional[str] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        max_retries: int = DEFAULT_MAX_RETRIES,
        progress: Optional[SyncProgressTracker] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize sync engine.

        Args:
            file_store: Local tree to push
            provider: Remote storage provider (None if none is selected)
            state_store: Durable store for baseline and pending operations
            credentials: Credentials for the provider
            tree_name: Human name of the tree (defaults to the root folder name)
            concurrency: Parallel transfer workers (clamped to [1, 8])
            max_retries: Retries per operation for transient errors
            progress: Tracker receiving phase changes and operation counts
            sleep: Function used to wait between retries
        """
        self.file_store = file_store
        self.provider = provider
        self.state_store = state_store
        self.credentials = credentials
        self.tree_name = tree_name or file_store.root.resolve().name
        self.tree_id = get_tree_id(self.tree_name, file_store.root)
        self.concurrency = concurrency
        self.max_retries = max_retries
        self.progress = progress or SyncProgressTracker()
        self.sleep = sleep

        self.builder = SnapshotBuilder(file_store, self.tree_id)
        self.state: Optional[PersistedState] = None
        self.phase = SyncPhase.IDLE
        self._sync_lock = threading.Lock()
        self._state_lock = threading.RLock()

    # =========================
    # State handling
    # =========================

    def load(self) -> PersistedState:
        """Load persisted state and reconcile it with the current tree.

        When there is no baseline, or it was built for another tree or an
        older snapshot schema, the tree is scanned and the result stored as
        the baseline without planning anything.

        Returns:
            The loaded (and possibly rebuilt) state
        """
        state = self.state_store.load() or PersistedState()
        if state.schema_version != SYNC_DATA_SCHEMA_VERSION:
            logger.info(
                f"Upgrading sync state from schema {state.schema_version} "
                f"to {SYNC_DATA_SCHEMA_VERSION}"
            )
            state.schema_version = SYNC_DATA_SCHEMA_VERSION
        self.state = state
        self._ensure_baseline(state)
        return state

    def _ensure_loaded(self) -> PersistedState:
        if self.state is None:
            return self.load()
        return self.state

    def _ensure_baseline(self, state: PersistedState) -> None:
        baseline = state.baseline_snapshot
        if (
            baseline is not None
            and baseline.tree_id == self.tree_id
            and baseline.schema_version == LOCAL_INDEX_SCHEMA_VERSION
        ):
            return

        if baseline is not None:
            logger.info(
                "Stored baseline belongs to another tree or snapshot schema, "
                "rebuilding it"
            )
        self._set_phase(SyncPhase.SCANNING)
        snapshot = self.builder.build()
        with self._state_lock:
            state.baseline_snapshot = snapshot
        self._persist()
        self._set_phase(SyncPhase.IDLE)

    def _persist(self) -> None:
        with self._state_lock:
            if self.state is not None:
                self.state_store.save(self.state)

    def _checkpoint(self, ledger: PendingSyncLedger) -> None:
        self._persist()

    def _set_phase(self, phase: SyncPhase, message: Optional[str] = None) -> None:
        self.phase = phase
        self.progress.on_phase(phase, message)

    # =========================
    # Sync
    # =========================

    def _preflight(self) -> CloudProvider:
        if self.provider is None:
            raise SyncerConfigError("No provider selected")
        if self.provider.requires_credentials and not (
            self.credentials and self.credentials.strip()
        ):
            raise SyncerConfigError("OAuth token is empty")
        return self.provider

    def check_connection(self) -> ProviderResult:
        """Ask the provider whether it is reachable with our credentials."""
        provider = self._preflight()
        return provider.check_connection(self.credentials)

    def sync(self) -> SyncResult:
        """Run one sync attempt.

        Returns:
            SyncResult with statistics

        Raises:
            SyncerConfigError: No provider or missing credentials
            SyncInProgressError: Another sync is running on this engine
            SyncOperationError: An operation failed; the partially completed
                ledger is persisted and will be resumed by the next sync
            ProviderError: The remote marker could not be written
            StateStoreError: State could not be persisted
        """
        provider = self._preflight()

        if not self._sync_lock.acquire(blocking=False):
            raise SyncInProgressError()

        try:
            state = self._ensure_loaded()
            result = SyncResult()

            if state.pending_ledger is not None:
                result.resumed = self._resume(state, state.pending_ledger)

            self._set_phase(SyncPhase.SCANNING)
            current = self.builder.build()

            remote_initialized = provider.has_remote_marker(self.credentials)
            result.remote_initialized = remote_initialized
            if not remote_initialized:
                logger.info("Remote has no sync marker, every file will be uploaded")
            baseline = state.baseline_snapshot if remote_initialized else None

            self._set_phase(SyncPhase.DIFFING)
            operations = build_push_plan(baseline, current)
            logger.debug(f"Planned {len(operations)} operations")

            if operations:
                ledger = create_pending_sync(operations)
                with self._state_lock:
                    state.pending_ledger = ledger
                    state.pending_snapshot = current
                self._persist()
                self._execute(ledger)

                stats = summarize_plan(operations)
                result.uploads = stats["uploads"]
                result.deletes = stats["deletes"]

            self._commit(current)
            result.last_successful_sync_at = state.last_successful_sync_at
            self._set_phase(SyncPhase.IDLE)
            return result
        except Exception as e:
            self._set_phase(SyncPhase.ERROR, str(e))
            self._set_phase(SyncPhase.IDLE)
            raise
        finally:
            self._sync_lock.release()

    def _resume(self, state: PersistedState, ledger: PendingSyncLedger) -> int:
        """Finish an interrupted ledger and commit its snapshot."""
        remaining = len(remaining_operations(ledger))
        logger.info(
            f"Resuming {ledger.sync_id}: {remaining} of "
            f"{ledger.total_count} operation(s) left"
        )
        self._set_phase(SyncPhase.RESUMING)
        self._execute(ledger)

        snapshot = state.pending_snapshot
        if snapshot is None:
            # Ledger written without its snapshot; the tree as it is now
            # is the closest match
            self._set_phase(SyncPhase.SCANNING)
            snapshot = self.builder.build()
        self._commit(snapshot)
        return remaining

    def _execute(self, ledger: PendingSyncLedger) -> None:
        provider = self._preflight()
        self._set_phase(SyncPhase.EXECUTING)
        executor = OperationExecutor(
            provider=provider,
            file_store=self.file_store,
            credentials=self.credentials,
            concurrency=self.concurrency,
            max_retries=self.max_retries,
            checkpoint=self._checkpoint,
            progress_callback=self.progress.on_operations,
            sleep=self.sleep,
        )
        result = executor.execute(ledger)
        if result.error is not None:
            self._persist()
            raise result.error

    def _commit(self, snapshot: LocalSnapshot) -> None:
        """Make ``snapshot`` the baseline, drop the ledger, publish the marker."""
        self._set_phase(SyncPhase.COMMITTING)
        state = self._ensure_loaded()
        with self._state_lock:
            state.baseline_snapshot = snapshot
            state.pending_ledger = None
            state.pending_snapshot = None
        self._persist()
        self._publish_marker(snapshot)

        with self._state_lock:
            state.last_successful_sync_at = now_timestamp()
        self._persist()

    def build_marker_payload(self, snapshot: LocalSnapshot) -> bytes:
        """Serialized remote marker for ``snapshot``."""
        return json.dumps(
            {
                "schemaVersion": SYNC_DATA_SCHEMA_VERSION,
                "treeId": snapshot.tree_id,
                "fileCount": snapshot.file_count,
                "updatedAt": now_timestamp(),
            }
        ).encode("utf-8")

    def _publish_marker(self, snapshot: LocalSnapshot) -> None:
        provider = self._preflight()
        result = provider.write_remote_marker(
            self.credentials, self.build_marker_payload(snapshot)
        )
        if not result.ok:
            raise ProviderError(
                f"Failed to upload remote sync state: {result.message}",
                provider_id=provider.id,
            )

    # =========================
    # Inspection and maintenance
    # =========================

    def plan(self) -> SyncPlan:
        """Compute what the next sync would do without changing anything remote.

        Returns:
            SyncPlan with the pending operations and the fresh plan
        """
        state = self._ensure_loaded()
        plan = SyncPlan()
        if state.pending_ledger is not None:
            plan.pending = remaining_operations(state.pending_ledger)

        self._set_phase(SyncPhase.SCANNING)
        current = self.builder.build()

        if self.provider is not None and (
            self.credentials or not self.provider.requires_credentials
        ):
            plan.remote_initialized = self.provider.has_remote_marker(self.credentials)

        # After a resumed ledger completes, its snapshot is the baseline
        baseline = state.pending_snapshot or state.baseline_snapshot
        if not plan.remote_initialized:
            baseline = None

        self._set_phase(SyncPhase.DIFFING)
        plan.operations = build_push_plan(baseline, current)
        self._set_phase(SyncPhase.IDLE)
        return plan

    def status(self) -> SyncStatus:
        state = self._ensure_loaded()
        ledger = state.pending_ledger
        return SyncStatus(
            tree_id=self.tree_id,
            baseline_files=(
                state.baseline_snapshot.file_count if state.baseline_snapshot else 0
            ),
            pending_total=ledger.total_count if ledger else 0,
            pending_remaining=len(remaining_operations(ledger)) if ledger else 0,
            pending_failed=(
                sum(
                    1
                    for op in ledger.operations
                    if op.status == OperationStatus.FAILED
                )
                if ledger
                else 0
            ),
            last_successful_sync_at=state.last_successful_sync_at,
        )

    def discard_pending(self) -> bool:
        """Forget an interrupted sync so the next one plans from scratch.

        Returns:
            True if a pending ledger was discarded
        """
        if not self._sync_lock.acquire(blocking=False):
            raise SyncInProgressError()
        try:
            state = self._ensure_loaded()
            if state.pending_ledger is None:
                return False
            with self._state_lock:
                state.pending_ledger = None
                state.pending_snapshot = None
            self._persist()
            logger.info("Discarded pending sync")
            return True
        finally:
            self._sync_lock.release()

    def reset(self) -> bool:
        """Forget all persisted state (baseline, ledger, last sync time).

        Returns:
            True if there was state to clear
        """
        if not self._sync_lock.acquire(blocking=False):
            raise SyncInProgressError()
        try:
            with self._state_lock:
                self.state = None
                return self.state_store.clear()
        finally:
            self._sync_lock.release()
