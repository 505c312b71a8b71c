"""Sync engine for pysyncer - snapshot, plan, resumable execution."""

from .comparator import build_push_plan, summarize_plan
from .engine import SyncEngine, SyncPlan, SyncResult, SyncStatus
from .executor import ExecutionResult, OperationExecutor, is_retriable_error
from .ledger import (
    count_done_operations,
    create_pending_sync,
    refresh_done_count,
    remaining_operations,
)
from .models import (
    LOCAL_INDEX_SCHEMA_VERSION,
    SYNC_DATA_SCHEMA_VERSION,
    IndexEntry,
    LocalSnapshot,
    OperationStatus,
    OperationType,
    PendingSyncLedger,
    PersistedState,
    SyncOperation,
)
from .operations import SyncOperations
from .progress import SyncPhase, SyncProgressInfo, SyncProgressTracker
from .scanner import LocalFile, LocalFileStore, SnapshotBuilder, get_tree_id
from .state import JsonStateStore, StateStore

__all__ = [
    "SyncEngine",
    "SyncPlan",
    "SyncResult",
    "SyncStatus",
    "OperationExecutor",
    "ExecutionResult",
    "is_retriable_error",
    "SyncOperations",
    "build_push_plan",
    "summarize_plan",
    "create_pending_sync",
    "count_done_operations",
    "refresh_done_count",
    "remaining_operations",
    "IndexEntry",
    "LocalSnapshot",
    "OperationStatus",
    "OperationType",
    "PendingSyncLedger",
    "PersistedState",
    "SyncOperation",
    "LOCAL_INDEX_SCHEMA_VERSION",
    "SYNC_DATA_SCHEMA_VERSION",
    "SyncPhase",
    "SyncProgressInfo",
    "SyncProgressTracker",
    "LocalFile",
    "LocalFileStore",
    "SnapshotBuilder",
    "get_tree_id",
    "JsonStateStore",
    "StateStore",
]
