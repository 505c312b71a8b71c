"""Helpers for the pending-sync ledger.

The ledger performs no I/O itself; the orchestrator persists it through the
state store whenever the executor checkpoints.
"""

from collections.abc import Iterable

from ..utils import now_timestamp
from .models import PendingSyncLedger, SyncOperation


def create_pending_sync(operations: list[SyncOperation]) -> PendingSyncLedger:
    """Wrap a freshly planned operation list into a ledger.

    Args:
        operations: Plan produced by build_push_plan

    Returns:
        Ledger with ``done_count`` 0 and ``total_count`` set
    """
    timestamp = now_timestamp()
    return PendingSyncLedger(
        sync_id=f"sync-{int(timestamp * 1000)}",
        started_at=timestamp,
        operations=list(operations),
        done_count=0,
        total_count=len(operations),
    )


def count_done_operations(operations: Iterable[SyncOperation]) -> int:
    """Number of operations whose status is ``done``."""
    return sum(1 for operation in operations if operation.is_done)


def refresh_done_count(ledger: PendingSyncLedger) -> int:
    """Recompute ``done_count`` from the operation statuses."""
    ledger.done_count = count_done_operations(ledger.operations)
    return ledger.done_count


def remaining_operations(ledger: PendingSyncLedger) -> list[SyncOperation]:
    """Operations not yet done, in ledger order."""
    return [operation for operation in ledger.operations if not operation.is_done]
