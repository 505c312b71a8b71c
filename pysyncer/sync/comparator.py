"""Snapshot comparison: turn two snapshots into a push plan."""

from typing import Optional

from .models import LocalSnapshot, OperationType, SyncOperation


def next_operation_id(index: int) -> str:
    """Operation id for the ``index``-th (0-based) operation of a plan."""
    return f"op-{index + 1}"


def build_push_plan(
    baseline: Optional[LocalSnapshot], current: LocalSnapshot
) -> list[SyncOperation]:
    """Compare a baseline snapshot with the current one.

    Every path that is new or whose content hash changed becomes an upload;
    every baseline path missing from ``current`` becomes a delete. Unchanged
    paths produce nothing. With no baseline, every current file is uploaded.

    Neither snapshot is modified.

    Args:
        baseline: Snapshot last known to be on the remote, or None
        current: Fresh snapshot of the local tree

    Returns:
        Operations in the pending state, uploads first
    """
    operations: list[SyncOperation] = []
    baseline_files = baseline.files if baseline is not None else {}
    current_files = current.files

    for path, entry in current_files.items():
        previous = baseline_files.get(path)
        if previous is None or previous.content_hash != entry.content_hash:
            operations.append(
                SyncOperation(
                    id=next_operation_id(len(operations)),
                    type=OperationType.UPLOAD,
                    path=path,
                    content_hash=entry.content_hash,
                )
            )

    for path in baseline_files:
        if path not in current_files:
            operations.append(
                SyncOperation(
                    id=next_operation_id(len(operations)),
                    type=OperationType.DELETE,
                    path=path,
                )
            )

    return operations


def summarize_plan(operations: list[SyncOperation]) -> dict:
    """Count operations per type.

    Returns:
        Dictionary with ``uploads``, ``deletes`` and ``total`` counts
    """
    stats = {"uploads": 0, "deletes": 0, "total": len(operations)}
    for operation in operations:
        if operation.type == OperationType.UPLOAD:
            stats["uploads"] += 1
        elif operation.type == OperationType.DELETE:
            stats["deletes"] += 1
    return stats
