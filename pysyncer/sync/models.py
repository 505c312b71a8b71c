"""Data model for snapshots, operations and persisted sync state.

Everything here is plain data with ``to_dict``/``from_dict`` helpers used by
the JSON state store. On-disk keys are camelCase so that state files written by
older versions stay readable.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

LOCAL_INDEX_SCHEMA_VERSION = 2
SYNC_DATA_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class IndexEntry:
    """Last observed state of one local file."""

    path: str
    """Relative path (forward slashes), unique within a snapshot"""

    content_hash: str
    """Hex SHA-256 digest of the file bytes"""

    size: int
    """File size in bytes"""

    modified_at: float
    """Last modification time (Unix timestamp)"""

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "hash": self.content_hash,
            "size": self.size,
            "mtime": self.modified_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IndexEntry":
        return cls(
            path=data["path"],
            content_hash=data["hash"],
            size=int(data.get("size", 0)),
            modified_at=float(data.get("mtime", 0.0)),
        )


@dataclass
class LocalSnapshot:
    """Point-in-time content-hash inventory of a local tree."""

    schema_version: int
    tree_id: str
    created_at: float
    updated_at: float
    files: dict[str, IndexEntry] = field(default_factory=dict)

    @property
    def file_count(self) -> int:
        return len(self.files)

    @property
    def total_size(self) -> int:
        return sum(entry.size for entry in self.files.values())

    def to_dict(self) -> dict:
        return {
            "schemaVersion": self.schema_version,
            "vaultId": self.tree_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "files": {path: entry.to_dict() for path, entry in self.files.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LocalSnapshot":
        """Create a LocalSnapshot from a dictionary.

        Entries are re-keyed by their own ``path`` so the key/path invariant
        holds even for hand-edited or damaged state files.
        """
        files: dict[str, IndexEntry] = {}
        for key, raw_entry in (data.get("files") or {}).items():
            entry = IndexEntry.from_dict({"path": key, **raw_entry})
            files[entry.path] = entry
        return cls(
            schema_version=int(data.get("schemaVersion", 0)),
            tree_id=data.get("vaultId", ""),
            created_at=float(data.get("createdAt", 0.0)),
            updated_at=float(data.get("updatedAt", 0.0)),
            files=files,
        )


class OperationType(str, Enum):
    """Kinds of transfer work."""

    UPLOAD = "upload"
    """Upload local file to remote"""

    DELETE = "delete"
    """Delete remote file"""


class OperationStatus(str, Enum):
    """Lifecycle of a single operation."""

    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SyncOperation:
    """One unit of transfer work inside a ledger."""

    id: str
    type: OperationType
    path: str
    content_hash: Optional[str] = None
    status: OperationStatus = OperationStatus.PENDING
    last_error: Optional[str] = None

    @property
    def is_done(self) -> bool:
        return self.status == OperationStatus.DONE

    def mark_done(self) -> None:
        self.status = OperationStatus.DONE
        self.last_error = None

    def mark_failed(self, message: str) -> None:
        self.status = OperationStatus.FAILED
        self.last_error = message

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "path": self.path,
            "status": self.status.value,
        }
        if self.content_hash is not None:
            data["hash"] = self.content_hash
        if self.last_error is not None:
            data["error"] = self.last_error
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SyncOperation":
        return cls(
            id=data["id"],
            type=OperationType(data["type"]),
            path=data["path"],
            content_hash=data.get("hash"),
            status=OperationStatus(data.get("status", OperationStatus.PENDING.value)),
            last_error=data.get("error"),
        )


@dataclass
class PendingSyncLedger:
    """Durable, resumable record of an in-flight operation set."""

    sync_id: str
    started_at: float
    operations: list[SyncOperation] = field(default_factory=list)
    done_count: int = 0
    total_count: int = 0

    def to_dict(self) -> dict:
        return {
            "syncId": self.sync_id,
            "startedAt": self.started_at,
            "operations": [op.to_dict() for op in self.operations],
            "done": self.done_count,
            "total": self.total_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PendingSyncLedger":
        operations = [SyncOperation.from_dict(op) for op in data.get("operations", [])]
        return cls(
            sync_id=data.get("syncId", ""),
            started_at=float(data.get("startedAt", 0.0)),
            operations=operations,
            # Recomputed rather than trusted
            done_count=sum(1 for op in operations if op.is_done),
            total_count=len(operations),
        )


@dataclass
class PersistedState:
    """Durable root of the sync engine."""

    schema_version: int = SYNC_DATA_SCHEMA_VERSION
    baseline_snapshot: Optional[LocalSnapshot] = None
    pending_ledger: Optional[PendingSyncLedger] = None
    pending_snapshot: Optional[LocalSnapshot] = None
    """Snapshot the pending ledger was planned from"""

    last_successful_sync_at: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "schemaVersion": self.schema_version,
            "localIndex": (
                self.baseline_snapshot.to_dict() if self.baseline_snapshot else None
            ),
            "pendingSync": (
                self.pending_ledger.to_dict() if self.pending_ledger else None
            ),
            "pendingIndex": (
                self.pending_snapshot.to_dict() if self.pending_snapshot else None
            ),
            "lastSuccessfulSyncAt": self.last_successful_sync_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PersistedState":
        """Create PersistedState from a possibly partial or legacy dictionary.

        Missing fields take their defaults. A nested snapshot or ledger that
        cannot be parsed is dropped with a warning instead of failing the
        whole load.
        """
        last_sync = data.get("lastSuccessfulSyncAt")
        return cls(
            schema_version=int(data.get("schemaVersion", SYNC_DATA_SCHEMA_VERSION)),
            baseline_snapshot=_parse_optional(
                LocalSnapshot.from_dict, data.get("localIndex"), "baseline snapshot"
            ),
            pending_ledger=_parse_optional(
                PendingSyncLedger.from_dict, data.get("pendingSync"), "pending sync"
            ),
            pending_snapshot=_parse_optional(
                LocalSnapshot.from_dict, data.get("pendingIndex"), "pending snapshot"
            ),
            last_successful_sync_at=float(last_sync) if last_sync is not None else None,
        )


def _parse_optional(parser: Any, raw: Any, label: str) -> Any:
    if not raw:
        return None
    try:
        return parser(raw)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        logger.warning(f"Discarding unreadable {label}: {e}")
        return None
