"""Local tree scanning and snapshot building."""

import fnmatch
import hashlib
import logging
import time
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..exceptions import FileNotReadableError
from ..utils import HASH_CHUNK_SIZE, now_timestamp, sha256_chunks
from .models import LOCAL_INDEX_SCHEMA_VERSION, IndexEntry, LocalSnapshot

logger = logging.getLogger(__name__)


@dataclass
class LocalFile:
    """Represents a local file with metadata."""

    relative_path: str
    """Relative path (using forward slashes for cross-platform compatibility)"""

    size: int
    """File size in bytes"""

    mtime: float
    """Last modification time (Unix timestamp)"""

    @classmethod
    def from_path(cls, file_path: Path, base_path: Path) -> "LocalFile":
        """Create LocalFile from a path.

        Args:
            file_path: Absolute path to the file
            base_path: Base path for calculating relative paths

        Returns:
            LocalFile instance
        """
        stat = file_path.stat()
        # Use as_posix() to ensure forward slashes on all platforms
        relative_path = file_path.relative_to(base_path).as_posix()
        return cls(relative_path=relative_path, size=stat.st_size, mtime=stat.st_mtime)


class LocalFileStore:
    """Directory-backed file store.

    Enumerates files below ``root`` and reads them by relative path.

    Examples:
        >>> store = LocalFileStore(Path("/home/user/notes"), ignore_patterns=["*.tmp"])
        >>> for f in store.list_all_files():
        ...     print(f.relative_path, f.size)
    """

    def __init__(
        self,
        root: Path,
        ignore_patterns: Optional[list[str]] = None,
        exclude_dot_files: bool = False,
        chunk_size: int = HASH_CHUNK_SIZE,
    ):
        """Initialize the file store.

        Args:
            root: Directory that holds the tree
            ignore_patterns: Glob patterns to skip (matched against the relative
                path and the file name, e.g. ["*.log", "cache/*"])
            exclude_dot_files: Whether to skip files/folders starting with a dot
            chunk_size: Read size used by iter_chunks
        """
        self.root = Path(root)
        self.ignore_patterns = ignore_patterns or []
        self.exclude_dot_files = exclude_dot_files
        self.chunk_size = chunk_size

    def should_ignore(self, path: Path) -> bool:
        """Check if a path should be ignored based on patterns."""
        if self.exclude_dot_files and path.name.startswith("."):
            return True

        relative_path = path.relative_to(self.root).as_posix()
        for pattern in self.ignore_patterns:
            if fnmatch.fnmatch(relative_path, pattern) or fnmatch.fnmatch(
                path.name, pattern
            ):
                logger.debug(f"Ignoring (pattern {pattern}): {relative_path}")
                return True
        return False

    def list_all_files(self) -> Iterator[LocalFile]:
        """Yield every file in the tree.

        Directories that cannot be listed and files that vanish before they
        can be stat'ed are skipped.
        """
        pending = [self.root]
        while pending:
            directory = pending.pop()
            try:
                children = sorted(directory.iterdir())
            except OSError as e:
                logger.debug(f"Skipping unreadable directory {directory}: {e}")
                continue

            for item in children:
                if self.should_ignore(item):
                    continue
                try:
                    if item.is_symlink():
                        continue
                    if item.is_dir():
                        pending.append(item)
                    elif item.is_file():
                        yield LocalFile.from_path(item, self.root)
                except OSError as e:
                    logger.debug(f"Skipping {item}: {e}")

    def resolve(self, relative_path: str) -> Path:
        """Map a relative path to an absolute one inside the root.

        Raises:
            FileNotReadableError: If the path escapes the root
        """
        root = self.root.resolve()
        full_path = (root / relative_path).resolve()
        if full_path != root and root not in full_path.parents:
            raise FileNotReadableError(relative_path, "outside of tree root")
        return full_path

    def read_bytes(self, relative_path: str) -> bytes:
        """Read a whole file.

        Raises:
            FileNotReadableError: On any I/O error
        """
        try:
            return self.resolve(relative_path).read_bytes()
        except OSError as e:
            raise FileNotReadableError(relative_path, str(e)) from e

    def iter_chunks(self, relative_path: str) -> Iterator[bytes]:
        """Stream a file in ``chunk_size`` pieces.

        Raises:
            FileNotReadableError: On any I/O error
        """
        try:
            with open(self.resolve(relative_path), "rb") as f:
                for chunk in iter(lambda: f.read(self.chunk_size), b""):
                    yield chunk
        except OSError as e:
            raise FileNotReadableError(relative_path, str(e)) from e


def get_tree_identity(name: str, root: Optional[Path] = None) -> str:
    """Human-readable identity string of a tree: its name plus root location."""
    if root is not None:
        return f"{name}::{Path(root).resolve()}"
    return name


def get_tree_id(name: str, root: Optional[Path] = None) -> str:
    """Derive a short stable identifier for a local tree.

    Args:
        name: Human name of the tree
        root: Storage root of the tree, if it has a stable one

    Returns:
        First 16 hex characters of the SHA-256 of the identity string

    Examples:
        >>> get_tree_id("notes") == get_tree_id("notes")
        True
    """
    identity = get_tree_identity(name, root)
    return hashlib.sha256(identity.encode("utf-8")).hexdigest()[:16]


class SnapshotBuilder:
    """Builds content-addressed snapshots of a local tree."""

    def __init__(self, file_store: LocalFileStore, tree_id: str):
        """Initialize snapshot builder.

        Args:
            file_store: Store to walk and read
            tree_id: Identifier recorded in every snapshot
        """
        self.file_store = file_store
        self.tree_id = tree_id

    def build(self) -> LocalSnapshot:
        """Walk the tree and hash every readable file.

        Files that cannot be read during the walk are skipped. Every call
        walks the tree again.

        Returns:
            A new LocalSnapshot
        """
        scan_start = time.time()
        files: dict[str, IndexEntry] = {}
        skipped = 0

        for local_file in self.file_store.list_all_files():
            try:
                content_hash = sha256_chunks(
                    self.file_store.iter_chunks(local_file.relative_path)
                )
            except FileNotReadableError as e:
                # Transient or concurrently deleted, skip and continue
                logger.debug(f"Skipping during scan: {e}")
                skipped += 1
                continue

            files[local_file.relative_path] = IndexEntry(
                path=local_file.relative_path,
                content_hash=content_hash,
                size=local_file.size,
                modified_at=local_file.mtime,
            )

        timestamp = now_timestamp()
        logger.debug(
            f"Scan took {time.time() - scan_start:.2f}s for {len(files)} files "
            f"({skipped} skipped)"
        )
        return LocalSnapshot(
            schema_version=LOCAL_INDEX_SCHEMA_VERSION,
            tree_id=self.tree_id,
            created_at=timestamp,
            updated_at=timestamp,
            files=files,
        )
