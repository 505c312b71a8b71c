"""Provider that mirrors the tree into another directory.

Useful for mounted network shares and removable drives. No credentials are
needed.
"""

import logging
import os
import tempfile
from pathlib import Path

from .base import REMOTE_MARKER_PATH, CloudProvider, ProviderResult

logger = logging.getLogger(__name__)


def _describe(error: Exception) -> str:
    """Failure reason without the file system path."""
    if isinstance(error, OSError) and error.strerror:
        return error.strerror
    return str(error)


class FolderProvider(CloudProvider):
    """Stores files below a target directory."""

    id = "folder"
    name = "Local folder"
    requires_credentials = False

    def __init__(self, root: Path):
        self.root = Path(root)

    def _target(self, path: str) -> Path:
        root = self.root.resolve()
        target = (root / path).resolve()
        if root not in target.parents:
            raise ValueError("Path escapes target folder")
        return target

    def check_connection(self, credentials: str) -> ProviderResult:
        if not self.root.is_dir():
            return ProviderResult.failure(f"Target folder not found: {self.root}")
        if not os.access(self.root, os.W_OK):
            return ProviderResult.failure(f"Target folder not writable: {self.root}")
        return ProviderResult.success()

    def has_remote_marker(self, credentials: str) -> bool:
        return (self.root / REMOTE_MARKER_PATH).is_file()

    def write_remote_marker(self, credentials: str, payload: bytes) -> ProviderResult:
        return self.upload_file(credentials, REMOTE_MARKER_PATH, payload)

    def upload_file(self, credentials: str, path: str, data: bytes) -> ProviderResult:
        try:
            target = self._target(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".upload-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, ValueError) as e:
            return ProviderResult.failure(f"Upload failed: {_describe(e)}")
        logger.debug(f"Copied {path} to {target}")
        return ProviderResult.success()

    def delete_file(self, credentials: str, path: str) -> ProviderResult:
        try:
            self._target(path).unlink(missing_ok=True)
        except (OSError, ValueError) as e:
            return ProviderResult.failure(f"Delete failed: {_describe(e)}")
        return ProviderResult.success()
