"""Shared fixtures for pysyncer tests."""

import threading
from pathlib import Path
from typing import Optional

import pytest

from pysyncer.providers.base import REMOTE_MARKER_PATH, CloudProvider, ProviderResult


class RecordingProvider(CloudProvider):
    """In-memory provider that records every call.

    ``failures`` maps a path to a list of messages; each call for that path
    pops the next message and fails with it until the list is empty.
    """

    id = "memory"
    name = "In-memory"
    requires_credentials = True

    def __init__(self, marker: bool = True):
        self.files: dict[str, bytes] = {}
        self.uploads: list[str] = []
        self.deletes: list[str] = []
        self.failures: dict[str, list[str]] = {}
        self.marker_writes: list[bytes] = []
        self.marker_result: Optional[ProviderResult] = None
        self._lock = threading.Lock()
        if marker:
            self.files[REMOTE_MARKER_PATH] = b"{}"

    def _next_failure(self, path: str) -> Optional[str]:
        with self._lock:
            messages = self.failures.get(path)
            if messages:
                return messages.pop(0)
        return None

    def check_connection(self, credentials: str) -> ProviderResult:
        if credentials == "bad":
            return ProviderResult.failure("HTTP 401")
        return ProviderResult.success()

    def has_remote_marker(self, credentials: str) -> bool:
        return REMOTE_MARKER_PATH in self.files

    def write_remote_marker(self, credentials: str, payload: bytes) -> ProviderResult:
        if self.marker_result is not None:
            return self.marker_result
        with self._lock:
            self.marker_writes.append(payload)
            self.files[REMOTE_MARKER_PATH] = payload
        return ProviderResult.success()

    def upload_file(self, credentials: str, path: str, data: bytes) -> ProviderResult:
        failure = self._next_failure(path)
        with self._lock:
            self.uploads.append(path)
            if failure is not None:
                return ProviderResult.failure(failure)
            self.files[path] = data
        return ProviderResult.success()

    def delete_file(self, credentials: str, path: str) -> ProviderResult:
        failure = self._next_failure(path)
        with self._lock:
            self.deletes.append(path)
            if failure is not None:
                return ProviderResult.failure(failure)
            self.files.pop(path, None)
        return ProviderResult.success()


@pytest.fixture
def provider():
    """Provider whose remote already carries a sync marker."""
    return RecordingProvider()


@pytest.fixture
def fresh_provider():
    """Provider that has never been synced to."""
    return RecordingProvider(marker=False)


@pytest.fixture
def tree(tmp_path):
    """Local tree with two files, one of them in a subfolder."""
    root = tmp_path / "notes"
    root.mkdir()
    (root / "a.md").write_text("alpha")
    (root / "sub").mkdir()
    (root / "sub" / "b.md").write_text("beta")
    return root


def write_file(root: Path, relative_path: str, content: str) -> Path:
    path = root / relative_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path
