"""Tests for OperationExecutor: concurrency, retries, abort and resume."""

import threading
from unittest.mock import Mock, patch

import pytest

from conftest import write_file
from pysyncer.exceptions import (
    FileNotReadableError,
    ProviderError,
    StateStoreError,
    SyncerNetworkError,
    SyncerRateLimitError,
    SyncOperationError,
)
from pysyncer.sync.executor import (
    OperationExecutor,
    is_retriable_error,
    retry_backoff,
)
from pysyncer.sync.ledger import create_pending_sync
from pysyncer.sync.models import OperationStatus, OperationType, SyncOperation
from pysyncer.sync.scanner import LocalFileStore


def _uploads(*paths: str) -> list[SyncOperation]:
    return [
        SyncOperation(id=f"op-{i + 1}", type=OperationType.UPLOAD, path=path)
        for i, path in enumerate(paths)
    ]


@pytest.fixture
def store(tmp_path):
    for name in ("a.md", "b.md", "c.md"):
        write_file(tmp_path, name, name)
    return LocalFileStore(tmp_path)


@pytest.fixture
def sleep():
    return Mock()


def _executor(provider, store, sleep, **kwargs):
    return OperationExecutor(
        provider=provider, file_store=store, credentials="token", sleep=sleep, **kwargs
    )


class TestExecute:
    """Tests for running a ledger."""

    def test_all_operations_done(self, provider, store, sleep):
        ledger = create_pending_sync(_uploads("a.md", "b.md", "c.md"))

        result = _executor(provider, store, sleep).execute(ledger)

        assert result.success
        assert result.attempted == 3
        assert ledger.done_count == 3
        assert all(op.status == OperationStatus.DONE for op in ledger.operations)
        assert provider.files["b.md"] == b"b.md"

    def test_each_operation_runs_once_under_concurrency(
        self, provider, tmp_path, sleep
    ):
        paths = [f"notes/{i:03d}.md" for i in range(100)]
        for path in paths:
            write_file(tmp_path, path, path)
        ledger = create_pending_sync(_uploads(*paths))

        result = _executor(
            provider, LocalFileStore(tmp_path), sleep, concurrency=4
        ).execute(ledger)

        assert result.success
        assert sorted(provider.uploads) == paths
        assert ledger.done_count == 100

    def test_deletes(self, provider, store, sleep):
        provider.files["gone.md"] = b"x"
        ledger = create_pending_sync(
            [SyncOperation(id="op-1", type=OperationType.DELETE, path="gone.md")]
        )

        result = _executor(provider, store, sleep).execute(ledger)

        assert result.success
        assert provider.deletes == ["gone.md"]
        assert "gone.md" not in provider.files

    def test_empty_ledger(self, provider, store, sleep):
        ledger = create_pending_sync([])
        result = _executor(provider, store, sleep).execute(ledger)
        assert result.success
        assert result.attempted == 0
        assert provider.uploads == []

    def test_done_operations_are_skipped(self, provider, store, sleep):
        ledger = create_pending_sync(_uploads("a.md", "b.md"))
        ledger.operations[0].mark_done()

        result = _executor(provider, store, sleep).execute(ledger)

        assert result.attempted == 1
        assert provider.uploads == ["b.md"]


class TestRetries:
    """Tests for transient error handling."""

    def test_transient_error_is_retried(self, provider, store, sleep):
        provider.failures["a.md"] = ["HTTP 503", "Request timeout: read"]
        ledger = create_pending_sync(_uploads("a.md"))

        result = _executor(provider, store, sleep, max_retries=3).execute(ledger)

        assert result.success
        assert provider.uploads == ["a.md", "a.md", "a.md"]
        assert sleep.call_count == 2

    def test_attempts_bounded_by_max_retries(self, provider, store, sleep):
        provider.failures["a.md"] = ["HTTP 429"] * 10
        ledger = create_pending_sync(_uploads("a.md"))

        result = _executor(provider, store, sleep, max_retries=2).execute(ledger)

        assert not result.success
        assert provider.uploads.count("a.md") == 3
        assert sleep.call_count == 2
        assert ledger.operations[0].status == OperationStatus.FAILED
        assert ledger.operations[0].last_error == "HTTP 429"

    def test_zero_retries(self, provider, store, sleep):
        provider.failures["a.md"] = ["HTTP 502"]
        ledger = create_pending_sync(_uploads("a.md"))

        result = _executor(provider, store, sleep, max_retries=0).execute(ledger)

        assert not result.success
        assert provider.uploads == ["a.md"]
        sleep.assert_not_called()

    def test_terminal_error_is_not_retried(self, provider, store, sleep):
        provider.failures["a.md"] = ["Upload failed: HTTP 403"]
        ledger = create_pending_sync(_uploads("a.md"))

        result = _executor(provider, store, sleep, max_retries=5).execute(ledger)

        assert isinstance(result.error, SyncOperationError)
        assert str(result.error) == "Failed upload a.md: Upload failed: HTTP 403"
        assert provider.uploads == ["a.md"]
        sleep.assert_not_called()

    def test_unreadable_local_file_fails_operation(self, provider, store, sleep):
        ledger = create_pending_sync(_uploads("missing.md"))

        result = _executor(provider, store, sleep).execute(ledger)

        assert not result.success
        assert result.error.path == "missing.md"
        assert "File not readable" in ledger.operations[0].last_error
        assert provider.uploads == []

    def test_unreadable_file_with_network_in_path_is_not_retried(
        self, provider, tmp_path, sleep
    ):
        root = tmp_path / "network"
        root.mkdir()
        ledger = create_pending_sync(_uploads("network-notes.md"))

        result = _executor(
            provider, LocalFileStore(root), sleep, max_retries=3
        ).execute(ledger)

        assert result.error.path == "network-notes.md"
        assert ledger.operations[0].status == OperationStatus.FAILED
        sleep.assert_not_called()
        assert provider.uploads == []


class TestAbortAndResume:
    """Tests for stopping on the first terminal error and resuming later."""

    def test_first_failure_stops_admission(self, provider, store, sleep):
        provider.failures["a.md"] = ["HTTP 403"]
        ledger = create_pending_sync(_uploads("a.md", "b.md", "c.md"))

        result = _executor(provider, store, sleep, concurrency=1).execute(ledger)

        assert result.error.path == "a.md"
        assert result.attempted == 1
        assert provider.uploads == ["a.md"]
        assert [op.status for op in ledger.operations] == [
            OperationStatus.FAILED,
            OperationStatus.PENDING,
            OperationStatus.PENDING,
        ]
        assert ledger.done_count == 0

    def test_running_operation_finishes_after_failure(self, provider, tmp_path, sleep):
        for name in ("a.md", "b.md", "c.md", "d.md"):
            write_file(tmp_path, name, name)
        provider.failures["b.md"] = ["HTTP 403"]
        released = threading.Event()
        real_upload = provider.upload_file

        def upload(credentials, path, data):
            if path == "a.md":
                assert released.wait(timeout=5)
            return real_upload(credentials, path, data)

        ledger = create_pending_sync(_uploads("a.md", "b.md", "c.md", "d.md"))
        executor = _executor(
            provider,
            LocalFileStore(tmp_path),
            sleep,
            concurrency=2,
            checkpoint=lambda _ledger: released.set(),
        )

        with patch.object(provider, "upload_file", side_effect=upload):
            result = executor.execute(ledger)

        assert result.error.path == "b.md"
        assert result.attempted == 2
        assert [op.status for op in ledger.operations] == [
            OperationStatus.DONE,
            OperationStatus.FAILED,
            OperationStatus.PENDING,
            OperationStatus.PENDING,
        ]
        assert ledger.done_count == 1
        assert sorted(provider.uploads) == ["a.md", "b.md"]

    def test_resume_runs_only_unfinished_operations(self, provider, store, sleep):
        provider.failures["b.md"] = ["HTTP 403"]
        ledger = create_pending_sync(_uploads("a.md", "b.md", "c.md"))
        executor = _executor(provider, store, sleep, concurrency=1)

        first = executor.execute(ledger)
        assert first.error.path == "b.md"
        assert ledger.done_count == 1

        second = executor.execute(ledger)

        assert second.success
        assert second.attempted == 2
        assert provider.uploads == ["a.md", "b.md", "b.md", "c.md"]
        assert ledger.done_count == 3


class TestCheckpointAndProgress:
    """Tests for the checkpoint and progress callbacks."""

    def test_checkpoint_after_every_transition(self, provider, store, sleep):
        checkpoint = Mock()
        ledger = create_pending_sync(_uploads("a.md", "b.md", "c.md"))

        _executor(provider, store, sleep, checkpoint=checkpoint).execute(ledger)

        assert checkpoint.call_count == 3
        checkpoint.assert_called_with(ledger)

    def test_checkpoint_failure_is_raised(self, provider, store, sleep):
        checkpoint = Mock(side_effect=StateStoreError("disk full"))
        ledger = create_pending_sync(_uploads("a.md", "b.md", "c.md"))
        executor = _executor(
            provider, store, sleep, concurrency=1, checkpoint=checkpoint
        )

        with pytest.raises(StateStoreError, match="disk full"):
            executor.execute(ledger)

        assert checkpoint.call_count == 1
        assert provider.uploads == ["a.md"]

    def test_progress_reports_done_and_total(self, provider, store, sleep):
        progress = Mock()
        ledger = create_pending_sync(_uploads("a.md", "b.md"))

        _executor(provider, store, sleep, progress_callback=progress).execute(ledger)

        assert progress.call_args_list[0].args == (0, 2)
        assert progress.call_args_list[-1].args == (2, 2)
        assert progress.call_count == 3


class TestClassification:
    """Tests for is_retriable_error."""

    @pytest.mark.parametrize(
        "message",
        [
            "HTTP 429",
            "Upload failed: HTTP 500",
            "Upload URL error: HTTP 502",
            "HTTP 503",
            "HTTP 504",
            "Request timeout: read timed out",
            "Network error: connection refused",
            "Connection reset by peer",
            "socket hang up",
            "Broken pipe",
            "Service temporarily unavailable",
        ],
    )
    def test_retriable(self, message):
        assert is_retriable_error(ProviderError(message))

    @pytest.mark.parametrize(
        "message",
        [
            "HTTP 400",
            "Upload failed: HTTP 403",
            "Delete failed: HTTP 404",
            "File not readable: a.md",
            "Unknown failure",
        ],
    )
    def test_terminal(self, message):
        assert not is_retriable_error(ProviderError(message))

    def test_error_classes_are_retriable(self):
        assert is_retriable_error(SyncerNetworkError("boom"))
        assert is_retriable_error(SyncerRateLimitError("slow down"))

    def test_unreadable_file_is_terminal(self):
        error = FileNotReadableError(
            "network-notes.md", "[Errno 110] Connection timed out: '/mnt/network'"
        )
        assert not is_retriable_error(error)


class TestRetryBackoff:
    """Tests for retry_backoff."""

    def test_exponential_growth(self):
        with patch("pysyncer.sync.executor.random.uniform", return_value=0.0):
            assert retry_backoff(0) == pytest.approx(0.4)
            assert retry_backoff(1) == pytest.approx(0.8)
            assert retry_backoff(2) == pytest.approx(1.6)

    def test_capped(self):
        with patch("pysyncer.sync.executor.random.uniform", return_value=0.0):
            assert retry_backoff(10) == pytest.approx(5.0)

    def test_jitter_bounds(self):
        for attempt in range(6):
            delay = retry_backoff(attempt)
            base = min(5.0, 0.4 * 2**attempt)
            assert base <= delay <= base + 0.2
