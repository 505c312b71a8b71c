"""Tests for the sync engine."""

import json
from unittest.mock import Mock

import pytest

from conftest import write_file
from pysyncer.exceptions import (
    ProviderError,
    SyncerConfigError,
    SyncInProgressError,
    SyncOperationError,
)
from pysyncer.providers import REMOTE_MARKER_PATH, FolderProvider, ProviderResult
from pysyncer.sync import (
    IndexEntry,
    JsonStateStore,
    LocalFileStore,
    LocalSnapshot,
    OperationStatus,
    PersistedState,
    SyncEngine,
    SyncPhase,
    SyncProgressTracker,
)


@pytest.fixture
def state_path(tmp_path):
    return tmp_path / "state" / "notes.json"


def _engine(tree, provider, state_path, **kwargs):
    kwargs.setdefault("credentials", "token")
    kwargs.setdefault("concurrency", 1)
    return SyncEngine(
        LocalFileStore(tree),
        provider,
        JsonStateStore(state_path),
        sleep=Mock(),
        **kwargs,
    )


class TestFirstSync:
    """Tests for syncing a tree for the first time."""

    def test_uninitialized_remote_uploads_everything(
        self, tree, fresh_provider, state_path
    ):
        engine = _engine(tree, fresh_provider, state_path)

        result = engine.sync()

        assert result.remote_initialized is False
        assert result.uploads == 2
        assert sorted(fresh_provider.uploads) == ["a.md", "sub/b.md"]
        assert fresh_provider.files["a.md"] == b"alpha"
        assert len(fresh_provider.marker_writes) == 1

    def test_marker_payload(self, tree, fresh_provider, state_path):
        engine = _engine(tree, fresh_provider, state_path)
        engine.sync()

        payload = json.loads(fresh_provider.marker_writes[0])

        assert payload["treeId"] == engine.tree_id
        assert payload["fileCount"] == 2
        assert payload["schemaVersion"] == 1

    def test_initialized_remote_with_fresh_baseline_uploads_nothing(
        self, tree, provider, state_path
    ):
        """The first load records the tree as the baseline; the diff is empty."""
        engine = _engine(tree, provider, state_path)

        result = engine.sync()

        assert result.total_actions == 0
        assert provider.uploads == []
        assert len(provider.marker_writes) == 1
        assert result.last_successful_sync_at is not None


class TestIncrementalSync:
    """Tests for pushing changes after a baseline exists."""

    def test_only_changes_are_pushed(self, tree, provider, state_path):
        engine = _engine(tree, provider, state_path)
        engine.sync()

        write_file(tree, "a.md", "alpha v2")
        write_file(tree, "c.md", "gamma")
        (tree / "sub" / "b.md").unlink()

        result = engine.sync()

        assert result.uploads == 2
        assert result.deletes == 1
        assert sorted(provider.uploads) == ["a.md", "c.md"]
        assert provider.deletes == ["sub/b.md"]

    def test_second_sync_without_changes_is_empty(
        self, tree, fresh_provider, state_path
    ):
        engine = _engine(tree, fresh_provider, state_path)
        engine.sync()
        uploads_after_first = list(fresh_provider.uploads)

        result = engine.sync()

        assert result.total_actions == 0
        assert fresh_provider.uploads == uploads_after_first
        assert len(fresh_provider.marker_writes) == 2

    def test_baseline_survives_restart(self, tree, provider, state_path):
        _engine(tree, provider, state_path).sync()
        write_file(tree, "c.md", "gamma")

        result = _engine(tree, provider, state_path).sync()

        assert provider.uploads == ["c.md"]
        assert result.uploads == 1

    def test_ledger_cleared_after_success(self, tree, provider, state_path):
        engine = _engine(tree, provider, state_path)
        engine.sync()
        write_file(tree, "c.md", "gamma")
        engine.sync()

        stored = JsonStateStore(state_path).load()

        assert stored.pending_ledger is None
        assert stored.pending_snapshot is None
        assert "c.md" in stored.baseline_snapshot.files
        assert stored.last_successful_sync_at is not None


class TestPartialFailure:
    """Tests for interrupted syncs and resuming them."""

    def _fail_second_upload(self, tree, provider, state_path):
        engine = _engine(tree, provider, state_path)
        engine.sync()
        write_file(tree, "c.md", "gamma")
        write_file(tree, "d.md", "delta")
        provider.failures["d.md"] = ["Upload failed: HTTP 403"]
        with pytest.raises(SyncOperationError, match="d.md"):
            engine.sync()
        return engine

    def test_failure_keeps_ledger_and_baseline(self, tree, provider, state_path):
        self._fail_second_upload(tree, provider, state_path)

        stored = JsonStateStore(state_path).load()

        assert stored.pending_ledger is not None
        statuses = {op.path: op.status for op in stored.pending_ledger.operations}
        assert statuses == {
            "c.md": OperationStatus.DONE,
            "d.md": OperationStatus.FAILED,
        }
        assert stored.pending_ledger.done_count == 1
        assert "c.md" not in stored.baseline_snapshot.files
        assert set(stored.pending_snapshot.files) >= {"c.md", "d.md"}
        assert len(provider.marker_writes) == 1

    def test_next_sync_resumes_only_remaining(self, tree, provider, state_path):
        self._fail_second_upload(tree, provider, state_path)

        result = _engine(tree, provider, state_path).sync()

        assert result.resumed == 1
        assert result.uploads == 0
        assert provider.uploads == ["c.md", "d.md", "d.md"]
        assert JsonStateStore(state_path).load().pending_ledger is None

    def test_changes_after_failure_are_not_lost(self, tree, provider, state_path):
        self._fail_second_upload(tree, provider, state_path)
        write_file(tree, "e.md", "epsilon")

        result = _engine(tree, provider, state_path).sync()

        assert result.resumed == 1
        assert result.uploads == 1
        assert provider.uploads[-1] == "e.md"

    def test_status_reports_pending(self, tree, provider, state_path):
        engine = self._fail_second_upload(tree, provider, state_path)

        status = engine.status()

        assert status.pending_total == 2
        assert status.pending_remaining == 1
        assert status.pending_failed == 1

    def test_phase_returns_to_idle_after_error(self, tree, provider, state_path):
        events = []
        engine = _engine(
            tree,
            provider,
            state_path,
            progress=SyncProgressTracker(
                callback=lambda info: events.append(info.phase)
            ),
        )
        engine.sync()
        write_file(tree, "c.md", "gamma")
        provider.failures["c.md"] = ["HTTP 403"]
        events.clear()

        with pytest.raises(SyncOperationError):
            engine.sync()

        assert events[-2:] == [SyncPhase.ERROR, SyncPhase.IDLE]
        assert SyncPhase.EXECUTING in events
        assert engine.phase == SyncPhase.IDLE

    def test_discard_pending(self, tree, provider, state_path):
        engine = self._fail_second_upload(tree, provider, state_path)

        assert engine.discard_pending() is True
        assert engine.discard_pending() is False
        assert JsonStateStore(state_path).load().pending_ledger is None


class TestGuards:
    """Tests for preflight checks and single-flight execution."""

    def test_no_provider(self, tree, state_path):
        engine = _engine(tree, None, state_path)
        with pytest.raises(SyncerConfigError, match="No provider selected"):
            engine.sync()

    def test_empty_credentials(self, tree, provider, state_path):
        engine = _engine(tree, provider, state_path, credentials="  ")
        with pytest.raises(SyncerConfigError, match="OAuth token is empty"):
            engine.sync()
        assert provider.uploads == []

    def test_folder_provider_needs_no_credentials(self, tree, tmp_path, state_path):
        target = tmp_path / "backup"
        target.mkdir()
        engine = _engine(tree, FolderProvider(target), state_path, credentials="")

        result = engine.sync()

        assert result.uploads == 2
        assert (target / "sub" / "b.md").read_text() == "beta"
        assert (target / REMOTE_MARKER_PATH).is_file()

    def test_concurrent_sync_rejected(self, tree, provider, state_path):
        engine = _engine(tree, provider, state_path)
        engine._sync_lock.acquire()
        try:
            with pytest.raises(SyncInProgressError):
                engine.sync()
        finally:
            engine._sync_lock.release()

        engine.sync()

    def test_marker_failure_raises(self, tree, provider, state_path):
        provider.marker_result = ProviderResult.failure("HTTP 507")
        engine = _engine(tree, provider, state_path)

        with pytest.raises(ProviderError, match="Failed to upload remote sync state"):
            engine.sync()

        assert engine.status().last_successful_sync_at is None
        assert JsonStateStore(state_path).load().last_successful_sync_at is None


class TestBaselineRebuild:
    """Tests for loading state written for another tree or schema."""

    def _store_baseline(self, state_path, tree_id, schema_version=2):
        snapshot = LocalSnapshot(
            schema_version=schema_version,
            tree_id=tree_id,
            created_at=1.0,
            updated_at=1.0,
            files={"stale.md": IndexEntry("stale.md", "h", 1, 1.0)},
        )
        JsonStateStore(state_path).save(PersistedState(baseline_snapshot=snapshot))

    def test_other_tree_id_rebuilds_baseline(self, tree, provider, state_path):
        self._store_baseline(state_path, "someone-else")
        engine = _engine(tree, provider, state_path)

        state = engine.load()

        assert state.baseline_snapshot.tree_id == engine.tree_id
        assert set(state.baseline_snapshot.files) == {"a.md", "sub/b.md"}

        result = engine.sync()
        assert provider.deletes == []
        assert result.total_actions == 0

    def test_old_schema_rebuilds_baseline(self, tree, provider, state_path):
        engine = _engine(tree, provider, state_path)
        self._store_baseline(state_path, engine.tree_id, schema_version=1)

        state = engine.load()

        assert "stale.md" not in state.baseline_snapshot.files

    def test_matching_baseline_is_kept(self, tree, provider, state_path):
        engine = _engine(tree, provider, state_path)
        self._store_baseline(state_path, engine.tree_id)

        result = engine.sync()

        assert provider.deletes == ["stale.md"]
        assert sorted(provider.uploads) == ["a.md", "sub/b.md"]
        assert result.deletes == 1


class TestPlanAndReset:
    """Tests for the dry run and state reset."""

    def test_plan_does_not_touch_remote(self, tree, provider, state_path):
        engine = _engine(tree, provider, state_path)
        engine.sync()
        write_file(tree, "c.md", "gamma")

        plan = engine.plan()

        assert [op.path for op in plan.operations] == ["c.md"]
        assert plan.pending == []
        assert provider.uploads == []

    def test_plan_for_uninitialized_remote(self, tree, fresh_provider, state_path):
        plan = _engine(tree, fresh_provider, state_path).plan()

        assert plan.remote_initialized is False
        assert len(plan.operations) == 2

    def test_reset(self, tree, provider, state_path):
        engine = _engine(tree, provider, state_path)
        engine.sync()

        assert engine.reset() is True
        assert not state_path.exists()
        assert engine.reset() is False
