"""Tests for the reconciliation engine.

Uses the in-memory adapter and a file state store so every run is real
end to end: scan -> list -> compare -> execute -> save.

Covers:
- First sync adds everything; a second sync is a no-op (idempotence)
- Content edits update in place and bump the entry version by one
- Local deletions remove the remote object and the state entry
- Fingerprint-only change detection (touching a file is not a change)
- Scoped failures never abort the run and never corrupt state
- Dry run mutates nothing
- Store verification and creation, fatal errors, lifecycle phases
- Concurrency bound and stale-entry pruning
"""

from __future__ import annotations

import os
import threading
import time
from pathlib import Path

import pytest

from vector_sync.providers.base import ProviderError
from vector_sync.providers.memory import InMemoryAdapter
from vector_sync.sync.engine import EngineSettings, SyncEngine, SyncPhase
from vector_sync.sync.errors import ScanError, StoreUnavailableError
from vector_sync.sync.models import SyncAction, SyncEntry
from vector_sync.sync.state import FileStateStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _engine(
    adapter: InMemoryAdapter,
    state_path: Path,
    **settings,
) -> SyncEngine:
    return SyncEngine(
        adapter=adapter,
        state_store=FileStateStore(state_path),
        settings=EngineSettings(**settings),
    )


def _state(state_path: Path) -> dict[str, SyncEntry]:
    return FileStateStore(state_path).load().entries


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / "state" / "state.json"


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestSyncConvergence:
    async def test_first_sync_adds_everything(
        self, docs_dir, state_path, memory_adapter
    ):
        result = await _engine(memory_adapter, state_path).sync(docs_dir)

        assert result.success
        assert sorted(result.added) == [
            "guide/setup.md",
            "index.md",
            "notes.txt",
        ]
        assert result.updated == result.deleted == []
        entries = _state(state_path)
        assert set(entries) == set(result.added)
        assert {e.version for e in entries.values()} == {1}
        remote_ids = {e.remote_id for e in entries.values()}
        assert remote_ids == set(memory_adapter.objects)

    async def test_second_sync_is_a_noop(
        self, docs_dir, state_path, memory_adapter
    ):
        await _engine(memory_adapter, state_path).sync(docs_dir)
        calls_before = list(memory_adapter.calls)

        result = await _engine(memory_adapter, state_path).sync(docs_dir)

        assert result.added == result.updated == result.deleted == []
        assert len(result.unchanged) == 3
        assert memory_adapter.calls == calls_before

    async def test_metadata_round_trips_through_remote(
        self, docs_dir, state_path, memory_adapter
    ):
        await _engine(memory_adapter, state_path).sync(docs_dir)
        entry = _state(state_path)["index.md"]
        remote = memory_adapter.objects[entry.remote_id]["metadata"]
        assert remote["path"] == "index.md"
        assert remote["hash"] == entry.fingerprint
        assert remote["provider"] == "memory"

    async def test_edit_updates_and_bumps_version(
        self, docs_dir, state_path, memory_adapter
    ):
        await _engine(memory_adapter, state_path).sync(docs_dir)
        first = _state(state_path)["index.md"]

        (docs_dir / "index.md").write_text("# Index v2\n")
        result = await _engine(memory_adapter, state_path).sync(docs_dir)
        assert result.updated == ["index.md"]
        second = _state(state_path)["index.md"]
        assert second.version == first.version + 1
        assert second.remote_id == first.remote_id
        assert memory_adapter.objects[second.remote_id]["content"] == (
            b"# Index v2\n"
        )

        (docs_dir / "index.md").write_text("# Index v3\n")
        await _engine(memory_adapter, state_path).sync(docs_dir)
        assert _state(state_path)["index.md"].version == 3

    async def test_touch_without_content_change_is_unchanged(
        self, docs_dir, state_path, memory_adapter
    ):
        await _engine(memory_adapter, state_path).sync(docs_dir)
        later = time.time() + 3600
        os.utime(docs_dir / "index.md", (later, later))

        result = await _engine(memory_adapter, state_path).sync(docs_dir)
        assert "index.md" in result.unchanged
        assert result.updated == []

    async def test_local_delete_removes_remote_and_entry(
        self, docs_dir, state_path, memory_adapter
    ):
        await _engine(memory_adapter, state_path).sync(docs_dir)
        gone_id = _state(state_path)["notes.txt"].remote_id

        (docs_dir / "notes.txt").unlink()
        result = await _engine(memory_adapter, state_path).sync(docs_dir)

        assert result.deleted == ["notes.txt"]
        assert gone_id not in memory_adapter.objects
        assert "notes.txt" not in _state(state_path)

    async def test_add_update_delete_in_one_run(
        self, tmp_path, state_path, memory_adapter
    ):
        root = tmp_path / "two"
        root.mkdir()
        (root / "a.md").write_text("a1")
        (root / "b.md").write_text("b1")
        await _engine(memory_adapter, state_path).sync(root)

        (root / "a.md").write_text("a2")
        (root / "b.md").unlink()
        (root / "c.md").write_text("c1")
        result = await _engine(memory_adapter, state_path).sync(root)

        assert result.added == ["c.md"]
        assert result.updated == ["a.md"]
        assert result.deleted == ["b.md"]
        entries = _state(state_path)
        assert set(entries) == {"a.md", "c.md"}
        assert entries["a.md"].version == 2
        assert len(memory_adapter.objects) == 2

    async def test_remote_object_deleted_out_of_band_is_re_added(
        self, docs_dir, state_path, memory_adapter
    ):
        await _engine(memory_adapter, state_path).sync(docs_dir)
        old_id = _state(state_path)["index.md"].remote_id
        del memory_adapter.objects[old_id]

        result = await _engine(memory_adapter, state_path).sync(docs_dir)
        assert result.added == ["index.md"]
        new_entry = _state(state_path)["index.md"]
        assert new_entry.remote_id != old_id
        assert new_entry.version == 1

    async def test_untracked_remote_objects_are_deleted(
        self, docs_dir, state_path, memory_adapter
    ):
        stray_id = memory_adapter.upload("stray.md", b"?", {"path": "stray.md"})
        result = await _engine(memory_adapter, state_path).sync(docs_dir)
        assert result.deleted == ["stray.md"]
        assert stray_id not in memory_adapter.objects

    async def test_empty_directory_clears_store(
        self, tmp_path, docs_dir, state_path, memory_adapter
    ):
        await _engine(memory_adapter, state_path).sync(docs_dir)
        empty = tmp_path / "empty"
        empty.mkdir()

        result = await _engine(memory_adapter, state_path).sync(empty)
        assert len(result.deleted) == 3
        assert memory_adapter.objects == {}
        assert _state(state_path) == {}

    async def test_update_with_new_remote_id_is_recorded(
        self, docs_dir, state_path
    ):
        class ReplacingAdapter(InMemoryAdapter):
            def update(self, remote_id, content, metadata, on_progress=None):
                self.delete(remote_id)
                return self.upload(
                    metadata["path"], content, metadata, on_progress
                )

        adapter = ReplacingAdapter()
        await _engine(adapter, state_path).sync(docs_dir)
        old_id = _state(state_path)["index.md"].remote_id

        (docs_dir / "index.md").write_text("changed")
        await _engine(adapter, state_path).sync(docs_dir)
        entry = _state(state_path)["index.md"]
        assert entry.remote_id != old_id
        assert entry.remote_id in adapter.objects
        assert entry.version == 2

        result = await _engine(adapter, state_path).sync(docs_dir)
        assert result.deleted == [] and result.added == []

    def test_run_is_blocking_wrapper(
        self, docs_dir, state_path, memory_adapter
    ):
        result = _engine(memory_adapter, state_path).run(docs_dir)
        assert len(result.added) == 3
        assert result.started_at is not None
        assert result.completed_at is not None
        assert result.duration >= 0


# ---------------------------------------------------------------------------
# Scoped failures
# ---------------------------------------------------------------------------


class TestPartialFailure:
    async def test_failed_upload_is_isolated(self, docs_dir, state_path):
        adapter = InMemoryAdapter(fail_paths={"index.md"})
        result = await _engine(adapter, state_path).sync(docs_dir)

        assert not result.success
        assert [(f.path, f.action) for f in result.failed] == [
            ("index.md", SyncAction.ADD)
        ]
        assert "Simulated upload failure" in result.failed[0].error
        assert sorted(result.added) == ["guide/setup.md", "notes.txt"]
        assert "index.md" not in _state(state_path)

    async def test_failed_path_is_retried_next_run(
        self, docs_dir, state_path
    ):
        adapter = InMemoryAdapter(fail_paths={"index.md"})
        await _engine(adapter, state_path).sync(docs_dir)

        adapter.fail_paths.clear()
        result = await _engine(adapter, state_path).sync(docs_dir)
        assert result.added == ["index.md"]
        assert result.success

    async def test_failed_update_keeps_old_entry(
        self, docs_dir, state_path, memory_adapter
    ):
        await _engine(memory_adapter, state_path).sync(docs_dir)
        before = _state(state_path)["index.md"]

        (docs_dir / "index.md").write_text("new text")
        memory_adapter.fail_ids.add(before.remote_id)
        result = await _engine(memory_adapter, state_path).sync(docs_dir)

        assert [f.action for f in result.failed] == [SyncAction.UPDATE]
        assert _state(state_path)["index.md"] == before

    async def test_failed_delete_keeps_entry(
        self, docs_dir, state_path, memory_adapter
    ):
        await _engine(memory_adapter, state_path).sync(docs_dir)
        entry = _state(state_path)["notes.txt"]

        (docs_dir / "notes.txt").unlink()
        memory_adapter.fail_ids.add(entry.remote_id)
        result = await _engine(memory_adapter, state_path).sync(docs_dir)

        assert [(f.path, f.action) for f in result.failed] == [
            ("notes.txt", SyncAction.DELETE)
        ]
        assert _state(state_path)["notes.txt"] == entry

    async def test_one_failure_among_many(self, tmp_path, state_path):
        """a.md fails to upload while b.md succeeds; only b.md is recorded."""
        root = tmp_path / "pair"
        root.mkdir()
        (root / "a.md").write_text("a")
        (root / "b.md").write_text("b")
        adapter = InMemoryAdapter(fail_paths={"a.md"})

        result = await _engine(adapter, state_path).sync(root)

        assert result.added == ["b.md"]
        assert [f.path for f in result.failed] == ["a.md"]
        assert set(_state(state_path)) == {"b.md"}
        assert len(adapter.objects) == 1

    async def test_state_saved_even_with_failures(
        self, docs_dir, state_path
    ):
        adapter = InMemoryAdapter(fail_paths={"index.md"})
        await _engine(adapter, state_path).sync(docs_dir)
        assert state_path.exists()
        assert FileStateStore(state_path).load().last_sync is not None


# ---------------------------------------------------------------------------
# Dry run
# ---------------------------------------------------------------------------


class TestDryRun:
    async def test_dry_run_mutates_nothing(
        self, docs_dir, state_path, memory_adapter
    ):
        engine = _engine(memory_adapter, state_path)
        result = await engine.sync(docs_dir, dry_run=True)

        assert result.dry_run
        assert len(result.added) == 3
        assert memory_adapter.objects == {}
        assert memory_adapter.calls == []
        assert not state_path.exists()
        assert engine.plan is not None
        assert len(engine.plan.to_add) == 3

    async def test_dry_run_reports_planned_changes(
        self, docs_dir, state_path, memory_adapter
    ):
        await _engine(memory_adapter, state_path).sync(docs_dir)
        saved = state_path.read_text()
        (docs_dir / "index.md").write_text("edited")
        (docs_dir / "notes.txt").unlink()

        result = await _engine(memory_adapter, state_path).sync(
            docs_dir, dry_run=True
        )
        assert result.updated == ["index.md"]
        assert result.deleted == ["notes.txt"]
        assert result.unchanged == ["guide/setup.md"]
        assert state_path.read_text() == saved

    async def test_dry_run_with_missing_store_plans_against_empty(
        self, docs_dir, state_path
    ):
        adapter = InMemoryAdapter(store_id=None)
        engine = _engine(adapter, state_path, create_store_name="docs")
        result = await engine.sync(docs_dir, dry_run=True)

        assert len(result.added) == 3
        assert adapter.store_id is None
        assert adapter.calls == []


# ---------------------------------------------------------------------------
# Store verification and fatal errors
# ---------------------------------------------------------------------------


class TestStoreAvailability:
    async def test_missing_store_without_create_name_is_fatal(
        self, docs_dir, state_path
    ):
        adapter = InMemoryAdapter(store_id=None)
        engine = _engine(adapter, state_path)
        with pytest.raises(StoreUnavailableError, match="does not exist"):
            await engine.sync(docs_dir)
        assert engine.phase is SyncPhase.FAILED
        assert not state_path.exists()

    async def test_missing_store_is_created(self, docs_dir, state_path):
        adapter = InMemoryAdapter(store_id=None)
        result = await _engine(
            adapter, state_path, create_store_name="docs"
        ).sync(docs_dir)

        assert adapter.store_id == "memory-docs"
        assert ("create_store", "docs") in adapter.calls
        assert len(result.added) == 3
        document = FileStateStore(state_path).load()
        assert document.remote_store_id == "memory-docs"

    async def test_created_store_is_reused_by_next_run(
        self, docs_dir, state_path
    ):
        adapter = InMemoryAdapter(store_id=None)
        await _engine(adapter, state_path, create_store_name="docs").sync(
            docs_dir
        )

        # A new process starts without a configured store id
        adapter.store_id = None
        result = await _engine(
            adapter, state_path, create_store_name="docs"
        ).sync(docs_dir)

        creates = [c for c in adapter.calls if c[0] == "create_store"]
        assert creates == [("create_store", "docs")]
        assert adapter.store_id == "memory-docs"
        assert result.added == []
        assert len(result.unchanged) == 3
        assert len(adapter.objects) == 3

    async def test_recorded_store_without_create_name(
        self, docs_dir, state_path
    ):
        adapter = InMemoryAdapter(store_id=None)
        await _engine(adapter, state_path, create_store_name="docs").sync(
            docs_dir
        )

        adapter.store_id = None
        result = await _engine(adapter, state_path).sync(docs_dir)

        assert len(result.unchanged) == 3

    async def test_vanished_recorded_store_is_recreated(
        self, docs_dir, state_path
    ):
        store = FileStateStore(state_path)
        store.load()
        store.remote_store_id = "memory-deleted"
        store.save()
        adapter = InMemoryAdapter(store_id=None)

        result = await _engine(
            adapter, state_path, create_store_name="docs"
        ).sync(docs_dir)

        assert adapter.store_id == "memory-docs"
        assert len(result.added) == 3
        assert FileStateStore(state_path).load().remote_store_id == (
            "memory-docs"
        )

    async def test_verify_error_is_fatal(self, docs_dir, state_path):
        class BrokenAdapter(InMemoryAdapter):
            def verify_store(self):
                raise ProviderError("connection refused", self.name)

        with pytest.raises(StoreUnavailableError, match="connection refused"):
            await _engine(BrokenAdapter(), state_path).sync(docs_dir)

    async def test_list_error_is_fatal_before_mutation(
        self, docs_dir, state_path
    ):
        class UnlistableAdapter(InMemoryAdapter):
            def list_entries(self):
                raise ProviderError("500", self.name, 500)

        adapter = UnlistableAdapter()
        with pytest.raises(StoreUnavailableError):
            await _engine(adapter, state_path).sync(docs_dir)
        assert adapter.calls == []

    async def test_scan_error_is_fatal(
        self, tmp_path, state_path, memory_adapter
    ):
        engine = _engine(memory_adapter, state_path)
        with pytest.raises(ScanError):
            await engine.sync(tmp_path / "missing")
        assert engine.phase is SyncPhase.FAILED
        assert memory_adapter.calls == []


# ---------------------------------------------------------------------------
# Phases, concurrency, pruning
# ---------------------------------------------------------------------------


class TestEngineLifecycle:
    async def test_phases(self, docs_dir, state_path, memory_adapter):
        engine = _engine(memory_adapter, state_path)
        assert engine.phase is SyncPhase.IDLE
        await engine.sync(docs_dir)
        assert engine.phase is SyncPhase.DONE

    async def test_concurrency_is_bounded(self, tmp_path, state_path):
        root = tmp_path / "many"
        root.mkdir()
        for i in range(8):
            (root / f"f{i}.md").write_text(str(i))

        lock = threading.Lock()
        in_flight = 0
        peak = 0

        class SlowAdapter(InMemoryAdapter):
            def upload(self, path, content, metadata, on_progress=None):
                nonlocal in_flight, peak
                with lock:
                    in_flight += 1
                    peak = max(peak, in_flight)
                time.sleep(0.02)
                try:
                    return super().upload(path, content, metadata, on_progress)
                finally:
                    with lock:
                        in_flight -= 1

        result = await _engine(
            SlowAdapter(), state_path, max_concurrent=2
        ).sync(root)
        assert len(result.added) == 8
        assert 1 <= peak <= 2

    async def test_progress_callback_receives_chunks(
        self, docs_dir, state_path
    ):
        seen: list[tuple[int, int, str]] = []
        engine = SyncEngine(
            adapter=InMemoryAdapter(chunk_size=4),
            state_store=FileStateStore(state_path),
            on_progress=lambda c, t, m: seen.append((c, t, m)),
        )
        await engine.sync(docs_dir)
        assert seen
        assert all(1 <= c <= t for c, t, _ in seen)

    async def test_prune_stale_drops_orphaned_entries(
        self, docs_dir, state_path, memory_adapter
    ):
        store = FileStateStore(state_path)
        store.set_entry(
            "ghost.md",
            SyncEntry(
                remote_id="file-999",
                metadata={"hash": "x"},
                uploaded_at="2026-01-01T00:00:00+00:00",
            ),
        )
        store.save()

        await _engine(memory_adapter, state_path, prune_stale=True).sync(
            docs_dir
        )
        assert "ghost.md" not in _state(state_path)

    async def test_without_prune_orphaned_entries_stay(
        self, docs_dir, state_path, memory_adapter
    ):
        store = FileStateStore(state_path)
        store.set_entry(
            "ghost.md",
            SyncEntry(
                remote_id="file-999",
                metadata={"hash": "x"},
                uploaded_at="2026-01-01T00:00:00+00:00",
            ),
        )
        store.save()

        await _engine(memory_adapter, state_path).sync(docs_dir)
        assert "ghost.md" in _state(state_path)

    async def test_push_follows_save(self, docs_dir, state_path, memory_adapter):
        order: list[str] = []

        class RecordingStore(FileStateStore):
            def save(self):
                order.append("save")
                super().save()

            def push(self):
                order.append("push")
                return False

        engine = SyncEngine(
            adapter=memory_adapter, state_store=RecordingStore(state_path)
        )
        await engine.sync(docs_dir)
        assert order == ["save", "push"]

    async def test_push_disabled(self, docs_dir, state_path, memory_adapter):
        pushed: list[bool] = []

        class RecordingStore(FileStateStore):
            def push(self):
                pushed.append(True)
                return True

        engine = SyncEngine(
            adapter=memory_adapter,
            state_store=RecordingStore(state_path),
            settings=EngineSettings(push_state=False),
        )
        await engine.sync(docs_dir)
        assert pushed == []
