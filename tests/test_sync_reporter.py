"""Tests for sync report formatting."""

from __future__ import annotations

import json

from vector_sync.sync.models import (
    PlannedAdd,
    PlannedDelete,
    PlannedUnchanged,
    PlannedUpdate,
    StateDocument,
    SyncAction,
    SyncEntry,
    SyncFailure,
    SyncPlan,
    SyncResult,
)
from vector_sync.sync.reporter import (
    format_plan_preview,
    format_state_summary,
    format_sync_report,
    result_to_json,
)


def _result(**overrides) -> SyncResult:
    fields = {
        "added": ["new.md"],
        "updated": ["changed.md"],
        "deleted": ["gone.md"],
        "unchanged": ["same.md", "other.md"],
        "failed": [
            SyncFailure(path="bad.md", action=SyncAction.ADD, error="500")
        ],
        "duration": 1.23456,
        "started_at": "2026-01-01T00:00:00+00:00",
        "completed_at": "2026-01-01T00:00:01+00:00",
    }
    fields.update(overrides)
    return SyncResult(**fields)


class TestFormatSyncReport:
    def test_sections(self):
        text = format_sync_report(_result())
        assert text.startswith("Sync report")
        assert "Duration: 1.23s" in text
        assert "Added:\n  new.md" in text
        assert "Updated:\n  changed.md" in text
        assert "Deleted:\n  gone.md" in text
        assert "[add] bad.md: 500" in text
        assert "Unchanged: 2 files" in text
        assert "1 added, 1 updated, 1 deleted, 2 unchanged, 1 failed" in text

    def test_empty_sections_omitted(self):
        text = format_sync_report(
            _result(added=[], updated=[], deleted=[], failed=[])
        )
        assert "Added:" not in text
        assert "Failed:" not in text

    def test_dry_run_wording(self):
        text = format_sync_report(_result(dry_run=True))
        assert "(DRY RUN)" in text
        assert "Would add:" in text
        assert text.count("Planned:") == 1


class TestFormatPlanPreview:
    def test_groups(self):
        plan = SyncPlan(
            to_add=[PlannedAdd(path="a.md", metadata={})],
            to_update=[
                PlannedUpdate(path="b.md", metadata={}, remote_id="file-2")
            ],
            to_delete=[PlannedDelete(path="c.md", remote_id="file-3")],
            unchanged=[PlannedUnchanged(path="d.md", remote_id="file-4")],
        )
        text = format_plan_preview(plan)
        assert "[ADD]\n  a.md" in text
        assert "[UPDATE]\n  b.md (file-2)" in text
        assert "[DELETE]\n  c.md (file-3)" in text
        assert "Unchanged: 1 files" in text
        assert "No changes needed." not in text

    def test_no_changes(self):
        assert "No changes needed." in format_plan_preview(SyncPlan())


class TestFormatStateSummary:
    def test_summary(self):
        document = StateDocument(
            last_sync="2026-01-01T00:00:00+00:00",
            remote_store_id="vs_1",
            entries={
                "b.md": SyncEntry(
                    remote_id="file-2", uploaded_at="t2", version=3
                ),
                "a.md": SyncEntry(remote_id="file-1", uploaded_at="t1"),
            },
        )
        lines = format_state_summary(document).splitlines()
        assert "Remote store: vs_1" in lines
        assert "Entries: 2" in lines
        assert lines[-2] == "  a.md -> file-1 (v1, t1)"
        assert lines[-1] == "  b.md -> file-2 (v3, t2)"

    def test_empty(self):
        text = format_state_summary(StateDocument())
        assert "Last sync: never" in text
        assert "Remote store: unknown" in text


class TestResultToJson:
    def test_structure_is_serialisable(self):
        data = result_to_json(_result())
        json.dumps(data)
        assert data["success"] is False
        assert data["duration"] == 1.235
        assert data["counts"] == {
            "added": 1,
            "updated": 1,
            "deleted": 1,
            "unchanged": 2,
            "failed": 1,
        }
        assert data["failed"] == [
            {"path": "bad.md", "action": "add", "error": "500"}
        ]
