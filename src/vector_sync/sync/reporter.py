"""Sync report formatting functions.

Human-readable and machine-readable output for the drivers:

- ``format_sync_report`` -- post-sync summary.
- ``format_plan_preview`` -- dry-run preview grouped by action.
- ``format_state_summary`` -- overview of a persisted state document.
- ``result_to_json`` -- structured dict for ``--json`` and MCP output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import StateDocument, SyncPlan, SyncResult

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(result: SyncResult) -> str:
    """Format a sync result as human-readable text.

    Sections are only included when non-empty; unchanged paths are
    summarised by count only.
    """
    lines: list[str] = []

    header = "Sync report"
    if result.dry_run:
        header += " (DRY RUN)"
    lines.append(header)
    if result.started_at:
        lines.append(f"Started: {result.started_at}")
    if result.completed_at:
        lines.append(f"Completed: {result.completed_at}")
    lines.append(f"Duration: {result.duration:.2f}s")
    lines.append("")
    lines.append(result.summary())
    lines.append("")

    if result.dry_run:
        titles = ("Would add:", "Would update:", "Would delete:")
    else:
        titles = ("Added:", "Updated:", "Deleted:")
    sections = zip(titles, (result.added, result.updated, result.deleted))
    for title, paths in sections:
        if not paths:
            continue
        lines.append(title)
        for path in paths:
            lines.append(f"  {path}")
        lines.append("")

    if result.failed:
        lines.append("Failed:")
        for failure in result.failed:
            lines.append(
                f"  [{failure.action.value}] {failure.path}: {failure.error}"
            )
        lines.append("")

    if result.unchanged:
        lines.append(f"Unchanged: {len(result.unchanged)} files")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------


def format_plan_preview(plan: SyncPlan) -> str:
    """Format a plan as ``[ACTION] path`` groups.

    Each remote-mutating action is listed per path; unchanged paths are
    only counted.
    """
    lines: list[str] = ["DRY RUN -- No changes will be made", ""]

    groups = (
        ("ADD", [p.path for p in plan.to_add]),
        ("UPDATE", [f"{p.path} ({p.remote_id})" for p in plan.to_update]),
        ("DELETE", [f"{p.path} ({p.remote_id})" for p in plan.to_delete]),
    )
    for label, items in groups:
        if not items:
            continue
        lines.append(f"[{label}]")
        for item in items:
            lines.append(f"  {item}")
        lines.append("")

    if plan.unchanged:
        lines.append(f"Unchanged: {len(plan.unchanged)} files")
        lines.append("")

    if not plan.has_changes:
        lines.append("No changes needed.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# State summary
# ------------------------------------------------------------------


def format_state_summary(document: StateDocument) -> str:
    """Summarise a state document: bookkeeping fields and one line per entry."""
    lines = [
        f"Schema version: {document.version}",
        f"Last sync: {document.last_sync or 'never'}",
        f"Remote store: {document.remote_store_id or 'unknown'}",
        f"Entries: {len(document.entries)}",
    ]
    if document.entries:
        lines.append("")
        for path in sorted(document.entries):
            entry = document.entries[path]
            lines.append(
                f"  {path} -> {entry.remote_id} (v{entry.version}, "
                f"{entry.uploaded_at})"
            )
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def result_to_json(result: SyncResult) -> dict:
    """Convert a sync result to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.
    """
    return {
        "success": result.success,
        "dry_run": result.dry_run,
        "started_at": result.started_at,
        "completed_at": result.completed_at,
        "duration": round(result.duration, 3),
        "counts": {
            "added": len(result.added),
            "updated": len(result.updated),
            "deleted": len(result.deleted),
            "unchanged": len(result.unchanged),
            "failed": len(result.failed),
        },
        "added": list(result.added),
        "updated": list(result.updated),
        "deleted": list(result.deleted),
        "failed": [
            {"path": f.path, "action": f.action.value, "error": f.error}
            for f in result.failed
        ],
    }
