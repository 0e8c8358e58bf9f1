"""Pydantic models for the reconciliation engine.

Defines the data contracts shared by the scanner, state stores, remote
adapters and the engine:

- ``FileRecord``: one local file matched by the include/exclude rules.
- ``RemoteEntry``: one object currently held by the remote store.
- ``SyncEntry``: persisted link between a local path and a remote object.
- ``StateDocument``: the whole persisted mapping plus bookkeeping fields.
- ``SyncPlan``: the add/update/delete/unchanged classification of one run.
- ``SyncFailure`` / ``SyncResult``: outcome of one run.

Records and entries are frozen; a changed ``SyncEntry`` is replaced, never
mutated in place.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SyncAction(str, Enum):
    """Operations the engine can perform on a path."""

    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"
    UNCHANGED = "unchanged"


class FileRecord(BaseModel):
    """A local file captured at scan time.

    Attributes:
        path: POSIX-style path relative to the scanned root.
        absolute_path: Absolute filesystem location.
        content: Raw bytes read during the scan.
        fingerprint: SHA-256 hex digest of ``content``.
        size: Size in bytes.
        modified_at: ISO 8601 UTC modification time.
        content_kind: MIME-like tag derived from the extension.
        encoding: Detected text encoding.
    """

    path: str
    absolute_path: str
    content: bytes
    fingerprint: str
    size: int
    modified_at: str
    content_kind: str = "text/plain"
    encoding: str = "utf-8"

    model_config = {"frozen": True}

    def base_metadata(self) -> dict[str, Any]:
        """Return the metadata bag sent along with an upload."""
        return {
            "path": self.path,
            "hash": self.fingerprint,
            "size": self.size,
            "last_modified": self.modified_at,
            "content_kind": self.content_kind,
            "encoding": self.encoding,
        }


class RemoteEntry(BaseModel):
    """An object listed by the remote store."""

    remote_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def path(self) -> str | None:
        """Origin path embedded in the remote metadata, if any."""
        value = self.metadata.get("path")
        return str(value) if value else None


class SyncEntry(BaseModel):
    """Persisted record of the last successful sync of one path.

    Attributes:
        remote_id: Identifier of the remote object embodying the path.
        metadata: Metadata bag sent with the last upload/update.
        uploaded_at: ISO 8601 timestamp of the last upload/update.
        version: Starts at 1 and grows by exactly 1 per successful update.
    """

    remote_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    uploaded_at: str
    version: int = Field(default=1, ge=1)

    model_config = {"frozen": True}

    @property
    def fingerprint(self) -> str | None:
        """Content hash recorded at the last sync."""
        return self.metadata.get("hash")


class StateDocument(BaseModel):
    """Backend-independent shape of the persisted sync state."""

    version: int = 1
    last_sync: str | None = None
    remote_store_id: str | None = None
    entries: dict[str, SyncEntry] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


class PlannedAdd(BaseModel):
    path: str
    metadata: dict[str, Any]

    model_config = {"frozen": True}


class PlannedUpdate(BaseModel):
    path: str
    metadata: dict[str, Any]
    remote_id: str

    model_config = {"frozen": True}


class PlannedDelete(BaseModel):
    path: str
    remote_id: str

    model_config = {"frozen": True}


class PlannedUnchanged(BaseModel):
    path: str
    remote_id: str

    model_config = {"frozen": True}


class SyncPlan(BaseModel):
    """Classification of local paths and remote objects for one run.

    Every local path lands in exactly one of ``to_add``, ``to_update`` or
    ``unchanged``.  Every remote object not claimed through a state entry
    lands in ``to_delete``.
    """

    to_add: list[PlannedAdd] = Field(default_factory=list)
    to_update: list[PlannedUpdate] = Field(default_factory=list)
    to_delete: list[PlannedDelete] = Field(default_factory=list)
    unchanged: list[PlannedUnchanged] = Field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        """True if any remote mutation is planned."""
        return bool(self.to_add or self.to_update or self.to_delete)

    def counts(self) -> dict[str, int]:
        """Number of planned items per action."""
        return {
            SyncAction.ADD.value: len(self.to_add),
            SyncAction.UPDATE.value: len(self.to_update),
            SyncAction.DELETE.value: len(self.to_delete),
            SyncAction.UNCHANGED.value: len(self.unchanged),
        }


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


class SyncFailure(BaseModel):
    """A scoped failure confined to one path."""

    path: str
    action: SyncAction
    error: str

    model_config = {"frozen": True}


class SyncResult(BaseModel):
    """Outcome of one engine run.

    Attributes:
        added: Paths uploaded for the first time (or re-added).
        updated: Paths whose remote object was refreshed.
        deleted: Paths whose remote object was removed.
        unchanged: Paths needing no remote call.
        failed: Scoped failures, one per path/operation.
        duration: Elapsed wall-clock seconds.
        dry_run: When True the four path lists hold the planned paths.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run finished.
    """

    added: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)
    failed: list[SyncFailure] = Field(default_factory=list)
    duration: float = 0.0
    dry_run: bool = False
    started_at: str | None = None
    completed_at: str | None = None

    @property
    def success(self) -> bool:
        """True iff no scoped failure was recorded."""
        return not self.failed

    def summary(self) -> str:
        """One-line count summary of the run."""
        prefix = "Planned" if self.dry_run else "Synced"
        return (
            f"{prefix}: {len(self.added)} added, {len(self.updated)} updated, "
            f"{len(self.deleted)} deleted, {len(self.unchanged)} unchanged, "
            f"{len(self.failed)} failed"
        )
