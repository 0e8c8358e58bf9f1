"""Sync state persistence layer.

Holds the persisted ``path -> SyncEntry`` mapping between runs.

Key design choices:

* **Load once, save once** -- ``get_entry``/``set_entry``/``remove_entry``
  only touch the in-memory ``StateDocument``; nothing is persisted until
  ``save()``, which the engine calls exactly once per run.
* **Atomic writes** -- ``FileStateStore.save()`` writes to a temp file in
  the target directory then calls ``os.replace()`` so readers never see
  partial data.
* **Forgiving loads** -- a missing document yields fresh empty state; a
  corrupt one is logged as a warning and also yields fresh empty state.
* **Shared reconciliation** -- ``compare()`` lives on the base class so
  every backend classifies paths identically.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType

from pydantic import ValidationError

from vector_sync.constants import (
    DEFAULT_GIT_AUTHOR_EMAIL,
    DEFAULT_GIT_AUTHOR_NAME,
    DEFAULT_GIT_REMOTE,
    DEFAULT_NOTES_REF,
    DEFAULT_STATE_BRANCH,
    DEFAULT_STATE_FILE,
    STORAGE_FILE,
    STORAGE_GIT_BRANCH,
    STORAGE_GIT_NOTES,
)
from vector_sync.sync.models import (
    FileRecord,
    PlannedAdd,
    PlannedDelete,
    PlannedUnchanged,
    PlannedUpdate,
    RemoteEntry,
    StateDocument,
    SyncEntry,
    SyncPlan,
)

logger = logging.getLogger(__name__)


def utc_now() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def parse_document(payload: str) -> StateDocument:
    """Parse a serialized state document.

    Raises:
        ValueError: If the payload is not valid JSON or does not match the
            document schema.
    """
    try:
        return StateDocument.model_validate_json(payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid state document: {exc}") from exc


def serialize_document(document: StateDocument) -> str:
    """Serialize a state document as pretty-printed JSON."""
    return json.dumps(document.model_dump(mode="json"), indent=2) + "\n"


class StateStore(ABC):
    """Common contract for sync state backends."""

    name: str = "abstract"

    def __init__(self) -> None:
        self._document: StateDocument | None = None

    # ------------------------------------------------------------------
    # Persistence (backend specific)
    # ------------------------------------------------------------------

    @abstractmethod
    def load(self) -> StateDocument:
        """Load the persisted document into memory and return it."""

    @abstractmethod
    def save(self) -> None:
        """Durably persist the in-memory document."""

    def fetch(self) -> bool:
        """Pull shared state from a remote.  No-op unless overridden."""
        return False

    def push(self) -> bool:
        """Publish shared state to a remote.  No-op unless overridden."""
        return False

    # ------------------------------------------------------------------
    # In-memory accessors
    # ------------------------------------------------------------------

    @property
    def document(self) -> StateDocument:
        """The loaded document, loading it on first access."""
        if self._document is None:
            self._document = self.load()
        return self._document

    def entries(self) -> Mapping[str, SyncEntry]:
        """Read-only view of the current mapping."""
        return MappingProxyType(self.document.entries)

    def get_entry(self, path: str) -> SyncEntry | None:
        """Return the entry for *path*, or ``None`` if absent."""
        return self.document.entries.get(path)

    def set_entry(self, path: str, entry: SyncEntry) -> None:
        """Insert or replace the entry for *path* (in memory only)."""
        self.document.entries[path] = entry

    def remove_entry(self, path: str) -> None:
        """Remove *path* from the mapping.  No-op if not present."""
        self.document.entries.pop(path, None)

    @property
    def remote_store_id(self) -> str | None:
        return self.document.remote_store_id

    @remote_store_id.setter
    def remote_store_id(self, value: str | None) -> None:
        self.document.remote_store_id = value

    @staticmethod
    def empty_document() -> StateDocument:
        return StateDocument()

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def compare(
        self,
        local_records: Iterable[FileRecord],
        remote_entries: Iterable[RemoteEntry],
    ) -> SyncPlan:
        """Classify local records and remote objects into a ``SyncPlan``.

        A path is *added* when it has no entry or its entry points at a
        remote object that no longer exists; *updated* when the stored
        fingerprint differs; *unchanged* otherwise.  Remote objects not
        claimed by any local path are *deleted*.  Only the content
        fingerprint is compared -- sizes and timestamps are ignored.
        """
        entries = self.document.entries
        unclaimed: dict[str, RemoteEntry] = {
            r.remote_id: r for r in remote_entries
        }
        plan = SyncPlan()

        for record in local_records:
            metadata = record.base_metadata()
            entry = entries.get(record.path)
            if entry is None:
                plan.to_add.append(
                    PlannedAdd(path=record.path, metadata=metadata)
                )
                continue

            if entry.remote_id not in unclaimed:
                # Remote object vanished (or already claimed): re-add
                plan.to_add.append(
                    PlannedAdd(path=record.path, metadata=metadata)
                )
                continue

            del unclaimed[entry.remote_id]
            if entry.fingerprint != record.fingerprint:
                plan.to_update.append(
                    PlannedUpdate(
                        path=record.path,
                        metadata=metadata,
                        remote_id=entry.remote_id,
                    )
                )
            else:
                plan.unchanged.append(
                    PlannedUnchanged(
                        path=record.path, remote_id=entry.remote_id
                    )
                )

        if unclaimed:
            path_by_id = {e.remote_id: p for p, e in entries.items()}
            for remote_id, remote in unclaimed.items():
                path = (
                    path_by_id.get(remote_id) or remote.path or "unknown"
                )
                plan.to_delete.append(
                    PlannedDelete(path=path, remote_id=remote_id)
                )

        return plan

    def prune_stale(self, remote_entries: Iterable[RemoteEntry]) -> list[str]:
        """Drop entries whose remote object is absent from the listing.

        Mutates the in-memory mapping only; the caller saves.

        Returns:
            Sorted list of removed paths.
        """
        live_ids = {r.remote_id for r in remote_entries}
        stale = sorted(
            path
            for path, entry in self.document.entries.items()
            if entry.remote_id not in live_ids
        )
        for path in stale:
            self.remove_entry(path)
        if stale:
            logger.info("Pruned %d stale state entries", len(stale))
        return stale


class FileStateStore(StateStore):
    """State persisted as a single JSON document on the local filesystem.

    Args:
        path: Location of the state document.  Intermediate directories
            are created on save.
    """

    name = STORAGE_FILE

    def __init__(self, path: Path | str = DEFAULT_STATE_FILE) -> None:
        super().__init__()
        self.path = Path(path)

    def load(self) -> StateDocument:
        """Load the document from disk.

        Returns a fresh empty document if the file is missing or cannot be
        parsed; the latter is logged as a warning.
        """
        self._document = self._read_file()
        return self._document

    def save(self) -> None:
        """Stamp ``last_sync`` and write the document atomically."""
        document = self.document
        document.last_sync = utc_now()
        self._write_file(serialize_document(document))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_file(self) -> StateDocument:
        if not self.path.exists():
            logger.debug("No state file at %s, starting fresh", self.path)
            return self.empty_document()
        try:
            payload = self.path.read_text(encoding="utf-8")
            return parse_document(payload)
        except (OSError, ValueError) as exc:
            logger.warning(
                "Ignoring unreadable state file %s: %s", self.path, exc
            )
            return self.empty_document()

    def _write_file(self, payload: str) -> None:
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(directory), prefix=".state-", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_state_store(
    storage: str,
    *,
    state_file: Path | str = DEFAULT_STATE_FILE,
    repo_root: Path | str = ".",
    branch: str = DEFAULT_STATE_BRANCH,
    notes_ref: str = DEFAULT_NOTES_REF,
    remote: str = DEFAULT_GIT_REMOTE,
    author_name: str = DEFAULT_GIT_AUTHOR_NAME,
    author_email: str = DEFAULT_GIT_AUTHOR_EMAIL,
) -> StateStore:
    """Create a state store for the given storage name.

    Args:
        storage: One of ``"file"``, ``"git-notes"``, ``"git-branch"``.
        state_file: File backend path, also the local mirror of the
            history-backed stores.
        repo_root: Working directory of the git repository.
        branch: Orphan branch name for ``"git-branch"``.
        notes_ref: Notes ref for ``"git-notes"``.
        remote: Git remote used by ``fetch``/``push``.
        author_name: Identity recorded on state commits.
        author_email: Identity recorded on state commits.

    Raises:
        ValueError: If the storage name is not recognised.
    """
    if storage == STORAGE_FILE:
        return FileStateStore(state_file)

    from vector_sync.core.git import GitRepo
    from vector_sync.sync.history import (
        GitBranchStateStore,
        GitNotesStateStore,
    )

    repo = GitRepo(
        Path(repo_root),
        author_name=author_name,
        author_email=author_email,
    )
    if storage == STORAGE_GIT_BRANCH:
        return GitBranchStateStore(
            repo, branch=branch, mirror_path=state_file, remote=remote
        )
    if storage == STORAGE_GIT_NOTES:
        return GitNotesStateStore(
            repo, notes_ref=notes_ref, mirror_path=state_file, remote=remote
        )

    valid = sorted((STORAGE_FILE, STORAGE_GIT_BRANCH, STORAGE_GIT_NOTES))
    raise ValueError(
        f"Unknown state storage: '{storage}'. Valid storage types: {valid}"
    )
