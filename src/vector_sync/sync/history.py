"""History-backed state stores.

Persist the sync state inside the git object database instead of a tracked
working-tree file, so it travels with the repository without creating merge
noise:

- ``GitNotesStateStore`` attaches the state document as a note on ``HEAD``
  under a dedicated notes ref.
- ``GitBranchStateStore`` commits the document as the only file of a
  dedicated orphan branch that never merges with content branches.

Both stores extend ``FileStateStore``: the JSON file doubles as a durable
local mirror written on every save, and as the fallback used whenever the
history read fails for any reason (missing ref, git unavailable, not a
repository, malformed payload).  History failures are degraded conditions:
they are logged as warnings and never raised.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from pathlib import Path

from vector_sync.constants import (
    DEFAULT_GIT_REMOTE,
    DEFAULT_NOTES_REF,
    DEFAULT_STATE_BRANCH,
    DEFAULT_STATE_BRANCH_FILE,
    DEFAULT_STATE_FILE,
    STORAGE_GIT_BRANCH,
    STORAGE_GIT_NOTES,
)
from vector_sync.core.git import GitCommandError, GitRepo
from vector_sync.sync.models import StateDocument
from vector_sync.sync.state import (
    FileStateStore,
    parse_document,
    serialize_document,
    utc_now,
)

logger = logging.getLogger(__name__)

# stderr fragments meaning "nothing to exchange yet" rather than an error
_EXPECTED_REMOTE_MISSES = (
    "couldn't find remote ref",
    "does not appear to be a git repository",
    "no such remote",
    "does not match any",
)


class HistoryStateStore(FileStateStore):
    """Base class for git-history-backed stores with a file mirror.

    Args:
        repo: Repository whose object database holds the state.
        mirror_path: Local JSON mirror and fallback location.
        remote: Git remote used by ``fetch()``/``push()``.
    """

    def __init__(
        self,
        repo: GitRepo,
        *,
        mirror_path: Path | str = DEFAULT_STATE_FILE,
        remote: str = DEFAULT_GIT_REMOTE,
    ) -> None:
        super().__init__(mirror_path)
        self.repo = repo
        self.remote = remote

    @property
    @abstractmethod
    def ref(self) -> str:
        """Fully qualified ref holding the state."""

    @abstractmethod
    def _read_history(self) -> str | None:
        """Return the serialized document, or ``None`` if none exists yet."""

    @abstractmethod
    def _write_history(self, payload: str) -> None:
        """Persist the serialized document into the object database."""

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> StateDocument:
        """Load from history, falling back to the file mirror on any failure."""
        try:
            payload = self._read_history()
        except Exception as exc:
            logger.warning(
                "Could not read sync state from %s, using %s: %s",
                self.ref,
                self.path,
                exc,
            )
            return super().load()

        if payload is None:
            logger.debug(
                "No sync state in %s yet, using %s", self.ref, self.path
            )
            return super().load()

        try:
            document = parse_document(payload)
        except ValueError as exc:
            logger.warning(
                "Malformed sync state in %s, using %s: %s",
                self.ref,
                self.path,
                exc,
            )
            return super().load()

        self._document = document
        return document

    def save(self) -> None:
        """Write the history copy and the file mirror.

        A failed history write is logged; the mirror is still written, so
        the run keeps a durable record.
        """
        document = self.document
        document.last_sync = utc_now()
        payload = serialize_document(document)
        try:
            self._write_history(payload)
        except Exception as exc:
            logger.warning(
                "Could not write sync state to %s, kept local copy %s: %s",
                self.ref,
                self.path,
                exc,
            )
        self._write_file(payload)

    # ------------------------------------------------------------------
    # Remote exchange
    # ------------------------------------------------------------------

    def fetch(self) -> bool:
        """Fetch the state ref from the remote.

        Returns:
            ``True`` if the ref was fetched; ``False`` for the expected
            no-remote / no-ref cases and for (logged) failures.
        """
        return self._exchange("fetch", self.remote, f"{self.ref}:{self.ref}")

    def push(self) -> bool:
        """Push the state ref to the remote.

        Returns:
            ``True`` if the ref was pushed; ``False`` otherwise.
        """
        return self._exchange("push", self.remote, f"{self.ref}:{self.ref}")

    def _exchange(self, *args: str) -> bool:
        action = args[0]
        try:
            if not self.repo.has_remote(self.remote):
                logger.debug(
                    "No remote '%s' configured, skipping %s of %s",
                    self.remote,
                    action,
                    self.ref,
                )
                return False
            self.repo.run(*args)
        except GitCommandError as exc:
            stderr = exc.stderr.lower()
            if any(marker in stderr for marker in _EXPECTED_REMOTE_MISSES):
                logger.debug("Nothing to %s for %s: %s", action, self.ref, exc)
            else:
                logger.warning("Could not %s %s: %s", action, self.ref, exc)
            return False
        logger.info("%s of %s via '%s' complete", action, self.ref, self.remote)
        return True


class GitNotesStateStore(HistoryStateStore):
    """State stored as a git note attached to ``HEAD``.

    On load the note on ``HEAD`` is used; if ``HEAD`` has none (new commits
    since the last sync), the nearest annotated ancestor within
    ``search_depth`` commits is used instead.
    """

    name = STORAGE_GIT_NOTES

    def __init__(
        self,
        repo: GitRepo,
        *,
        notes_ref: str = DEFAULT_NOTES_REF,
        mirror_path: Path | str = DEFAULT_STATE_FILE,
        remote: str = DEFAULT_GIT_REMOTE,
        search_depth: int = 100,
    ) -> None:
        super().__init__(repo, mirror_path=mirror_path, remote=remote)
        if not notes_ref.startswith("refs/"):
            notes_ref = f"refs/notes/{notes_ref}"
        self.notes_ref = notes_ref
        self.search_depth = search_depth

    @property
    def ref(self) -> str:
        return self.notes_ref

    def annotated_commits(self) -> list[str]:
        """Return the commits carrying a state note."""
        result = self.repo.run(
            "notes", f"--ref={self.notes_ref}", "list", check=False
        )
        if result.returncode != 0:
            return []
        commits: list[str] = []
        for line in result.stdout.splitlines():
            parts = line.split()
            if len(parts) == 2:
                commits.append(parts[1])
        return commits

    def load_for_commit(self, commit: str) -> StateDocument | None:
        """Return the state recorded on *commit*, or ``None`` if absent/invalid."""
        result = self.repo.run(
            "notes", f"--ref={self.notes_ref}", "show", commit, check=False
        )
        if result.returncode != 0:
            return None
        try:
            return parse_document(result.stdout)
        except ValueError:
            logger.warning("Malformed sync state note on %s", commit)
            return None

    def _read_history(self) -> str | None:
        head = self.repo.rev_parse("HEAD")
        if head is None:
            return None
        commit = self._nearest_annotated(head)
        if commit is None:
            return None
        if commit != head:
            logger.debug("Using sync state note from ancestor %s", commit)
        return self.repo.run(
            "notes", f"--ref={self.notes_ref}", "show", commit
        ).stdout

    def _nearest_annotated(self, head: str) -> str | None:
        annotated = set(self.annotated_commits())
        if not annotated:
            return None
        if head in annotated:
            return head
        history = self.repo.run(
            "rev-list", f"--max-count={self.search_depth}", head
        ).stdout.split()
        for commit in history:
            if commit in annotated:
                return commit
        return None

    def _write_history(self, payload: str) -> None:
        head = self.repo.rev_parse("HEAD")
        if head is None:
            raise GitCommandError(
                ("notes", "add"), None, "repository has no commits to annotate"
            )
        self.repo.run(
            "notes",
            f"--ref={self.notes_ref}",
            "add",
            "-f",
            "-F",
            "-",
            head,
            input=payload,
        )


class GitBranchStateStore(HistoryStateStore):
    """State committed to a dedicated orphan branch.

    Commits are built with plumbing only (``hash-object``, ``mktree``,
    ``commit-tree``, ``update-ref``); the branch is never checked out.
    """

    name = STORAGE_GIT_BRANCH

    def __init__(
        self,
        repo: GitRepo,
        *,
        branch: str = DEFAULT_STATE_BRANCH,
        file_name: str = DEFAULT_STATE_BRANCH_FILE,
        mirror_path: Path | str = DEFAULT_STATE_FILE,
        remote: str = DEFAULT_GIT_REMOTE,
    ) -> None:
        super().__init__(repo, mirror_path=mirror_path, remote=remote)
        self.branch = branch.removeprefix("refs/heads/")
        self.file_name = file_name

    @property
    def ref(self) -> str:
        return f"refs/heads/{self.branch}"

    def _read_history(self) -> str | None:
        if self.repo.rev_parse(self.ref) is None:
            return None
        return self.repo.read_blob(f"{self.ref}:{self.file_name}")

    def _write_history(self, payload: str) -> None:
        blob = self.repo.write_blob(payload)
        tree = self.repo.make_tree(blob, self.file_name)
        parent = self.repo.rev_parse(self.ref)
        commit = self.repo.commit_tree(
            tree, f"Update sync state at {utc_now()}", parent
        )
        self.repo.update_ref(self.ref, commit, parent)
        logger.debug("Recorded sync state as %s on %s", commit, self.ref)
