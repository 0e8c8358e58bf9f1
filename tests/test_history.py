"""Tests for the git-backed state stores, against real repositories.

Covers:
- GitBranchStateStore: save commits to an orphan branch, load reads it back,
  the working tree and current branch are untouched, history grows
- GitNotesStateStore: save annotates HEAD, ancestor search after new
  commits, load_for_commit, annotated_commits
- Fallback to the file mirror when git is unusable or the payload is
  malformed
- fetch/push without a remote, and push/fetch of both refs through a
  bare remote
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from unittest.mock import patch

import pytest

from vector_sync.core.git import GitCommandError, GitRepo
from vector_sync.sync.history import GitBranchStateStore, GitNotesStateStore
from vector_sync.sync.models import SyncEntry

pytestmark = pytest.mark.skipif(
    shutil.which("git") is None, reason="git is not installed"
)


def _entry(remote_id: str, version: int = 1) -> SyncEntry:
    return SyncEntry(
        remote_id=remote_id,
        metadata={"hash": f"h-{remote_id}"},
        uploaded_at="2026-01-01T00:00:00+00:00",
        version=version,
    )


def _branch_store(repo: Path, tmp_path: Path, **kwargs) -> GitBranchStateStore:
    return GitBranchStateStore(
        GitRepo(repo),
        branch="vector-sync-state",
        mirror_path=tmp_path / "mirror.json",
        **kwargs,
    )


def _notes_store(repo: Path, tmp_path: Path, **kwargs) -> GitNotesStateStore:
    return GitNotesStateStore(
        GitRepo(repo),
        notes_ref="refs/notes/vector-sync",
        mirror_path=tmp_path / "mirror.json",
        **kwargs,
    )


# ---------------------------------------------------------------------------
# GitRepo
# ---------------------------------------------------------------------------


class TestGitRepo:
    def test_is_repository(self, git_repo: Path, tmp_path: Path):
        assert GitRepo(git_repo).is_repository()
        outside = tmp_path / "plain"
        outside.mkdir()
        assert not GitRepo(outside).is_repository()

    def test_rev_parse_unknown_ref(self, git_repo: Path):
        assert GitRepo(git_repo).rev_parse("refs/heads/nope") is None

    def test_failed_command_raises(self, git_repo: Path):
        with pytest.raises(GitCommandError) as info:
            GitRepo(git_repo).run("cat-file", "-p", "deadbeef")
        assert info.value.returncode != 0

    def test_blob_round_trip(self, git_repo: Path):
        repo = GitRepo(git_repo)
        blob = repo.write_blob('{"a": 1}\n')
        assert repo.read_blob(blob) == '{"a": 1}\n'


# ---------------------------------------------------------------------------
# GitBranchStateStore
# ---------------------------------------------------------------------------


class TestGitBranchStateStore:
    def test_load_without_branch_is_empty(self, git_repo, tmp_path):
        document = _branch_store(git_repo, tmp_path).load()
        assert document.entries == {}

    def test_save_then_load(self, git_repo, tmp_path):
        store = _branch_store(git_repo, tmp_path)
        store.load()
        store.set_entry("a.md", _entry("file-1", version=2))
        store.remote_store_id = "vs_1"
        store.save()

        # A fresh store with a different mirror must read from git
        other = GitBranchStateStore(
            GitRepo(git_repo),
            branch="vector-sync-state",
            mirror_path=tmp_path / "other.json",
        )
        document = other.load()
        assert document.entries["a.md"].remote_id == "file-1"
        assert document.entries["a.md"].version == 2
        assert document.remote_store_id == "vs_1"

    def test_save_writes_mirror(self, git_repo, tmp_path):
        store = _branch_store(git_repo, tmp_path)
        store.set_entry("a.md", _entry("file-1"))
        store.save()
        assert "file-1" in (tmp_path / "mirror.json").read_text()

    def test_working_tree_untouched(self, git_repo, tmp_path, git):
        branch_before = git(git_repo, "rev-parse", "--abbrev-ref", "HEAD")
        head_before = git(git_repo, "rev-parse", "HEAD")

        store = _branch_store(git_repo, tmp_path)
        store.set_entry("a.md", _entry("file-1"))
        store.save()

        assert git(git_repo, "rev-parse", "--abbrev-ref", "HEAD") == branch_before
        assert git(git_repo, "rev-parse", "HEAD") == head_before
        assert git(git_repo, "status", "--porcelain") == ""

    def test_branch_is_orphan_with_single_file(self, git_repo, tmp_path, git):
        store = _branch_store(git_repo, tmp_path)
        store.save()
        store.save()

        log = git(git_repo, "rev-list", "refs/heads/vector-sync-state")
        assert len(log.splitlines()) == 2
        main_head = git(git_repo, "rev-parse", "HEAD")
        assert main_head not in log
        files = git(
            git_repo, "ls-tree", "--name-only", "refs/heads/vector-sync-state"
        )
        assert files == "state.json"

    def test_not_a_repository_falls_back_to_mirror(self, tmp_path, caplog):
        plain = tmp_path / "plain"
        plain.mkdir()
        mirror = tmp_path / "mirror.json"
        seeded = _branch_store(plain, tmp_path)
        seeded.set_entry("a.md", _entry("file-7"))
        with caplog.at_level(logging.WARNING):
            seeded.save()
        assert mirror.exists()

        document = _branch_store(plain, tmp_path).load()
        assert document.entries["a.md"].remote_id == "file-7"

    def test_malformed_payload_falls_back(self, git_repo, tmp_path, caplog):
        repo = GitRepo(git_repo)
        blob = repo.write_blob("not json at all")
        tree = repo.make_tree(blob, "state.json")
        commit = repo.commit_tree(tree, "broken")
        repo.update_ref("refs/heads/vector-sync-state", commit)

        document = _branch_store(git_repo, tmp_path).load()
        assert document.entries == {}
        assert "Malformed sync state" in caplog.text


# ---------------------------------------------------------------------------
# GitNotesStateStore
# ---------------------------------------------------------------------------


class TestGitNotesStateStore:
    def test_ref_is_normalised(self, tmp_path):
        store = GitNotesStateStore(GitRepo(tmp_path), notes_ref="sync")
        assert store.ref == "refs/notes/sync"

    def test_save_annotates_head(self, git_repo, tmp_path, git):
        store = _notes_store(git_repo, tmp_path)
        store.set_entry("a.md", _entry("file-1"))
        store.save()

        head = git(git_repo, "rev-parse", "HEAD")
        assert store.annotated_commits() == [head]
        note = git(git_repo, "notes", "--ref=refs/notes/vector-sync", "show")
        assert "file-1" in note

    def test_load_uses_nearest_annotated_ancestor(
        self, git_repo, tmp_path, git
    ):
        store = _notes_store(git_repo, tmp_path)
        store.set_entry("a.md", _entry("file-1"))
        store.save()
        annotated = git(git_repo, "rev-parse", "HEAD")

        (git_repo / "more.md").write_text("more")
        git(git_repo, "add", "more.md")
        git(git_repo, "commit", "-q", "-m", "More")

        other = GitNotesStateStore(
            GitRepo(git_repo),
            mirror_path=tmp_path / "other.json",
        )
        document = other.load()
        assert document.entries["a.md"].remote_id == "file-1"
        assert other.load_for_commit(annotated) is not None
        assert other.load_for_commit("HEAD") is None

    def test_search_depth_limits_ancestor_search(
        self, git_repo, tmp_path, git
    ):
        store = _notes_store(git_repo, tmp_path)
        store.set_entry("a.md", _entry("file-1"))
        store.save()
        for i in range(3):
            git(git_repo, "commit", "-q", "--allow-empty", "-m", f"c{i}")

        shallow = GitNotesStateStore(
            GitRepo(git_repo),
            mirror_path=tmp_path / "empty.json",
            search_depth=2,
        )
        assert shallow.load().entries == {}

    def test_save_without_commits_keeps_mirror(self, tmp_path, git):
        repo = tmp_path / "empty-repo"
        repo.mkdir()
        git(repo, "init", "-q")
        store = _notes_store(repo, tmp_path)
        store.set_entry("a.md", _entry("file-1"))
        store.save()
        assert "file-1" in (tmp_path / "mirror.json").read_text()


# ---------------------------------------------------------------------------
# fetch / push
# ---------------------------------------------------------------------------


class TestRemoteExchange:
    def test_no_remote_is_a_quiet_noop(self, git_repo, tmp_path):
        store = _branch_store(git_repo, tmp_path)
        assert store.fetch() is False
        assert store.push() is False

    def test_push_then_fetch_through_bare_remote(
        self, git_repo, tmp_path, git
    ):
        bare = tmp_path / "remote.git"
        git(tmp_path, "init", "-q", "--bare", str(bare))
        git(git_repo, "remote", "add", "origin", str(bare))

        # Nothing on the remote yet
        store = _branch_store(git_repo, tmp_path)
        assert store.fetch() is False

        store.set_entry("a.md", _entry("file-1"))
        store.save()
        assert store.push() is True

        clone = tmp_path / "clone"
        clone.mkdir()
        git(clone, "init", "-q")
        git(clone, "remote", "add", "origin", str(bare))
        fetched = GitBranchStateStore(
            GitRepo(clone),
            branch="vector-sync-state",
            mirror_path=tmp_path / "clone-mirror.json",
        )
        assert fetched.fetch() is True
        assert fetched.load().entries["a.md"].remote_id == "file-1"

    def test_missing_remote_ref_is_not_a_warning(
        self, git_repo, tmp_path, git, caplog
    ):
        bare = tmp_path / "remote.git"
        git(tmp_path, "init", "-q", "--bare", str(bare))
        git(git_repo, "remote", "add", "origin", str(bare))

        with caplog.at_level(logging.DEBUG, logger="vector_sync.sync.history"):
            assert _branch_store(git_repo, tmp_path).fetch() is False
            assert _notes_store(git_repo, tmp_path).fetch() is False

        assert not [r for r in caplog.records if r.levelno >= logging.WARNING]

    def test_notes_push_then_fetch_through_bare_remote(
        self, git_repo, tmp_path, git
    ):
        bare = tmp_path / "remote.git"
        git(tmp_path, "init", "-q", "--bare", str(bare))
        git(git_repo, "remote", "add", "origin", str(bare))
        git(git_repo, "push", "-q", "origin", "HEAD:refs/heads/main")

        store = _notes_store(git_repo, tmp_path)
        assert store.fetch() is False
        store.set_entry("a.md", _entry("file-1"))
        store.save()
        assert store.push() is True
        assert git(
            bare, "rev-parse", "--verify", "refs/notes/vector-sync"
        )

        clone = tmp_path / "clone"
        clone.mkdir()
        git(clone, "init", "-q")
        git(clone, "remote", "add", "origin", str(bare))
        git(clone, "fetch", "-q", "origin", "main")
        git(clone, "checkout", "-q", "FETCH_HEAD")
        fetched = GitNotesStateStore(
            GitRepo(clone),
            notes_ref="refs/notes/vector-sync",
            mirror_path=tmp_path / "clone-mirror.json",
        )
        assert fetched.fetch() is True
        assert fetched.load().entries["a.md"].remote_id == "file-1"

    def test_git_runs_in_c_locale(self, git_repo, monkeypatch):
        monkeypatch.setenv("LC_ALL", "de_DE.UTF-8")
        monkeypatch.setenv("LANG", "de_DE.UTF-8")
        with patch("vector_sync.core.git.subprocess.run") as mock_run:
            mock_run.return_value.returncode = 0
            GitRepo(git_repo).run("status")
        env = mock_run.call_args.kwargs["env"]
        assert env["LC_ALL"] == "C"
        assert env["GIT_TERMINAL_PROMPT"] == "0"
