"""Shared pytest fixtures for vector-sync tests."""

import shutil
import subprocess
from pathlib import Path

import pytest

from vector_sync.config import Config
from vector_sync.providers.memory import InMemoryAdapter


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a real provider account",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a real provider account"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


def _git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


@pytest.fixture
def git():
    """Run a git command in a directory and return its stdout."""
    return _git


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """A fresh repository with one commit on its default branch."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "-q")
    _git(repo, "config", "user.name", "Test User")
    _git(repo, "config", "user.email", "test@example.com")
    _git(repo, "config", "commit.gpgsign", "false")
    (repo / "README.md").write_text("# Test\n")
    _git(repo, "add", "README.md")
    _git(repo, "commit", "-q", "-m", "Initial commit")
    return repo


@pytest.fixture
def docs_dir(tmp_path: Path) -> Path:
    """A small directory of syncable files."""
    root = tmp_path / "docs"
    (root / "guide").mkdir(parents=True)
    (root / "index.md").write_text("# Index\n")
    (root / "guide" / "setup.md").write_text("# Setup\n\nRun it.\n")
    (root / "notes.txt").write_text("plain notes\n")
    return root


@pytest.fixture
def memory_adapter() -> InMemoryAdapter:
    return InMemoryAdapter()


@pytest.fixture
def make_config(tmp_path: Path):
    """Factory for a valid Config using the memory provider."""

    def _make(**overrides) -> Config:
        defaults = {
            "provider": "memory",
            "directory": str(tmp_path / "docs"),
            "storage": "file",
            "state_file": str(tmp_path / "state.json"),
            "notes_ref": "refs/notes/vector-sync",
            "branch": "vector-sync-state",
            "remote": "origin",
            "include": ["**/*.md", "**/*.mdx", "**/*.txt"],
            "store_id": "memory-store",
            "max_concurrent": 2,
        }
        defaults.update(overrides)
        return Config(**defaults)

    return _make
