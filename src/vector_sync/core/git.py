"""Thin wrapper around the git CLI for object-database plumbing.

Only plumbing commands are used (``hash-object``, ``mktree``,
``commit-tree``, ``update-ref``, ``notes``, ``cat-file``) so that reading
and writing sync state never touches the working tree, the index, or the
checked-out branch.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

from vector_sync.constants import (
    DEFAULT_GIT_AUTHOR_EMAIL,
    DEFAULT_GIT_AUTHOR_NAME,
)

logger = logging.getLogger(__name__)


class GitCommandError(Exception):
    """A git invocation failed or git is not available.

    Attributes:
        args_: The git arguments that were run.
        returncode: Exit status (``None`` if git could not be started).
        stderr: Captured standard error.
    """

    def __init__(
        self,
        args_: tuple[str, ...],
        returncode: int | None,
        stderr: str = "",
    ) -> None:
        self.args_ = args_
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = self.stderr or "no stderr"
        super().__init__(
            f"git {' '.join(args_)} failed (exit {returncode}): {detail}"
        )


class GitRepo:
    """Run git commands against one repository.

    Args:
        root: Directory inside the repository.
        author_name: Identity used for commits and notes created here.
        author_email: Identity used for commits and notes created here.
        timeout: Seconds before a git command is abandoned.
    """

    def __init__(
        self,
        root: Path,
        author_name: str = DEFAULT_GIT_AUTHOR_NAME,
        author_email: str = DEFAULT_GIT_AUTHOR_EMAIL,
        timeout: float = 60.0,
    ) -> None:
        self.root = Path(root)
        self.author_name = author_name
        self.author_email = author_email
        self.timeout = timeout

    def run(
        self,
        *args: str,
        input: str | None = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        """Run ``git <args>`` in the repository.

        Raises:
            GitCommandError: If git is missing, times out, or (with
                ``check=True``) exits non-zero.
        """
        env = os.environ.copy()
        env.update(
            {
                "GIT_AUTHOR_NAME": self.author_name,
                "GIT_AUTHOR_EMAIL": self.author_email,
                "GIT_COMMITTER_NAME": self.author_name,
                "GIT_COMMITTER_EMAIL": self.author_email,
                "GIT_TERMINAL_PROMPT": "0",
                # stderr is matched against English messages
                "LC_ALL": "C",
            }
        )
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=str(self.root),
                input=input,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
            )
        except FileNotFoundError as exc:
            raise GitCommandError(args, None, str(exc)) from exc
        except subprocess.TimeoutExpired as exc:
            raise GitCommandError(
                args, None, f"timed out after {self.timeout}s"
            ) from exc

        if check and result.returncode != 0:
            raise GitCommandError(args, result.returncode, result.stderr)
        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_repository(self) -> bool:
        """Return ``True`` if ``root`` is inside a git work tree."""
        try:
            result = self.run(
                "rev-parse", "--is-inside-work-tree", check=False
            )
        except GitCommandError:
            return False
        return result.returncode == 0 and result.stdout.strip() == "true"

    def rev_parse(self, rev: str) -> str | None:
        """Resolve *rev* to a full object name, or ``None`` if unknown."""
        result = self.run("rev-parse", "--verify", "--quiet", rev, check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def has_remote(self, remote: str) -> bool:
        """Return ``True`` if *remote* is configured."""
        result = self.run("remote", "get-url", remote, check=False)
        return result.returncode == 0

    # ------------------------------------------------------------------
    # Object database
    # ------------------------------------------------------------------

    def write_blob(self, payload: str) -> str:
        """Store *payload* as a blob and return its object name."""
        return self.run(
            "hash-object", "-w", "--stdin", input=payload
        ).stdout.strip()

    def read_blob(self, rev_path: str) -> str:
        """Return the content of ``<rev>:<path>``."""
        return self.run("cat-file", "-p", rev_path).stdout

    def make_tree(self, blob: str, file_name: str) -> str:
        """Create a tree holding a single regular file."""
        return self.run(
            "mktree", input=f"100644 blob {blob}\t{file_name}\n"
        ).stdout.strip()

    def commit_tree(
        self, tree: str, message: str, parent: str | None = None
    ) -> str:
        """Create a commit object for *tree* and return its name."""
        args = ["commit-tree", "-m", message]
        if parent:
            args += ["-p", parent]
        args.append(tree)
        return self.run(*args).stdout.strip()

    def update_ref(
        self, ref: str, new: str, old: str | None = None
    ) -> None:
        """Point *ref* at *new*, optionally guarding on the old value."""
        args = ["update-ref", ref, new]
        if old:
            args.append(old)
        self.run(*args)
