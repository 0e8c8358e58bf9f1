"""Content scanner: walk a directory and fingerprint matching files.

Include/exclude rules are glob patterns evaluated against POSIX-style paths
relative to the scanned root:

- ``*`` and ``?`` never cross a ``/``.
- ``**/`` matches zero or more whole directories.
- A trailing ``/**`` matches everything below a directory.
- ``[abc]`` / ``[!abc]`` are character classes.

Exclude always wins over include.  Files that cannot be read during the scan
are dropped silently; only an unreadable *root* is fatal.
"""

from __future__ import annotations

import functools
import hashlib
import logging
import os
import re
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from charset_normalizer import from_bytes

from vector_sync.constants import DEFAULT_EXCLUDE, DEFAULT_INCLUDE
from vector_sync.sync.errors import ScanError
from vector_sync.sync.models import FileRecord

logger = logging.getLogger(__name__)

_CONTENT_KINDS: dict[str, str] = {
    ".md": "text/markdown",
    ".mdx": "text/markdown",
    ".txt": "text/plain",
    ".json": "application/json",
    ".yml": "text/yaml",
    ".yaml": "text/yaml",
}


# ---------------------------------------------------------------------------
# Glob matching
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> re.Pattern[str]:
    """Translate a path glob into an anchored regular expression."""
    parts: list[str] = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**/", i):
                parts.append("(?:.*/)?")
                i += 3
                continue
            if pattern.startswith("**", i):
                parts.append(".*")
                i += 2
                continue
            parts.append("[^/]*")
        elif c == "?":
            parts.append("[^/]")
        elif c == "[":
            end = pattern.find("]", i + 2)
            if end == -1:
                parts.append(re.escape(c))
            else:
                body = pattern[i + 1 : end].replace("\\", "\\\\")
                if body.startswith("!"):
                    body = "^" + body[1:]
                parts.append(f"[{body}]")
                i = end + 1
                continue
        else:
            parts.append(re.escape(c))
        i += 1
    return re.compile("".join(parts) + r"\Z")


def glob_match(path: str, pattern: str) -> bool:
    """Return ``True`` if the POSIX relative *path* matches *pattern*."""
    return _compile_glob(pattern).match(path) is not None


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    """Return ``True`` if *path* matches at least one pattern."""
    return any(glob_match(path, p) for p in patterns)


def content_kind_for(path: str) -> str:
    """Return the content-kind tag for *path* based on its extension."""
    return _CONTENT_KINDS.get(PurePosixPath(path).suffix.lower(), "text/plain")


def detect_encoding(raw: bytes) -> str:
    """Detect the text encoding of *raw*.

    Defaults to UTF-8 for empty content or when detection fails; ASCII is
    reported as UTF-8 since it is a strict subset.
    """
    if not raw:
        return "utf-8"
    best = from_bytes(raw).best()
    if best is None or best.encoding == "ascii":
        return "utf-8"
    return best.encoding


def fingerprint(content: bytes) -> str:
    """SHA-256 hex digest over the exact bytes, no normalisation."""
    return hashlib.sha256(content).hexdigest()


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------


class ContentScanner:
    """Produce ``FileRecord`` objects for files under a root directory.

    Args:
        include: Glob patterns a file must match (defaults to Markdown,
            MDX and plain text).  Replaces the defaults when given.
        exclude: Extra glob patterns to skip.  Always added on top of the
            default excludes (dependency, VCS and build directories).
    """

    def __init__(
        self,
        include: Sequence[str] | None = None,
        exclude: Sequence[str] | None = None,
    ) -> None:
        self.include: list[str] = list(include or DEFAULT_INCLUDE)
        self.exclude: list[str] = list(DEFAULT_EXCLUDE)
        for pattern in exclude or ():
            if pattern not in self.exclude:
                self.exclude.append(pattern)

    def is_selected(self, rel_path: str) -> bool:
        """Apply include/exclude rules to a relative POSIX path."""
        if matches_any(rel_path, self.exclude):
            return False
        return matches_any(rel_path, self.include)

    def scan(self, root: Path) -> list[FileRecord]:
        """Scan *root* and return records sorted by relative path.

        Raises:
            ScanError: If *root* is missing, not a directory, or cannot be
                listed.
        """
        root = Path(root)
        if not root.is_dir():
            raise ScanError(f"Not a directory: {root}")
        try:
            with os.scandir(root):
                pass
        except OSError as exc:
            raise ScanError(f"Cannot list directory {root}: {exc}") from exc

        records: list[FileRecord] = []
        for rel_path in self._walk(root):
            if not self.is_selected(rel_path):
                continue
            record = self._read_record(root, rel_path)
            if record is not None:
                records.append(record)

        records.sort(key=lambda r: r.path)
        logger.debug("Scanned %s: %d matching files", root, len(records))
        return records

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _walk(self, root: Path) -> Iterable[str]:
        """Yield relative POSIX paths of regular files under *root*."""

        def _on_error(exc: OSError) -> None:
            logger.debug("Skipping unreadable directory: %s", exc)

        for dirpath, dirnames, filenames in os.walk(
            root, onerror=_on_error, followlinks=False
        ):
            rel_dir = Path(dirpath).relative_to(root).as_posix()
            if rel_dir == ".":
                rel_dir = ""
            # Prune directories excluded wholesale by a "dir/**" pattern
            dirnames[:] = sorted(
                d
                for d in dirnames
                if not self._is_dir_excluded(f"{rel_dir}/{d}".lstrip("/"))
            )
            for name in filenames:
                yield f"{rel_dir}/{name}".lstrip("/")

    def _is_dir_excluded(self, rel_dir: str) -> bool:
        return any(
            p.endswith("/**") and glob_match(rel_dir, p[:-3])
            for p in self.exclude
        )

    def _read_record(self, root: Path, rel_path: str) -> FileRecord | None:
        """Read one file; return ``None`` if it vanished or is unreadable."""
        abs_path = root / rel_path
        try:
            if not abs_path.is_file():
                return None
            content = abs_path.read_bytes()
            stat = abs_path.stat()
        except OSError as exc:
            logger.debug("Skipping unreadable file %s: %s", rel_path, exc)
            return None

        return FileRecord(
            path=rel_path,
            absolute_path=str(abs_path.resolve()),
            content=content,
            fingerprint=fingerprint(content),
            size=len(content),
            modified_at=datetime.fromtimestamp(
                stat.st_mtime, tz=timezone.utc
            ).isoformat(),
            content_kind=content_kind_for(rel_path),
            encoding=detect_encoding(content),
        )
