"""In-memory adapter.

Keeps objects in a dict guarded by a lock.  Used as the reference
implementation of the adapter contract, by the test suite, and for local
dry experiments (``--provider memory``).
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from typing import Any

from vector_sync.providers.base import (
    ProgressCallback,
    ProviderError,
    RemoteAdapter,
    chunk_content,
    report_progress,
)
from vector_sync.sync.models import RemoteEntry

logger = logging.getLogger(__name__)


class InMemoryAdapter(RemoteAdapter):
    """Dict-backed store with sequential ids ``file-1``, ``file-2``, ...

    Args:
        store_id: Id of the pre-existing store, or ``None`` to start without
            one (``verify_store()`` is then ``False`` until ``create_store``).
        chunk_size: Simulated upload part size, drives progress reports.
        fail_paths: Paths whose upload/update raise ``ProviderError``.
        fail_ids: Remote ids whose update/delete raise ``ProviderError``.
    """

    name = "memory"

    def __init__(
        self,
        store_id: str | None = "memory-store",
        chunk_size: int = 1024 * 1024,
        fail_paths: Iterable[str] = (),
        fail_ids: Iterable[str] = (),
    ) -> None:
        self.store_id = store_id
        self.known_stores: set[str] = {store_id} if store_id else set()
        self.chunk_size = chunk_size
        self.fail_paths = set(fail_paths)
        self.fail_ids = set(fail_ids)
        self.objects: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self.cleaned_up = False
        self._next_id = 1
        self._lock = threading.Lock()

    def verify_store(self) -> bool:
        return self.store_id is not None and self.store_id in self.known_stores

    def create_store(self, name: str) -> str:
        with self._lock:
            self.store_id = f"memory-{name}"
            self.known_stores.add(self.store_id)
            self.calls.append(("create_store", name))
        logger.info("Created in-memory store %s", self.store_id)
        return self.store_id

    def use_store(self, store_id: str) -> None:
        self.store_id = store_id

    def list_entries(self) -> list[RemoteEntry]:
        self._require_store()
        with self._lock:
            return [
                RemoteEntry(remote_id=remote_id, metadata=dict(obj["metadata"]))
                for remote_id, obj in self.objects.items()
            ]

    def get_entry(self, remote_id: str) -> RemoteEntry | None:
        with self._lock:
            obj = self.objects.get(remote_id)
            if obj is None:
                return None
            return RemoteEntry(remote_id=remote_id, metadata=dict(obj["metadata"]))

    def upload(
        self,
        path: str,
        content: bytes,
        metadata: Mapping[str, Any],
        on_progress: ProgressCallback | None = None,
    ) -> str:
        self._require_store()
        if path in self.fail_paths:
            raise ProviderError(f"Simulated upload failure for {path}", self.name)
        content = self._transfer(path, content, on_progress)
        with self._lock:
            remote_id = f"file-{self._next_id}"
            self._next_id += 1
            self.objects[remote_id] = {
                "content": content,
                "metadata": dict(metadata),
            }
            self.calls.append(("upload", path))
        return remote_id

    def update(
        self,
        remote_id: str,
        content: bytes,
        metadata: Mapping[str, Any],
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._require_store()
        path = str(metadata.get("path", remote_id))
        if path in self.fail_paths or remote_id in self.fail_ids:
            raise ProviderError(f"Simulated update failure for {path}", self.name)
        with self._lock:
            if remote_id not in self.objects:
                raise ProviderError(f"Unknown remote id: {remote_id}", self.name)
        content = self._transfer(path, content, on_progress)
        with self._lock:
            self.objects[remote_id] = {
                "content": content,
                "metadata": dict(metadata),
            }
            self.calls.append(("update", remote_id))

    def delete(self, remote_id: str) -> None:
        self._require_store()
        if remote_id in self.fail_ids:
            raise ProviderError(
                f"Simulated delete failure for {remote_id}", self.name
            )
        with self._lock:
            if self.objects.pop(remote_id, None) is None:
                raise ProviderError(f"Unknown remote id: {remote_id}", self.name)
            self.calls.append(("delete", remote_id))

    def cleanup(self) -> None:
        self.cleaned_up = True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_store(self) -> None:
        if self.store_id is None:
            raise ProviderError("No store selected", self.name)

    def _transfer(
        self,
        path: str,
        content: bytes,
        on_progress: ProgressCallback | None,
    ) -> bytes:
        parts = list(chunk_content(content, self.chunk_size))
        for number, _part in enumerate(parts, start=1):
            report_progress(
                on_progress,
                number,
                len(parts),
                f"Uploading chunk {number}/{len(parts)} of {path}",
            )
        return b"".join(parts)
