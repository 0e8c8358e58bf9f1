"""Remote adapter contract.

A ``RemoteAdapter`` fronts one remote vector store.  Methods are blocking;
the sync engine runs them in worker threads, so implementations must be
safe to call from several threads at once.

Adapters raise ``ProviderError`` (or a subclass) for every remote failure.
The engine treats those as scoped failures of the path being processed.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from datetime import datetime, timezone
from typing import Any, Callable

from vector_sync.sync.models import RemoteEntry

logger = logging.getLogger(__name__)

# (current, total, message)
ProgressCallback = Callable[[int, int, str], None]


class ProviderError(Exception):
    """A remote store operation failed.

    Attributes:
        provider: Name of the adapter that raised.
        status_code: HTTP status if the failure came from an HTTP response.
    """

    def __init__(
        self,
        message: str,
        provider: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


def report_progress(
    on_progress: ProgressCallback | None,
    current: int,
    total: int,
    message: str,
) -> None:
    """Invoke *on_progress* if given.  Callback errors are logged, not raised."""
    if on_progress is None:
        return
    try:
        on_progress(current, total, message)
    except Exception as exc:
        logger.debug("Progress callback failed: %s", exc)


def chunk_content(content: bytes, chunk_size: int) -> Iterator[bytes]:
    """Split *content* into fixed-size chunks.

    An empty payload yields a single empty chunk so that every upload sends
    at least one part.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    if not content:
        yield b""
        return
    for start in range(0, len(content), chunk_size):
        yield content[start : start + chunk_size]


class RemoteAdapter(ABC):
    """Contract every remote vector store adapter fulfils."""

    name: str = "abstract"

    @abstractmethod
    def verify_store(self) -> bool:
        """Return ``True`` if the configured store exists and is usable."""

    @abstractmethod
    def create_store(self, name: str) -> str:
        """Create a store called *name*, select it, and return its id."""

    @abstractmethod
    def use_store(self, store_id: str) -> None:
        """Select an existing store by id for subsequent calls."""

    @abstractmethod
    def list_entries(self) -> list[RemoteEntry]:
        """Return every object in the store, paginating transparently."""

    @abstractmethod
    def upload(
        self,
        path: str,
        content: bytes,
        metadata: Mapping[str, Any],
        on_progress: ProgressCallback | None = None,
    ) -> str:
        """Upload a new object and return its remote id."""

    @abstractmethod
    def update(
        self,
        remote_id: str,
        content: bytes,
        metadata: Mapping[str, Any],
        on_progress: ProgressCallback | None = None,
    ) -> str | None:
        """Replace the content and metadata of an existing object.

        Returns:
            The new remote id if the object had to be re-created under a
            different id, else ``None``.

        Raises:
            ProviderError: If *remote_id* does not exist.
        """

    @abstractmethod
    def delete(self, remote_id: str) -> None:
        """Remove an object from the store."""

    def get_entry(self, remote_id: str) -> RemoteEntry | None:
        """Return one object by id, or ``None`` if it does not exist."""
        for entry in self.list_entries():
            if entry.remote_id == remote_id:
                return entry
        return None

    def search_by_metadata(
        self, query: Mapping[str, Any]
    ) -> list[RemoteEntry]:
        """Return objects whose metadata matches every key/value in *query*."""
        return [
            entry
            for entry in self.list_entries()
            if all(entry.metadata.get(k) == v for k, v in query.items())
        ]

    def enrich_metadata(
        self,
        path: str,
        content: bytes,
        base_metadata: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Return *base_metadata* plus adapter-specific keys.

        Overrides may add keys but must keep every base key.
        """
        return {
            **base_metadata,
            "provider": self.name,
            "enriched_at": datetime.now(timezone.utc).isoformat(),
        }

    def cleanup(self) -> None:
        """Release resources.  Safe to call more than once."""
