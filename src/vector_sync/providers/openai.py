"""OpenAI vector store adapter over the REST API.

Uploads go through the Uploads API (create, add parts, complete) and the
resulting file is attached to the vector store with the metadata stored as
file attributes.  The API cannot replace file content in place, so
``update()`` deletes the old object and uploads a new one.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from collections.abc import Mapping
from pathlib import PurePosixPath
from typing import Any

import requests

from vector_sync.providers.base import (
    ProgressCallback,
    ProviderError,
    RemoteAdapter,
    chunk_content,
    report_progress,
)
from vector_sync.sync.models import RemoteEntry

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_CHUNK_SIZE = 64 * 1024 * 1024
PAGE_LIMIT = 100

# Local metadata key -> vendor attribute name
_ATTRIBUTE_NAMES = {
    "path": "full_path",
    "last_modified": "modified_date",
    "content_kind": "mime_type",
}
_METADATA_NAMES = {v: k for k, v in _ATTRIBUTE_NAMES.items()}


def to_attributes(metadata: Mapping[str, Any]) -> dict[str, Any]:
    """Map a metadata bag onto vendor attributes.

    Attribute values must be strings, numbers or booleans; anything else is
    stringified and ``None`` values are dropped.
    """
    attributes: dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if not isinstance(value, (str, int, float, bool)):
            value = str(value)
        attributes[_ATTRIBUTE_NAMES.get(key, key)] = value
    return attributes


def from_attributes(attributes: Mapping[str, Any] | None) -> dict[str, Any]:
    """Inverse of ``to_attributes``."""
    return {
        _METADATA_NAMES.get(key, key): value
        for key, value in (attributes or {}).items()
    }


def upload_filename(path: str) -> str:
    """File name sent to the API; ``.mdx`` is uploaded as ``.md``."""
    name = PurePosixPath(path).name
    if name.endswith(".mdx"):
        name = name[: -len(".mdx")] + ".md"
    return name


class OpenAIAdapter(RemoteAdapter):
    """Adapter for an OpenAI vector store.

    Args:
        api_key: Bearer token.
        store_id: Existing vector store id, if any.
        base_url: API root, overridable for proxies and tests.
        chunk_size: Upload part size in bytes.
    """

    name = "openai"

    def __init__(
        self,
        api_key: str,
        store_id: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        if not api_key:
            raise ValueError(
                "OpenAI API key is required. "
                "Set OPENAI_API_KEY or pass --api-key."
            )
        self.api_key = api_key
        self.store_id = store_id or None
        self.base_url = base_url.rstrip("/")
        self.chunk_size = chunk_size
        self._thread_local = threading.local()
        self._sessions: list[requests.Session] = []
        self._sessions_lock = threading.Lock()

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            session = self._create_session()
            with self._sessions_lock:
                self._sessions.append(session)
            self._thread_local.session = session
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"Bearer {self.api_key}",
                "OpenAI-Beta": "assistants=v2",
            }
        )
        return session

    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}/{endpoint}"
        try:
            response = self._get_session().request(
                method,
                url,
                json=json,
                params=params,
                files=files,
                timeout=(10, 60),
            )
        except requests.RequestException as exc:
            raise ProviderError(
                f"{method} {endpoint} failed: {exc}", self.name
            ) from exc

        if not response.ok:
            raise ProviderError(
                f"{method} {endpoint} failed with status "
                f"{response.status_code}: {response.text[:500]}",
                self.name,
                response.status_code,
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(
                f"{method} {endpoint} returned invalid JSON", self.name
            ) from exc

    def _require_store(self) -> str:
        if not self.store_id:
            raise ProviderError("Vector store id not set", self.name)
        return self.store_id

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    def verify_store(self) -> bool:
        if not self.store_id:
            return False
        try:
            response = self._request("GET", f"vector_stores/{self.store_id}")
        except ProviderError as exc:
            if exc.status_code == 404:
                return False
            raise
        return response.get("id") == self.store_id

    def create_store(self, name: str) -> str:
        response = self._request("POST", "vector_stores", json={"name": name})
        store_id = response.get("id")
        if not store_id:
            raise ProviderError("Failed to create vector store", self.name)
        self.store_id = store_id
        logger.info("Created vector store %s (%s)", name, store_id)
        return store_id

    def use_store(self, store_id: str) -> None:
        self.store_id = store_id

    def list_entries(self) -> list[RemoteEntry]:
        store_id = self._require_store()
        entries: list[RemoteEntry] = []
        after: str | None = None
        while True:
            params: dict[str, Any] = {"limit": PAGE_LIMIT}
            if after:
                params["after"] = after
            response = self._request(
                "GET", f"vector_stores/{store_id}/files", params=params
            )
            for item in response.get("data") or []:
                entries.append(self._to_entry(item))
            after = response.get("last_id")
            if not response.get("has_more") or not after:
                break
        logger.debug("Listed %d files in %s", len(entries), store_id)
        return entries

    def get_entry(self, remote_id: str) -> RemoteEntry | None:
        store_id = self._require_store()
        try:
            item = self._request(
                "GET", f"vector_stores/{store_id}/files/{remote_id}"
            )
        except ProviderError as exc:
            if exc.status_code == 404:
                return None
            raise
        return self._to_entry(item)

    @staticmethod
    def _to_entry(item: Mapping[str, Any]) -> RemoteEntry:
        metadata = from_attributes(item.get("attributes"))
        if "last_modified" not in metadata and item.get("created_at"):
            metadata["last_modified"] = item["created_at"]
        return RemoteEntry(remote_id=item["id"], metadata=metadata)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def upload(
        self,
        path: str,
        content: bytes,
        metadata: Mapping[str, Any],
        on_progress: ProgressCallback | None = None,
    ) -> str:
        store_id = self._require_store()
        filename = upload_filename(path)
        mime_type = "text/markdown" if filename.endswith(".md") else "text/plain"
        upload = self._request(
            "POST",
            "uploads",
            json={
                "purpose": "assistants",
                "filename": filename,
                "bytes": len(content),
                "mime_type": mime_type,
            },
        )
        upload_id = upload.get("id")
        if not upload_id:
            raise ProviderError("Failed to create upload", self.name)

        parts = list(chunk_content(content, self.chunk_size))
        part_ids: list[str] = []
        for number, part in enumerate(parts, start=1):
            report_progress(
                on_progress,
                number,
                len(parts),
                f"Uploading chunk {number}/{len(parts)} of {filename}",
            )
            response = self._request(
                "POST",
                f"uploads/{upload_id}/parts",
                files={"data": ("blob", part, "application/octet-stream")},
            )
            part_ids.append(response["id"])

        completed = self._request(
            "POST",
            f"uploads/{upload_id}/complete",
            json={"part_ids": part_ids},
        )
        file_id = (completed.get("file") or {}).get("id")
        if not file_id:
            raise ProviderError(
                f"Upload {upload_id} completed without a file", self.name
            )

        self._request(
            "POST",
            f"vector_stores/{store_id}/files",
            json={"file_id": file_id, "attributes": to_attributes(metadata)},
        )
        logger.debug("Uploaded %s as %s", path, file_id)
        return file_id

    def update(
        self,
        remote_id: str,
        content: bytes,
        metadata: Mapping[str, Any],
        on_progress: ProgressCallback | None = None,
    ) -> str:
        """Replace an object by deleting it and uploading the new content.

        Returns:
            The id of the newly uploaded object.
        """
        self.delete(remote_id)
        path = str(metadata.get("path") or remote_id)
        return self.upload(path, content, metadata, on_progress)

    def delete(self, remote_id: str) -> None:
        store_id = self._require_store()
        self._request("DELETE", f"vector_stores/{store_id}/files/{remote_id}")
        try:
            self._request("DELETE", f"files/{remote_id}")
        except ProviderError as exc:
            # Detached from the store already; a leftover file object is harmless
            logger.warning("Could not delete file object %s: %s", remote_id, exc)

    def enrich_metadata(
        self,
        path: str,
        content: bytes,
        base_metadata: Mapping[str, Any],
    ) -> dict[str, Any]:
        enriched = super().enrich_metadata(path, content, base_metadata)
        enriched["md5"] = hashlib.md5(content).hexdigest()
        if self.store_id:
            enriched["store_id"] = self.store_id
        return enriched

    def cleanup(self) -> None:
        """Close every session opened by any thread."""
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        # Worker threads may be reused by a later run
        self._thread_local = threading.local()
