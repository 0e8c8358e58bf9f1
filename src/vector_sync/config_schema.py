"""Configuration schema for vector_sync.

Pydantic models for the YAML config file, one per top-level section
(``provider``, ``sync``, ``logging``).  Every field has a default, so an
empty file, or no file at all, is a valid configuration.

Usage:
    from vector_sync.config_loader import load_hierarchical_config
    from vector_sync.config_schema import build_config

    unified = build_config(load_hierarchical_config())
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from vector_sync.constants import (
    DEFAULT_EXCLUDE,
    DEFAULT_GIT_REMOTE,
    DEFAULT_INCLUDE,
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_NOTES_REF,
    DEFAULT_PROVIDER,
    DEFAULT_STATE_BRANCH,
    DEFAULT_STATE_FILE,
    DEFAULT_STORAGE,
    STORAGE_TYPES,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class ProviderConfig(BaseModel):
    """Remote vector store settings.

    Credentials are optional here; they usually come from the environment.
    """

    name: str = Field(default=DEFAULT_PROVIDER, description="Provider name")
    api_key: str | None = Field(default=None, description="API key")
    store_id: str | None = Field(default=None, description="Vector store id")
    base_url: str | None = Field(
        default=None, description="API root override"
    )
    chunk_size: int | None = Field(
        default=None,
        ge=1,
        description="Upload part size in bytes (provider default if unset)",
    )

    model_config = {"frozen": True}

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        return value.strip().lower()


class SyncConfig(BaseModel):
    """What to sync and where the sync state lives.

    Attributes:
        directory: Root directory to scan.
        include: Glob patterns selecting files (replace the defaults).
        exclude: Extra glob patterns to skip (added to the defaults).
        storage: State backend: ``file``, ``git-notes`` or ``git-branch``.
        state_file: File backend path and local mirror of the git backends.
        notes_ref: Notes ref for the ``git-notes`` backend.
        branch: Orphan branch for the ``git-branch`` backend.
        remote: Git remote the state is fetched from and pushed to.
        max_concurrent: Remote calls allowed in flight at once.
        push_state: Push the state ref after saving.
        prune_stale: Drop state entries whose remote object is gone.
        create_store_name: Create a store with this name when none exists.
    """

    directory: str = Field(default=".", description="Directory to sync")
    include: list[str] = Field(default_factory=lambda: list(DEFAULT_INCLUDE))
    exclude: list[str] = Field(default_factory=list)
    storage: str = Field(default=DEFAULT_STORAGE)
    state_file: str = Field(default=DEFAULT_STATE_FILE)
    notes_ref: str = Field(default=DEFAULT_NOTES_REF)
    branch: str = Field(default=DEFAULT_STATE_BRANCH)
    remote: str = Field(default=DEFAULT_GIT_REMOTE)
    max_concurrent: int = Field(
        default=DEFAULT_MAX_CONCURRENT,
        ge=1,
        le=64,
        description="Maximum concurrent remote calls (1-64)",
    )
    push_state: bool = Field(default=True)
    prune_stale: bool = Field(default=False)
    create_store_name: str | None = Field(default=None)

    model_config = {"frozen": True}

    @field_validator("storage")
    @classmethod
    def _check_storage(cls, value: str) -> str:
        if value not in STORAGE_TYPES:
            raise ValueError(
                f"Invalid storage '{value}'. Valid: {', '.join(STORAGE_TYPES)}"
            )
        return value

    @field_validator("include")
    @classmethod
    def _check_include(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("include must contain at least one pattern")
        return value


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or single-line ``json`` records.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: Literal["text", "json"] = Field(default="text")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """All config sections; ``UnifiedConfig()`` is always valid."""

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Validate the merged dict from ``load_hierarchical_config()``.

    Missing sections get defaults.

    Raises:
        pydantic.ValidationError: If a section has invalid values.
    """
    if not raw_data:
        return UnifiedConfig()
    return UnifiedConfig(**raw_data)
