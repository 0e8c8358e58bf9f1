"""Lifespan management for MCP server startup and shutdown."""

import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from dotenv import load_dotenv

from ..config import Config, load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import ProviderConfig, build_config
from ..core.async_utils import run_sync
from ..providers import RemoteAdapter, provider_registry
from ..sync.state import StateStore, create_state_store

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@dataclass
class ServerContext:
    """Long-lived objects shared by every tool call.

    Attributes:
        config: Resolved runtime configuration.
        adapter: Remote store adapter, reused across calls.
        sync_lock: Serialises sync runs; state is single-writer.
    """

    config: Config
    adapter: RemoteAdapter
    sync_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def create_state_store(self, directory: str | None = None) -> StateStore:
        """Fresh state store for one tool call.

        Args:
            directory: Synced directory; defaults to the configured one.
                The git backends keep their state in its repository.
        """
        return create_state_store(
            self.config.storage,
            state_file=self.config.state_file,
            repo_root=directory or self.config.directory,
            branch=self.config.branch,
            notes_ref=self.config.notes_ref,
            remote=self.config.remote,
        )


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Create the adapter and verify the store is reachable
    - Fail fast on configuration errors; a missing store is only a warning
      because the sync tool can create it

    On shutdown:
    - Release adapter resources

    Args:
        config_overrides: Optional dict with config values from CLI
            (provider, store_id, directory, storage)

    Yields:
        Dict with 'context' key containing the ``ServerContext``

    Raises:
        RuntimeError: If configuration is invalid or the provider cannot
            be reached.
    """
    logger.info("MCP server starting...")
    _stderr_print("vector-sync MCP server starting...")

    try:
        load_dotenv()

        sources = []
        config_files = discover_config_files()
        unified = build_config(load_hierarchical_config())
        if config_files:
            sources.append(f"config file: {config_files[0]}")

        overrides = config_overrides or {}
        config = load_config(
            provider=overrides.get("provider"),
            store_id=overrides.get("store_id"),
            directory=overrides.get("directory"),
            storage=overrides.get("storage"),
            unified=unified,
        )
        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        _stderr_print(f"  Provider: {config.provider}")
        _stderr_print(f"  Directory: {config.directory}")

        adapter = provider_registry.create(
            config.provider,
            ProviderConfig(
                name=config.provider,
                api_key=config.api_key,
                store_id=config.store_id,
                base_url=config.base_url,
                chunk_size=config.chunk_size,
            ),
        )
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    _stderr_print("  Verifying vector store...")
    try:
        exists = await run_sync(adapter.verify_store)
    except Exception as e:
        logger.error("Failed to reach %s: %s", config.provider, e)
        _stderr_print(f"ERROR: {config.provider} connection failed.")
        _stderr_print(f"  {e}")
        adapter.cleanup()
        raise RuntimeError(
            f"{config.provider} connection failed: {e}"
        ) from e

    if exists:
        _stderr_print(f"  Vector store ready: {config.store_id}")
    else:
        logger.warning("Vector store not found; sync will need create_store")
        _stderr_print("  WARNING: vector store not found.")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"context": ServerContext(config=config, adapter=adapter)}
    finally:
        adapter.cleanup()
        logger.info("MCP server shutting down")
        _stderr_print("vector-sync MCP server shutting down.")
