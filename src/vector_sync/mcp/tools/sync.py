"""MCP tool handlers for vector store sync.

Defines three tools:

- ``vector_sync`` -- reconcile a directory with the remote store
  (with optional dry-run).
- ``vector_sync_status`` -- summarise the persisted sync state.
- ``vector_store_list`` -- list the objects held by the remote store.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...sync.engine import EngineSettings, SyncEngine
from ...sync.reporter import (
    format_plan_preview,
    format_state_summary,
    format_sync_report,
    result_to_json,
)
from ...sync.scanner import ContentScanner
from .errors import build_error_response
from .registry import ToolSpec

if TYPE_CHECKING:
    from ..lifespan import ServerContext

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


_SYNC_TOOL = types.Tool(
    name="vector_sync",
    description=(
        "Synchronize a local directory with the remote vector store. "
        "New files are uploaded, changed files replaced and files deleted "
        "locally are removed from the store. Unchanged files are skipped."
    ),
    annotations=types.ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=True,
        idempotentHint=True,
        openWorldHint=True,
    ),
    inputSchema={
        "type": "object",
        "properties": {
            "directory": {
                "type": "string",
                "description": (
                    "Directory to sync. Defaults to the configured directory."
                ),
            },
            "dry_run": {
                "type": "boolean",
                "default": False,
                "description": "Preview changes without applying them",
            },
        },
        "required": [],
    },
)

_STATUS_TOOL = types.Tool(
    name="vector_sync_status",
    description=(
        "Show sync state -- last sync time, remote store id, number of "
        "tracked files."
    ),
    annotations=types.ToolAnnotations(
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    ),
    inputSchema={
        "type": "object",
        "properties": {
            "directory": {
                "type": "string",
                "description": (
                    "Synced directory. Defaults to the configured directory."
                ),
            },
        },
        "required": [],
    },
)

_LIST_TOOL = types.Tool(
    name="vector_store_list",
    description="List the files held by the remote vector store.",
    annotations=types.ToolAnnotations(
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,
    ),
    inputSchema={
        "type": "object",
        "properties": {},
        "required": [],
    },
)

SYNC_TOOLS: list[types.Tool] = [_SYNC_TOOL, _STATUS_TOOL, _LIST_TOOL]


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


def _resolve_directory(context: ServerContext, args: dict[str, Any]) -> str:
    directory = args.get("directory") or context.config.directory
    if not isinstance(directory, str):
        raise ValueError("directory must be a string")
    return directory


async def _handle_vector_sync(
    context: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``vector_sync`` tool."""
    directory = _resolve_directory(context, args)
    dry_run = bool(args.get("dry_run", False))

    engine = SyncEngine(
        adapter=context.adapter,
        state_store=context.create_state_store(directory),
        scanner=ContentScanner(
            context.config.include, context.config.exclude
        ),
        settings=EngineSettings.from_config(context.config),
    )
    if context.sync_lock.locked():
        logger.info("Waiting for the running sync to finish")
    async with context.sync_lock:
        result = await engine.sync(Path(directory), dry_run=dry_run)

    if dry_run and engine.plan is not None:
        text = format_plan_preview(engine.plan)
    else:
        text = format_sync_report(result)

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=result_to_json(result),
        isError=not result.success,
    )


async def _handle_vector_sync_status(
    context: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``vector_sync_status`` tool."""
    directory = _resolve_directory(context, args)
    store = context.create_state_store(directory)
    document = await run_sync(store.load)

    structured = {
        "storage": store.name,
        "directory": directory,
        "last_sync": document.last_sync,
        "remote_store_id": document.remote_store_id,
        "tracked_files": len(document.entries),
    }
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text", text=format_state_summary(document)
            )
        ],
        structuredContent=structured,
    )


async def _handle_vector_store_list(
    context: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``vector_store_list`` tool."""
    exists = await run_sync(context.adapter.verify_store)
    if not exists:
        return build_error_response(
            "store_unavailable",
            f"{context.adapter.name} store does not exist.",
            "Run vector_sync with sync.create_store_name configured, "
            "or set the provider store id.",
        )
    entries = await run_sync(context.adapter.list_entries)
    entries = sorted(entries, key=lambda e: e.path or "")

    if entries:
        lines = [
            f"{e.path or '(unknown)'} ({e.remote_id})" for e in entries
        ]
        lines.append("")
        lines.append(f"{len(entries)} files")
        text = "\n".join(lines)
    else:
        text = "No files in vector store."

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={
            "files": [
                {"path": e.path, "remote_id": e.remote_id} for e in entries
            ],
        },
    )


# ---------------------------------------------------------------------------
# Spec list for ToolRegistry
# ---------------------------------------------------------------------------


SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(tool=_SYNC_TOOL, mutating=True, handler=_handle_vector_sync),
    ToolSpec(
        tool=_STATUS_TOOL,
        mutating=False,
        handler=_handle_vector_sync_status,
    ),
    ToolSpec(
        tool=_LIST_TOOL,
        mutating=False,
        handler=_handle_vector_store_list,
    ),
]
