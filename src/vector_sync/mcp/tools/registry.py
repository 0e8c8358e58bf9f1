"""ToolSpec and ToolRegistry for read-only tool filtering.

This module provides a centralized registry for MCP tools.  Operators can
start the server read-only, in which case tools that mutate the remote
store or the sync state are never exposed to AI agents.

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition, a mutating flag,
  and an async handler with standardized signature (context, args) -> CallToolResult.
- ToolRegistry: Filters specs at construction time, then provides
  list_tools() and call_tool() dispatch with error translation.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import mcp.types as types

from ...providers.base import ProviderError
from ...sync.errors import SyncError

if TYPE_CHECKING:
    from ..lifespan import ServerContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        mutating: Whether the tool changes the remote store or sync state.
            Mutating tools are hidden in read-only mode.
        handler: Async handler with signature (context, args) -> CallToolResult.
    """

    tool: types.Tool
    mutating: bool
    handler: Callable[
        [ServerContext, dict], Awaitable[types.CallToolResult]
    ]


class ToolRegistry:
    """Registry of ToolSpecs, optionally restricted to read-only tools."""

    def __init__(self, specs: list[ToolSpec], read_only: bool = False):
        self.read_only = read_only
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            if read_only and spec.mutating:
                continue
            self._specs[spec.tool.name] = spec

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        """Return number of registered tools."""
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        context: ServerContext,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Provides centralized error handling for fatal sync errors, provider
        errors, validation errors, and unexpected exceptions, translating
        them into structured CallToolResult responses with corrective
        actions.

        Args:
            name: Tool name to invoke.
            arguments: Tool arguments (may be None).
            context: Shared server context.

        Returns:
            CallToolResult from the handler.

        Raises:
            ValueError: If tool name is not registered (unknown or filtered out).
        """
        from .errors import build_error_response, translate_sync_error

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(context, args)
        except (SyncError, ProviderError) as e:
            logger.warning("Tool %s failed: %s", name, e)
            return translate_sync_error(e)
        except ValueError as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Check the server log and retry later.",
            )
