"""MCP Server for vector store sync using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents keep a remote vector store in sync with a local directory.

Transport: stdio (for Claude Desktop/Code integration)
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..constants import STORAGE_TYPES
from ..logger import setup_logging
from .lifespan import ServerContext, server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("vector-sync")

# Global context (initialized in main via lifespan)
_context: ServerContext | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_context() -> ServerContext:
    """Get the global ServerContext instance.

    Raises:
        RuntimeError: If the context is not initialized
    """
    if _context is None:
        raise RuntimeError(
            "ServerContext not initialized. Server lifespan not started."
        )
    return _context


def set_context(context: ServerContext | None) -> None:
    """Set the global ServerContext instance, or None to clear."""
    global _context
    _context = context


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear."""
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List the tools enabled in the ToolRegistry."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    context = get_context()
    try:
        return await get_registry().call_tool(name, arguments, context)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), loads the
    configuration and verifies the store via the lifespan manager, then
    serves JSON-RPC over stdio.

    Args:
        config_overrides: Optional dict with config values to override
            (provider, store_id, directory, storage, log_file, read_only)
    """
    overrides = dict(config_overrides or {})
    log_file = overrides.pop("log_file", None)
    read_only = bool(overrides.pop("read_only", False))

    # Must run before stdio_server so nothing reaches stdout
    setup_logging(mode="mcp", log_file=log_file)

    registry = ToolRegistry(ALL_SPECS, read_only=read_only)
    logger.info(
        "Registered %d tools (of %d total)%s",
        registry.tool_count(),
        len(ALL_SPECS),
        " in read-only mode" if read_only else "",
    )
    if read_only:
        print(
            f"Read-only mode ({registry.tool_count()} of "
            f"{len(ALL_SPECS)} tools enabled)",
            file=sys.stderr,
        )
    set_registry(registry)

    # set_context() is called here rather than inside the lifespan so that
    # running this file as __main__ updates the module that serves requests.
    async with server_lifespan(config_overrides=overrides or None) as ctx:
        set_context(ctx["context"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="vector-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_context(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="vector-sync MCP server - keep a vector store in sync from an AI agent",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .vector_sync/config.yml)
  vector-sync-mcp

  # Sync a specific directory, state in a plain file
  vector-sync-mcp --directory docs --storage file

  # Only expose read-only tools
  vector-sync-mcp --read-only

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr. Do not pipe stdin/stdout manually.
        """,
    )
    parser.add_argument(
        "--provider",
        help="Override the vector store provider (takes precedence over VECTOR_SYNC_PROVIDER)",
    )
    parser.add_argument(
        "--store-id",
        help="Override the vector store id (takes precedence over <PROVIDER>_STORE_ID)",
    )
    parser.add_argument(
        "--directory",
        help="Directory to sync (default: current directory)",
    )
    parser.add_argument(
        "--storage",
        choices=STORAGE_TYPES,
        help="Where sync state is kept (default: git-branch)",
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/vector-sync-mcp.log",
        help="Log file path (default: /tmp/vector-sync-mcp.log)",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Hide tools that modify the vector store or the sync state",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"vector-sync-mcp version {__version__}",
    )

    args = parser.parse_args()

    config_overrides: dict = {}
    for key in ("provider", "store_id", "directory", "storage", "log_file"):
        value = getattr(args, key)
        if value:
            config_overrides[key] = value
    if args.read_only:
        config_overrides["read_only"] = True

    shown = [k for k in config_overrides if k not in ("log_file", "read_only")]
    if shown:
        print(
            f"Config overrides from CLI: {', '.join(shown)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
