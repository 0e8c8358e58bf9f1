"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so that agents can
recover without human intervention.
"""

import mcp.types as types

from ...providers.base import ProviderError
from ...sync.errors import ScanError, StoreUnavailableError, SyncError


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (validation_error, store_unavailable,
            scan_error, provider_error, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("scan_error", "Not a directory: docs", "Pass an existing directory.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def translate_sync_error(
    error: SyncError | ProviderError,
) -> types.CallToolResult:
    """Translate a fatal sync or provider error into an error response."""
    match error:
        case StoreUnavailableError():
            return build_error_response(
                "store_unavailable",
                str(error),
                "Set the provider store id (e.g. OPENAI_STORE_ID) or "
                "configure sync.create_store_name, then retry.",
            )
        case ScanError():
            return build_error_response(
                "scan_error",
                str(error),
                "Pass an existing, readable directory.",
            )
        case ProviderError(status_code=401 | 403):
            return build_error_response(
                "permission_denied",
                str(error),
                "Check the provider API key.",
            )
        case ProviderError():
            return build_error_response(
                "provider_error",
                str(error),
                "Retry later; use vector_store_list to check connectivity.",
            )
        case _:
            return build_error_response(
                "sync_error",
                str(error),
                "Check the sync configuration and retry.",
            )
