"""Tool registry and dispatcher for the Monarch Money MCP gateway.

The registry is built once at import and never mutated; the dispatcher
resolves credentials, builds a client per invocation and renders envelopes.
"""

from .dispatcher import (
    TOOLS,
    ToolDefinition,
    ToolDispatcher,
    UnknownToolError,
    get_dispatcher_async,
    reset_dispatcher,
)

__all__ = [
    "TOOLS",
    "ToolDefinition",
    "ToolDispatcher",
    "UnknownToolError",
    "get_dispatcher_async",
    "reset_dispatcher",
]
