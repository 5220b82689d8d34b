"""MCP server exposing the vault tool registry.

Built on the low-level ``mcp`` server because the tool set is data: every
schema comes from the registry rather than from Python signatures. The SDK
owns the JSON-RPC framing (initialize, ping, notifications and error codes);
this module only maps ``tools/list`` and ``tools/call`` onto the registry.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Any, Dict, List, Optional

from mcp import types
from mcp.server.lowlevel import Server

from .. import __version__
from ..services.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

SERVER_NAME = "vault-agent"
INSTRUCTIONS = (
    "This server provides tools to work with a Markdown notes vault. "
    "You can search notes, read content, create and reorganise notes, and more. "
    "Every change is recorded and can be undone by the user."
)


class ToolCallFailed(Exception):
    """A dispatched tool reported failure; the SDK turns this into ``isError``."""


@dataclass
class ServerStatus:
    """Diagnostics surfaced by ``/health``."""

    initialized: bool = False
    tool_calls: int = 0


def tool_definitions(registry: ToolRegistry) -> List[types.Tool]:
    """Public tools as MCP definitions; internal tools are not offered."""
    return [types.Tool.model_validate(schema.to_wire()) for schema in registry.schemas()]


async def call_registry_tool(
    registry: ToolRegistry, name: str, arguments: Optional[Dict[str, Any]]
) -> List[types.TextContent]:
    """Dispatch ``name`` and wrap its text, raising ``ToolCallFailed`` on failure."""
    spec = registry.get(name)
    if spec is not None and spec.internal:
        raise ToolCallFailed(f"Unknown tool: {name}")

    start = time.perf_counter()
    result = await registry.dispatch(name, arguments or {})
    logger.info(
        f"Tool call: {name}",
        extra={
            "tool": name,
            "is_error": not result.success,
            "duration_ms": round((time.perf_counter() - start) * 1000, 1),
        },
    )
    if not result.success:
        raise ToolCallFailed(result.result)
    return [types.TextContent(type="text", text=result.result)]


def build_mcp_server(registry: ToolRegistry, status: Optional[ServerStatus] = None) -> Server:
    status = status or ServerStatus()
    server = Server(SERVER_NAME, version=__version__, instructions=INSTRUCTIONS)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return tool_definitions(registry)

    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: Dict[str, Any]) -> List[types.TextContent]:
        status.tool_calls += 1
        return await call_registry_tool(registry, name, arguments)

    async def on_initialized(notification: types.InitializedNotification) -> None:
        status.initialized = True
        logger.info("Client initialized")

    server.notification_handlers[types.InitializedNotification] = on_initialized
    return server


__all__ = [
    "INSTRUCTIONS",
    "SERVER_NAME",
    "ServerStatus",
    "ToolCallFailed",
    "build_mcp_server",
    "call_registry_tool",
    "tool_definitions",
]
