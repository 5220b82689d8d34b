"""MCP tool server exposing the vault tools over HTTP."""

from .mcp_server import build_mcp_server
from .server import create_app, run_server

__all__ = ["build_mcp_server", "create_app", "run_server"]
