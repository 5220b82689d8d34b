"""
Vault tool server - FastAPI app hosting the MCP streamable HTTP endpoint.

Endpoints:
- POST /mcp (and /) - MCP JSON-RPC messages, one session per client
- GET /health - liveness check
- GET /history - undo entries recorded by this process
- POST /undo - revert the newest entry

The server binds to loopback only. Actions taken by remote callers land in
the same operation log as ``/undo`` reads from.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from starlette.responses import Response

from ..services.config import AppConfig, get_config, is_loopback_host
from ..services.file_store import FileStoreError
from ..services.operation_log import OperationError, OperationLog
from ..services.tool_registry import ToolRegistry
from .mcp_server import ServerStatus, build_mcp_server

logger = logging.getLogger(__name__)

RPC_PATHS = ("/", "/mcp")
SESSION_HEADER = "Mcp-Session-Id"
ALLOWED_HEADERS = ["Content-Type", "Accept", "MCP-Protocol-Version", SESSION_HEADER]


def _entry_summary(entry) -> dict:
    return {
        "id": entry.id,
        "description": entry.description,
        "timestamp": entry.timestamp.isoformat(),
        "steps": len(entry.operations),
    }


def create_app(registry: ToolRegistry, operation_log: OperationLog) -> FastAPI:
    """Build the HTTP app around ``registry`` and the log its tools write to."""
    status = ServerStatus()
    session_manager = StreamableHTTPSessionManager(
        app=build_mcp_server(registry, status),
        event_store=None,
        json_response=True,
        stateless=False,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with session_manager.run():
            logger.info("MCP session manager started")
            yield

    app = FastAPI(
        title="Vault Agent Tool Server",
        description="MCP tool server for a Markdown vault",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.status = status

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=ALLOWED_HEADERS,
        expose_headers=[SESSION_HEADER],
    )

    async def mcp_http_bridge(request: Request) -> Response:
        """Forward HTTP requests to the MCP streamable HTTP session manager."""
        send_queue: asyncio.Queue = asyncio.Queue()

        async def send(message):
            await send_queue.put(message)

        try:
            await session_manager.handle_request(request.scope, request.receive, send)
        except Exception as exc:
            logger.exception(f"MCP session manager crashed: {exc}")
            raise HTTPException(status_code=500, detail=f"MCP bridge error: {exc}")

        await send_queue.put(None)

        body = b""
        headers = {}
        status_code = 200
        while True:
            message = await send_queue.get()
            if message is None:
                break
            if message["type"] == "http.response.start":
                status_code = message.get("status", 200)
                headers = {key.decode(): value.decode() for key, value in message.get("headers", [])}
            elif message["type"] == "http.response.body":
                body += message.get("body", b"")
                if not message.get("more_body"):
                    break

        return Response(content=body, status_code=status_code, headers=headers)

    for path in RPC_PATHS:
        app.add_api_route(path, mcp_http_bridge, methods=["POST", "DELETE"], include_in_schema=False)

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "initialized": status.initialized,
            "tools": len(registry.schemas()),
            "tool_calls": status.tool_calls,
        }

    @app.get("/history")
    async def history() -> dict:
        return {"entries": [_entry_summary(entry) for entry in operation_log.history()]}

    @app.post("/undo")
    async def undo() -> dict:
        try:
            entry = await operation_log.undo()
        except (OperationError, FileStoreError) as e:
            logger.warning(f"Undo failed: {e.message}")
            raise HTTPException(status_code=409, detail=e.message)
        if entry is None:
            return {"undone": None}
        return {"undone": _entry_summary(entry)}

    return app


def run_server(
    registry: ToolRegistry,
    operation_log: OperationLog,
    config: Optional[AppConfig] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> None:
    """Run the tool server until interrupted."""
    import uvicorn

    config = config or get_config()
    host = host or config.rpc_host
    port = port or config.rpc_port
    if not is_loopback_host(host):
        raise ValueError(f"Refusing to bind tool server to non-loopback host '{host}'")

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info(
        f"Starting tool server on http://{host}:{port}/mcp",
        extra={"vault": str(config.vault_path), "tools": len(registry.schemas())},
    )
    uvicorn.run(
        create_app(registry, operation_log),
        host=host,
        port=port,
        log_level=config.log_level.lower(),
        access_log=True,
    )


__all__ = ["create_app", "run_server"]
