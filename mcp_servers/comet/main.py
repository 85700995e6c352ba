"""
MCP server bridging an assistant to the Comet browser over the DevTools protocol.

This module provides the entry point and JSON-RPC handling. Tool dispatch is
handled via the registry in server/registry.py.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from typing import Any

from .bridge import CometBridge
from .errors import SmartToolError
from .http_client import HttpClientError
from .server.contract import initialize_result, select_protocol, tools_list
from .server.redaction import redact_jsonrpc_for_log, redact_tool_arguments
from .server.registry import create_default_registry
from .server.types import ToolResult

logger = logging.getLogger("mcp.comet")

__all__ = ["McpServer", "main"]


def _write_message(payload: dict[str, Any]) -> None:
    """Write JSON-RPC message to stdout."""
    if os.environ.get("MCP_TRACE"):
        logger.info("send %s", redact_jsonrpc_for_log(payload))
    data = json.dumps(payload, ensure_ascii=False)
    sys.stdout.buffer.write((data + "\n").encode())
    sys.stdout.buffer.flush()


def _parse_frame(line: bytes) -> dict[str, Any]:
    msg = json.loads(line.decode())
    if not isinstance(msg, dict):
        raise ValueError("JSON-RPC frame must be an object")
    if os.environ.get("MCP_TRACE"):
        logger.info("recv %s", redact_jsonrpc_for_log(msg))
    return msg


class McpServer:
    """MCP server with registry-based tool dispatch over one CometBridge."""

    def __init__(self, bridge: CometBridge | None = None) -> None:
        self.bridge = bridge or CometBridge()
        self.registry = create_default_registry()
        self._write = _write_message

    def _write_error(self, request_id: Any, code: int, message: str) -> None:
        self._write({"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}})

    def handle_initialize(self, request_id: Any, params: dict[str, Any] | None = None) -> None:
        requested = (params or {}).get("protocolVersion") if isinstance(params, dict) else None
        protocol = select_protocol(requested)
        self._write({"jsonrpc": "2.0", "id": request_id, "result": initialize_result(protocol)})

    def handle_list_tools(self, request_id: Any) -> None:
        self._write({"jsonrpc": "2.0", "id": request_id, "result": {"tools": tools_list()}})

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Run one tool; every failure becomes an error result."""
        logger.info("tool=%s args=%s", name, redact_tool_arguments(name, arguments))
        try:
            if not name:
                return ToolResult.error("Missing tool name")
            if not self.registry.has(name):
                return ToolResult.error(f"Unknown tool: {name}", tool=name)
            return await self.registry.dispatch(name, self.bridge, arguments)
        except SmartToolError as e:
            logger.info("tool_error tool=%s action=%s reason=%s", e.tool, e.action, e.reason)
            return ToolResult.error(e.reason, tool=e.tool, suggestion=e.suggestion, details=e.details)
        except HttpClientError as e:
            logger.info("http_error %s", e)
            return ToolResult.error(str(e), tool=name)
        except Exception as exc:
            logger.exception("tool_call_failed")
            return ToolResult.error(str(exc), tool=name)

    async def handle_call_tool(self, request_id: Any, name: str, arguments: dict[str, Any]) -> None:
        result = await self.call_tool(name, arguments)
        self._write({"jsonrpc": "2.0", "id": request_id, "result": result.to_mcp()})

    async def dispatch(self, message: dict[str, Any]) -> None:
        """Dispatch incoming JSON-RPC message to the matching handler."""
        method = message.get("method")
        request_id = message.get("id")
        params = message.get("params") or {}
        if not isinstance(method, str) or not isinstance(params, dict):
            self._write_error(request_id, -32600, "Invalid Request")
            return

        if method == "initialize":
            self.handle_initialize(request_id, params)
        elif method.startswith("notifications/"):
            return
        elif method == "tools/list":
            self.handle_list_tools(request_id)
        elif method == "tools/call":
            name = params.get("name")
            arguments = params.get("arguments") or {}
            if not isinstance(arguments, dict):
                self._write_error(request_id, -32602, "Invalid params: arguments must be an object")
                return
            await self.handle_call_tool(request_id, str(name or ""), arguments)
        elif method == "ping":
            self._write({"jsonrpc": "2.0", "id": request_id, "result": {}})
        elif request_id is not None:
            self._write_error(request_id, -32601, f"Method {method} not found")

    async def handle_line(self, line: bytes) -> None:
        line = line.strip()
        if not line:
            return
        try:
            message = _parse_frame(line)
        except ValueError as exc:
            self._write_error(None, -32700, f"Parse error: {exc}")
            return
        await self.dispatch(message)

    async def serve(self) -> None:
        try:
            while True:
                line = await asyncio.to_thread(sys.stdin.buffer.readline)
                if not line:
                    break
                try:
                    await self.handle_line(line)
                except Exception:
                    logger.exception("frame_failed")
        finally:
            await self.bridge.close()


def main() -> None:
    """Main entry point for the MCP server."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    try:
        asyncio.run(McpServer().serve())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
