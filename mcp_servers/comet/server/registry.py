"""
Tool registry with connection lifecycle management.

Handlers are registered as (handler, requires_connection). When the flag is
set the registry makes the control channel usable (reconnecting or restarting
Comet as needed) before the handler runs.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .types import HandlerFunc, ToolResult

if TYPE_CHECKING:
    from ..bridge import CometBridge

logger = logging.getLogger("mcp.comet.registry")


class ToolRegistry:
    """Registry for tool handlers with automatic connection management."""

    def __init__(self) -> None:
        # name -> (handler, requires_connection)
        self._handlers: dict[str, tuple[HandlerFunc, bool]] = {}

    def register(self, name: str, handler: HandlerFunc, requires_connection: bool = True) -> None:
        self._handlers[name] = (handler, requires_connection)

    def register_many(self, handlers: dict[str, tuple[HandlerFunc, bool]]) -> None:
        self._handlers.update(handlers)

    def get(self, name: str) -> tuple[HandlerFunc, bool] | None:
        return self._handlers.get(name)

    def has(self, name: str) -> bool:
        return name in self._handlers

    async def dispatch(self, name: str, bridge: CometBridge, arguments: dict[str, Any]) -> ToolResult:
        """
        Dispatch a tool call to its handler.

        Raises:
            KeyError: If tool not found
            ConnectionFatalError / BridgeUnreachableError: if the channel can't be made usable
        """
        handler_info = self.get(name)
        if handler_info is None:
            raise KeyError(f"Unknown tool: {name}")

        handler, requires_connection = handler_info
        if requires_connection:
            await bridge.connection.ensure_healthy()
        return await handler(bridge, arguments)

    @property
    def tool_names(self) -> list[str]:
        return list(self._handlers.keys())

    def __len__(self) -> int:
        return len(self._handlers)


def create_default_registry() -> ToolRegistry:
    from .handlers import ALL_HANDLERS

    registry = ToolRegistry()
    registry.register_many(ALL_HANDLERS)
    logger.debug("registered %d tools", len(registry))
    return registry
