"""
Task handlers - ask, poll, stop.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...tools import ask, poll, stop
from ..types import ToolResult

if TYPE_CHECKING:
    from ...bridge import CometBridge


def _timeout_ms(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


async def handle_comet_ask(bridge: CometBridge, args: dict[str, Any]) -> ToolResult:
    outcome = await ask(
        bridge,
        str(args.get("prompt") or ""),
        new_chat=bool(args.get("newChat", False)),
        timeout_ms=_timeout_ms(args.get("timeout")),
    )
    data = outcome.snapshot.to_dict()
    data["completed"] = outcome.completed
    data["steps"] = list(outcome.steps)
    return ToolResult.text(outcome.text, data=data)


async def handle_comet_poll(bridge: CometBridge, args: dict[str, Any]) -> ToolResult:
    text, snapshot = await poll(bridge)
    return ToolResult.text(text, data=snapshot.to_dict())


async def handle_comet_stop(bridge: CometBridge, args: dict[str, Any]) -> ToolResult:
    return ToolResult.text(await stop(bridge))


TASK_HANDLERS: dict[str, tuple] = {
    "comet_ask": (handle_comet_ask, True),
    "comet_poll": (handle_comet_poll, True),
    "comet_stop": (handle_comet_stop, True),
}
