"""
Session handlers - connect, screenshot.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...tools import capture_screenshot, connect_comet
from ..types import ToolResult

if TYPE_CHECKING:
    from ...bridge import CometBridge


async def handle_comet_connect(bridge: CometBridge, args: dict[str, Any]) -> ToolResult:
    result = await connect_comet(bridge)
    return ToolResult.text(result["message"], data=result)


async def handle_comet_screenshot(bridge: CometBridge, args: dict[str, Any]) -> ToolResult:
    data = await capture_screenshot(bridge)
    return ToolResult.image(data, "image/png")


SESSION_HANDLERS: dict[str, tuple] = {
    # connect runs its own launch/reconcile sequence
    "comet_connect": (handle_comet_connect, False),
    "comet_screenshot": (handle_comet_screenshot, True),
}
