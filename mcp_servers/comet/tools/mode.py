from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from .. import page_scripts
from ..errors import SmartToolError

if TYPE_CHECKING:
    from ..bridge import CometBridge

logger = logging.getLogger("mcp.comet.tools.mode")

MODES: dict[str, str] = {
    "search": "Basic web search",
    "research": "Deep research with comprehensive analysis",
    "labs": "Analytics, visualizations, and coding",
    "learn": "Educational content and explanations",
}
DEFAULT_MODE = "search"


def format_mode_report(current: str) -> str:
    lines = [f"Current mode: {current}", "", "Available modes:"]
    for name, description in MODES.items():
        marker = "→" if name == current else " "
        lines.append(f"{marker} {name}: {description}")
    return "\n".join(lines) + "\n"


async def current_mode(bridge: CometBridge) -> str:
    mode = await bridge.connection.evaluate(page_scripts.CURRENT_MODE)
    return mode if mode in MODES else DEFAULT_MODE


async def switch_mode(bridge: CometBridge, mode: str) -> dict[str, Any]:
    """Try the wide-layout button, then the narrow-layout dropdown."""
    if mode not in MODES:
        raise SmartToolError(
            tool="comet_mode",
            action="validate",
            reason=f"Invalid mode: {mode}. Use: {', '.join(MODES)}",
            suggestion="Call comet_mode without arguments to list modes",
        )
    connection = bridge.connection
    config = bridge.config
    current_url = await connection.safe_evaluate(page_scripts.CURRENT_URL)
    if not config.is_home_url(str(current_url or "")):
        await connection.navigate(config.home_url, True)

    clicked = await connection.evaluate(page_scripts.click_mode_control(mode.capitalize())) or {}
    if not clicked.get("success"):
        raise SmartToolError(
            tool="comet_mode",
            action="click",
            reason=f"Failed to switch mode: {clicked.get('error') or 'Mode selector not found'}",
            suggestion="Call comet_screenshot to inspect the page layout",
        )

    method = clicked.get("method", "button")
    if clicked.get("needsSelect"):
        await asyncio.sleep(config.menu_open_delay)
        selected = await connection.evaluate(page_scripts.select_mode_option(mode)) or {}
        if not selected.get("success"):
            raise SmartToolError(
                tool="comet_mode",
                action="select",
                reason=f"Failed: {selected.get('error') or 'Mode option not found in dropdown'}",
                suggestion="Call comet_screenshot to inspect the open menu",
            )
    logger.info("mode switched to %s via %s", mode, method)
    return {"message": f"Switched to {mode} mode", "mode": mode, "method": method}
