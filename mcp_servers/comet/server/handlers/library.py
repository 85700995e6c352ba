"""
Library handlers - mode, folders, library search.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...errors import SmartToolError
from ...tools import create_folder, current_mode, list_folders, save_to_folder, search_library, switch_mode
from ...tools.library import FOLDER_ACTIONS, format_folders, format_library
from ...tools.mode import format_mode_report
from ..types import ToolResult

if TYPE_CHECKING:
    from ...bridge import CometBridge


async def handle_comet_mode(bridge: CometBridge, args: dict[str, Any]) -> ToolResult:
    mode = args.get("mode")
    if not mode:
        current = await current_mode(bridge)
        return ToolResult.text(format_mode_report(current), data={"mode": current})
    result = await switch_mode(bridge, str(mode).strip().lower())
    return ToolResult.text(result["message"], data=result)


async def handle_comet_folders(bridge: CometBridge, args: dict[str, Any]) -> ToolResult:
    action = str(args.get("action") or "list").strip().lower()
    name = args.get("name")
    if action == "list":
        folders = await list_folders(bridge)
        return ToolResult.text(format_folders(folders), data={"folders": folders})
    if action == "create":
        return ToolResult.text(await create_folder(bridge, name))
    if action == "save":
        return ToolResult.text(await save_to_folder(bridge, name))
    raise SmartToolError(
        tool="comet_folders",
        action=action,
        reason=f"Unknown action: {action}. Use {', '.join(repr(a) for a in FOLDER_ACTIONS)}",
        suggestion="Pass action='list' to see folders",
    )


async def handle_comet_library(bridge: CometBridge, args: dict[str, Any]) -> ToolResult:
    query = str(args.get("query") or "").strip() or None
    items = await search_library(bridge, query)
    return ToolResult.text(format_library(items, query), data={"items": items})


LIBRARY_HANDLERS: dict[str, tuple] = {
    "comet_mode": (handle_comet_mode, True),
    "comet_folders": (handle_comet_folders, True),
    "comet_library": (handle_comet_library, True),
}
