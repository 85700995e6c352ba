"""
Library page helpers: research folders and past-thread search.

All of this is DOM scraping against perplexity.ai/library; selectors drift, so
every "control not found" path is reported as a SmartToolError with a hint
instead of pretending success.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from .. import page_scripts
from ..errors import SmartToolError

if TYPE_CHECKING:
    from ..bridge import CometBridge

FOLDER_ACTIONS = ("list", "create", "save")
MAX_LIBRARY_ITEMS = 20
MAX_TITLE_CHARS = 150


def dedupe_folders(raw: Any) -> list[dict[str, str]]:
    seen: set[str] = set()
    out: list[dict[str, str]] = []
    for item in raw if isinstance(raw, list) else []:
        name = str((item or {}).get("name") or "").strip()
        if not name or name in seen:
            continue
        seen.add(name)
        out.append({"name": name, "href": str(item.get("href") or "")})
    return out


def collect_library_items(raw: Any, absolute_url) -> list[dict[str, str]]:
    """Keep titled entries, first occurrence per title, capped at MAX_LIBRARY_ITEMS."""
    seen: set[str] = set()
    out: list[dict[str, str]] = []
    for item in raw if isinstance(raw, list) else []:
        title = str((item or {}).get("title") or "").strip()
        if len(title) <= 2:
            continue
        title = title[:MAX_TITLE_CHARS]
        if title in seen:
            continue
        seen.add(title)
        href = str(item.get("href") or "")
        out.append({"title": title, "url": absolute_url(href) if href else ""})
        if len(out) >= MAX_LIBRARY_ITEMS:
            break
    return out


async def _open_library(bridge: CometBridge) -> None:
    await bridge.connection.navigate(bridge.config.library_url, True)
    await asyncio.sleep(bridge.config.home_settle_delay)


def _require_name(action: str, name: str | None) -> str:
    name = (name or "").strip()
    if not name:
        target = "to specify which folder to save to" if action == "save" else f"for {action} action"
        raise SmartToolError(
            tool="comet_folders",
            action=action,
            reason=f"'name' is required {target}",
            suggestion="Pass name='<folder name>'",
        )
    return name


async def list_folders(bridge: CometBridge) -> list[dict[str, str]]:
    await _open_library(bridge)
    raw = await bridge.connection.evaluate(page_scripts.LIST_FOLDERS)
    return dedupe_folders(raw)


async def create_folder(bridge: CometBridge, name: str | None) -> str:
    name = _require_name("create", name)
    connection = bridge.connection
    delay = bridge.config.ui_settle_delay

    await _open_library(bridge)
    clicked = await connection.evaluate(page_scripts.CLICK_CREATE_FOLDER) or {}
    if not clicked.get("clicked"):
        raise SmartToolError(
            tool="comet_folders",
            action="create",
            reason=f"Could not create folder: {clicked.get('error') or 'Create folder button not found'}",
            suggestion="Try creating it manually in Perplexity",
        )
    await asyncio.sleep(delay)
    if not await connection.evaluate(page_scripts.fill_folder_name(name)):
        raise SmartToolError(
            tool="comet_folders",
            action="create",
            reason="Could not create folder: name input not found",
            suggestion="Try creating it manually in Perplexity",
        )
    await asyncio.sleep(bridge.config.menu_open_delay)
    await connection.evaluate(page_scripts.CONFIRM_DIALOG)
    return f"Created folder: {name}"


async def save_to_folder(bridge: CometBridge, name: str | None) -> str:
    name = _require_name("save", name)
    connection = bridge.connection

    clicked = await connection.evaluate(page_scripts.CLICK_SAVE_THREAD) or {}
    if not clicked.get("clicked"):
        raise SmartToolError(
            tool="comet_folders",
            action="save",
            reason=f"Could not save: {clicked.get('error') or 'Save button not found'}",
            suggestion="Open a finished thread first (comet_ask), then save",
        )
    await asyncio.sleep(bridge.config.ui_settle_delay)
    picked = await connection.evaluate(page_scripts.pick_folder(name)) or {}
    if not picked.get("selected"):
        raise SmartToolError(
            tool="comet_folders",
            action="save",
            reason=f"Could not select folder: {picked.get('error') or 'Folder not found in picker'}",
            suggestion="Call comet_folders with action='list' to see folder names",
        )
    return f"Saved to folder: {name}"


async def search_library(bridge: CometBridge, query: str | None = None) -> list[dict[str, str]]:
    await _open_library(bridge)
    if query:
        searched = await bridge.connection.evaluate(page_scripts.search_library(query))
        if searched:
            await asyncio.sleep(bridge.config.library_search_delay)
    raw = await bridge.connection.evaluate(page_scripts.LIBRARY_ITEMS)
    return collect_library_items(raw, bridge.config.absolute_url)


def format_folders(folders: list[dict[str, str]]) -> str:
    if not folders:
        return "No folders found. Create one using comet_folders with action: 'create'"
    lines = [f"Found {len(folders)} folder(s):"]
    lines.extend(f"  • {f['name']}" for f in folders)
    return "\n".join(lines) + "\n"


def format_library(items: list[dict[str, str]], query: str | None = None) -> str:
    if not items:
        return f'No research found matching: "{query}"' if query else "No research found in library"
    out = f'Found {len(items)} result(s) for "{query}":\n\n' if query else f"Library contains {len(items)} item(s):\n\n"
    for item in items:
        out += f"• {item['title']}\n"
        if item["url"]:
            out += f"  {item['url']}\n"
        out += "\n"
    return out
