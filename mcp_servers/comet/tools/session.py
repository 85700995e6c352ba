from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from .. import page_scripts
from ..http_client import HttpClientError

if TYPE_CHECKING:
    from ..bridge import CometBridge

logger = logging.getLogger("mcp.comet.tools.session")


async def reset_tabs(bridge: CometBridge) -> int:
    """Close every page context except the first. Returns how many were asked to close."""
    pages = await bridge.registry.list_pages()
    extra = pages[1:]
    for tab in extra:
        try:
            await bridge.connection.close_context(tab.id)
        except HttpClientError as exc:
            logger.debug("close %s failed: %s", tab.id, exc)
    return len(extra)


async def connect_comet(bridge: CometBridge) -> dict[str, Any]:
    """Start Comet if needed, reduce it to one home tab, attach, and probe login."""
    config = bridge.config
    connection = bridge.connection

    launch = await bridge.launcher.ensure_running()
    cleaned = await reset_tabs(bridge)
    pages = await bridge.registry.list_pages()

    lines = [launch.message]
    if pages:
        await connection.connect(pages[0].id)
        await connection.navigate(config.home_url, True)
        await asyncio.sleep(config.home_settle_delay)
        lines.append(f"Connected to Perplexity (cleaned {cleaned} old tabs)")
    else:
        tab = await connection.new_context(config.home_url)
        await asyncio.sleep(config.new_tab_settle_delay)
        await connection.connect(tab.id)
        lines.append("Created new tab and navigated to Perplexity")

    login = await bridge.monitor.check_login()
    message = "\n".join(lines)
    if login.logged_in:
        message += "\nLogged in and ready."
    else:
        message += "\n\nWARNING: " + login.message
    return {
        "message": message,
        "launched": launch.started,
        "cleanedTabs": cleaned,
        "loggedIn": login.logged_in,
    }


async def prepare_surface(bridge: CometBridge, *, new_chat: bool) -> None:
    """Get the primary Perplexity tab attached and on the home host before a prompt."""
    config = bridge.config
    connection = bridge.connection

    if new_chat:
        await reset_tabs(bridge)
        pages = await bridge.registry.list_pages()
        if pages:
            await connection.connect(pages[0].id)
        await connection.navigate(config.home_url, True)
        await asyncio.sleep(config.new_chat_settle_delay)
        return

    roles = await bridge.registry.list_by_role()
    primary = roles.primary
    if primary is not None and (not connection.is_connected or connection.state.active_context_id != primary.id):
        await connection.connect(primary.id)

    current = await connection.safe_evaluate(page_scripts.CURRENT_URL)
    if not config.is_home_url(str(current or "")):
        await connection.navigate(config.home_url, True)
        await asyncio.sleep(config.home_settle_delay)
