from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import TYPE_CHECKING

from .. import page_scripts
from ..errors import SmartToolError

if TYPE_CHECKING:
    from ..bridge import CometBridge

logger = logging.getLogger("mcp.comet.tools.prompt")

_BULLET_RE = re.compile(r"^[-*•]\s*", re.MULTILINE)
_NEWLINES_RE = re.compile(r"\n+")
_SPACES_RE = re.compile(r"\s+")


def normalize_prompt(prompt: str) -> str:
    """Flatten markdown-ish input to one line; the Perplexity box mangles structured text."""
    text = _BULLET_RE.sub("", prompt or "")
    text = _NEWLINES_RE.sub(" ", text)
    return _SPACES_RE.sub(" ", text).strip()


async def find_input_selector(bridge: CometBridge) -> str | None:
    for selector in page_scripts.INPUT_SELECTORS:
        found = await bridge.connection.evaluate(f"document.querySelector({json.dumps(selector)}) !== null")
        if found is True:
            return selector
    return None


async def submit_prompt(bridge: CometBridge) -> str:
    """Press Enter, fall back to clicking a submit control. Returns the strategy used."""
    connection = bridge.connection
    settle = bridge.config.ui_settle_delay

    await asyncio.sleep(settle)
    if not await connection.evaluate(page_scripts.INPUT_HAS_TEXT):
        raise SmartToolError(
            tool="comet_ask",
            action="type",
            reason="Prompt text not found in input - typing may have failed",
            suggestion="Call comet_connect to reset the tab, then retry",
        )

    await connection.evaluate(page_scripts.FOCUS_INPUT)
    await connection.press_key("Enter")
    await asyncio.sleep(settle)
    if await connection.evaluate(page_scripts.SUBMISSION_STARTED):
        return "enter"

    clicked = await connection.evaluate(page_scripts.CLICK_SUBMIT)
    await asyncio.sleep(settle)
    if await connection.evaluate(page_scripts.SUBMISSION_CONFIRMED):
        return str(clicked or "click")

    logger.info("submission not confirmed; pressing Enter once more")
    await connection.press_key("Enter")
    return "enter-retry"


async def send_prompt(bridge: CometBridge, prompt: str) -> str:
    connection = bridge.connection
    if await find_input_selector(bridge) is None:
        raise SmartToolError(
            tool="comet_ask",
            action="find_input",
            reason="Could not find input element",
            suggestion="Navigate to Perplexity first (comet_connect)",
        )
    if not await connection.evaluate(page_scripts.FOCUS_AND_CLEAR_INPUT):
        raise SmartToolError(
            tool="comet_ask",
            action="focus",
            reason="Failed to focus input element",
            suggestion="Call comet_connect to reset the tab, then retry",
        )
    await connection.insert_text(prompt)
    strategy = await submit_prompt(bridge)
    logger.debug("prompt submitted via %s", strategy)
    preview = prompt[:50] + ("..." if len(prompt) > 50 else "")
    return f'Prompt sent: "{preview}"'
