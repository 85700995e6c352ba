"""
Ask / poll / stop workflows over the TaskMonitor.

`ask` never blocks past its deadline: once `timeout` elapses it returns an
"in progress" snapshot and leaves the task running in Comet. Only `stop`
interrupts it, and only best-effort.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..errors import SmartToolError
from ..monitor import TaskSnapshot, TaskStatus, is_fresh
from .prompt import normalize_prompt, send_prompt
from .session import prepare_surface

if TYPE_CHECKING:
    from ..bridge import CometBridge

logger = logging.getLogger("mcp.comet.tools.task")

NO_RESPONSE_TEXT = "Task completed (no response text extracted)"


@dataclass
class AskOutcome:
    completed: bool
    text: str
    snapshot: TaskSnapshot
    steps: list[str] = field(default_factory=list)


def _bullets(steps: list[str]) -> str:
    return "\n".join(f"  • {s}" for s in steps)


def format_in_progress(snapshot: TaskSnapshot, steps: list[str]) -> str:
    out = f"Task in progress ({len(steps)} steps so far).\n"
    out += f"Status: {snapshot.status.value.upper()}\n"
    if snapshot.current_step:
        out += f"Current: {snapshot.current_step}\n"
    if snapshot.agent_browsing_url:
        out += f"Browsing: {snapshot.agent_browsing_url}\n"
    if steps:
        out += f"\nSteps:\n{_bullets(steps)}\n"
    out += "\nUse comet_poll to check progress or comet_stop to cancel."
    return out


def format_status(snapshot: TaskSnapshot) -> str:
    out = f"Status: {snapshot.status.value.upper()}\n"
    if snapshot.agent_browsing_url:
        out += f"Browsing: {snapshot.agent_browsing_url}\n"
    if snapshot.current_step:
        out += f"Current: {snapshot.current_step}\n"
    if snapshot.steps:
        out += f"\nSteps:\n{_bullets(snapshot.steps)}\n"
    if snapshot.status is TaskStatus.WORKING:
        out += "\n[Use comet_stop to interrupt, or comet_screenshot to see current page]"
    return out


async def ask(
    bridge: CometBridge,
    prompt: str,
    *,
    new_chat: bool = False,
    timeout_ms: float | None = None,
) -> AskOutcome:
    text = normalize_prompt(prompt)
    if not text:
        raise SmartToolError(
            tool="comet_ask",
            action="validate",
            reason="prompt cannot be empty",
            suggestion="Provide a question or task for Comet",
        )
    config = bridge.config
    monitor = bridge.monitor
    timeout_s = max(0.0, float(timeout_ms or config.default_ask_timeout_ms) / 1000.0)

    await prepare_surface(bridge, new_chat=new_chat)
    baseline = await monitor.capture_marker()
    await send_prompt(bridge, text)

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_s
    collected: list[str] = []
    saw_new = False
    while True:
        remaining = deadline - loop.time()
        if remaining <= 0:
            break
        await asyncio.sleep(min(config.poll_interval, remaining))

        if not saw_new:
            saw_new = is_fresh(baseline, await monitor.capture_marker())
        snapshot = await monitor.sample()
        for step in snapshot.steps:
            if step not in collected:
                collected.append(step)

        if snapshot.status is TaskStatus.COMPLETED and saw_new:
            await bridge.connection.minimize_window()
            return AskOutcome(True, snapshot.response or NO_RESPONSE_TEXT, snapshot, collected)

    final = await monitor.sample()
    logger.info("ask deadline reached status=%s steps=%d", final.status.value, len(collected))
    return AskOutcome(False, format_in_progress(final, collected), final, collected)


async def poll(bridge: CometBridge) -> tuple[str, TaskSnapshot]:
    snapshot = await bridge.monitor.sample()
    if snapshot.status is TaskStatus.COMPLETED and snapshot.response:
        await bridge.connection.minimize_window()
        return snapshot.response, snapshot
    return format_status(snapshot), snapshot


async def stop(bridge: CometBridge) -> str:
    stopped = await bridge.monitor.stop()
    return "Agent stopped" if stopped else "No active agent to stop"
