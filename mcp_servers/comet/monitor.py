"""
Task Progress Monitor.

Perplexity gives no completion event, so task state is inferred by sampling the
page. The module is split in two:
- pure classifiers (`classify_status`, `extract_steps`, `build_response`,
  `is_fresh`, `classify_login`) over plain signal snapshots;
- `TaskMonitor`, which gathers those snapshots through the ConnectionManager.

Busy signals win over completion text: an enabled stop control means the agent
may still be revising an answer that already looks finished.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from . import page_scripts
from .config import CometConfig
from .connection import ConnectionManager
from .errors import PageScriptError
from .tabs import TabRegistry

logger = logging.getLogger("mcp.comet.monitor")


class TaskStatus(str, Enum):
    IDLE = "idle"
    WORKING = "working"
    COMPLETED = "completed"


WORKING_PHRASES = (
    "Working",
    "Searching",
    "Reviewing sources",
    "Preparing to assist",
    "Clicking",
    "Typing:",
    "Navigating to",
    "Reading",
    "Analyzing",
)

STEP_PATTERNS = tuple(
    re.compile(p)
    for p in (
        r"Preparing to assist[^\n]*",
        r"Clicking[^\n]*",
        r"Typing:[^\n]*",
        r"Navigating[^\n]*",
        r"Reading[^\n]*",
        r"Searching[^\n]*",
        r"Found[^\n]*",
    )
)

_STEPS_COMPLETED_RE = re.compile(r"\d+ steps? completed", re.IGNORECASE)
_REVIEWED_SOURCES_RE = re.compile(r"Reviewed \d+ sources?", re.IGNORECASE)

UI_CHROME_PREFIXES = (
    "Library",
    "Discover",
    "Spaces",
    "Finance",
    "Account",
    "Upgrade",
    "Home",
    "Search",
    "Ask a follow-up",
    "Sign in",
    "Create account",
    "Settings",
    "Profile",
)

_BOILERPLATE_RE = re.compile(r"View All|Show more|Ask a follow-up|\d+ sources?", re.IGNORECASE)
_INLINE_WS_RE = re.compile(r"[ \t]+")
_EXTRA_BREAKS_RE = re.compile(r"\n{3,}")

RESPONSE_SEPARATOR = "\n\n---\n\n"
DEDUP_PREFIX_CHARS = 100
MIN_BLOCK_CHARS = 10
ECHOED_QUESTION_MAX_CHARS = 150

LOGGED_OUT_PHRASES = ("Sign in", "Log in", "Create account", "Sign up", "Get started")
LOGGED_IN_PHRASES = ("Library", "Spaces", "Ask anything", "What do you want to know", "Home")

NOT_LOGGED_IN_MESSAGE = (
    "Not logged into Perplexity.\n\n"
    "Please log in to your Perplexity account in the MCP Comet browser window.\n"
    "The browser should be visible on your screen.\n\n"
    "After logging in, call comet_connect again."
)


@dataclass(slots=True)
class PageSignals:
    text: str = ""
    has_stop_control: bool = False
    has_spinner: bool = False
    has_prose: bool = False

    @classmethod
    def from_page(cls, raw: Any) -> PageSignals:
        if not isinstance(raw, dict):
            return cls()
        return cls(
            text=str(raw.get("text") or ""),
            has_stop_control=bool(raw.get("hasStopControl")),
            has_spinner=bool(raw.get("hasSpinner")),
            has_prose=bool(raw.get("hasProse")),
        )


@dataclass
class TaskSnapshot:
    status: TaskStatus = TaskStatus.IDLE
    steps: list[str] = field(default_factory=list)
    current_step: str = ""
    response: str = ""
    has_active_stop_control: bool = False
    agent_browsing_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "steps": list(self.steps),
            "currentStep": self.current_step,
            "response": self.response,
            "hasStopButton": self.has_active_stop_control,
            "agentBrowsingUrl": self.agent_browsing_url,
        }


@dataclass(frozen=True, slots=True)
class ResponseMarker:
    count: int = 0
    last_text: str = ""

    @classmethod
    def from_page(cls, raw: Any) -> ResponseMarker:
        if not isinstance(raw, dict):
            return cls()
        try:
            count = int(raw.get("count") or 0)
        except (TypeError, ValueError):
            count = 0
        return cls(count=count, last_text=str(raw.get("lastText") or ""))


@dataclass(slots=True)
class LoginSignals:
    text: str = ""
    has_profile: bool = False
    has_login_button: bool = False


@dataclass(slots=True)
class LoginStatus:
    logged_in: bool
    message: str


# ---------------------------------------------------------------- pure classifiers


def classify_status(signals: PageSignals) -> TaskStatus:
    text = signals.text
    stop = signals.has_stop_control
    if stop or signals.has_spinner:
        return TaskStatus.WORKING

    working_text = any(p in text for p in WORKING_PHRASES)
    finished = "Finished" in text and not stop
    if _STEPS_COMPLETED_RE.search(text) or finished:
        return TaskStatus.COMPLETED
    if _REVIEWED_SOURCES_RE.search(text) and not working_text:
        return TaskStatus.COMPLETED
    if working_text:
        return TaskStatus.WORKING
    if "Ask a follow-up" in text and signals.has_prose and not stop:
        return TaskStatus.COMPLETED
    return TaskStatus.IDLE


def extract_steps(text: str, *, limit: int = 5, max_len: int = 100) -> tuple[list[str], str]:
    """Return (last `limit` unique steps, most recent raw step)."""
    raw: list[str] = []
    for pattern in STEP_PATTERNS:
        raw.extend(m.group(0).strip()[:max_len] for m in pattern.finditer(text))
    unique = list(dict.fromkeys(raw))
    window = unique[-limit:] if limit > 0 else []
    return window, (raw[-1] if raw else "")


def select_response_blocks(blocks: list[dict[str, Any]]) -> list[str]:
    """Keep answer prose: drop chrome regions, UI labels, echoed prompts, fragments, repeats."""
    kept: list[str] = []
    seen: set[str] = set()
    for block in blocks:
        if not isinstance(block, dict) or block.get("inChrome"):
            continue
        text = str(block.get("text") or "").strip()
        if text.startswith(UI_CHROME_PREFIXES):
            continue
        if text.endswith("?") and len(text) < ECHOED_QUESTION_MAX_CHARS:
            continue
        if len(text) < MIN_BLOCK_CHARS:
            continue
        key = text[:DEDUP_PREFIX_CHARS]
        if key in seen:
            continue
        seen.add(key)
        kept.append(text)
    return kept


def clean_response(text: str) -> str:
    text = _BOILERPLATE_RE.sub("", text).strip()
    text = _INLINE_WS_RE.sub(" ", text)
    return _EXTRA_BREAKS_RE.sub("\n\n", text)


def build_response(blocks: list[dict[str, Any]], *, max_chars: int = 50_000) -> str:
    kept = select_response_blocks(blocks)
    if not kept:
        return ""
    return clean_response(RESPONSE_SEPARATOR.join(kept))[:max_chars]


def is_fresh(baseline: ResponseMarker, current: ResponseMarker) -> bool:
    """A new answer exists if more blocks appeared or the last block's text changed."""
    if current.count > baseline.count:
        return True
    return bool(current.last_text) and current.last_text != baseline.last_text


def classify_login(signals: LoginSignals) -> bool:
    text = signals.text
    logged_out = sum(1 for p in LOGGED_OUT_PHRASES if p in text)
    logged_in = sum(1 for p in LOGGED_IN_PHRASES if p in text)
    if signals.has_profile or (logged_in >= 2 and logged_out == 0):
        return True
    if signals.has_login_button and logged_out > logged_in:
        return False
    # A false "logged out" blocks every tool; prefer the optimistic answer.
    return logged_in > 0


# ---------------------------------------------------------------- sampler


class TaskMonitor:
    def __init__(self, config: CometConfig, connection: ConnectionManager, registry: TabRegistry) -> None:
        self.config = config
        self.connection = connection
        self.registry = registry

    async def _agent_browsing_url(self) -> str:
        try:
            roles = await self.registry.list_by_role()
        except Exception as exc:  # noqa: BLE001
            logger.debug("tab listing failed during sample: %s", exc)
            return ""
        return roles.agent_browsing.url if roles.agent_browsing else ""

    async def _probe(self, script: str, default: Any = None) -> Any:
        """Evaluate a page probe; a script that throws counts as "nothing observed"."""
        try:
            return await self.connection.safe_evaluate(script)
        except PageScriptError as exc:
            logger.debug("page probe failed: %s", exc)
            return default

    async def sample(self) -> TaskSnapshot:
        agent_url = await self._agent_browsing_url()

        await self._probe(page_scripts.SCROLL_TO_BOTTOM)
        await asyncio.sleep(self.config.sample_settle_delay)

        signals = PageSignals.from_page(await self._probe(page_scripts.PAGE_SIGNALS))
        status = classify_status(signals)
        steps, current = extract_steps(signals.text, limit=self.config.max_steps, max_len=self.config.max_step_chars)

        response = ""
        if status is TaskStatus.COMPLETED:
            blocks = await self._probe(page_scripts.RESPONSE_BLOCKS, [])
            response = build_response(
                blocks if isinstance(blocks, list) else [], max_chars=self.config.max_response_chars
            )

        snapshot = TaskSnapshot(
            status=status,
            steps=steps,
            current_step=current,
            response=response,
            has_active_stop_control=signals.has_stop_control,
            agent_browsing_url=agent_url,
        )
        logger.debug(
            "sample status=%s steps=%d response_chars=%d agent=%s",
            status.value,
            len(steps),
            len(response),
            agent_url or "-",
        )
        return snapshot

    async def capture_marker(self) -> ResponseMarker:
        return ResponseMarker.from_page(await self._probe(page_scripts.RESPONSE_MARKER))

    async def stop(self) -> bool:
        """Click a cancel control if one exists. Reports whether one was found, not whether the task stopped."""
        return bool(await self._probe(page_scripts.STOP_AGENT, False))

    async def check_login(self) -> LoginStatus:
        try:
            raw = await self.connection.safe_evaluate(page_scripts.LOGIN_SIGNALS)
        except Exception as exc:  # noqa: BLE001
            return LoginStatus(False, f"Could not check login status: {exc}")
        raw = raw if isinstance(raw, dict) else {}
        signals = LoginSignals(
            text=str(raw.get("text") or ""),
            has_profile=bool(raw.get("hasProfile")),
            has_login_button=bool(raw.get("hasLoginButton")),
        )
        if classify_login(signals):
            return LoginStatus(True, "Logged into Perplexity. Ready to use.")
        return LoginStatus(False, NOT_LOGGED_IN_MESSAGE)
