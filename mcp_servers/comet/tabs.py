from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from .http_client import HttpClientError
from .transport import Transport

logger = logging.getLogger("mcp.comet.tabs")

_INTERNAL_PREFIXES = ("chrome://", "chrome-extension://", "devtools://", "chrome-search://", "edge://")


@dataclass(slots=True)
class TabInfo:
    id: str
    type: str
    url: str
    title: str = ""
    ws_url: str = ""

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> TabInfo:
        return cls(
            id=str(raw.get("id") or ""),
            type=str(raw.get("type") or ""),
            url=str(raw.get("url") or ""),
            title=str(raw.get("title") or ""),
            ws_url=str(raw.get("webSocketDebuggerUrl") or ""),
        )

    @property
    def is_page(self) -> bool:
        return self.type == "page"


@dataclass
class TabsByRole:
    """Partition of one context snapshot. Every tab appears in exactly one slot."""

    primary: TabInfo | None = None
    sidecar: TabInfo | None = None
    agent_browsing: TabInfo | None = None
    overlay: TabInfo | None = None
    others: list[TabInfo] = field(default_factory=list)
    excluded: list[TabInfo] = field(default_factory=list)

    def all(self) -> list[TabInfo]:
        slots = [self.primary, self.sidecar, self.agent_browsing, self.overlay]
        return [t for t in slots if t is not None] + self.others + self.excluded


def host_matches(url: str, home_host: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return bool(home_host) and (host == home_host or host.endswith("." + home_host))


def is_internal_url(url: str) -> bool:
    return not url or url == "about:blank" or url.startswith(_INTERNAL_PREFIXES)


def classify_tab(tab: TabInfo, home_host: str) -> str:
    """Role of a single tab: overlay, excluded, sidecar, primary or agent_browsing."""
    url = tab.url
    if url.startswith("chrome-extension://") and "overlay" in url:
        return "overlay"
    if not tab.is_page:
        return "excluded"
    if "sidecar" in url:
        return "sidecar"
    if host_matches(url, home_host):
        return "primary"
    if is_internal_url(url):
        return "excluded"
    # The agent may browse anywhere, so agent tabs are defined by exclusion.
    return "agent_browsing"


def classify_tabs(tabs: list[TabInfo], home_host: str) -> TabsByRole:
    """Deterministic partition: first tab per single-slot role wins, surplus goes to others."""
    out = TabsByRole()
    for tab in tabs:
        role = classify_tab(tab, home_host)
        if role == "excluded":
            out.excluded.append(tab)
        elif getattr(out, role) is None:
            setattr(out, role, tab)
        else:
            out.others.append(tab)
    return out


class TabRegistry:
    """Read-only view over the browser's contexts; nothing is cached between calls."""

    def __init__(self, transport: Transport, home_host: str) -> None:
        self.transport = transport
        self.home_host = home_host

    async def list_contexts(self) -> list[TabInfo]:
        resp = await self.transport.request("/json/list")
        if not resp.ok:
            raise HttpClientError(f"Failed to list contexts: {resp.body or resp.status}")
        try:
            raw = resp.json()
        except ValueError as exc:
            raise HttpClientError(f"Malformed /json/list response: {exc}") from exc
        if not isinstance(raw, list):
            raise HttpClientError("Malformed /json/list response: expected a list")
        return [TabInfo.from_json(item) for item in raw if isinstance(item, dict)]

    async def list_pages(self) -> list[TabInfo]:
        return [t for t in await self.list_contexts() if t.is_page]

    async def list_by_role(self) -> TabsByRole:
        tabs = await self.list_contexts()
        roles = classify_tabs(tabs, self.home_host)
        logger.debug(
            "tabs total=%d primary=%s agent=%s others=%d",
            len(tabs),
            roles.primary.id if roles.primary else None,
            roles.agent_browsing.url if roles.agent_browsing else None,
            len(roles.others),
        )
        return roles
