"""Connection Manager: the single control channel to one Comet context.

Owns the only live CDP channel plus the addressing needed to get it back
(`last_context_id`). Everything that talks to the page goes through here.

Healing ladder:
- `is_healthy()`: 1+1 round-trip with a short timeout; failure clears `connected`.
- `with_auto_reconnect(op)`: on a connection-loss error, back off, `reconnect()`,
  retry the operation once. Bounded by `max_reconnect_attempts` per failure streak.
- `ensure_healthy()`: health check, then reconnect, then restart the browser and
  connect fresh, then ConnectionFatalError carrying both causes.

Cosmetic steps (window state, MCP badge, minimise) are advisory: their failures
are logged at DEBUG and never change the outcome of the surrounding operation.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar
from urllib.parse import quote

from . import page_scripts
from .cdp import CdpConnection
from .config import CometConfig
from .errors import (
    BridgeUnreachableError,
    ConnectionFatalError,
    LaunchError,
    NotConnectedError,
    PageScriptError,
)
from .http_client import HttpClientError
from .launcher import BrowserLauncher
from .tabs import TabInfo, TabRegistry
from .transport import Transport

logger = logging.getLogger("mcp.comet.connection")

T = TypeVar("T")

CONNECTION_ERROR_MARKERS = (
    "WebSocket",
    "CLOSED",
    "not open",
    "disconnected",
    "ECONNREFUSED",
    "ECONNRESET",
    "Protocol error",
    "Target closed",
    "Session closed",
)

_MCP_BADGE_SCRIPT = """
(() => {
  if (!document.title.includes('[MCP]')) {
    document.title = '[MCP] ' + document.title;
  }
  if (!document.getElementById('mcp-indicator') && document.body) {
    const el = document.createElement('div');
    el.id = 'mcp-indicator';
    el.style.cssText = 'position:fixed;top:4px;right:4px;background:#D97757;color:white;padding:2px 8px;' +
      'border-radius:4px;font-size:11px;font-weight:bold;z-index:999999;pointer-events:none;opacity:0.9;';
    el.textContent = 'MCP';
    document.body.appendChild(el);
  }
})()
"""

_KEY_CODES = {
    "Enter": 13,
    "Tab": 9,
    "Escape": 27,
    "Backspace": 8,
    "Delete": 46,
    "ArrowUp": 38,
    "ArrowDown": 40,
    "ArrowLeft": 37,
    "ArrowRight": 39,
    "End": 35,
    "Home": 36,
}


class Channel(Protocol):
    async def send(
        self, method: str, params: dict[str, Any] | None = None, *, timeout: float | None = None
    ) -> dict[str, Any]: ...

    def discard_events(self, event_name: str) -> None: ...

    async def wait_for_event(self, event_name: str, timeout: float = 10.0) -> dict[str, Any] | None: ...

    async def close(self) -> None: ...


ChannelFactory = Callable[[str], Awaitable[Channel]]


def is_connection_error(exc: BaseException) -> bool:
    """True when the error text names a lost transport/session."""
    message = str(exc)
    return any(marker in message for marker in CONNECTION_ERROR_MARKERS)


@dataclass
class ConnectionState:
    target_port: int
    channel: Channel | None = None
    active_context_id: str | None = None
    last_context_id: str | None = None
    current_url: str = ""
    connected: bool = False
    reconnect_attempts: int = 0
    is_reconnecting: bool = False


class ConnectionManager:
    def __init__(
        self,
        config: CometConfig,
        transport: Transport,
        registry: TabRegistry,
        launcher: BrowserLauncher,
        *,
        channel_factory: ChannelFactory | None = None,
    ) -> None:
        self.config = config
        self.transport = transport
        self.registry = registry
        self.launcher = launcher
        self.state = ConnectionState(target_port=config.port)
        self._channel_factory = channel_factory or self._open_cdp

    async def _open_cdp(self, ws_url: str) -> Channel:
        return await CdpConnection.open(ws_url, timeout=self.config.command_timeout)

    @property
    def is_connected(self) -> bool:
        return self.state.connected and self.state.channel is not None

    def _require_channel(self) -> Channel:
        channel = self.state.channel
        if channel is None:
            raise NotConnectedError()
        return channel

    async def _advisory(self, name: str, step: Awaitable[Any]) -> None:
        try:
            await step
        except Exception as exc:  # noqa: BLE001
            logger.debug("advisory step %s failed: %s", name, exc)

    # ----------------------------------------------------------------- lifecycle

    async def _resolve_target(self, context_id: str | None) -> TabInfo:
        tabs = await self.registry.list_contexts()
        if context_id:
            for tab in tabs:
                if tab.id == context_id:
                    return tab
            raise HttpClientError(f"Context not found: {context_id}")
        for tab in tabs:
            if tab.is_page:
                return tab
        raise HttpClientError("No page context available to attach to")

    async def connect(self, context_id: str | None = None) -> str:
        """Attach to a context (or the first page), tearing down any prior channel first."""
        if self.state.channel is not None:
            await self.disconnect()

        # Fails fast under WSL without mirrored networking; no channel is attempted.
        await self.transport.probe_reachable()

        target = await self._resolve_target(context_id)
        ws_url = target.ws_url or f"ws://127.0.0.1:{self.config.port}/devtools/page/{target.id}"
        channel = await self._channel_factory(ws_url)
        self.state.channel = channel
        try:
            for domain in ("Page", "Runtime", "DOM", "Network"):
                await channel.send(f"{domain}.enable")
        except Exception:
            await self.disconnect()
            raise

        await self._advisory("window-normal", self._set_window_state(target.id, "normal"))

        self.state.connected = True
        self.state.active_context_id = target.id
        self.state.last_context_id = target.id
        if not self.state.is_reconnecting:
            self.state.reconnect_attempts = 0

        href = await self.evaluate(page_scripts.CURRENT_URL)
        self.state.current_url = str(href or target.url)

        await self._advisory("mcp-badge", self.evaluate(_MCP_BADGE_SCRIPT))
        logger.info("connected context=%s url=%s", target.id, self.state.current_url)
        return f"Connected to tab: {self.state.current_url}"

    async def disconnect(self) -> None:
        channel = self.state.channel
        self.state.channel = None
        self.state.connected = False
        self.state.active_context_id = None
        if channel is not None:
            try:
                await channel.close()
            except Exception as exc:  # noqa: BLE001
                logger.debug("channel close failed: %s", exc)

    async def is_healthy(self) -> bool:
        channel = self.state.channel
        if channel is None or not self.state.connected:
            self.state.connected = False
            return False
        try:
            result = await asyncio.wait_for(
                channel.send("Runtime.evaluate", {"expression": "1+1", "returnByValue": True}),
                timeout=self.config.health_timeout,
            )
            healthy = (result.get("result") or {}).get("value") == 2
        except Exception as exc:  # noqa: BLE001
            logger.debug("health check failed: %s", exc)
            healthy = False
        if not healthy:
            self.state.connected = False
        return healthy

    async def reconnect(self) -> str:
        if self.state.channel is not None:
            await self.disconnect()
        self.state.connected = False

        try:
            await self.launcher.cdp_version()
        except HttpClientError:
            try:
                await self.launcher.ensure_running()
            except (LaunchError, HttpClientError) as exc:
                raise LaunchError(f"Cannot connect to Comet on port {self.config.port}: {exc}") from exc
            await asyncio.sleep(self.config.restart_settle_delay)

        last = self.state.last_context_id
        if last:
            try:
                tabs = await self.registry.list_contexts()
                if any(t.id == last for t in tabs):
                    return await self.connect(last)
            except BridgeUnreachableError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.debug("reattach to %s failed: %s", last, exc)

        tabs = await self.registry.list_contexts()
        pages = [t for t in tabs if t.is_page]
        target = next((t for t in pages if self.config.is_home_url(t.url)), None) or next(
            (t for t in pages if t.url != "about:blank"), None
        )
        if target is None:
            raise NotConnectedError("No suitable tab found for reconnection")
        return await self.connect(target.id)

    async def ensure_healthy(self) -> None:
        if await self.is_healthy():
            return
        try:
            await self.reconnect()
            return
        except BridgeUnreachableError:
            raise
        except Exception as exc:  # noqa: BLE001
            reconnect_error = exc
            logger.warning("reconnect failed, restarting Comet: %s", exc)
        try:
            await self.launcher.ensure_running()
            await self.connect()
        except BridgeUnreachableError:
            raise
        except Exception as restart_error:
            raise ConnectionFatalError(reconnect_error, restart_error) from restart_error

    async def _wait_for_reconnect(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.reconnect_wait
        while self.state.is_reconnecting and loop.time() < deadline:
            await asyncio.sleep(0.05)

    async def with_auto_reconnect(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self.state.is_reconnecting:
            await self._wait_for_reconnect()
        try:
            result = await operation()
        except Exception as exc:
            if not is_connection_error(exc) or self.state.reconnect_attempts >= self.config.max_reconnect_attempts:
                raise
            if self.state.is_reconnecting:
                # Another caller owns the reconnect; retry once on its result.
                await self._wait_for_reconnect()
                result = await operation()
            else:
                self.state.reconnect_attempts += 1
                attempt = self.state.reconnect_attempts
                delay = min(self.config.reconnect_base_delay * 2 ** (attempt - 1), self.config.reconnect_max_delay)
                logger.warning(
                    "connection lost (%s); reconnect attempt=%d/%d in %.1fs",
                    exc,
                    attempt,
                    self.config.max_reconnect_attempts,
                    delay,
                )
                self.state.is_reconnecting = True
                try:
                    await asyncio.sleep(delay)
                    await self.reconnect()
                finally:
                    self.state.is_reconnecting = False
                result = await operation()
        self.state.reconnect_attempts = 0
        return result

    # ----------------------------------------------------------------- page ops

    async def evaluate(self, expression: str, *, timeout: float | None = None) -> Any:
        """Run `expression` in the page and return its JSON value (undefined/null -> None)."""
        channel = self._require_channel()
        result = await channel.send(
            "Runtime.evaluate",
            {"expression": expression, "returnByValue": True, "awaitPromise": True},
            timeout=timeout,
        )
        details = result.get("exceptionDetails")
        if details:
            exc = details.get("exception") if isinstance(details, dict) else None
            text = (exc or {}).get("description") or (details or {}).get("text") or "script error"
            raise PageScriptError(str(text))
        value = result.get("result")
        if not isinstance(value, dict):
            return None
        if value.get("type") == "undefined":
            return None
        if value.get("type") == "object" and value.get("subtype") == "null":
            return None
        return value.get("value")

    async def safe_evaluate(self, expression: str) -> Any:
        await self.ensure_healthy()
        return await self.with_auto_reconnect(lambda: self.evaluate(expression))

    async def navigate(self, url: str, wait_for_load: bool = True) -> dict[str, Any]:
        channel = self._require_channel()
        channel.discard_events("Page.loadEventFired")
        result = await channel.send("Page.navigate", {"url": url})
        if result.get("errorText"):
            raise HttpClientError(f"Navigation failed: {result['errorText']}")
        if wait_for_load:
            fired = await channel.wait_for_event("Page.loadEventFired", timeout=self.config.navigation_timeout)
            if fired is None:
                logger.warning("load event not seen within %.0fs for %s", self.config.navigation_timeout, url)
        self.state.current_url = url
        return result

    async def screenshot(self, fmt: str = "png") -> str:
        """Base64 image data of the current viewport."""
        channel = self._require_channel()
        result = await channel.send("Page.captureScreenshot", {"format": fmt})
        return str(result.get("data") or "")

    async def press_key(self, key: str) -> None:
        channel = self._require_channel()
        key_code = _KEY_CODES.get(key, ord(key[0].upper()) if len(key) == 1 else 0)
        for event_type in ("keyDown", "keyUp"):
            params: dict[str, Any] = {"type": event_type, "key": key, "code": key, "windowsVirtualKeyCode": key_code}
            if key == "Enter" and event_type == "keyDown":
                params["text"] = "\r"
            await channel.send("Input.dispatchKeyEvent", params)

    async def insert_text(self, text: str) -> None:
        channel = self._require_channel()
        await channel.send("Input.insertText", {"text": text})

    async def new_context(self, url: str | None = None) -> TabInfo:
        path = "/json/new"
        if url:
            path += "?" + quote(url, safe=":/?&=%#")
        resp = await self.transport.request(path, "PUT")
        if not resp.ok:
            raise HttpClientError(f"Failed to create new tab: {resp.status or resp.body}")
        try:
            raw = resp.json()
        except ValueError as exc:
            raise HttpClientError(f"Malformed /json/new response: {exc}") from exc
        return TabInfo.from_json(raw if isinstance(raw, dict) else {})

    async def close_context(self, context_id: str) -> bool:
        channel = self.state.channel
        if channel is not None:
            try:
                result = await channel.send("Target.closeTarget", {"targetId": context_id})
                return bool(result.get("success", True))
            except Exception as exc:  # noqa: BLE001
                logger.debug("Target.closeTarget failed, falling back to HTTP: %s", exc)
        resp = await self.transport.request(f"/json/close/{context_id}")
        return resp.ok

    async def _set_window_state(self, context_id: str | None, window_state: str) -> None:
        channel = self._require_channel()
        params = {"targetId": context_id} if context_id else {}
        window = await channel.send("Browser.getWindowForTarget", params)
        await channel.send(
            "Browser.setWindowBounds",
            {"windowId": window.get("windowId"), "bounds": {"windowState": window_state}},
        )

    async def minimize_window(self) -> None:
        """Advisory: hide the controlled window once a result has been delivered."""
        if not self.config.minimize_on_complete or self.state.channel is None:
            return
        await self._advisory("minimize", self._set_window_state(self.state.active_context_id, "minimized"))
