"""Async CDP channel over a single page websocket.

One reader task owns the socket: command responses resolve the pending future
with the matching id, events are buffered (bounded) for `wait_for_event`.
When the socket dies, every pending command fails with an HttpClientError whose
message names the websocket so callers can classify it as a lost connection.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections import deque
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .http_client import HttpClientError

logger = logging.getLogger("mcp.comet.cdp")


class CdpConnection:
    """Low-level CDP WebSocket connection."""

    def __init__(self, ws: Any, ws_url: str, *, timeout: float = 30.0) -> None:
        self.ws = ws
        self.ws_url = ws_url
        self.timeout = timeout
        self._next_id = 1
        self._pending: dict[int, asyncio.Future[dict[str, Any]]] = {}
        self._events: deque[dict[str, Any]] = deque(maxlen=2000)
        self._event_waiters: list[tuple[str, asyncio.Future[dict[str, Any]]]] = []
        self._closed_reason: str | None = None
        self._reader = asyncio.get_running_loop().create_task(self._read_loop())

    @classmethod
    async def open(cls, ws_url: str, *, timeout: float = 30.0, open_timeout: float = 5.0) -> CdpConnection:
        try:
            ws = await websockets.connect(ws_url, ping_interval=None, open_timeout=open_timeout, max_size=None)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            raise HttpClientError(f"WebSocket connect failed ({ws_url}): {exc}") from exc
        logger.debug("cdp open url=%s", ws_url)
        return cls(ws, ws_url, timeout=timeout)

    @property
    def closed(self) -> bool:
        return self._closed_reason is not None

    async def _read_loop(self) -> None:
        reason = "WebSocket connection closed"
        try:
            async for raw in self.ws:
                try:
                    data = json.loads(raw)
                except (TypeError, ValueError):
                    continue
                if not isinstance(data, dict):
                    continue
                msg_id = data.get("id")
                if isinstance(msg_id, int):
                    fut = self._pending.pop(msg_id, None)
                    if fut is not None and not fut.done():
                        fut.set_result(data)
                    continue
                if isinstance(data.get("method"), str):
                    self._push_event(data)
        except ConnectionClosed as exc:
            reason = f"WebSocket connection closed: {exc}"
        except Exception as exc:  # noqa: BLE001
            reason = f"WebSocket disconnected: {exc}"
        finally:
            self._fail_all(reason)

    def _push_event(self, event: dict[str, Any]) -> None:
        name = event.get("method")
        params = event.get("params") if isinstance(event.get("params"), dict) else {}
        for i, (wanted, fut) in enumerate(self._event_waiters):
            if wanted == name and not fut.done():
                fut.set_result(params)
                del self._event_waiters[i]
                return
        self._events.append(event)

    def _fail_all(self, reason: str) -> None:
        if self._closed_reason is None:
            self._closed_reason = reason
            logger.debug("cdp closed url=%s reason=%s", self.ws_url, reason)
        for fut in self._pending.values():
            if not fut.done():
                fut.set_exception(HttpClientError(reason))
        self._pending.clear()
        for _name, fut in self._event_waiters:
            if not fut.done():
                fut.set_exception(HttpClientError(reason))
        self._event_waiters.clear()

    async def send(
        self, method: str, params: dict[str, Any] | None = None, *, timeout: float | None = None
    ) -> dict[str, Any]:
        """Send a CDP command and wait for its response."""
        if self.closed:
            raise HttpClientError(f"{self._closed_reason} (WebSocket is not open)")

        msg_id = self._next_id
        self._next_id += 1
        msg: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            msg["params"] = params

        fut: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[msg_id] = fut
        try:
            await self.ws.send(json.dumps(msg))
        except Exception as exc:  # noqa: BLE001
            self._pending.pop(msg_id, None)
            raise HttpClientError(f"WebSocket send failed: {exc}") from exc

        try:
            data = await asyncio.wait_for(fut, timeout=timeout if timeout is not None else self.timeout)
        except asyncio.TimeoutError as exc:
            self._pending.pop(msg_id, None)
            raise HttpClientError(f"CDP response timed out ({method})") from exc

        if "error" in data:
            err = data["error"]
            message = err.get("message") if isinstance(err, dict) else str(err)
            raise HttpClientError(f"CDP error ({method}): {message}")
        result = data.get("result")
        return result if isinstance(result, dict) else {}

    def pop_event(self, event_name: str) -> dict[str, Any] | None:
        for ev in self._events:
            if ev.get("method") == event_name:
                self._events.remove(ev)
                params = ev.get("params")
                return params if isinstance(params, dict) else {}
        return None

    def discard_events(self, event_name: str) -> None:
        """Forget buffered occurrences so the next wait only sees new ones."""
        for ev in [e for e in self._events if e.get("method") == event_name]:
            self._events.remove(ev)

    async def wait_for_event(self, event_name: str, timeout: float = 10.0) -> dict[str, Any] | None:
        """Wait for a specific CDP event; None on timeout."""
        queued = self.pop_event(event_name)
        if queued is not None:
            return queued
        if self.closed:
            raise HttpClientError(self._closed_reason)
        fut: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        waiter = (event_name, fut)
        self._event_waiters.append(waiter)
        try:
            return await asyncio.wait_for(fut, timeout=timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            with contextlib.suppress(ValueError):
                self._event_waiters.remove(waiter)

    async def close(self) -> None:
        """Close the WebSocket connection."""
        with contextlib.suppress(Exception):
            await asyncio.wait_for(self.ws.close(), timeout=2.0)
        if not self._reader.done():
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await self._reader
        self._fail_all("WebSocket connection closed by client")
