"""
Uniform access to the controlled browser's HTTP control endpoint.

Two variants, chosen once at startup by `select_transport`:
- DirectTransport: the bridge and the browser share a network namespace
  (macOS, Linux, native Windows). Plain urllib calls with a short timeout.
- HostScriptTransport: a WSL guest talking to a browser bound to the Windows
  host's loopback. HTTP calls are performed by powershell.exe on the host,
  and the live websocket channel is only attempted after a raw socket probe
  shows the port is reachable from the guest (mirrored networking).

`request` never raises: failures come back as `HttpResponse(ok=False, ...)`.
`probe_reachable` is the one exception and raises BridgeUnreachableError.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from .config import CometConfig
from .errors import BridgeUnreachableError, LaunchError
from .http_client import HttpClientError, fetch_text

logger = logging.getLogger("mcp.comet.transport")


@dataclass(slots=True)
class HttpResponse:
    ok: bool
    status: int
    body: str

    def json(self) -> Any:
        return json.loads(self.body)


async def run_command(argv: list[str], *, timeout: float) -> tuple[int, str]:
    """Run a short-lived helper process, returning (returncode, stdout)."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as exc:
        return 127, str(exc)
    try:
        out, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        with contextlib.suppress(Exception):
            await proc.wait()
        return 124, f"{argv[0]} timed out after {timeout:.0f}s"
    return int(proc.returncode or 0), out.decode(errors="replace")


def _ps_quote(value: str) -> str:
    return "'" + str(value).replace("'", "''") + "'"


class Transport(ABC):
    name = "abstract"

    def __init__(self, config: CometConfig) -> None:
        self.config = config

    @abstractmethod
    async def request(self, path: str, method: str = "GET") -> HttpResponse: ...

    @abstractmethod
    async def spawn_process(self, argv: list[str]) -> None:
        """Start a detached process that outlives this call."""

    async def probe_reachable(self) -> None:
        """Raise BridgeUnreachableError if a live channel cannot be opened from here."""
        return None


class DirectTransport(Transport):
    name = "direct"

    async def request(self, path: str, method: str = "GET") -> HttpResponse:
        url = self.config.endpoint_url(path)
        try:
            status, body = await asyncio.to_thread(
                fetch_text, url, method=method, timeout=self.config.http_timeout
            )
        except HttpClientError as exc:
            return HttpResponse(False, 0, str(exc))
        return HttpResponse(200 <= status < 300, status, body)

    async def spawn_process(self, argv: list[str]) -> None:
        popen_kwargs: dict[str, object] = {
            "stdin": subprocess.DEVNULL,
            "stdout": subprocess.DEVNULL,
            "stderr": subprocess.DEVNULL,
        }
        if sys.platform == "win32":
            popen_kwargs["creationflags"] = getattr(subprocess, "DETACHED_PROCESS", 0) | getattr(
                subprocess, "CREATE_NEW_PROCESS_GROUP", 0
            )
        else:
            popen_kwargs["start_new_session"] = True
        try:
            subprocess.Popen(argv, **popen_kwargs)  # type: ignore[call-overload]  # noqa: S603
        except OSError as exc:
            raise LaunchError(f"Failed to spawn {argv[0]}: {exc}") from exc


class HostScriptTransport(Transport):
    name = "wsl-powershell"

    async def request(self, path: str, method: str = "GET") -> HttpResponse:
        url = self.config.endpoint_url(path)
        script = f"Invoke-WebRequest -Uri {_ps_quote(url)} -UseBasicParsing"
        if method.upper() != "GET":
            script += f" -Method {method.upper()}"
        script += " | Select-Object -ExpandProperty Content"
        code, out = await run_command(
            ["powershell.exe", "-NoProfile", "-Command", script], timeout=self.config.host_http_timeout
        )
        if code != 0:
            return HttpResponse(False, 0, out.strip())
        return HttpResponse(True, 200, out.strip())

    async def spawn_process(self, argv: list[str]) -> None:
        exe, *args = argv
        script = f"Set-Location C:\\; Start-Process -FilePath {_ps_quote(exe)}"
        if args:
            script += " -ArgumentList " + ",".join(_ps_quote(a) for a in args)
        code, out = await run_command(
            ["powershell.exe", "-NoProfile", "-Command", script], timeout=self.config.host_http_timeout
        )
        if code != 0:
            raise LaunchError(f"Start-Process failed ({code}): {out.strip()}")

    async def probe_reachable(self) -> None:
        port = self.config.port
        try:
            _reader, writer = await asyncio.wait_for(
                asyncio.open_connection("127.0.0.1", port), timeout=self.config.probe_timeout
            )
        except (OSError, asyncio.TimeoutError) as exc:
            logger.warning("reachability probe failed port=%d err=%s", port, exc)
            raise BridgeUnreachableError(port) from exc
        writer.close()
        with contextlib.suppress(Exception):
            await writer.wait_closed()


def select_transport(config: CometConfig) -> Transport:
    transport: Transport = HostScriptTransport(config) if config.is_cross_boundary else DirectTransport(config)
    logger.info("transport=%s platform=%s port=%d", transport.name, config.platform, config.port)
    return transport


__all__ = [
    "DirectTransport",
    "HostScriptTransport",
    "HttpResponse",
    "Transport",
    "run_command",
    "select_transport",
]
