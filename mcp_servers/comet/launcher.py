from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import CometConfig
from .errors import LaunchError
from .http_client import HttpClientError
from .transport import Transport, run_command

logger = logging.getLogger("mcp.comet.launcher")

MACOS_MCP_APP_NAME = "Comet-MCP.app"


@dataclass
class LaunchResult:
    command: list[str]
    started: bool
    message: str
    version: dict[str, Any] = field(default_factory=dict)


class BrowserLauncher:
    """Starts (or confirms) the isolated Comet instance on the configured port."""

    def __init__(self, config: CometConfig, transport: Transport) -> None:
        self.config = config
        self.transport = transport

    async def cdp_version(self) -> dict[str, Any]:
        resp = await self.transport.request("/json/version")
        if not resp.ok:
            raise HttpClientError(f"Failed to get version: {resp.status or resp.body}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise HttpClientError(f"Malformed /json/version response: {exc}") from exc
        return payload if isinstance(payload, dict) else {}

    async def cdp_ready(self) -> dict[str, Any] | None:
        """Version payload if the control endpoint answers, else None."""
        try:
            return await self.cdp_version()
        except HttpClientError:
            return None

    def _common_flags(self, data_dir: str) -> list[str]:
        return [
            f"--remote-debugging-port={self.config.port}",
            f"--user-data-dir={data_dir}",
            "--no-first-run",
            "--no-default-browser-check",
            # Run beside the user's personal Comet instead of handing off to it.
            "--disable-features=SingleInstanceCheck",
            "--class=comet-mcp",
            "--new-window",
        ]

    def build_launch_command(self, executable: str | None = None, data_dir: str | None = None) -> list[str]:
        executable = executable or self.config.executable_path
        data_dir = data_dir or self.config.data_dir
        flags = self._common_flags(data_dir)
        if self.config.platform == "darwin":
            app = Path(self.config.data_dir) / MACOS_MCP_APP_NAME
            if app.exists():
                return ["open", "-a", str(app), "--args", *flags]
            logger.warning("%s not found; launching %s directly (may share state with a personal Comet)", app, executable)
        return [executable, *flags]

    async def _host_local_appdata(self) -> str:
        code, out = await run_command(["cmd.exe", "/c", "echo %LOCALAPPDATA%"], timeout=5.0)
        value = out.strip().replace("\r", "").replace("\n", "")
        if code != 0 or not value or "%" in value:
            user = os.environ.get("USER") or "user"
            return f"C:\\Users\\{user}\\AppData\\Local"
        return value

    async def resolve_paths(self) -> tuple[str, str]:
        """(executable, data_dir) as seen by the process that will spawn the browser."""
        if self.config.platform != "wsl":
            return self.config.executable_path, self.config.data_dir
        local = await self._host_local_appdata()
        executable = self.config.executable_path or f"{local}\\Perplexity\\Comet\\Application\\Comet.exe"
        data_dir = os.environ.get("COMET_MCP_DATA_DIR") or f"{local}\\comet-mcp"
        return executable, data_dir

    async def stop_stale(self) -> None:
        """Kill whatever owns the port without answering CDP. Never touches other Comet instances."""
        port = self.config.port
        if self.config.platform in ("windows", "wsl"):
            script = (
                f"Get-NetTCPConnection -LocalPort {port} -State Listen -ErrorAction SilentlyContinue | "
                "ForEach-Object { Stop-Process -Id $_.OwningProcess -Force -ErrorAction SilentlyContinue }"
            )
            code, _ = await run_command(["powershell.exe", "-NoProfile", "-Command", script], timeout=5.0)
            killed = code == 0
        else:
            code, out = await run_command(["lsof", "-t", f"-iTCP:{port}", "-sTCP:LISTEN"], timeout=5.0)
            pids = [int(p) for p in out.split() if p.isdigit()] if code == 0 else []
            for pid in pids:
                with contextlib.suppress(OSError):
                    os.kill(pid, signal.SIGTERM)
            killed = bool(pids)
        if killed:
            logger.info("stopped stale process on port %d", port)
            await asyncio.sleep(self.config.kill_settle_delay)

    async def _wait_ready(self) -> dict[str, Any] | None:
        await asyncio.sleep(self.config.launch_initial_delay)
        for _ in range(self.config.launch_ready_attempts):
            version = await self.cdp_ready()
            if version is not None:
                return version
            await asyncio.sleep(self.config.launch_ready_interval)
        return None

    async def ensure_running(self) -> LaunchResult:
        port = self.config.port
        version = await self.cdp_ready()
        if version is not None:
            return LaunchResult([], False, f"MCP Comet already running on port {port}: {version.get('Browser', '?')}", version)

        await self.stop_stale()
        executable, data_dir = await self.resolve_paths()
        if self.config.platform != "wsl":
            with contextlib.suppress(OSError):
                Path(data_dir).mkdir(parents=True, exist_ok=True)

        cmd = self.build_launch_command(executable, data_dir)
        retries = max(1, self.config.launch_retries)
        last_error = ""
        for attempt in range(1, retries + 1):
            logger.info("launch attempt=%d/%d cmd=%s", attempt, retries, " ".join(cmd))
            try:
                await self.transport.spawn_process(cmd)
            except LaunchError as exc:
                last_error = str(exc)
            else:
                version = await self._wait_ready()
                if version is not None:
                    return LaunchResult(
                        cmd,
                        True,
                        f"MCP Comet started on port {port}: {version.get('Browser', '?')} (isolated profile at {data_dir})",
                        version,
                    )
                waited = self.config.launch_ready_attempts * self.config.launch_ready_interval
                last_error = f"Timeout waiting for MCP Comet after {waited:.0f}s"
            logger.warning("launch attempt=%d failed: %s", attempt, last_error)
            if attempt < retries:
                await self.stop_stale()
                await asyncio.sleep(self.config.launch_retry_delay)

        raise LaunchError(
            f"Cannot start MCP Comet after {retries} attempts.\n"
            f"Path: {executable}\n"
            f"Port: {port}\n"
            f"Data dir: {data_dir}\n"
            f"Last error: {last_error}"
        )
