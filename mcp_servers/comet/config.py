from __future__ import annotations

import logging
import os
import platform
import sys
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urljoin, urlparse

logger = logging.getLogger("mcp.comet.config")

# A user's personal Comet usually listens on the Chromium default; never share it.
USER_DEFAULT_PORT = 9222
MCP_PORT = 9223

DEFAULT_HOME_URL = "https://www.perplexity.ai/"

MACOS_COMET_PATH = "/Applications/Comet.app/Contents/MacOS/Comet"


def detect_platform() -> str:
    """Return one of: darwin, windows, wsl, linux."""
    if sys.platform == "darwin":
        return "darwin"
    if sys.platform == "win32":
        return "windows"
    if sys.platform.startswith("linux"):
        release = platform.uname().release.lower()
        if "microsoft" in release or "wsl" in release:
            return "wsl"
    return "linux"


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def windows_binary_candidates() -> list[str]:
    local = os.environ.get("LOCALAPPDATA", "")
    roaming = os.environ.get("APPDATA", "")
    candidates = [
        f"{local}\\Perplexity\\Comet\\Application\\comet.exe" if local else "",
        f"{roaming}\\Perplexity\\Comet\\Application\\comet.exe" if roaming else "",
        "C:\\Program Files\\Perplexity\\Comet\\Application\\comet.exe",
        "C:\\Program Files (x86)\\Perplexity\\Comet\\Application\\comet.exe",
    ]
    return [c for c in candidates if c]


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name) or default)
    except ValueError:
        return default


@dataclass
class CometConfig:
    executable_path: str
    data_dir: str
    platform: str = "linux"
    port: int = MCP_PORT
    home_url: str = DEFAULT_HOME_URL

    # Control endpoint / channel
    http_timeout: float = 2.0
    host_http_timeout: float = 10.0
    probe_timeout: float = 2.0
    health_timeout: float = 3.0
    command_timeout: float = 30.0
    navigation_timeout: float = 30.0

    # Reconnect policy
    max_reconnect_attempts: int = 5
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 5.0
    reconnect_wait: float = 1.0
    restart_settle_delay: float = 2.0

    # Launcher
    launch_retries: int = 3
    launch_ready_attempts: int = 60
    launch_ready_interval: float = 0.5
    launch_initial_delay: float = 1.5
    launch_retry_delay: float = 2.0
    kill_settle_delay: float = 1.0

    # Task monitoring
    poll_interval: float = 2.0
    sample_settle_delay: float = 0.3

    # UI pacing
    ui_settle_delay: float = 0.5
    menu_open_delay: float = 0.3
    home_settle_delay: float = 2.0
    new_chat_settle_delay: float = 1.5
    new_tab_settle_delay: float = 2.5
    library_search_delay: float = 1.5

    # Ask / extraction
    default_ask_timeout_ms: int = 15_000
    max_steps: int = 5
    max_step_chars: int = 100
    max_response_chars: int = 50_000

    minimize_on_complete: bool = True
    screenshot_max_width: int = 1600

    @property
    def home_host(self) -> str:
        host = (urlparse(self.home_url).hostname or "").lower()
        return host[4:] if host.startswith("www.") else host

    @property
    def is_cross_boundary(self) -> bool:
        return self.platform == "wsl"

    @staticmethod
    def normalize_port(raw: str | int | None) -> int:
        try:
            port = int(raw) if raw not in (None, "") else MCP_PORT
        except (TypeError, ValueError):
            port = MCP_PORT
        if port == USER_DEFAULT_PORT:
            logger.warning("port %d is reserved for the user's own browser; using %d", port, MCP_PORT)
            return MCP_PORT
        return port

    @classmethod
    def detect_binary(cls, plat: str) -> str:
        env_path = os.environ.get("COMET_PATH")
        if env_path:
            return env_path if plat in ("windows", "wsl") else expand_path(env_path)
        if plat == "darwin":
            return MACOS_COMET_PATH
        if plat == "windows":
            candidates = windows_binary_candidates()
            for candidate in candidates:
                if Path(candidate).exists():
                    return candidate
            return candidates[0]
        if plat == "wsl":
            # Resolved on the Windows host at launch time.
            return ""
        return "comet"

    @classmethod
    def default_data_dir(cls, plat: str) -> str:
        if plat == "windows":
            local = os.environ.get("LOCALAPPDATA") or expand_path("~/AppData/Local")
            return f"{local}\\comet-mcp"
        return expand_path("~/.comet-mcp")

    @classmethod
    def from_env(cls) -> CometConfig:
        plat = detect_platform()
        data_dir = os.environ.get("COMET_MCP_DATA_DIR") or cls.default_data_dir(plat)
        if plat != "windows":
            data_dir = expand_path(data_dir)
        try:
            max_width = int(os.environ.get("COMET_MCP_SCREENSHOT_MAX_WIDTH", "1600"))
        except ValueError:
            max_width = 1600
        return cls(
            executable_path=cls.detect_binary(plat),
            data_dir=data_dir,
            platform=plat,
            port=cls.normalize_port(os.environ.get("COMET_MCP_PORT")),
            home_url=os.environ.get("COMET_HOME_URL") or DEFAULT_HOME_URL,
            poll_interval=max(0.1, _env_float("COMET_MCP_POLL_INTERVAL", 2.0)),
            minimize_on_complete=os.environ.get("COMET_MCP_MINIMIZE", "1") != "0",
            screenshot_max_width=max(0, max_width),
            launch_initial_delay=2.0 if plat == "wsl" else 1.5,
        )

    @property
    def library_url(self) -> str:
        return urljoin(self.home_url, "/library")

    def absolute_url(self, href: str) -> str:
        return urljoin(self.home_url, href) if href.startswith("/") else href

    def endpoint_url(self, path: str) -> str:
        return f"http://127.0.0.1:{self.port}{path}"

    def is_home_url(self, url: str | None) -> bool:
        host = (urlparse(url or "").hostname or "").lower()
        home = self.home_host
        return bool(home) and (host == home or host.endswith("." + home))
