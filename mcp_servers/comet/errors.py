"""Error taxonomy for the Comet bridge.

- HttpClientError (http_client.py): control endpoint / channel failures; transient
  ones are retried by ConnectionManager.with_auto_reconnect.
- BridgeUnreachableError: the guest cannot reach the host-bound browser at all.
- NotConnectedError: an operation needs a channel and none is open.
- ConnectionFatalError: reconnect and restart both failed.
- LaunchError: the browser could not be started.
- PageScriptError: an evaluated script threw inside the page.
- SmartToolError: handler-level validation errors with a suggestion.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .http_client import HttpClientError

WSL_MIRRORED_NETWORKING_HINT = (
    "To fix this, enable WSL mirrored networking:\n"
    "1. Create/edit %USERPROFILE%\\.wslconfig with:\n"
    "   [wsl2]\n"
    "   networkingMode=mirrored\n"
    "2. Run: wsl --shutdown\n"
    "3. Restart WSL and try again\n\n"
    "Alternatively, run the assistant from Windows PowerShell instead of WSL."
)


class BridgeUnreachableError(HttpClientError):
    """Raised when a WSL guest cannot reach the Windows host's loopback port."""

    def __init__(self, port: int) -> None:
        self.port = port
        super().__init__(f"WSL cannot connect to Windows localhost:{port}.\n\n{WSL_MIRRORED_NETWORKING_HINT}")


class NotConnectedError(Exception):
    def __init__(self, message: str = "Not connected to Comet. Call connect() first.") -> None:
        super().__init__(message)


class ConnectionFatalError(Exception):
    def __init__(self, reconnect_error: BaseException, restart_error: BaseException) -> None:
        self.reconnect_error = reconnect_error
        self.restart_error = restart_error
        super().__init__(
            "Cannot establish healthy connection to MCP Comet.\n"
            "Reconnect and restart both failed.\n"
            f"Reconnect error: {reconnect_error}\n"
            f"Restart error: {restart_error}"
        )


class LaunchError(Exception):
    pass


class PageScriptError(Exception):
    """Script evaluated in the page threw; the channel itself is fine."""


@dataclass
class SmartToolError(Exception):
    """Structured error with context for AI agents."""

    tool: str
    action: str
    reason: str
    suggestion: str
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"[{self.tool}] {self.action} failed: {self.reason}. Suggestion: {self.suggestion}"


__all__ = [
    "BridgeUnreachableError",
    "ConnectionFatalError",
    "HttpClientError",
    "LaunchError",
    "NotConnectedError",
    "PageScriptError",
    "SmartToolError",
    "WSL_MIRRORED_NETWORKING_HINT",
]
