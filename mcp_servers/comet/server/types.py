"""
Type definitions for MCP server responses and handlers.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..bridge import CometBridge


@dataclass(slots=True)
class ToolContent:
    """Single content item in tool response."""

    type: str  # "text" or "image"
    text: str | None = None
    data: str | None = None  # base64 for images
    mime_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.type == "image":
            return {"type": "image", "data": self.data, "mimeType": self.mime_type}
        return {"type": "text", "text": self.text}


@dataclass(slots=True)
class ToolResult:
    """Result of a tool execution."""

    content: list[ToolContent] = field(default_factory=list)
    is_error: bool = False
    # Structured payload for tests and callers inside the process; not on the wire.
    data: Any | None = None

    @classmethod
    def text(cls, text: str, data: Any | None = None) -> ToolResult:
        return cls(content=[ToolContent(type="text", text=text or "")], data=data)

    @classmethod
    def error(
        cls,
        message: str,
        *,
        tool: str | None = None,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> ToolResult:
        """Create error result. Text carries the message and the suggestion, if any."""
        payload: dict[str, Any] = {"ok": False, "error": message}
        if tool:
            payload["tool"] = tool
        if suggestion:
            payload["suggestion"] = suggestion
        if details:
            payload["details"] = details
        text = f"Error: {message}"
        if suggestion:
            text += f"\nSuggestion: {suggestion}"
        return cls(content=[ToolContent(type="text", text=text)], is_error=True, data=payload)

    @classmethod
    def image(cls, data_b64: str, mime_type: str = "image/png") -> ToolResult:
        if not data_b64:
            return cls.error("Screenshot data is empty", tool="comet_screenshot", suggestion="Call comet_connect and retry")
        return cls(content=[ToolContent(type="image", data=data_b64, mime_type=mime_type)])

    def to_content_list(self) -> list[dict[str, Any]]:
        return [c.to_dict() for c in self.content]

    def to_mcp(self) -> dict[str, Any]:
        out: dict[str, Any] = {"content": self.to_content_list()}
        if self.is_error:
            out["isError"] = True
        return out


HandlerFunc = Callable[["CometBridge", dict[str, Any]], Awaitable[ToolResult]]
