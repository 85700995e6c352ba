"""Shorten large or free-form values before they reach the log."""

from __future__ import annotations

from typing import Any

MAX_LOGGED_CHARS = 80
_LONG_TEXT_KEYS = {"prompt", "query", "name"}
_BINARY_KEYS = {"data"}


def shorten(value: str, limit: int = MAX_LOGGED_CHARS) -> str:
    if len(value) <= limit:
        return value
    return f"{value[:limit]}...<{len(value)} chars>"


def redact_tool_arguments(name: str, arguments: Any) -> Any:
    if not isinstance(arguments, dict):
        return arguments
    out: dict[str, Any] = {}
    for key, value in arguments.items():
        if key in _LONG_TEXT_KEYS and isinstance(value, str):
            out[key] = shorten(value)
        else:
            out[key] = value
    return out


def redact_jsonrpc_for_log(message: Any) -> Any:
    """Copy of a frame with tool arguments shortened and base64 payloads elided."""
    if not isinstance(message, dict):
        return message
    safe = dict(message)
    params = safe.get("params")
    if isinstance(params, dict) and isinstance(params.get("arguments"), dict):
        safe["params"] = {**params, "arguments": redact_tool_arguments(str(params.get("name")), params["arguments"])}
    result = safe.get("result")
    if isinstance(result, dict) and isinstance(result.get("content"), list):
        content = []
        for item in result["content"]:
            if isinstance(item, dict) and any(k in item for k in _BINARY_KEYS):
                item = {**item, "data": f"<{len(str(item.get('data') or ''))} bytes>"}
            content.append(item)
        safe["result"] = {**result, "content": content}
    return safe
