"""
Tool definitions (name, description, JSON schema) advertised via tools/list.
"""

from __future__ import annotations

from typing import Any

from ..tools.mode import MODES

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "comet_connect",
        "description": (
            "Connect to Comet browser (auto-starts if needed). Closes stale tabs, "
            "opens Perplexity and reports whether you are logged in."
        ),
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "comet_ask",
        "description": (
            "Send a prompt to Comet/Perplexity and wait for the complete response (blocking). "
            "Ideal for tasks requiring real browser interaction (login walls, dynamic content, "
            "filling forms, navigating complex sites). If the task is still running when the "
            "timeout expires, returns progress; continue with comet_poll."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "prompt": {
                    "type": "string",
                    "description": "Question or task for Comet - focus on goals and context",
                },
                "newChat": {
                    "type": "boolean",
                    "description": "Start a fresh conversation (default: false)",
                    "default": False,
                },
                "timeout": {
                    "type": "number",
                    "description": "Max wait time in ms (default: 15000 = 15s)",
                    "default": 15000,
                },
            },
            "required": ["prompt"],
        },
    },
    {
        "name": "comet_poll",
        "description": "Check agent status and progress. Call repeatedly to monitor agentic tasks.",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "comet_stop",
        "description": "Stop the current agent task if it's going off track",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "comet_screenshot",
        "description": "Capture a screenshot of the current page",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "comet_mode",
        "description": (
            "Switch Perplexity search mode. Modes: 'search' (basic), 'research' (deep research), "
            "'labs' (analytics/visualization), 'learn' (educational). Call without mode to see current mode."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "mode": {
                    "type": "string",
                    "enum": list(MODES),
                    "description": "Mode to switch to (optional - omit to see current mode)",
                },
            },
        },
    },
    {
        "name": "comet_folders",
        "description": (
            "Manage research folders in Perplexity. List existing folders, create new ones, "
            "or save current research to a folder."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": ["list", "create", "save"],
                    "description": "Action: 'list' folders, 'create' new folder, 'save' current research to folder",
                },
                "name": {
                    "type": "string",
                    "description": "Folder name (required for 'create' and 'save' actions)",
                },
            },
            "required": ["action"],
        },
    },
    {
        "name": "comet_library",
        "description": (
            "Search your Perplexity library for existing research. Returns past research threads matching your query."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query (optional - omit to list recent items)",
                },
            },
        },
    },
]
