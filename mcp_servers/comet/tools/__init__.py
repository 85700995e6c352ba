"""
Comet workflows exposed through the MCP tools.

- session: start/attach/reset the Perplexity tab
- prompt: locate the input, type and submit a prompt
- task: ask (bounded wait), poll, stop
- screenshot: capture and downscale the controlled page
- mode: report/switch the search mode
- library: research folders and library search
"""

from .library import create_folder, list_folders, save_to_folder, search_library
from .mode import MODES, current_mode, switch_mode
from .prompt import normalize_prompt, send_prompt
from .screenshot import capture_screenshot, downscale_png
from .session import connect_comet, prepare_surface, reset_tabs
from .task import AskOutcome, ask, poll, stop

__all__ = [
    "AskOutcome",
    "MODES",
    "ask",
    "capture_screenshot",
    "connect_comet",
    "create_folder",
    "current_mode",
    "downscale_png",
    "list_folders",
    "normalize_prompt",
    "poll",
    "prepare_surface",
    "reset_tabs",
    "save_to_folder",
    "search_library",
    "send_prompt",
    "stop",
    "switch_mode",
]
