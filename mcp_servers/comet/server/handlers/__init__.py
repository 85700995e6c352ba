"""
Tool handlers organized by domain.

All handlers follow the signature: async (bridge, arguments) -> ToolResult
"""

from .library import LIBRARY_HANDLERS
from .session import SESSION_HANDLERS
from .task import TASK_HANDLERS

ALL_HANDLERS: dict[str, tuple] = {
    **SESSION_HANDLERS,
    **TASK_HANDLERS,
    **LIBRARY_HANDLERS,
}

__all__ = [
    "ALL_HANDLERS",
    "LIBRARY_HANDLERS",
    "SESSION_HANDLERS",
    "TASK_HANDLERS",
]
