"""Voice tool handlers and the static dispatch table."""

from .registry import TOOL_HANDLERS, ToolName, get_tool_handler

__all__ = ["TOOL_HANDLERS", "ToolName", "get_tool_handler"]
