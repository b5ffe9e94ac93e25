"""Typed tool registry and the built-in tools."""

from companion.tools.base import (
    BaseTool,
    ToolArgumentsError,
    ToolContext,
    ToolExecutionError,
    ToolResult,
    UnknownToolError,
)
from companion.tools.registry import ToolRegistry

__all__ = [
    "BaseTool",
    "ToolArgumentsError",
    "ToolContext",
    "ToolExecutionError",
    "ToolRegistry",
    "ToolResult",
    "UnknownToolError",
]
