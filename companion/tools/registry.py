"""
Tool registry — the typed command table the dispatcher resolves against.

Tools are indexed by name. Looking up a name that was never registered is an
explicit error, never a silent no-op.
"""

from __future__ import annotations

from typing import Any

from companion.gateway.config import CompanionConfig
from companion.tools.base import BaseTool, UnknownToolError
from companion.utils.logging import get_logger

logger = get_logger("tool_registry")


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        if tool.name in self._tools:
            logger.warning("tool_already_registered", name=tool.name)
            return
        self._tools[tool.name] = tool
        logger.debug("tool_registered", name=tool.name)

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def resolve(self, name: str) -> BaseTool:
        """Like get(), but raises UnknownToolError for unregistered names."""
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(f"Unknown tool: {name}")
        return tool

    def names(self) -> list[str]:
        return list(self._tools)

    def get_tool_definitions(self) -> list[dict[str, Any]]:
        return [t.get_tool_definition() for t in self._tools.values()]

    def load_builtins(self, config: CompanionConfig) -> None:
        """Register the built-in tools; the external-service ones only when enabled."""
        from companion.tools.builtin.conversation import UpdateConversationTitleTool
        from companion.tools.builtin.image_gen import GenerateImageTool
        from companion.tools.builtin.memory import SaveMemoryTool
        from companion.tools.builtin.tasks import ExtractTaskTool, UpdateTaskStatusTool
        from companion.tools.builtin.web_search import WebSearchTool

        builtins: list[BaseTool] = [
            SaveMemoryTool(),
            UpdateConversationTitleTool(),
            ExtractTaskTool(),
            UpdateTaskStatusTool(),
        ]
        if config.tools.web_search_enabled:
            builtins.append(WebSearchTool())
        if config.tools.image_gen_enabled:
            builtins.append(GenerateImageTool())

        for tool in builtins:
            self.register(tool)
        logger.info("builtins_loaded", tools=self.names())

    @property
    def count(self) -> int:
        return len(self._tools)
