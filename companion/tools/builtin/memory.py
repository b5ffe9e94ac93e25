"""save_memory — remember something lasting about the user."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from companion.constants import MEMORY_CATEGORIES
from companion.tools.base import BaseTool, ToolContext, ToolResult
from companion.utils.logging import get_logger

logger = get_logger("tool.save_memory")

MemoryCategory = Literal[
    "preferences",
    "goals",
    "identity",
    "challenges",
    "interests",
    "emotional_state",
    "achievements",
    "patterns",
    "communication_style",
    "technical_decisions",
    "project_context",
    "learning_style",
]


class SaveMemoryArgs(BaseModel):
    category: MemoryCategory
    memory_text: str = Field(min_length=1, max_length=2000)
    importance: int = Field(ge=1, le=10)


class SaveMemoryTool(BaseTool):
    name = "save_memory"
    description = (
        "Save important information about the user to remember for future conversations. "
        "Use this when you learn something significant about them."
    )
    args_model = SaveMemoryArgs

    async def execute(self, args: SaveMemoryArgs, ctx: ToolContext) -> ToolResult:
        row, merged = ctx.store.save_memory(
            user_id=ctx.user_id,
            category=args.category,
            memory_text=args.memory_text.strip(),
            importance=args.importance,
        )
        logger.info(
            "memory_saved",
            memory_id=row["id"],
            category=args.category,
            importance=args.importance,
            merged=merged,
        )
        return ToolResult(success=True, data={"memory_id": row["id"], "merged": merged})

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "category": {
                    "type": "string",
                    "enum": list(MEMORY_CATEGORIES),
                    "description": "The category of the memory",
                },
                "memory_text": {
                    "type": "string",
                    "description": "Clear, concise description of what to remember",
                },
                "importance": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": 10,
                    "description": "How important this memory is (1-10)",
                },
            },
            "required": ["category", "memory_text", "importance"],
        }
