"""update_conversation_title — rename the current conversation."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from companion.tools.base import BaseTool, ToolContext, ToolResult
from companion.utils.logging import get_logger

logger = get_logger("tool.conversation")

MAX_TITLE_LENGTH = 100


class UpdateConversationTitleArgs(BaseModel):
    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)


class UpdateConversationTitleTool(BaseTool):
    name = "update_conversation_title"
    description = "Give the current conversation a short descriptive title."
    args_model = UpdateConversationTitleArgs

    async def execute(self, args: UpdateConversationTitleArgs, ctx: ToolContext) -> ToolResult:
        updated = ctx.store.update_conversation_title(
            ctx.conversation_id, ctx.user_id, args.title.strip()
        )
        logger.info("conversation_renamed", conversation_id=ctx.conversation_id[:12], updated=updated)
        return ToolResult(success=True, data={"updated": updated})

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "title": {
                    "type": "string",
                    "description": f"A short title (max {MAX_TITLE_LENGTH} characters)",
                },
            },
            "required": ["title"],
        }
