"""
Task tools: extract_task and update_task_status.

``project_context`` is never taken from the model; it comes from the server's
configured active project. Priority and confidence are range-checked only.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from companion.constants import TASK_STATUSES
from companion.tools.base import BaseTool, ToolContext, ToolResult
from companion.utils.logging import get_logger
from companion.utils.timestamps import parse_timestamp, to_iso

logger = get_logger("tool.tasks")

# Model-supplied due dates outside this window are treated as misparses
DUE_DATE_PAST_LIMIT = timedelta(days=365)
DUE_DATE_FUTURE_LIMIT = timedelta(days=3650)


class ExtractTaskArgs(BaseModel):
    task_name: str = Field(min_length=1, max_length=500)
    priority: int = Field(ge=1, le=10)
    confidence_score: float = Field(ge=0.0, le=1.0)
    due_date: datetime | None = None
    parent_task_id: str | None = None
    notes: str | None = None

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Any) -> datetime | None:
        if v is None or v == "":
            return None
        try:
            return parse_timestamp(v)
        except (AttributeError, TypeError, ValueError):
            logger.warning("due_date_unparseable", value=str(v)[:64])
            return None


class UpdateTaskStatusArgs(BaseModel):
    task_id: str = Field(min_length=1)
    status: Literal["pending", "in_progress", "completed", "cancelled"]
    notes: str | None = None


class ExtractTaskTool(BaseTool):
    name = "extract_task"
    description = (
        "Create a task when the user mentions something they need to do, "
        "with a due date if they gave one."
    )
    args_model = ExtractTaskArgs

    async def execute(self, args: ExtractTaskArgs, ctx: ToolContext) -> ToolResult:
        store = ctx.store

        due_date = args.due_date
        if due_date is not None and not (
            ctx.now - DUE_DATE_PAST_LIMIT <= due_date <= ctx.now + DUE_DATE_FUTURE_LIMIT
        ):
            logger.warning("due_date_out_of_range", due_date=to_iso(due_date))
            due_date = None

        parent_task_id = args.parent_task_id
        if parent_task_id and store.get_task(parent_task_id, ctx.user_id) is None:
            logger.warning("parent_task_not_found", parent_task_id=parent_task_id[:12])
            parent_task_id = None

        conversation_id: str | None = ctx.conversation_id
        if store.get_conversation(ctx.conversation_id, ctx.user_id) is None:
            conversation_id = None

        task = store.create_task(
            user_id=ctx.user_id,
            conversation_id=conversation_id,
            task_name=args.task_name.strip(),
            priority=args.priority,
            confidence_score=args.confidence_score,
            due_date=due_date,
            notes=args.notes,
            parent_task_id=parent_task_id,
            project_context=ctx.config.context.active_project or None,
        )
        logger.info(
            "task_created",
            task_id=task["id"],
            priority=args.priority,
            has_due_date=task["due_date"] is not None,
        )
        return ToolResult(success=True, data={"task_id": task["id"]})

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "task_name": {
                    "type": "string",
                    "description": "Short, actionable name of the task",
                },
                "due_date": {
                    "type": "string",
                    "description": "When the task is due, as an ISO 8601 timestamp",
                },
                "priority": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": 10,
                    "description": "Priority from 1 (low) to 10 (urgent)",
                },
                "parent_task_id": {
                    "type": "string",
                    "description": "Id of the task this is a subtask of, if any",
                },
                "confidence_score": {
                    "type": "number",
                    "minimum": 0,
                    "maximum": 1,
                    "description": "How sure you are this is a real task (0-1)",
                },
                "notes": {
                    "type": "string",
                    "description": "Extra context about the task",
                },
            },
            "required": ["task_name", "priority", "confidence_score"],
        }


class UpdateTaskStatusTool(BaseTool):
    name = "update_task_status"
    description = "Update the status of one of the user's existing tasks."
    args_model = UpdateTaskStatusArgs

    async def execute(self, args: UpdateTaskStatusArgs, ctx: ToolContext) -> ToolResult:
        updated = ctx.store.update_task_status(
            task_id=args.task_id,
            user_id=ctx.user_id,
            status=args.status,
            notes=args.notes,
        )
        if updated == 0:
            # Unknown and foreign task ids look the same from here
            logger.info("task_not_found", task_id=args.task_id[:12])
        else:
            logger.info("task_status_updated", task_id=args.task_id[:12], status=args.status)
        return ToolResult(success=True, data={"updated": updated})

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "task_id": {
                    "type": "string",
                    "description": "Id of the task to update",
                },
                "status": {
                    "type": "string",
                    "enum": list(TASK_STATUSES),
                    "description": "New status of the task",
                },
                "notes": {
                    "type": "string",
                    "description": "Optional note about the change",
                },
            },
            "required": ["task_id", "status"],
        }
