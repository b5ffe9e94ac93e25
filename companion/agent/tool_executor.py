"""
Tool dispatcher for companion turns.

Executes the tool calls a model reply asked for:
1. Resolves the tool by name (unknown names are rejected, not ignored)
2. Decodes and validates the arguments against the tool's pydantic model
3. Runs the tool
4. Records the outcome

Calls run strictly one after another in the order the model listed them.
Each call has its own failure boundary: a failing tool is logged and
recorded as a failed outcome, and the remaining calls still run.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from companion.agent.turn import ToolCall, ToolOutcome, TurnContext
from companion.gateway.config import CompanionConfig
from companion.storage.store import Store
from companion.tools.base import ToolContext, UnknownToolError
from companion.tools.registry import ToolRegistry
from companion.utils.logging import get_logger

logger = get_logger("tool_executor")


class ToolExecutor:
    """Sequential, per-call-isolated tool execution."""

    def __init__(self, registry: ToolRegistry, config: CompanionConfig):
        self.registry = registry
        self.config = config

    async def execute_all(
        self,
        calls: list[ToolCall],
        turn: TurnContext,
        store: Store,
        now: datetime | None = None,
    ) -> list[ToolOutcome]:
        ctx = ToolContext(
            store=store,
            user_id=turn.user_id,
            conversation_id=turn.conversation_id,
            config=self.config,
            now=now or turn.started_at,
        )
        outcomes = []
        for call in calls:
            outcomes.append(await self.execute_tool_call(call, ctx))
        return outcomes

    async def execute_tool_call(self, call: ToolCall, ctx: ToolContext) -> ToolOutcome:
        logger.info("tool_call", tool=call.name, call_id=call.call_id)
        try:
            tool = self.registry.resolve(call.name)
            args = tool.parse_arguments(call.arguments)
            result = await tool.execute(args, ctx)
        except UnknownToolError as e:
            logger.warning("unknown_tool", tool=call.name)
            return ToolOutcome(name=call.name, success=False, error=str(e))
        except Exception as e:
            logger.warning(
                "tool_failed",
                tool=call.name,
                error_type=type(e).__name__,
                error=str(e)[:200],
            )
            return ToolOutcome(name=call.name, success=False, error=str(e))

        logger.info("tool_complete", tool=call.name, success=result.success)
        return ToolOutcome(
            name=call.name,
            success=result.success,
            fragment=result.fragment if result.success else "",
            error=result.error,
            data=result.data,
        )


def parse_tool_calls(raw_calls: list[dict[str, Any]] | None) -> list[ToolCall]:
    """Convert the router's tool-call dicts into ToolCall values, keeping order."""
    calls = []
    for tc in raw_calls or []:
        function = tc.get("function") or {}
        calls.append(
            ToolCall(
                name=function.get("name", ""),
                arguments=function.get("arguments") or {},
                call_id=tc.get("id") or "",
            )
        )
    return calls
