"""Tests for sequential, per-call-isolated tool dispatch."""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Any

import pytest
from pydantic import BaseModel

from companion.agent.composer import compose
from companion.agent.tool_executor import ToolExecutor, parse_tool_calls
from companion.agent.turn import ToolCall, TurnContext, TurnRequest
from companion.tools.base import BaseTool, ToolContext, ToolResult
from companion.tools.registry import ToolRegistry
from companion.utils.timestamps import to_iso, utcnow


class EchoArgs(BaseModel):
    text: str


class EchoTool(BaseTool):
    name = "echo"
    description = "Echoes the input back"
    args_model = EchoArgs

    def __init__(self, log: list[str] | None = None):
        self.log = log if log is not None else []

    async def execute(self, args: EchoArgs, ctx: ToolContext) -> ToolResult:
        self.log.append(args.text)
        return ToolResult(success=True, fragment=f"Echo: {args.text}")

    def parameters_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {"text": {"type": "string"}}, "required": ["text"]}


class FailingSearchTool(BaseTool):
    name = "web_search"
    description = "Always fails"
    args_model = EchoArgs

    async def execute(self, args: EchoArgs, ctx: ToolContext) -> ToolResult:
        raise ConnectionError("search service unreachable")

    def parameters_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {"text": {"type": "string"}}, "required": ["text"]}


def upcoming_friday() -> datetime:
    now = utcnow()
    days_ahead = (4 - now.weekday()) % 7 or 7
    return (now + timedelta(days=days_ahead)).replace(hour=17, minute=0, second=0, microsecond=0)


def _call(name: str, **arguments) -> ToolCall:
    return ToolCall(name=name, arguments=json.dumps(arguments), call_id=f"call_{name}")


@pytest.fixture
def turn(conversation):
    return TurnContext(
        user_id="user1",
        request=TurnRequest(message="hi", conversation_id=conversation["id"]),
    )


@pytest.fixture
def executor(config):
    registry = ToolRegistry()
    registry.load_builtins(config)
    registry.register(EchoTool())
    registry.register(FailingSearchTool())
    return ToolExecutor(registry=registry, config=config)


class TestToolExecutor:
    @pytest.mark.asyncio
    async def test_runs_in_order(self, config, store, turn):
        log: list[str] = []
        registry = ToolRegistry()
        registry.register(EchoTool(log))
        executor = ToolExecutor(registry=registry, config=config)

        outcomes = await executor.execute_all(
            [_call("echo", text="one"), _call("echo", text="two"), _call("echo", text="three")],
            turn,
            store,
        )
        assert log == ["one", "two", "three"]
        assert [o.fragment for o in outcomes] == ["Echo: one", "Echo: two", "Echo: three"]

    @pytest.mark.asyncio
    async def test_failing_tool_does_not_stop_others(self, executor, store, turn):
        outcomes = await executor.execute_all(
            [
                _call("web_search", text="weather"),
                _call("save_memory", category="goals", memory_text="Run a 10k", importance=7),
                _call("echo", text="after"),
            ],
            turn,
            store,
        )
        assert [o.success for o in outcomes] == [False, True, True]
        assert "unreachable" in outcomes[0].error
        assert outcomes[0].fragment == ""
        assert len(store.list_memories("user1")) == 1

    @pytest.mark.asyncio
    async def test_failed_search_leaves_reply_intact(self, executor, store, turn):
        outcomes = await executor.execute_all(
            [_call("web_search", text="news"), _call("echo", text="still here")],
            turn,
            store,
        )
        turn.outcomes = outcomes
        reply = compose("Here's what I found.", turn.fragments)
        assert reply == "Here's what I found.\n\nEcho: still here"
        assert "unreachable" not in reply

    @pytest.mark.asyncio
    async def test_unknown_tool_is_failed_outcome(self, executor, store, turn):
        outcomes = await executor.execute_all([_call("drop_tables")], turn, store)
        assert outcomes[0].success is False
        assert "Unknown tool" in outcomes[0].error

    @pytest.mark.asyncio
    async def test_invalid_arguments_are_failed_outcome(self, executor, store, turn):
        outcomes = await executor.execute_all(
            [_call("save_memory", category="goals", memory_text="x", importance=42)],
            turn,
            store,
        )
        assert outcomes[0].success is False
        assert store.list_memories("user1") == []

    @pytest.mark.asyncio
    async def test_extract_task_end_to_end(self, executor, store, turn):
        friday = to_iso(upcoming_friday())
        outcomes = await executor.execute_all(
            [
                _call(
                    "extract_task",
                    task_name="Finish the landing page",
                    priority=7,
                    confidence_score=0.85,
                    due_date=friday,
                )
            ],
            turn,
            store,
        )
        assert outcomes[0].success
        tasks = store.list_tasks("user1")
        assert len(tasks) == 1
        assert tasks[0]["task_name"] == "Finish the landing page"
        assert tasks[0]["priority"] == 7
        assert tasks[0]["status"] == "pending"
        assert tasks[0]["due_date"] == friday


class TestParseToolCalls:
    def test_router_format(self):
        calls = parse_tool_calls(
            [
                {"id": "c1", "type": "function", "function": {"name": "a", "arguments": "{}"}},
                {"id": "c2", "type": "function", "function": {"name": "b", "arguments": '{"x": 1}'}},
            ]
        )
        assert [(c.name, c.call_id) for c in calls] == [("a", "c1"), ("b", "c2")]
        assert calls[1].arguments == '{"x": 1}'

    def test_none(self):
        assert parse_tool_calls(None) == []
