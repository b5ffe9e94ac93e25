"""Companion agent — turn orchestration, context assembly, LLM routing and tool dispatch."""

from companion.agent.context_builder import ContextBuilder
from companion.agent.llm_router import LLMRouter, UpstreamModelError
from companion.agent.orchestrator import TurnOrchestrator
from companion.agent.tool_executor import ToolExecutor
from companion.agent.turn import TurnRequest, TurnResult, TurnState

__all__ = [
    "ContextBuilder",
    "LLMRouter",
    "ToolExecutor",
    "TurnOrchestrator",
    "TurnRequest",
    "TurnResult",
    "TurnState",
    "UpstreamModelError",
]
