"""
Request-scoped turn data.

A ``TurnContext`` is created per inbound message and handed explicitly from
stage to stage (assembler, dispatcher, composer); each stage fills in its
own fields and nothing else is shared between turns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from companion.utils.timestamps import utcnow

if TYPE_CHECKING:
    from companion.agent.context_builder import AssembledContext


class TurnState(str, Enum):
    AUTHENTICATING = "authenticating"
    CONTEXT_BUILDING = "context_building"
    MODEL_INVOKING = "model_invoking"
    TOOL_DISPATCHING = "tool_dispatching"
    COMPOSING = "composing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class TurnRequest:
    """The inbound chat request."""

    message: str
    conversation_id: str
    last_message_at: datetime | None = None


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""

    name: str
    arguments: str | dict[str, Any]
    call_id: str = ""


@dataclass
class ToolOutcome:
    """What one tool call did. ``fragment`` is text to append to the reply."""

    name: str
    success: bool
    fragment: str = ""
    error: str = ""
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class TurnContext:
    user_id: str
    request: TurnRequest
    started_at: datetime = field(default_factory=utcnow)
    context: AssembledContext | None = None
    model_content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    outcomes: list[ToolOutcome] = field(default_factory=list)
    reply: str = ""

    @property
    def conversation_id(self) -> str:
        return self.request.conversation_id

    @property
    def fragments(self) -> list[str]:
        return [o.fragment for o in self.outcomes if o.success and o.fragment]


@dataclass(frozen=True)
class TurnResult:
    """Final outcome of a turn: a reply (Done) or an error description (Failed)."""

    state: TurnState
    reply: str = ""
    error: str = ""
    tools_used: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.state is TurnState.DONE
