"""
Base tool interface for the companion.

Each tool the model may call is a ``BaseTool`` subclass with:
- a unique name and a description
- a pydantic ``args_model`` that every call's arguments are validated against
- a JSON-schema tool definition for function calling
- an async ``execute`` that receives the validated arguments and the
  request-scoped ``ToolContext``
"""

from __future__ import annotations

import abc
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ValidationError

from companion.gateway.config import CompanionConfig
from companion.storage.store import Store


class ToolExecutionError(Exception):
    """A tool call could not be carried out."""

    pass


class UnknownToolError(ToolExecutionError):
    """The model asked for a tool that is not registered."""

    pass


class ToolArgumentsError(ToolExecutionError):
    """The model's arguments did not match the tool's declared shape."""

    pass


@dataclass
class ToolContext:
    """What a tool may touch during one turn."""

    store: Store
    user_id: str
    conversation_id: str
    config: CompanionConfig
    now: datetime


@dataclass
class ToolResult:
    """Result of one tool execution. ``fragment`` is appended to the reply."""

    success: bool
    fragment: str = ""
    error: str = ""
    data: dict[str, Any] = field(default_factory=dict)


class BaseTool(abc.ABC):
    name: ClassVar[str]
    description: ClassVar[str]
    args_model: ClassVar[type[BaseModel]]

    def parse_arguments(self, raw: str | dict[str, Any] | None) -> BaseModel:
        """Decode (if JSON text) and validate raw model arguments."""
        if raw is None or raw == "":
            raw = {}
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                raise ToolArgumentsError(f"{self.name}: arguments are not valid JSON") from e
        if not isinstance(raw, dict):
            raise ToolArgumentsError(f"{self.name}: arguments must be a JSON object")
        try:
            return self.args_model.model_validate(raw)
        except ValidationError as e:
            raise ToolArgumentsError(f"{self.name}: {e.error_count()} invalid argument(s)") from e

    @abc.abstractmethod
    async def execute(self, args: Any, ctx: ToolContext) -> ToolResult:
        """Run the tool with validated arguments."""
        ...

    @abc.abstractmethod
    def parameters_schema(self) -> dict[str, Any]:
        """JSON schema of the tool's arguments as shown to the model."""
        ...

    def get_tool_definition(self) -> dict[str, Any]:
        """Tool definition in the OpenAI function-calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema(),
            },
        }
