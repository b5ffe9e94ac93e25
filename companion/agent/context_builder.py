"""
Context assembly for a companion turn.

Gathers the grounding context for one inbound message:
1. The last K messages of the conversation (oldest first)
2. The user's top-ranked long-term memories
3. Proactive task signals: overdue tasks and tasks due soon
4. The temporal gap signal since the previous message

and renders it into the message array sent to the model. Assembly only
reads from the store. A failed read degrades that part of the context to
empty instead of failing the turn.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from companion.agent.memory_ranker import MemoryRanker, RankedMemory
from companion.agent.persona import Persona, load_persona
from companion.agent.temporal import GapBucket, TemporalSignal, classify_gap
from companion.agent.turn import TurnContext
from companion.gateway.config import CompanionConfig
from companion.storage.store import Store, StoreReadError
from companion.utils.logging import get_logger
from companion.utils.timestamps import parse_timestamp, utcnow

logger = get_logger("context_builder")


@dataclass
class AssembledContext:
    """Everything the model is grounded on for one turn."""

    now: datetime
    history: list[dict[str, Any]] = field(default_factory=list)
    memories: list[RankedMemory] = field(default_factory=list)
    overdue_tasks: list[dict[str, Any]] = field(default_factory=list)
    upcoming_tasks: list[dict[str, Any]] = field(default_factory=list)
    temporal: TemporalSignal = field(
        default_factory=lambda: TemporalSignal(bucket=GapBucket.NONE, hours=None)
    )
    degraded: list[str] = field(default_factory=list)


class ContextBuilder:
    """Builds the grounding payload and the model message array."""

    def __init__(
        self,
        config: CompanionConfig,
        persona: Persona | None = None,
        ranker: MemoryRanker | None = None,
    ):
        self.config = config
        self.persona = persona or load_persona(config.context.persona_name)
        self.ranker = ranker or MemoryRanker(
            limit=config.context.memory_limit,
            project_keywords=config.context.project_keywords,
        )

    def assemble(self, store: Store, turn: TurnContext, now: datetime | None = None) -> AssembledContext:
        now = now or turn.started_at or utcnow()
        limits = self.config.context
        assembled = AssembledContext(now=now)
        user_id = turn.user_id
        request = turn.request

        history = self._read(
            assembled,
            "history",
            store.get_recent_messages,
            request.conversation_id,
            user_id,
            limits.history_limit,
        )
        # Clients may persist the user message before calling; don't send it twice
        echoed = bool(
            history
            and history[-1]["role"] == "user"
            and history[-1]["content"].strip() == request.message.strip()
        )
        if echoed:
            history = history[:-1]
        assembled.history = history

        memories = self._read(assembled, "memories", store.list_memories, user_id)
        assembled.memories = self.ranker.rank(memories, now=now)

        assembled.overdue_tasks = self._read(
            assembled,
            "overdue_tasks",
            store.get_overdue_tasks,
            user_id,
            now,
            limits.task_signal_limit,
        )
        assembled.upcoming_tasks = self._read(
            assembled,
            "upcoming_tasks",
            store.get_upcoming_tasks,
            user_id,
            now,
            limits.upcoming_window_hours,
            limits.task_signal_limit,
        )

        previous_at = request.last_message_at
        if previous_at is None:
            if echoed:
                previous_at = parse_timestamp(history[-1]["created_at"]) if history else None
            else:
                conversation = self._read(
                    assembled,
                    "conversation",
                    store.get_conversation,
                    request.conversation_id,
                    user_id,
                )
                if conversation:
                    previous_at = parse_timestamp(conversation["last_message_at"])
        assembled.temporal = classify_gap(previous_at, now)

        logger.info(
            "context_assembled",
            conversation_id=request.conversation_id[:12],
            history=len(assembled.history),
            memories=len(assembled.memories),
            overdue=len(assembled.overdue_tasks),
            upcoming=len(assembled.upcoming_tasks),
            gap=assembled.temporal.bucket.value,
            degraded=assembled.degraded,
        )
        return assembled

    def build_messages(self, assembled: AssembledContext, user_message: str) -> list[dict[str, str]]:
        """
        Render the assembled context for the model:
        [system prompt + grounding, ...history, current user message]
        """
        sections = [
            self._time_section(assembled.now),
            self._memory_section(assembled.memories),
            self._task_section(assembled),
            self._temporal_section(assembled.temporal),
        ]
        messages: list[dict[str, str]] = [
            {"role": "system", "content": self.persona.build_system_prompt(sections)}
        ]
        messages.extend(
            {"role": m["role"], "content": m["content"]}
            for m in assembled.history
            if m["role"] in ("user", "assistant")
        )
        messages.append({"role": "user", "content": user_message})
        return messages

    def _read(self, assembled: AssembledContext, part: str, reader, *args):
        try:
            return reader(*args)
        except StoreReadError as e:
            logger.warning("context_read_failed", part=part, error=str(e))
            assembled.degraded.append(part)
            return []

    @staticmethod
    def _time_section(now: datetime) -> str:
        return f"Current time: {now.strftime('%A, %Y-%m-%d %H:%M')} UTC"

    @staticmethod
    def _memory_section(memories: list[RankedMemory]) -> str:
        if not memories:
            return ""
        lines = [f"- [{m.category}] {m.text}" for m in memories]
        return "What I remember about you:\n" + "\n".join(lines)

    def _task_section(self, assembled: AssembledContext) -> str:
        parts = []
        if assembled.overdue_tasks:
            lines = [_format_task(t) for t in assembled.overdue_tasks]
            parts.append(
                "Overdue tasks (bring these up gently if it fits the conversation):\n"
                + "\n".join(lines)
            )
        if assembled.upcoming_tasks:
            hours = self.config.context.upcoming_window_hours
            lines = [_format_task(t) for t in assembled.upcoming_tasks]
            parts.append(f"Tasks due in the next {hours} hours:\n" + "\n".join(lines))
        return "\n\n".join(parts)

    @staticmethod
    def _temporal_section(signal: TemporalSignal) -> str:
        if not signal.has_annotation:
            return ""
        return f"Conversation continuity: {signal.instruction}"


def _format_task(task: dict[str, Any]) -> str:
    due = parse_timestamp(task["due_date"])
    due_text = due.strftime("%a %Y-%m-%d %H:%M UTC") if due else "no due date"
    return (
        f"- {task['task_name']} (id: {task['id']}, status: {task['status']}, "
        f"priority: {task['priority']}, due: {due_text})"
    )
