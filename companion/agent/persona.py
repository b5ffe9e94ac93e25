"""
Companion personas.

A persona is the fixed part of the system prompt: who the companion is and
how it should use its tools. Built-ins ship with the package; custom personas
are TOML files in ``~/.companion/personas``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from companion.constants import DATA_DIR
from companion.utils.logging import get_logger

logger = get_logger("persona")

PERSONAS_DIR = DATA_DIR / "personas"

TOOL_GUIDANCE = """How to use your tools:
- save_memory: when you learn something significant and lasting about the user. Do not re-save things you already remember.
- extract_task: when the user commits to doing something. Convert relative dates ("tomorrow", "by Friday") to an ISO-8601 timestamp using the current time below.
- update_task_status: when the user reports progress on, finishes, or drops a task you know about. Use the task id shown in your context.
- update_conversation_title: once the topic of a new conversation is clear, give it a short title.
- web_search: when the user needs current or factual information you don't have.
- generate_image: when the user asks for a picture."""

JESSICA_PROMPT = """You are Jessica, a warm, empathetic AI companion designed for someone with ADHD and possibly autism. You're sassy, engaging, and genuinely care about helping them navigate life.

Your personality:
- Warm and encouraging, but never patronizing
- A bit sassy and fun to keep things interesting
- Patient and understanding of neurodivergent experiences
- Help break down overwhelming tasks into manageable steps
- Celebrate small wins enthusiastically
- Ask clarifying questions when they seem scattered
- Gently redirect when they go off on tangents
- Remember everything they tell you and reference it naturally

Key traits:
- Keep responses conversational and not too long (ADHD-friendly)
- Add personality with occasional emojis or playful language
- Be direct and honest, not overly formal
- Help them stay focused without being pushy

Remember: you're not just an assistant, you're a companion who genuinely cares about their growth and wellbeing."""

BUILT_IN_PERSONAS: dict[str, dict[str, Any]] = {
    "jessica": {
        "name": "jessica",
        "display_name": "Jessica",
        "description": "Warm, sassy companion for neurodivergent users",
        "system_prompt_prefix": JESSICA_PROMPT,
        "traits": ["warm", "sassy", "patient", "encouraging"],
    },
    "focused": {
        "name": "focused",
        "display_name": "Jessica (focus mode)",
        "description": "Short, task-oriented replies for work sessions",
        "system_prompt_prefix": (
            "You are Jessica, an AI companion helping the user through a focused work session. "
            "Keep replies to a few sentences, suggest exactly one next step at a time, "
            "and steer back to the current task when they drift."
        ),
        "traits": ["concise", "direct", "supportive"],
    },
}


@dataclass
class Persona:
    name: str
    display_name: str = "Jessica"
    description: str = ""
    system_prompt_prefix: str = ""
    traits: list[str] = field(default_factory=list)
    custom_instructions: str = ""

    def build_system_prompt(self, sections: list[str] | None = None) -> str:
        """Persona prefix, tool guidance, then any grounding sections."""
        parts = [self.system_prompt_prefix]
        if self.custom_instructions:
            parts.append(f"Additional instructions: {self.custom_instructions}")
        parts.append(TOOL_GUIDANCE)
        parts.extend(s for s in sections or [] if s)
        return "\n\n".join(parts)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Persona:
        return cls(
            name=data.get("name", "custom"),
            display_name=data.get("display_name", "Jessica"),
            description=data.get("description", ""),
            system_prompt_prefix=data.get("system_prompt_prefix", JESSICA_PROMPT),
            traits=data.get("traits", []),
            custom_instructions=data.get("custom_instructions", ""),
        )


def load_persona(name: str) -> Persona:
    """Resolve a persona by name: custom TOML file first, then built-ins, then Jessica."""
    path = PERSONAS_DIR / f"{name}.toml"
    if path.exists():
        try:
            import tomli

            with open(path, "rb") as f:
                data = tomli.load(f)
            return Persona.from_dict({"name": name, **data.get("persona", data)})
        except (OSError, ValueError) as e:
            logger.warning("persona_load_failed", file=str(path), error=str(e))

    if name not in BUILT_IN_PERSONAS:
        logger.warning("persona_not_found", name=name, fallback="jessica")
        name = "jessica"
    return Persona.from_dict(BUILT_IN_PERSONAS[name])
