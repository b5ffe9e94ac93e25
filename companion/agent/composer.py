"""Reply composition: model text plus tool fragments, never empty."""

from __future__ import annotations

from companion.constants import DEFAULT_REPLY

SEPARATOR = "\n\n"


def compose(content: str | None, fragments: list[str] | None = None) -> str:
    """
    Join the model's free text and the tool fragments (in execution order)
    with blank lines. Falls back to DEFAULT_REPLY when everything is empty.
    """
    parts = [p.strip() for p in [content or "", *(fragments or [])]]
    reply = SEPARATOR.join(p for p in parts if p)
    return reply or DEFAULT_REPLY
