"""
Memory ranking for grounding context.

score = 0.4 * importance + 0.3 * recency(updated_at) + relevance_boost

recency decays linearly from 10 to 0 over ten weeks. The boost (3) applies to
memories in a boosted category or whose text mentions an active-project
keyword. Equal scores fall back to the most recently updated memory.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from companion.constants import BOOSTED_MEMORY_CATEGORIES, MEMORY_LIMIT
from companion.utils.timestamps import days_since, parse_timestamp, utcnow

IMPORTANCE_WEIGHT = 0.4
RECENCY_WEIGHT = 0.3
RELEVANCE_BOOST = 3.0


@dataclass(frozen=True)
class RankedMemory:
    memory: dict[str, Any]
    score: float

    @property
    def category(self) -> str:
        return self.memory["category"]

    @property
    def text(self) -> str:
        return self.memory["memory_text"]


def recency(updated_at: datetime, now: datetime | None = None) -> float:
    return max(0.0, 10.0 - days_since(updated_at, now) / 7.0)


class MemoryRanker:
    """Scores a user's memories and keeps the top N."""

    def __init__(
        self,
        limit: int = MEMORY_LIMIT,
        project_keywords: Iterable[str] = (),
        boosted_categories: Iterable[str] = BOOSTED_MEMORY_CATEGORIES,
    ):
        self.limit = limit
        self.project_keywords = [k.lower() for k in project_keywords if k.strip()]
        self.boosted_categories = frozenset(boosted_categories)

    def relevance_boost(self, memory: dict[str, Any]) -> float:
        if memory["category"] in self.boosted_categories:
            return RELEVANCE_BOOST
        text = memory["memory_text"].lower()
        if any(keyword in text for keyword in self.project_keywords):
            return RELEVANCE_BOOST
        return 0.0

    def score(self, memory: dict[str, Any], now: datetime | None = None) -> float:
        updated_at = parse_timestamp(memory["updated_at"]) or now or utcnow()
        return (
            IMPORTANCE_WEIGHT * float(memory["importance"])
            + RECENCY_WEIGHT * recency(updated_at, now)
            + self.relevance_boost(memory)
        )

    def rank(
        self,
        memories: Iterable[dict[str, Any]],
        now: datetime | None = None,
    ) -> list[RankedMemory]:
        """Return the top ``limit`` memories, best first."""
        now = now or utcnow()
        ranked = [RankedMemory(memory=m, score=self.score(m, now)) for m in memories]
        ranked.sort(
            key=lambda r: (r.score, parse_timestamp(r.memory["updated_at"]) or now),
            reverse=True,
        )
        return ranked[: self.limit]
