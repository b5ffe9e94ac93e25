"""
Temporal gap classification.

Turns the time since the user's previous message into one of five buckets
and a short continuity instruction for the system prompt:

    none    h < 1.5 (or no previous message)
    mild    1.5 <= h < 4
    hours   4 <= h < 24
    days    24 <= h < 168
    weeks   h >= 168
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from companion.utils.timestamps import hours_between, utcnow


class GapBucket(str, Enum):
    NONE = "none"
    MILD = "mild"
    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"


# Lower bound (hours, inclusive) of each bucket, highest first
_THRESHOLDS: tuple[tuple[float, GapBucket], ...] = (
    (168.0, GapBucket.WEEKS),
    (24.0, GapBucket.DAYS),
    (4.0, GapBucket.HOURS),
    (1.5, GapBucket.MILD),
)


@dataclass(frozen=True)
class TemporalSignal:
    bucket: GapBucket
    hours: float | None
    instruction: str = ""

    @property
    def has_annotation(self) -> bool:
        return self.bucket is not GapBucket.NONE


def classify_hours(hours: float | None) -> GapBucket:
    if hours is None:
        return GapBucket.NONE
    for lower_bound, bucket in _THRESHOLDS:
        if hours >= lower_bound:
            return bucket
    return GapBucket.NONE


def _instruction(bucket: GapBucket, hours: float) -> str:
    if bucket is GapBucket.MILD:
        return (
            f"It's been about {round(hours)} hours since the user's last message. "
            "Casually acknowledge the short break if it fits, without making a big deal of it."
        )
    if bucket is GapBucket.HOURS:
        return (
            f"It's been about {round(hours)} hours since the user's last message. "
            "Welcome them back warmly and reference what you were talking about before."
        )
    if bucket is GapBucket.DAYS:
        days = int(hours // 24)
        unit = "day" if days == 1 else "days"
        return (
            f"It's been {days} {unit} since the user's last message. "
            "Acknowledge the time apart and check in on how they've been."
        )
    if bucket is GapBucket.WEEKS:
        weeks = int(hours // 168)
        unit = "week" if weeks == 1 else "weeks"
        return (
            f"It's been {weeks} {unit} since the user's last message. "
            "Acknowledge that it's been a while and ask for an update on their life."
        )
    return ""


def classify_gap(last_message_at: datetime | None, now: datetime | None = None) -> TemporalSignal:
    """Classify the gap between ``last_message_at`` and ``now``."""
    if last_message_at is None:
        return TemporalSignal(bucket=GapBucket.NONE, hours=None)

    # clock skew can put the previous message in the future
    hours = max(0.0, hours_between(last_message_at, now or utcnow()))
    bucket = classify_hours(hours)
    return TemporalSignal(bucket=bucket, hours=hours, instruction=_instruction(bucket, hours))
