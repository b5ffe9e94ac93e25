"""Companion utilities — logging and timestamp helpers."""

from companion.utils.logging import get_logger, setup_logging
from companion.utils.timestamps import parse_timestamp, to_iso, utcnow

__all__ = ["get_logger", "parse_timestamp", "setup_logging", "to_iso", "utcnow"]
