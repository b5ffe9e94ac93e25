"""Structured logging for the companion service — NEVER logs secrets."""

import re
import sys
from typing import Any

import structlog

from companion.constants import PROJECT_NAME, SENSITIVE_PATTERNS

_COMPILED_PATTERNS = [re.compile(p) for p in SENSITIVE_PATTERNS]

# Ids are logged truncated; enough to correlate lines, not to look rows up
LOGGED_ID_LENGTH = 12


def _redact_secrets(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Processor that redacts sensitive data from all log fields."""
    for key, value in list(event_dict.items()):
        event_dict[key] = _redact_value(value)
    return event_dict


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return _redact_string(value)
    if isinstance(value, dict):
        return {k: _redact_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_redact_value(v) for v in value]
    return value


def _redact_string(text: str) -> str:
    """Replace any sensitive patterns found in text with [REDACTED]."""
    for pattern in _COMPILED_PATTERNS:
        text = pattern.sub("[REDACTED]", text)
    return text


def _add_service(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict["service"] = PROJECT_NAME
    return event_dict


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure structured logging.

    Output is structured (JSON by default, console renderer for local use),
    carries timestamp, level, service name and any turn-scoped context
    bound with ``turn_log_context``. API keys, bearer credentials and
    emails are redacted before rendering, including inside nested values.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_service,
        _redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_level_to_int(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "") -> structlog.BoundLogger:
    """Get a logger instance. Secrets are automatically redacted."""
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(component=name)
    return logger


def turn_log_context(conversation_id: str):
    """
    Bind the conversation id to every log line emitted inside the block.

    Context variables are per asyncio task, so concurrent turns do not see
    each other's ids.

    Usage:
        with turn_log_context(conversation_id=request.conversation_id):
            ...
    """
    return structlog.contextvars.bound_contextvars(
        conversation_id=conversation_id[:LOGGED_ID_LENGTH],
    )


def _level_to_int(level: str) -> int:
    levels = {
        "DEBUG": 10,
        "INFO": 20,
        "WARNING": 30,
        "ERROR": 40,
        "CRITICAL": 50,
    }
    return levels.get(level.upper(), 20)
