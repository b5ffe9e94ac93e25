"""Project-wide constants for the companion service."""

import os
from pathlib import Path

PROJECT_NAME = "companion"
PROJECT_DISPLAY_NAME = "Jessica Companion"
PROJECT_DESCRIPTION = "AI companion chat service with memories, tasks and tools"
PROJECT_VERSION = "0.1.0"

# Default network config
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 18790

# Data directories
if os.name == "nt":
    _appdata = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    DATA_DIR = _appdata / PROJECT_NAME
else:
    DATA_DIR = Path.home() / f".{PROJECT_NAME}"

CONFIG_FILE = DATA_DIR / "config.toml"
DATABASE_FILE = DATA_DIR / "companion.db"

# Turn defaults
HISTORY_LIMIT = 20
MEMORY_LIMIT = 20
TASK_SIGNAL_LIMIT = 5
UPCOMING_WINDOW_HOURS = 48
DEFAULT_REPLY = "I'm here! What's on your mind?"
DEFAULT_CONVERSATION_TITLE = "New Chat"

# Domain enumerations
MEMORY_CATEGORIES = (
    "preferences",
    "goals",
    "identity",
    "challenges",
    "interests",
    "emotional_state",
    "achievements",
    "patterns",
    "communication_style",
    "technical_decisions",
    "project_context",
    "learning_style",
)

# Categories that always get the relevance boost when ranking memories
BOOSTED_MEMORY_CATEGORIES = frozenset({"patterns", "technical_decisions"})

TASK_STATUSES = ("pending", "in_progress", "completed", "cancelled")

# Sensitive content patterns — NEVER log or expose
SENSITIVE_PATTERNS = [
    r"sk-[a-zA-Z0-9\-]{20,}",  # OpenAI keys (including sk-proj-...)
    r"sk-ant-[a-zA-Z0-9\-]{20,}",  # Anthropic keys
    r"AIza[a-zA-Z0-9\-_]{35}",  # Google API keys
    r"Bearer\s+[A-Za-z0-9\-_\.=]+",  # Bearer credentials
    r"-----BEGIN.*PRIVATE KEY-----",  # Private keys
    r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b",  # Emails
    r"AKIA[0-9A-Z]{16}",  # AWS access key IDs
]
