"""Companion — AI companion chat service with memories, tasks and tools."""

from companion.constants import PROJECT_VERSION

__version__ = PROJECT_VERSION
