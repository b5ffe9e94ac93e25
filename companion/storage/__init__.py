"""Companion storage — user-scoped SQLite store for conversations, memories and tasks."""

from companion.storage.store import Store, StoreError, StoreReadError

__all__ = ["Store", "StoreError", "StoreReadError"]
