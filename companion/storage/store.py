"""
SQLite store for the companion service.

Holds conversations, messages, memories, tasks and bearer-token hashes.
Every query that touches user data is filtered by ``user_id``: a row that
belongs to another user is indistinguishable from a row that does not exist.

The connection runs in autocommit mode; operations that must read and write
atomically (memory dedup-merge) open an explicit ``BEGIN IMMEDIATE``
transaction so concurrent turns serialize on the database write lock.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from companion.constants import DATABASE_FILE, DEFAULT_CONVERSATION_TITLE
from companion.storage.schema import SCHEMA_SQL
from companion.utils.logging import get_logger
from companion.utils.timestamps import to_iso, utcnow

logger = get_logger("store")

# Number of leading characters compared when looking for a near-duplicate memory
MEMORY_DEDUP_PREFIX = 20


class Store:
    """User-scoped SQLite store."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or DATABASE_FILE
        self._conn: sqlite3.Connection | None = None

    def open(self) -> None:
        """Open the database connection and initialize schema."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=10.0,
                isolation_level=None,
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.executescript(SCHEMA_SQL)
        except (OSError, sqlite3.Error) as e:
            self.close()
            raise StoreError(f"Cannot open database: {e}") from e
        logger.debug("store_ready", path=str(self.db_path))

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("Store not opened. Call open() first.")
        return self._conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block inside a write transaction (takes the db write lock up front)."""
        conn = self.conn
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        else:
            conn.execute("COMMIT")

    def _fetchall(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        try:
            rows = self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreReadError(str(e)) from e
        return [dict(r) for r in rows]

    def _fetchone(self, sql: str, params: tuple = ()) -> dict[str, Any] | None:
        try:
            row = self.conn.execute(sql, params).fetchone()
        except sqlite3.Error as e:
            raise StoreReadError(str(e)) from e
        return dict(row) if row else None

    # --- Conversations ---

    def create_conversation(self, user_id: str, title: str | None = None) -> dict[str, Any]:
        """Create a new conversation for a user and return it."""
        now = _now()
        row = {
            "id": _new_id(),
            "user_id": user_id,
            "title": title or DEFAULT_CONVERSATION_TITLE,
            "last_message_at": None,
            "created_at": now,
            "updated_at": now,
        }
        self.conn.execute(
            "INSERT INTO conversations (id, user_id, title, last_message_at, created_at, updated_at) "
            "VALUES (:id, :user_id, :title, :last_message_at, :created_at, :updated_at)",
            row,
        )
        return row

    def get_conversation(self, conversation_id: str, user_id: str) -> dict[str, Any] | None:
        return self._fetchone(
            "SELECT * FROM conversations WHERE id = ? AND user_id = ?",
            (conversation_id, user_id),
        )

    def list_conversations(self, user_id: str, limit: int = 20) -> list[dict[str, Any]]:
        return self._fetchall(
            "SELECT * FROM conversations WHERE user_id = ? ORDER BY updated_at DESC LIMIT ?",
            (user_id, limit),
        )

    def update_conversation_title(self, conversation_id: str, user_id: str, title: str) -> int:
        """Rename a conversation. Returns the number of rows affected (0 or 1)."""
        cur = self.conn.execute(
            "UPDATE conversations SET title = ?, updated_at = ? WHERE id = ? AND user_id = ?",
            (title, _now(), conversation_id, user_id),
        )
        return cur.rowcount

    # --- Messages ---

    def append_message(
        self,
        conversation_id: str,
        user_id: str,
        role: str,
        content: str,
        created_at: datetime | None = None,
    ) -> dict[str, Any]:
        """Append a message and advance the conversation's last_message_at."""
        timestamp = to_iso(created_at) if created_at else _now()
        row = {
            "id": _new_id(),
            "conversation_id": conversation_id,
            "role": role,
            "content": content,
            "created_at": timestamp,
        }
        with self._transaction() as conn:
            owned = conn.execute(
                "SELECT 1 FROM conversations WHERE id = ? AND user_id = ?",
                (conversation_id, user_id),
            ).fetchone()
            if owned is None:
                raise StoreError(f"Conversation not found: {conversation_id}")

            conn.execute(
                "INSERT INTO messages (id, conversation_id, role, content, created_at) "
                "VALUES (:id, :conversation_id, :role, :content, :created_at)",
                row,
            )
            # last_message_at only ever moves forward
            conn.execute(
                "UPDATE conversations SET "
                "last_message_at = MAX(COALESCE(last_message_at, ''), ?), updated_at = ? "
                "WHERE id = ?",
                (timestamp, _now(), conversation_id),
            )
        return row

    def get_recent_messages(
        self,
        conversation_id: str,
        user_id: str,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        """The last ``limit`` messages of a conversation, oldest first."""
        rows = self._fetchall(
            "SELECT m.* FROM messages m "
            "JOIN conversations c ON c.id = m.conversation_id "
            "WHERE m.conversation_id = ? AND c.user_id = ? "
            "ORDER BY m.created_at DESC, m.rowid DESC LIMIT ?",
            (conversation_id, user_id, limit),
        )
        rows.reverse()
        return rows

    # --- Memories ---

    def list_memories(self, user_id: str, category: str | None = None) -> list[dict[str, Any]]:
        if category:
            return self._fetchall(
                "SELECT * FROM memories WHERE user_id = ? AND category = ? "
                "ORDER BY updated_at DESC",
                (user_id, category),
            )
        return self._fetchall(
            "SELECT * FROM memories WHERE user_id = ? ORDER BY updated_at DESC",
            (user_id,),
        )

    def save_memory(
        self,
        user_id: str,
        category: str,
        memory_text: str,
        importance: int,
    ) -> tuple[dict[str, Any], bool]:
        """
        Insert a memory, or merge it into a near-duplicate.

        A near-duplicate is a memory of the same user and category where the
        first MEMORY_DEDUP_PREFIX characters of the new text appear
        (case-insensitively) in the existing one, or the new text starts with
        the existing one's prefix. The search and the write share
        one transaction.

        Returns (row, merged).
        """
        now = _now()
        with self._transaction() as conn:
            candidates = conn.execute(
                "SELECT * FROM memories WHERE user_id = ? AND category = ? "
                "ORDER BY updated_at DESC",
                (user_id, category),
            ).fetchall()

            existing = _find_near_duplicate(memory_text, [dict(r) for r in candidates])
            if existing is not None:
                conn.execute(
                    "UPDATE memories SET memory_text = ?, importance = ?, updated_at = ? "
                    "WHERE id = ?",
                    (memory_text, importance, now, existing["id"]),
                )
                existing.update(memory_text=memory_text, importance=importance, updated_at=now)
                return existing, True

            row = {
                "id": _new_id(),
                "user_id": user_id,
                "category": category,
                "memory_text": memory_text,
                "importance": importance,
                "created_at": now,
                "updated_at": now,
            }
            conn.execute(
                "INSERT INTO memories (id, user_id, category, memory_text, importance, created_at, updated_at) "
                "VALUES (:id, :user_id, :category, :memory_text, :importance, :created_at, :updated_at)",
                row,
            )
            return row, False

    # --- Tasks ---

    def create_task(
        self,
        user_id: str,
        conversation_id: str | None,
        task_name: str,
        priority: int,
        confidence_score: float,
        due_date: datetime | None = None,
        notes: str | None = None,
        parent_task_id: str | None = None,
        project_context: str | None = None,
    ) -> dict[str, Any]:
        """Insert a new pending task."""
        now = _now()
        row = {
            "id": _new_id(),
            "user_id": user_id,
            "conversation_id": conversation_id,
            "task_name": task_name,
            "status": "pending",
            "priority": priority,
            "due_date": to_iso(due_date) if due_date else None,
            "confidence_score": confidence_score,
            "notes": notes,
            "parent_task_id": parent_task_id,
            "project_context": project_context,
            "completed_at": None,
            "created_at": now,
            "updated_at": now,
        }
        self.conn.execute(
            "INSERT INTO tasks (id, user_id, conversation_id, task_name, status, priority, "
            "due_date, confidence_score, notes, parent_task_id, project_context, "
            "completed_at, created_at, updated_at) VALUES (:id, :user_id, :conversation_id, "
            ":task_name, :status, :priority, :due_date, :confidence_score, :notes, "
            ":parent_task_id, :project_context, :completed_at, :created_at, :updated_at)",
            row,
        )
        return row

    def get_task(self, task_id: str, user_id: str) -> dict[str, Any] | None:
        return self._fetchone(
            "SELECT * FROM tasks WHERE id = ? AND user_id = ?",
            (task_id, user_id),
        )

    def list_tasks(self, user_id: str, status: str | None = None) -> list[dict[str, Any]]:
        if status:
            return self._fetchall(
                "SELECT * FROM tasks WHERE user_id = ? AND status = ? ORDER BY created_at DESC",
                (user_id, status),
            )
        return self._fetchall(
            "SELECT * FROM tasks WHERE user_id = ? ORDER BY created_at DESC",
            (user_id,),
        )

    def update_task_status(
        self,
        task_id: str,
        user_id: str,
        status: str,
        notes: str | None = None,
    ) -> int:
        """
        Change a task's status. Returns rows affected (0 when the task is not the user's).

        ``completed`` stamps completed_at (keeping an earlier stamp); any other
        status clears it.
        """
        now = _now()
        cur = self.conn.execute(
            "UPDATE tasks SET status = ?, notes = COALESCE(?, notes), "
            "completed_at = CASE WHEN ? = 'completed' THEN COALESCE(completed_at, ?) ELSE NULL END, "
            "updated_at = ? WHERE id = ? AND user_id = ?",
            (status, notes, status, now, now, task_id, user_id),
        )
        return cur.rowcount

    def get_overdue_tasks(
        self,
        user_id: str,
        now: datetime | None = None,
        limit: int = 5,
    ) -> list[dict[str, Any]]:
        """Open tasks whose due date has passed, highest priority first."""
        now_iso = to_iso(now or utcnow())
        return self._fetchall(
            "SELECT * FROM tasks WHERE user_id = ? AND status != 'completed' "
            "AND due_date IS NOT NULL AND due_date < ? "
            "ORDER BY priority DESC, due_date ASC LIMIT ?",
            (user_id, now_iso, limit),
        )

    def get_upcoming_tasks(
        self,
        user_id: str,
        now: datetime | None = None,
        window_hours: int = 48,
        limit: int = 5,
    ) -> list[dict[str, Any]]:
        """Open tasks due within the next ``window_hours``, soonest first."""
        now = now or utcnow()
        return self._fetchall(
            "SELECT * FROM tasks WHERE user_id = ? AND status != 'completed' "
            "AND due_date IS NOT NULL AND due_date >= ? AND due_date <= ? "
            "ORDER BY due_date ASC LIMIT ?",
            (user_id, to_iso(now), to_iso(now + timedelta(hours=window_hours)), limit),
        )

    # --- Auth tokens ---

    def add_auth_token(self, token_hash: str, user_id: str, expires_at: datetime) -> None:
        self.conn.execute(
            "INSERT INTO auth_tokens (token_hash, user_id, created_at, expires_at) "
            "VALUES (?, ?, ?, ?)",
            (token_hash, user_id, _now(), to_iso(expires_at)),
        )

    def get_auth_token(self, token_hash: str) -> dict[str, Any] | None:
        return self._fetchone(
            "SELECT * FROM auth_tokens WHERE token_hash = ?",
            (token_hash,),
        )

    def delete_auth_token(self, token_hash: str) -> int:
        cur = self.conn.execute("DELETE FROM auth_tokens WHERE token_hash = ?", (token_hash,))
        return cur.rowcount

    # --- Maintenance ---

    def get_schema_version(self) -> int:
        try:
            row = self.conn.execute("SELECT MAX(version) AS v FROM schema_version").fetchone()
            return int(row["v"]) if row and row["v"] is not None else 0
        except sqlite3.OperationalError:
            return 0

    def get_stats(self) -> dict[str, int]:
        stats = {}
        for table in ["conversations", "messages", "memories", "tasks"]:
            row = self.conn.execute(f"SELECT COUNT(*) AS c FROM {table}").fetchone()
            stats[table] = int(row["c"]) if row else 0
        return stats


class StoreError(Exception):
    """Raised for store errors."""

    pass


class StoreReadError(StoreError):
    """Raised when a read query fails."""

    pass


def _find_near_duplicate(
    memory_text: str,
    candidates: list[dict[str, Any]],
) -> dict[str, Any] | None:
    new_text = memory_text.strip().lower()
    new_prefix = new_text[:MEMORY_DEDUP_PREFIX]
    for candidate in candidates:
        old_text = candidate["memory_text"].strip().lower()
        old_prefix = old_text[:MEMORY_DEDUP_PREFIX]
        if new_prefix and new_prefix in old_text:
            return candidate
        # Restatements extend the old text; a mere mention elsewhere does not count
        if old_prefix and new_text.startswith(old_prefix):
            return candidate
    return None


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> str:
    return to_iso(utcnow())
