"""Tests for the user-scoped SQLite store."""

from datetime import timedelta

import pytest

from companion.storage.store import Store, StoreError
from companion.utils.timestamps import parse_timestamp, utcnow


class TestStoreLifecycle:
    def test_open_and_close(self, db_path):
        store = Store(db_path=db_path)
        store.open()
        assert store.conn is not None
        assert store.get_schema_version() == 1
        store.close()

    def test_not_opened_raises(self, db_path):
        store = Store(db_path=db_path)
        with pytest.raises(StoreError, match="not opened"):
            _ = store.conn

    def test_open_failure_raises_store_error(self, tmp_dir):
        store = Store(db_path=tmp_dir)
        with pytest.raises(StoreError, match="Cannot open database"):
            store.open()

    def test_stats(self, store, conversation):
        store.append_message(conversation["id"], "user1", "user", "Hello")
        stats = store.get_stats()
        assert stats["conversations"] == 1
        assert stats["messages"] == 1
        assert stats["memories"] == 0


class TestConversations:
    def test_default_title(self, store):
        conv = store.create_conversation("user1")
        assert conv["title"] == "New Chat"
        assert conv["last_message_at"] is None

    def test_scoped_to_user(self, store, conversation):
        assert store.get_conversation(conversation["id"], "user1") is not None
        assert store.get_conversation(conversation["id"], "user2") is None

    def test_rename(self, store, conversation):
        assert store.update_conversation_title(conversation["id"], "user1", "Launch plans") == 1
        assert store.get_conversation(conversation["id"], "user1")["title"] == "Launch plans"

    def test_rename_foreign_is_noop(self, store, conversation):
        assert store.update_conversation_title(conversation["id"], "user2", "Hijacked") == 0
        assert store.get_conversation(conversation["id"], "user1")["title"] == "New Chat"


class TestMessages:
    def test_recent_messages_oldest_first(self, store, conversation):
        cid = conversation["id"]
        for i in range(5):
            store.append_message(cid, "user1", "user", f"msg {i}")
        recent = store.get_recent_messages(cid, "user1", limit=3)
        assert [m["content"] for m in recent] == ["msg 2", "msg 3", "msg 4"]

    def test_foreign_conversation_rejected(self, store, conversation):
        with pytest.raises(StoreError):
            store.append_message(conversation["id"], "user2", "user", "hi")
        assert store.get_recent_messages(conversation["id"], "user2") == []

    def test_last_message_at_only_moves_forward(self, store, conversation):
        cid = conversation["id"]
        now = utcnow()
        store.append_message(cid, "user1", "user", "later", created_at=now)
        store.append_message(cid, "user1", "user", "earlier", created_at=now - timedelta(hours=2))
        conv = store.get_conversation(cid, "user1")
        assert parse_timestamp(conv["last_message_at"]) == now


class TestMemories:
    def test_insert(self, store):
        row, merged = store.save_memory("user1", "preferences", "Likes green tea", 5)
        assert merged is False
        assert store.list_memories("user1")[0]["id"] == row["id"]

    def test_near_duplicate_merges(self, store):
        store.save_memory("user1", "preferences", "X likes dark mode", 5)
        row, merged = store.save_memory("user1", "preferences", "X likes dark mode UI a lot", 7)

        memories = store.list_memories("user1", category="preferences")
        assert merged is True
        assert len(memories) == 1
        assert memories[0]["id"] == row["id"]
        assert memories[0]["memory_text"] == "X likes dark mode UI a lot"
        assert memories[0]["importance"] == 7

    def test_mention_of_short_memory_does_not_merge(self, store):
        store.save_memory("user1", "identity", "Autistic", 8)
        _, merged = store.save_memory("user1", "identity", "Thinks their son may be autistic", 6)

        texts = sorted(m["memory_text"] for m in store.list_memories("user1"))
        assert merged is False
        assert texts == ["Autistic", "Thinks their son may be autistic"]

    def test_dedup_is_case_insensitive(self, store):
        store.save_memory("user1", "goals", "Wants to run a marathon this year", 8)
        _, merged = store.save_memory("user1", "goals", "WANTS TO RUN A MARATHON in spring", 8)
        assert merged is True
        assert len(store.list_memories("user1")) == 1

    def test_other_category_not_merged(self, store):
        store.save_memory("user1", "preferences", "X likes dark mode", 5)
        _, merged = store.save_memory("user1", "interests", "X likes dark mode", 5)
        assert merged is False
        assert len(store.list_memories("user1")) == 2

    def test_other_user_not_merged(self, store):
        store.save_memory("user1", "preferences", "Likes dark mode", 5)
        _, merged = store.save_memory("user2", "preferences", "Likes dark mode", 5)
        assert merged is False
        assert len(store.list_memories("user1")) == 1
        assert len(store.list_memories("user2")) == 1


class TestTasks:
    def _task(self, store, conversation, **kwargs):
        defaults = {
            "user_id": "user1",
            "conversation_id": conversation["id"],
            "task_name": "Write report",
            "priority": 5,
            "confidence_score": 0.9,
        }
        defaults.update(kwargs)
        return store.create_task(**defaults)

    def test_create_pending(self, store, conversation):
        task = self._task(store, conversation)
        stored = store.get_task(task["id"], "user1")
        assert stored["status"] == "pending"
        assert stored["completed_at"] is None

    def test_completed_stamps_completed_at(self, store, conversation):
        task = self._task(store, conversation)
        assert store.update_task_status(task["id"], "user1", "completed") == 1
        assert store.get_task(task["id"], "user1")["completed_at"] is not None

    def test_reopen_clears_completed_at(self, store, conversation):
        task = self._task(store, conversation)
        store.update_task_status(task["id"], "user1", "completed")
        store.update_task_status(task["id"], "user1", "pending")
        stored = store.get_task(task["id"], "user1")
        assert stored["status"] == "pending"
        assert stored["completed_at"] is None

    def test_recomplete_keeps_first_stamp(self, store, conversation):
        task = self._task(store, conversation)
        store.update_task_status(task["id"], "user1", "completed")
        first = store.get_task(task["id"], "user1")["completed_at"]
        store.update_task_status(task["id"], "user1", "completed", notes="again")
        stored = store.get_task(task["id"], "user1")
        assert stored["completed_at"] == first
        assert stored["notes"] == "again"

    def test_foreign_task_update_affects_nothing(self, store, conversation):
        task = self._task(store, conversation)
        assert store.update_task_status(task["id"], "intruder", "completed") == 0
        assert store.get_task(task["id"], "user1")["status"] == "pending"

    def test_overdue_and_upcoming(self, store, conversation):
        now = utcnow()
        self._task(store, conversation, task_name="late", due_date=now - timedelta(days=1))
        self._task(store, conversation, task_name="soon", due_date=now + timedelta(hours=5))
        self._task(store, conversation, task_name="later", due_date=now + timedelta(days=5))
        self._task(store, conversation, task_name="undated")

        overdue = store.get_overdue_tasks("user1", now=now)
        upcoming = store.get_upcoming_tasks("user1", now=now, window_hours=48)
        assert [t["task_name"] for t in overdue] == ["late"]
        assert [t["task_name"] for t in upcoming] == ["soon"]

    def test_completed_tasks_not_surfaced(self, store, conversation):
        now = utcnow()
        task = self._task(store, conversation, due_date=now - timedelta(days=1))
        store.update_task_status(task["id"], "user1", "completed")
        assert store.get_overdue_tasks("user1", now=now) == []

    def test_overdue_capped_and_prioritized(self, store, conversation):
        now = utcnow()
        for priority in range(1, 9):
            self._task(
                store,
                conversation,
                task_name=f"p{priority}",
                priority=priority,
                due_date=now - timedelta(hours=priority),
            )
        overdue = store.get_overdue_tasks("user1", now=now, limit=5)
        assert [t["priority"] for t in overdue] == [8, 7, 6, 5, 4]
