"""Tests for context assembly and prompt rendering."""

from datetime import timedelta

from companion.agent.context_builder import ContextBuilder
from companion.agent.temporal import GapBucket
from companion.agent.turn import TurnContext, TurnRequest
from companion.storage.store import StoreReadError
from companion.utils.timestamps import utcnow


def _turn(conversation_id, message="How's it going?", last_message_at=None, user_id="user1"):
    return TurnContext(
        user_id=user_id,
        request=TurnRequest(
            message=message,
            conversation_id=conversation_id,
            last_message_at=last_message_at,
        ),
    )


class TestAssemble:
    def test_empty_conversation(self, config, store, conversation):
        builder = ContextBuilder(config)
        ctx = builder.assemble(store, _turn(conversation["id"]))
        assert ctx.history == []
        assert ctx.memories == []
        assert ctx.temporal.bucket is GapBucket.NONE
        assert ctx.degraded == []

    def test_history_limited_and_ordered(self, config, store, conversation):
        config.context.history_limit = 3
        for i in range(6):
            store.append_message(conversation["id"], "user1", "user", f"msg {i}")
        ctx = ContextBuilder(config).assemble(store, _turn(conversation["id"]))
        assert [m["content"] for m in ctx.history] == ["msg 3", "msg 4", "msg 5"]

    def test_echoed_message_removed(self, config, store, conversation):
        now = utcnow()
        cid = conversation["id"]
        store.append_message(cid, "user1", "user", "Earlier thought", created_at=now - timedelta(hours=5))
        store.append_message(cid, "user1", "user", "How's it going?", created_at=now)

        ctx = ContextBuilder(config).assemble(store, _turn(cid), now=now)
        assert [m["content"] for m in ctx.history] == ["Earlier thought"]
        # gap is measured from the message before the echoed one
        assert ctx.temporal.bucket is GapBucket.HOURS

    def test_request_timestamp_wins(self, config, store, conversation):
        now = utcnow()
        store.append_message(conversation["id"], "user1", "user", "hi", created_at=now)
        turn = _turn(conversation["id"], last_message_at=now - timedelta(days=10))
        ctx = ContextBuilder(config).assemble(store, turn, now=now)
        assert ctx.temporal.bucket is GapBucket.WEEKS

    def test_falls_back_to_conversation_timestamp(self, config, store, conversation):
        now = utcnow()
        store.append_message(conversation["id"], "user1", "assistant", "bye", created_at=now - timedelta(days=2))
        ctx = ContextBuilder(config).assemble(store, _turn(conversation["id"]), now=now)
        assert ctx.temporal.bucket is GapBucket.DAYS

    def test_other_users_data_invisible(self, config, store, conversation):
        store.append_message(conversation["id"], "user1", "user", "secret")
        store.save_memory("user1", "identity", "Is a pilot", 9)
        ctx = ContextBuilder(config).assemble(store, _turn(conversation["id"], user_id="user2"))
        assert ctx.history == []
        assert ctx.memories == []

    def test_task_signals(self, config, store, conversation):
        now = utcnow()
        for i in range(7):
            store.create_task(
                "user1", conversation["id"], f"late {i}", 5, 0.9, due_date=now - timedelta(days=1)
            )
        store.create_task("user1", conversation["id"], "soon", 5, 0.9, due_date=now + timedelta(hours=3))
        ctx = ContextBuilder(config).assemble(store, _turn(conversation["id"]), now=now)
        assert len(ctx.overdue_tasks) == 5
        assert [t["task_name"] for t in ctx.upcoming_tasks] == ["soon"]

    def test_failed_read_degrades(self, config, store, conversation, monkeypatch):
        store.append_message(conversation["id"], "user1", "user", "hi")

        def broken(*args, **kwargs):
            raise StoreReadError("disk I/O error")

        monkeypatch.setattr(store, "list_memories", broken)
        ctx = ContextBuilder(config).assemble(store, _turn(conversation["id"]))
        assert ctx.memories == []
        assert ctx.degraded == ["memories"]
        assert len(ctx.history) == 1


class TestBuildMessages:
    def test_layout(self, config, store, conversation):
        now = utcnow()
        cid = conversation["id"]
        store.append_message(cid, "user1", "user", "Hi Jessica")
        store.append_message(cid, "user1", "assistant", "Hey you!")
        store.save_memory("user1", "preferences", "Prefers short answers", 8)
        store.create_task("user1", cid, "Call the dentist", 6, 0.8, due_date=now + timedelta(hours=2))

        builder = ContextBuilder(config)
        ctx = builder.assemble(store, _turn(cid, last_message_at=now - timedelta(days=3)), now=now)
        messages = builder.build_messages(ctx, "What's up?")

        assert messages[0]["role"] == "system"
        system = messages[0]["content"]
        assert "Jessica" in system
        assert "Prefers short answers" in system
        assert "Call the dentist" in system
        assert "3 days" in system
        assert messages[1:] == [
            {"role": "user", "content": "Hi Jessica"},
            {"role": "assistant", "content": "Hey you!"},
            {"role": "user", "content": "What's up?"},
        ]

    def test_no_continuity_note_for_short_gap(self, config, store, conversation):
        now = utcnow()
        builder = ContextBuilder(config)
        ctx = builder.assemble(
            store, _turn(conversation["id"], last_message_at=now - timedelta(minutes=10)), now=now
        )
        system = builder.build_messages(ctx, "hey")[0]["content"]
        assert "Conversation continuity" not in system
