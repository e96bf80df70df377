"""Tests for the in-memory conversation store."""

import pytest

from src.errors import NotFoundError
from src.orchestrator.models.conversation import ConversationStatus, Message, MessageRole
from src.services.conversation_store import ConversationStore


class TestConversationStore:
    """Tests for ConversationStore."""

    def test_create_with_defaults(self):
        """New conversations are active with the default context."""
        store = ConversationStore()

        conversation = store.create("ws-1", "user-1")

        assert conversation.status is ConversationStatus.ACTIVE
        assert conversation.context.preferred_provider == "digitalocean"
        assert conversation.context.preferred_regions == ["nyc3"]
        assert conversation.context.cost_limits.daily_limit == 100
        assert store.get(conversation.id) is conversation
        assert len(store) == 1

    def test_require_unknown(self):
        """require raises NotFoundError for unknown IDs."""
        store = ConversationStore()

        assert store.get("missing") is None
        with pytest.raises(NotFoundError):
            store.require("missing")
        with pytest.raises(NotFoundError):
            store.lock("missing")

    def test_list_filters_and_orders(self):
        """Listing filters by workspace and user, most recent activity first."""
        store = ConversationStore()
        older = store.create("ws-1", "user-1")
        newer = store.create("ws-1", "user-2")
        store.create("ws-2", "user-1")
        newer.append(Message(conversation_id=newer.id, role=MessageRole.USER, content="hi"))

        assert [c.id for c in store.list_conversations(workspace_id="ws-1")] == [newer.id, older.id]
        assert [c.id for c in store.list_conversations(workspace_id="ws-1", user_id="user-1")] == [older.id]
        assert len(store.list_conversations()) == 3

    def test_lock_is_per_conversation(self):
        """Each conversation gets its own stable lock."""
        store = ConversationStore()
        first = store.create("ws-1", "user-1")
        second = store.create("ws-1", "user-1")

        assert store.lock(first.id) is store.lock(first.id)
        assert store.lock(first.id) is not store.lock(second.id)

    def test_clear(self):
        """clear drops everything."""
        store = ConversationStore()
        store.create("ws-1", "user-1")

        store.clear()

        assert len(store) == 0

    def test_summary_and_recent(self):
        """summary reports counts; recent returns the trailing window."""
        store = ConversationStore()
        conversation = store.create("ws-1", "user-1")
        for index in range(4):
            conversation.append(Message(
                conversation_id=conversation.id, role=MessageRole.USER, content=f"m{index}"
            ))
        conversation.active_workflows.update({"b", "a"})

        summary = conversation.summary()

        assert summary["message_count"] == 4
        assert summary["active_workflows"] == ["a", "b"]
        assert [m.content for m in conversation.recent(2)] == ["m2", "m3"]
        assert conversation.recent(0) == []
