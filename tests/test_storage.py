"""Tests for SQLite conversation persistence."""

import pytest

from advisor.storage import SQLiteConversationStore


@pytest.mark.asyncio
async def test_get_or_create_is_idempotent(conversation_store):
    first = await conversation_store.get_or_create("conv-123")
    second = await conversation_store.get_or_create("conv-123")

    assert first == second
    assert first.guid == "conv-123"


@pytest.mark.asyncio
async def test_messages_listed_in_insertion_order(conversation_store):
    await conversation_store.append_message("conv-123", "user", "Hi")
    await conversation_store.append_message("conv-123", "assistant", "Hello!")
    await conversation_store.append_message("conv-123", "user", "Tell me about drones")

    messages = await conversation_store.list_messages("conv-123")

    assert [(m.role, m.content) for m in messages] == [
        ("user", "Hi"),
        ("assistant", "Hello!"),
        ("user", "Tell me about drones"),
    ]
    assert all(m.conversation_id == "conv-123" for m in messages)


@pytest.mark.asyncio
async def test_append_creates_conversation(conversation_store):
    stored = await conversation_store.append_message("new-conv", "user", "Hi")

    record = await conversation_store.get_or_create("new-conv")

    assert stored.timestamp
    assert record.created_at <= stored.timestamp


@pytest.mark.asyncio
async def test_append_rejects_unknown_role(conversation_store):
    with pytest.raises(ValueError, match="Unsupported message role"):
        await conversation_store.append_message("conv-123", "tool", "{}")

    assert await conversation_store.list_messages("conv-123") == []


@pytest.mark.asyncio
async def test_conversations_are_isolated(conversation_store):
    await conversation_store.append_message("a", "user", "first")
    await conversation_store.append_message("b", "user", "second")

    assert [m.content for m in await conversation_store.list_messages("a")] == ["first"]


@pytest.mark.asyncio
async def test_messages_persist_across_instances(tmp_path):
    db_path = tmp_path / "nested" / "conversations.db"
    await SQLiteConversationStore(db_path).append_message("conv-123", "user", "Hi")

    messages = await SQLiteConversationStore(db_path).list_messages("conv-123")

    assert [m.content for m in messages] == ["Hi"]
