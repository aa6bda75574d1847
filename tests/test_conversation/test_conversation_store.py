import pytest

from chatline.conversation import (
    DEFAULT_TITLE,
    Conversation,
    ConversationStore,
    Role,
)
from chatline.exceptions import ConversationError, ConversationNotFoundError


def test_start_puts_user_message_first():
    conversation = Conversation.start("hello")

    assert conversation.title == DEFAULT_TITLE
    assert len(conversation.messages) == 1
    assert conversation.messages[0].role == Role.USER
    assert conversation.messages[0].content == "hello"


def test_conversation_dict_round_trip_keeps_message_order():
    conversation = Conversation.start("one", title="Counting")
    conversation.add_message(Role.ASSISTANT, "two")
    conversation.add_message(Role.USER, "three")

    restored = Conversation.from_dict(conversation.to_dict())

    assert restored.id == conversation.id
    assert restored.title == "Counting"
    assert [m.content for m in restored.messages] == ["one", "two", "three"]
    assert [m.role for m in restored.messages] == [Role.USER, Role.ASSISTANT, Role.USER]


def test_summary_dict_has_no_messages():
    assert "messages" not in Conversation.start("hi").to_dict(include_messages=False)


@pytest.mark.asyncio
async def test_store_uses_db_path_override(tmp_path):
    db_path = tmp_path / "custom-conversations.db"
    store = ConversationStore(db_path=db_path)
    try:
        await store.create(Conversation.start("hello"))
        assert db_path.exists()
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_create_update_describe_round_trip(tmp_path):
    store = ConversationStore(db_path=tmp_path / "conversations.db")
    try:
        conversation = Conversation.start("What is the weather like in Barcelona?")
        await store.create(conversation)

        conversation.add_message(Role.ASSISTANT, "It's sunny!")
        conversation.title = "Weather in Barcelona"
        await store.update(conversation)

        loaded = await store.describe(conversation.id)
        assert loaded is not None
        assert loaded.title == "Weather in Barcelona"
        assert [m.role for m in loaded.messages] == [Role.USER, Role.ASSISTANT]
        assert loaded.messages[0].id == conversation.messages[0].id
        assert loaded.updated_at == conversation.updated_at
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_describe_missing_returns_none(tmp_path):
    store = ConversationStore(db_path=tmp_path / "conversations.db")
    try:
        assert await store.describe("nope") is None
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_update_of_unknown_conversation_raises(tmp_path):
    store = ConversationStore(db_path=tmp_path / "conversations.db")
    try:
        with pytest.raises(ConversationNotFoundError):
            await store.update(Conversation.start("never created"))
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_duplicate_create_raises(tmp_path):
    store = ConversationStore(db_path=tmp_path / "conversations.db")
    try:
        conversation = Conversation.start("hello")
        await store.create(conversation)
        with pytest.raises(ConversationError):
            await store.create(conversation)
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_list_orders_newest_first(tmp_path):
    store = ConversationStore(db_path=tmp_path / "conversations.db")
    try:
        older = Conversation.start("first")
        older.created_at = "2024-01-01T00:00:00+00:00"
        newer = Conversation.start("second")
        newer.created_at = "2024-06-01T00:00:00+00:00"
        await store.create(older)
        await store.create(newer)

        listed = await store.list()
        assert [c.id for c in listed] == [newer.id, older.id]
        assert [c.id for c in await store.list(limit=1)] == [newer.id]
    finally:
        await store.close()
