"""Tests for the session store."""

import asyncio

import pytest

from scadcollab_api.core import MessageChannel, SessionStore
from scadcollab_api.errors import NotFound, StoreUnavailable
from scadcollab_api.models import ChatMessage, MessageRole


@pytest.mark.asyncio
class TestSessionCrud:
    """Test create/get/update/delete."""

    async def test_create_session_is_empty_and_private(self, store):
        session_id = await store.create("user-1", "Bracket")
        session = await store.get(session_id)

        assert session.id == session_id
        assert session.owner_id == "user-1"
        assert session.title == "Bracket"
        assert session.messages == []
        assert session.model_code == ""
        assert session.is_shared is False
        assert session.collaborators == []
        assert session.created_at == session.updated_at

    async def test_create_fails_when_store_unreachable(self, store, backend):
        backend.available = False

        with pytest.raises(StoreUnavailable):
            await store.create("user-1", "Bracket")

    async def test_get_missing_returns_none(self, store):
        assert await store.get("missing") is None

    async def test_update_merges_only_given_fields(self, store):
        session_id = await store.create("user-1", "Bracket")
        before = await store.get(session_id)

        await store.update(session_id, model_code="cube(1);")
        session = await store.get(session_id)

        assert session.model_code == "cube(1);"
        assert session.title == "Bracket"
        assert session.updated_at > before.updated_at
        assert session.created_at == before.created_at

    async def test_update_with_messages_replaces_list(self, store):
        session_id = await store.create("user-1", "Bracket")
        messages = [
            ChatMessage(role=MessageRole.USER, content="make a cube"),
            ChatMessage(role=MessageRole.ASSISTANT, content="cube(10);"),
        ]

        await store.update(session_id, messages=messages, title="Cube")
        session = await store.get(session_id)

        assert [m.content for m in session.messages] == ["make a cube", "cube(10);"]
        assert session.title == "Cube"

    async def test_update_missing_raises_not_found(self, store):
        with pytest.raises(NotFound):
            await store.update("missing", title="x")

    async def test_delete_removes_session_and_comments(self, store, backend):
        channel = MessageChannel(backend)
        session_id = await store.create("user-1", "Bracket")
        await channel.post(session_id, "user-1", "Ann", "hello")

        assert await store.delete(session_id) is True

        assert await store.get(session_id) is None
        assert await channel.list(session_id) == []
        assert await store.delete(session_id) is False
        channel.close()

    async def test_list_for_owner_newest_first(self, store):
        first = await store.create("user-1", "First")
        second = await store.create("user-1", "Second")
        await store.create("user-2", "Other")
        await store.update(first, title="First, edited")

        sessions = await store.list_for_owner("user-1")

        assert [s.id for s in sessions] == [first, second]

    async def test_set_sharing(self, store):
        session_id = await store.create("user-1", "Bracket")

        session = await store.set_sharing(session_id, True)

        assert session.is_shared is True


@pytest.mark.asyncio
class TestAppendMessage:
    """Test transcript appends."""

    async def test_append_message_keeps_order_and_store_timestamp(self, store, clock):
        session_id = await store.create("user-1", "Bracket")

        await store.append_message(session_id, MessageRole.USER, "make a gear")
        session = await store.append_message(
            session_id, MessageRole.ASSISTANT, "gear();", model_code="gear();"
        )

        assert [m.role for m in session.messages] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert session.messages[1].timestamp == clock.now
        assert session.messages[0].timestamp < session.messages[1].timestamp
        assert session.model_code == "gear();"

    async def test_concurrent_appends_lose_an_update(self, store):
        session_id = await store.create("user-1", "Bracket")

        await asyncio.gather(
            store.append_message(session_id, MessageRole.USER, "from tab A"),
            store.append_message(session_id, MessageRole.USER, "from tab B"),
        )
        session = await store.get(session_id)

        assert len(session.messages) == 1

    async def test_concurrent_appends_kept_with_optimistic_concurrency(self, backend):
        store = SessionStore(backend, optimistic_concurrency=True)
        session_id = await store.create("user-1", "Bracket")

        await asyncio.gather(
            store.append_message(session_id, MessageRole.USER, "from tab A"),
            store.append_message(session_id, MessageRole.USER, "from tab B"),
        )
        session = await store.get(session_id)

        assert sorted(m.content for m in session.messages) == ["from tab A", "from tab B"]
        store.close()

    async def test_append_to_missing_session_raises(self, store):
        with pytest.raises(NotFound):
            await store.append_message("missing", MessageRole.USER, "hi")


@pytest.mark.asyncio
class TestSubscribe:
    """Test push subscriptions."""

    async def test_subscribe_delivers_snapshot_then_changes(self, store):
        session_id = await store.create("user-1", "Bracket")
        received = []

        await store.subscribe(session_id, received.append)
        await store.update(session_id, title="Renamed")

        assert len(received) == 2
        assert received[0].title == "Bracket"
        assert received[1].title == "Renamed"

    async def test_subscribe_to_missing_session_delivers_none(self, store):
        received = []

        await store.subscribe("missing", received.append)

        assert received == [None]

    async def test_own_writes_are_delivered(self, store):
        session_id = await store.create("user-1", "Bracket")
        received = []
        await store.subscribe(session_id, received.append)

        await store.append_message(session_id, MessageRole.USER, "hi")

        assert received[-1].messages[-1].content == "hi"

    async def test_no_delivery_after_unsubscribe(self, store):
        session_id = await store.create("user-1", "Bracket")
        received = []
        subscription = await store.subscribe(session_id, received.append)

        subscription.unsubscribe()
        await store.update(session_id, title="Renamed")

        assert len(received) == 1

    async def test_delete_delivers_final_none(self, store):
        session_id = await store.create("user-1", "Bracket")
        received = []
        await store.subscribe(session_id, received.append)

        await store.delete(session_id)

        assert received[-1] is None

    async def test_async_listener(self, store):
        session_id = await store.create("user-1", "Bracket")
        received = []

        async def on_change(session):
            received.append(session)

        await store.subscribe(session_id, on_change)

        assert received[0].id == session_id

    async def test_other_sessions_not_delivered(self, store):
        first = await store.create("user-1", "First")
        second = await store.create("user-1", "Second")
        received = []
        await store.subscribe(first, received.append)

        await store.update(second, title="Other")

        assert len(received) == 1
