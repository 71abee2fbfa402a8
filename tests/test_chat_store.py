"""
Chat Store Tests

Runs the MongoDB-backed store against mocked motor collections.
"""

from unittest.mock import AsyncMock, MagicMock

from pymongo.errors import AutoReconnect
import pytest

from owndc_realtime.database import CHANNEL_MESSAGES_COLLECTION, DIRECT_MESSAGES_COLLECTION, USERS_COLLECTION
from owndc_realtime.managers.chat_store import STATUS_ONLINE, ChatStore
from owndc_realtime.realtime.errors import MessagePersistenceError

ALICE = {"id": "alice", "username": "Alice", "avatar": "/avatars/alice.png", "status": "offline"}


@pytest.fixture
def collections():
    users = MagicMock()
    users.find_one = AsyncMock(return_value=ALICE)
    users.update_one = AsyncMock()
    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=[ALICE])
    users.find = MagicMock(return_value=cursor)

    messages = MagicMock()
    messages.insert_one = AsyncMock()
    direct = MagicMock()
    direct.insert_one = AsyncMock()

    return {USERS_COLLECTION: users, CHANNEL_MESSAGES_COLLECTION: messages, DIRECT_MESSAGES_COLLECTION: direct}


@pytest.fixture
def store(collections):
    db = MagicMock()
    db.get_collection.side_effect = lambda name: collections[name]
    return ChatStore(db)


class TestUsers:
    @pytest.mark.asyncio
    async def test_get_user_summary(self, store, collections):
        summary = await store.get_user_summary("alice")

        assert summary.model_dump() == {"id": "alice", "username": "Alice", "avatar": "/avatars/alice.png"}
        assert collections[USERS_COLLECTION].find_one.await_args.args[0] == {"id": "alice"}

    @pytest.mark.asyncio
    async def test_get_user_summary_unknown(self, store, collections):
        collections[USERS_COLLECTION].find_one.return_value = None
        assert await store.get_user_summary("nobody") is None

    @pytest.mark.asyncio
    async def test_get_user_summaries_single_query(self, store, collections):
        summaries = await store.get_user_summaries(["alice", "ghost", "alice"])

        assert list(summaries) == ["alice"]
        collections[USERS_COLLECTION].find.assert_called_once()
        assert collections[USERS_COLLECTION].find.call_args.args[0] == {"id": {"$in": ["alice", "ghost"]}}

    @pytest.mark.asyncio
    async def test_get_user_summaries_empty(self, store, collections):
        assert await store.get_user_summaries([]) == {}
        collections[USERS_COLLECTION].find.assert_not_called()

    @pytest.mark.asyncio
    async def test_set_user_status(self, store, collections):
        await store.set_user_status("alice", STATUS_ONLINE)
        collections[USERS_COLLECTION].update_one.assert_awaited_once_with(
            {"id": "alice"}, {"$set": {"status": "online"}}
        )


class TestMessages:
    @pytest.mark.asyncio
    async def test_insert_channel_message_is_hydrated(self, store, collections):
        message = await store.insert_channel_message("general", "alice", "hello")

        stored = collections[CHANNEL_MESSAGES_COLLECTION].insert_one.await_args.args[0]
        assert stored["channel_id"] == "general" and stored["content"] == "hello"
        assert message["id"] == stored["id"]
        assert message["username"] == "Alice"
        assert message["avatar"] == "/avatars/alice.png"
        assert "_id" not in message

    @pytest.mark.asyncio
    async def test_insert_failure_raises_persistence_error(self, store, collections):
        collections[DIRECT_MESSAGES_COLLECTION].insert_one.side_effect = AutoReconnect("connection reset")

        with pytest.raises(MessagePersistenceError) as exc_info:
            await store.insert_direct_message("alice", "bob", "hi")

        assert exc_info.value.details["kind"] == "direct"


class TestConstruction:
    def test_no_shared_module_instance(self):
        """The store is always built around the application's database manager."""
        from owndc_realtime.managers import chat_store as chat_store_module

        assert not hasattr(chat_store_module, "chat_store")
