"""
Pytest configuration for the realtime coordinator tests.

Provides an in-memory user table behind an ``AsyncMock`` chat store and fake
connections that record every event sent to them.
"""

from datetime import datetime, timezone
import os
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock
import uuid

from pydantic import SecretStr
import pytest

TEST_SECRET_KEY = "realtime-test-signing-key"

# Settings are validated at import time and reject an empty SECRET_KEY
os.environ.setdefault("SECRET_KEY", TEST_SECRET_KEY)

from owndc_realtime.config import settings  # noqa: E402
from owndc_realtime.managers.chat_store import ChatStore  # noqa: E402
from owndc_realtime.realtime.coordinator import RealtimeCoordinator  # noqa: E402
from owndc_realtime.realtime.schemas import UserSummary  # noqa: E402

USERS: Dict[str, Dict[str, Any]] = {
    "alice": {"id": "alice", "username": "Alice", "avatar": "/avatars/alice.png", "status": "offline"},
    "bob": {"id": "bob", "username": "Bob", "avatar": "/avatars/bob.png", "status": "offline"},
    "carol": {"id": "carol", "username": "Carol", "avatar": "", "status": "offline"},
    "dave": {"id": "dave", "username": "Dave", "avatar": "", "status": "offline"},
    "mallory": {"id": "mallory", "username": "Mallory", "avatar": "", "status": "offline", "is_active": False},
}


class FakeConnection:
    """Stands in for ClientConnection and records what it was sent."""

    def __init__(self, user_id: str, username: Optional[str] = None):
        self.user_id = user_id
        self.username = username
        self.connection_id = uuid.uuid4().hex
        self.closed = False
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self.events: List[Dict[str, Any]] = []

    async def send_event(self, event: str, data: Any = None) -> bool:
        if self.closed:
            return False
        self.events.append({"event": event, "data": data})
        return True

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.close_code = code
        self.close_reason = reason

    def received(self, event: str) -> List[Any]:
        """Payloads of every ``event`` received, in order."""
        return [frame["data"] for frame in self.events if frame["event"] == event]

    def clear(self) -> None:
        self.events.clear()


def _summaries(user_ids):
    return {
        user_id: UserSummary(id=user_id, username=USERS[user_id]["username"], avatar=USERS[user_id]["avatar"])
        for user_id in user_ids
        if user_id in USERS
    }


def _message(**fields):
    sender = USERS.get(fields["sender_id"], {})
    return {
        "id": uuid.uuid4().hex,
        **fields,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "username": sender.get("username"),
        "avatar": sender.get("avatar"),
    }


@pytest.fixture
def mock_store():
    """Chat store backed by the USERS table; inserts echo back a hydrated message."""
    store = AsyncMock(spec=ChatStore)
    store.get_user.side_effect = lambda user_id: USERS.get(user_id)
    store.get_user_summary.side_effect = lambda user_id: _summaries([user_id]).get(user_id)
    store.get_user_summaries.side_effect = lambda user_ids: _summaries(list(user_ids))
    store.set_user_status.return_value = None
    store.insert_channel_message.side_effect = lambda channel_id, sender_id, content: _message(
        channel_id=channel_id, sender_id=sender_id, content=content
    )
    store.insert_direct_message.side_effect = lambda sender_id, receiver_id, content: _message(
        sender_id=sender_id, receiver_id=receiver_id, content=content
    )
    store.insert_group_message.side_effect = lambda group_id, sender_id, content: _message(
        group_id=group_id, sender_id=sender_id, content=content
    )
    return store


@pytest.fixture
def coordinator(mock_store):
    return RealtimeCoordinator(mock_store, close_superseded=True)


@pytest.fixture
def connect(coordinator):
    """Connect a fake client for ``user_id`` and return it."""

    async def _connect(user_id: str) -> FakeConnection:
        connection = FakeConnection(user_id, USERS.get(user_id, {}).get("username"))
        await coordinator.connect(connection)
        return connection

    return _connect


@pytest.fixture
def signing_key(monkeypatch):
    monkeypatch.setattr(settings, "SECRET_KEY", SecretStr(TEST_SECRET_KEY))
    return TEST_SECRET_KEY
