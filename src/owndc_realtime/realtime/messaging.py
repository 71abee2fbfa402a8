"""
Messaging Fan-out

Topic subscriptions for text chat (``channel:<id>`` and ``group:<id>``) and
the persist-then-publish flow for channel, group and direct messages.

A message is published only after storage accepted it. When the insert fails
the :class:`MessagePersistenceError` propagates to the caller and nobody sees
the message.
"""

import asyncio
from typing import Any, Dict, Optional, Set

from owndc_realtime.managers.chat_store import ChatStore
from owndc_realtime.managers.logging_manager import get_logger
from owndc_realtime.realtime.connection import ClientConnection
from owndc_realtime.realtime.connection_registry import ConnectionRegistry
from owndc_realtime.realtime.schemas import ServerEvent, TypingPayload

logger = get_logger(prefix="[Realtime-Messaging]")


def channel_topic(channel_id: str) -> str:
    return f"channel:{channel_id}"


def group_topic(group_id: str) -> str:
    return f"group:{group_id}"


class MessagingFanout:
    """Per-connection topic subscriptions plus message publication."""

    def __init__(self, registry: ConnectionRegistry, store: ChatStore):
        self.registry = registry
        self.store = store
        self._topics: Dict[str, Set[ClientConnection]] = {}
        self._lock = asyncio.Lock()

    def subscribers(self, topic: str) -> Set[ClientConnection]:
        return set(self._topics.get(topic, ()))

    def topics_of(self, connection: ClientConnection) -> Set[str]:
        return {topic for topic, members in self._topics.items() if connection in members}

    async def join_topic(self, connection: ClientConnection, topic: str) -> None:
        async with self._lock:
            self._topics.setdefault(topic, set()).add(connection)
        logger.debug(f"{connection.user_id} subscribed to {topic}", extra={"user_id": connection.user_id, "topic": topic})

    async def leave_topic(self, connection: ClientConnection, topic: str) -> None:
        async with self._lock:
            members = self._topics.get(topic)
            if members is None:
                return
            members.discard(connection)
            if not members:
                del self._topics[topic]
        logger.debug(f"{connection.user_id} unsubscribed from {topic}", extra={"user_id": connection.user_id, "topic": topic})

    async def drop_connection(self, connection: ClientConnection) -> int:
        """Remove every subscription held by ``connection``. Returns how many were removed."""
        removed = 0
        async with self._lock:
            for topic in list(self._topics):
                members = self._topics[topic]
                if connection in members:
                    members.discard(connection)
                    removed += 1
                    if not members:
                        del self._topics[topic]
        return removed

    async def publish(
        self, topic: str, event: str, data: Any = None, exclude: Optional[ClientConnection] = None
    ) -> int:
        """Deliver to every subscriber of ``topic``. Returns the number of successful sends."""
        sent = 0
        for connection in self.subscribers(topic):
            if connection is exclude:
                continue
            if await connection.send_event(event, data):
                sent += 1
        return sent

    async def send_channel_message(self, sender: ClientConnection, channel_id: str, content: str) -> Dict[str, Any]:
        message = await self.store.insert_channel_message(channel_id, sender.user_id, content)
        sent = await self.publish(channel_topic(channel_id), ServerEvent.NEW_MESSAGE.value, message)
        logger.info(
            f"Message {message['id']} in channel {channel_id} delivered to {sent} subscribers",
            extra={"channel_id": channel_id, "sender_id": sender.user_id, "message_id": message["id"]},
        )
        return message

    async def send_group_message(self, sender: ClientConnection, group_id: str, content: str) -> Dict[str, Any]:
        message = await self.store.insert_group_message(group_id, sender.user_id, content)
        sent = await self.publish(group_topic(group_id), ServerEvent.NEW_GROUP_MESSAGE.value, message)
        logger.info(
            f"Message {message['id']} in group {group_id} delivered to {sent} subscribers",
            extra={"group_id": group_id, "sender_id": sender.user_id, "message_id": message["id"]},
        )
        return message

    async def send_direct_message(self, sender: ClientConnection, receiver_id: str, content: str) -> Dict[str, Any]:
        """Persist a DM and deliver it to the receiver (if online) and back to the sender."""
        message = await self.store.insert_direct_message(sender.user_id, receiver_id, content)

        if receiver_id != sender.user_id:
            if not await self.registry.send_to(receiver_id, ServerEvent.NEW_DM.value, message):
                logger.debug(f"Receiver {receiver_id} not online", extra={"receiver_id": receiver_id})
        await sender.send_event(ServerEvent.NEW_DM.value, message)
        return message

    async def send_typing(self, sender: ClientConnection, channel_id: str) -> int:
        """Tell the other subscribers of a channel that ``sender`` is typing."""
        username = sender.username
        if username is None:
            summary = await self.store.get_user_summary(sender.user_id)
            username = summary.username if summary else sender.user_id
        payload = TypingPayload(username=username, channel_id=channel_id).to_wire()
        return await self.publish(channel_topic(channel_id), ServerEvent.USER_TYPING.value, payload, exclude=sender)

    async def clear(self) -> None:
        async with self._lock:
            self._topics.clear()
