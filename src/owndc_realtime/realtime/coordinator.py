"""
Realtime Coordinator

Owns the registry, the voice room tracker, the signaling relay and the
messaging fan-out for one process, and maps connection lifecycle and inbound
client events onto them. One instance is created in the application lifespan
and stored on ``app.state.realtime``.
"""

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError
from pymongo.errors import PyMongoError

from owndc_realtime.config import settings
from owndc_realtime.managers.chat_store import STATUS_OFFLINE, STATUS_ONLINE, ChatStore
from owndc_realtime.managers.logging_manager import get_logger
from owndc_realtime.realtime.connection import ClientConnection
from owndc_realtime.realtime.connection_registry import ConnectionRegistry
from owndc_realtime.realtime.errors import (
    InvalidPayloadError,
    RealtimeError,
    RealtimeErrorCode,
    UnknownEventError,
)
from owndc_realtime.realtime.messaging import MessagingFanout, channel_topic, group_topic
from owndc_realtime.realtime.schemas import (
    ChannelRef,
    ClientEvent,
    GroupRef,
    SendDirectMessagePayload,
    SendGroupMessagePayload,
    SendMessagePayload,
    ServerEvent,
    VoiceRoomRef,
    normalize_payload,
)
from owndc_realtime.realtime.signaling import SignalingRelay
from owndc_realtime.realtime.voice_rooms import VoiceRoomTracker
from owndc_realtime.utils.logging_utils import log_error_with_context

logger = get_logger(prefix="[Realtime-Coordinator]")

# Application-defined close code sent to a connection replaced by a reconnect
WS_SUPERSEDED = 4000
WS_GOING_AWAY = 1001

EventHandler = Callable[[ClientConnection, Any], Awaitable[None]]


class RealtimeCoordinator:
    """Entry point for everything that happens on a realtime connection."""

    def __init__(self, store: ChatStore, close_superseded: Optional[bool] = None):
        self.store = store
        self.close_superseded = (
            settings.REALTIME_CLOSE_SUPERSEDED_CONNECTIONS if close_superseded is None else close_superseded
        )
        self.registry = ConnectionRegistry()
        self.voice = VoiceRoomTracker(self.registry, store)
        self.signaling = SignalingRelay(self.registry, store)
        self.messaging = MessagingFanout(self.registry, store)

        self._handlers: Dict[str, EventHandler] = {
            ClientEvent.JOIN_CHANNEL.value: self._on_join_channel,
            ClientEvent.LEAVE_CHANNEL.value: self._on_leave_channel,
            ClientEvent.SEND_MESSAGE.value: self._on_send_message,
            ClientEvent.TYPING.value: self._on_typing,
            ClientEvent.SEND_DM.value: self._on_send_dm,
            ClientEvent.JOIN_GROUP.value: self._on_join_group,
            ClientEvent.LEAVE_GROUP.value: self._on_leave_group,
            ClientEvent.SEND_GROUP_MESSAGE.value: self._on_send_group_message,
            ClientEvent.JOIN_VOICE.value: self._on_join_voice,
            ClientEvent.LEAVE_VOICE.value: self._on_leave_voice,
            ClientEvent.GET_VOICE_STATES.value: self._on_get_voice_states,
        }

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, connection: ClientConnection) -> None:
        """Register an authenticated connection and announce the user as online."""
        identity = connection.user_id
        superseded = await self.registry.register(identity, connection)
        if superseded is not None:
            await self.messaging.drop_connection(superseded)
            if self.close_superseded:
                await superseded.close(code=WS_SUPERSEDED, reason="superseded")

        await self._set_status(identity, STATUS_ONLINE)
        await self.registry.broadcast(ServerEvent.USER_ONLINE.value, identity)
        logger.info(
            f"User {identity} connected",
            extra={"user_id": identity, "connection_id": connection.connection_id, "online_users": len(self.registry)},
        )

    async def disconnect(self, connection: ClientConnection) -> bool:
        """
        Tear down a connection.

        Only the registered owner of an identity takes the user offline and out
        of their voice rooms; a superseded connection's disconnect changes
        nothing beyond its own topic subscriptions.

        Returns:
            True if the user went offline.
        """
        identity = connection.user_id
        await self.messaging.drop_connection(connection)

        if not await self.registry.unregister(identity, connection):
            logger.debug(
                f"Disconnect of superseded connection for {identity}",
                extra={"user_id": identity, "connection_id": connection.connection_id},
            )
            return False

        await self._set_status(identity, STATUS_OFFLINE)
        await self.registry.broadcast(ServerEvent.USER_OFFLINE.value, identity)
        rooms = await self.voice.leave_all(identity)

        logger.info(
            f"User {identity} disconnected",
            extra={"user_id": identity, "connection_id": connection.connection_id, "voice_rooms_left": rooms},
        )
        return True

    async def shutdown(self) -> None:
        """Mark every connected user offline, close their connections and reset all state."""
        connections = await self.registry.clear()
        for connection in connections:
            await self._set_status(connection.user_id, STATUS_OFFLINE)
            await connection.close(code=WS_GOING_AWAY, reason="server shutdown")
        await self.voice.clear()
        await self.messaging.clear()
        logger.info(f"Realtime coordinator shut down, closed {len(connections)} connections")

    async def _set_status(self, identity: str, status: str) -> None:
        # The durable status field is advisory; a failed write must not block presence.
        try:
            await self.store.set_user_status(identity, status)
        except (PyMongoError, RuntimeError) as e:
            log_error_with_context(e, context={"user_id": identity, "status": status}, operation="set_user_status")

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    async def handle_event(self, connection: ClientConnection, event: str, data: Any = None) -> None:
        """
        Dispatch one inbound event from ``connection``.

        Errors are reported to the originating connection as an ``error`` event
        and never propagate: a bad event must not close the connection.
        """
        try:
            await self._dispatch(connection, event, data)
        except ValidationError as e:
            errors = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]
            await self._send_error(connection, InvalidPayloadError(event, errors))
        except RealtimeError as e:
            await self._send_error(connection, e)
        except Exception as e:
            log_error_with_context(
                e, context={"user_id": connection.user_id, "event": event}, operation="handle_event"
            )
            await self._send_error(
                connection,
                RealtimeError(RealtimeErrorCode.INTERNAL_ERROR, "Internal error", details={"event": event}),
            )

    async def _dispatch(self, connection: ClientConnection, event: str, data: Any) -> None:
        handler = self._handlers.get(event)
        if handler is not None:
            await handler(connection, normalize_payload(event, data))
        elif self.signaling.handles(event):
            await self.signaling.relay(connection.user_id, event, data)
        else:
            raise UnknownEventError(event)

    async def _send_error(self, connection: ClientConnection, error: RealtimeError) -> None:
        logger.warning(
            f"Event error for {connection.user_id}: {error.error_code.value} - {error.message}",
            extra={"user_id": connection.user_id, "error_code": error.error_code.value},
        )
        await connection.send_event(ServerEvent.ERROR.value, error.to_dict())

    async def _on_join_channel(self, connection: ClientConnection, data: Any) -> None:
        ref = ChannelRef.model_validate(data)
        await self.messaging.join_topic(connection, channel_topic(ref.channel_id))

    async def _on_leave_channel(self, connection: ClientConnection, data: Any) -> None:
        ref = ChannelRef.model_validate(data)
        await self.messaging.leave_topic(connection, channel_topic(ref.channel_id))

    async def _on_send_message(self, connection: ClientConnection, data: Any) -> None:
        payload = SendMessagePayload.model_validate(data)
        await self.messaging.send_channel_message(connection, payload.channel_id, payload.content)

    async def _on_typing(self, connection: ClientConnection, data: Any) -> None:
        ref = ChannelRef.model_validate(data)
        await self.messaging.send_typing(connection, ref.channel_id)

    async def _on_send_dm(self, connection: ClientConnection, data: Any) -> None:
        payload = SendDirectMessagePayload.model_validate(data)
        await self.messaging.send_direct_message(connection, payload.receiver_id, payload.content)

    async def _on_join_group(self, connection: ClientConnection, data: Any) -> None:
        ref = GroupRef.model_validate(data)
        await self.messaging.join_topic(connection, group_topic(ref.group_id))

    async def _on_leave_group(self, connection: ClientConnection, data: Any) -> None:
        ref = GroupRef.model_validate(data)
        await self.messaging.leave_topic(connection, group_topic(ref.group_id))

    async def _on_send_group_message(self, connection: ClientConnection, data: Any) -> None:
        payload = SendGroupMessagePayload.model_validate(data)
        await self.messaging.send_group_message(connection, payload.group_id, payload.content)

    async def _on_join_voice(self, connection: ClientConnection, data: Any) -> None:
        ref = VoiceRoomRef.model_validate(data)
        await self.voice.join(connection.user_id, ref.room_id)

    async def _on_leave_voice(self, connection: ClientConnection, data: Any) -> None:
        ref = VoiceRoomRef.model_validate(data)
        await self.voice.leave(connection.user_id, ref.room_id)

    async def _on_get_voice_states(self, connection: ClientConnection, data: Any) -> None:
        await connection.send_event(ServerEvent.VOICE_STATES_SYNC.value, await self.voice_states())

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    async def voice_states(self) -> Dict[str, List[Dict[str, Any]]]:
        """Room id -> resolved member summaries, as sent in ``voice-states-sync``."""
        snapshot = await self.voice.snapshot()
        return {room_id: [user.model_dump() for user in users] for room_id, users in snapshot.items()}

    def online_users(self) -> List[str]:
        return sorted(self.registry.online_users())

    def health(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "online_users": len(self.registry),
            "voice_rooms": len(self.voice.room_ids()),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
