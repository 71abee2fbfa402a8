"""
Voice Room Tracker

Keeps, per voice room, the set of identities currently joined and drives the
two kinds of notification the browsers need to build a full-mesh call:

- targeted: "a peer joined/left" to the other members, and "these peers are
  already here" to a new joiner;
- broadcast: the room's full membership to every connected user, so any
  client can render who sits in which voice room without subscribing.

The broadcast goes to everyone, members or not. That is a known fan-out cost
at scale: every membership change costs one send per online user.
"""

import asyncio
from typing import Dict, Iterable, List

from owndc_realtime.managers.chat_store import ChatStore
from owndc_realtime.managers.logging_manager import get_logger
from owndc_realtime.realtime.connection_registry import ConnectionRegistry
from owndc_realtime.realtime.schemas import (
    ServerEvent,
    UserSummary,
    VoiceMember,
    VoiceRoomUpdatePayload,
    VoiceRoomUsersPayload,
    VoiceUserJoinedPayload,
    VoiceUserLeftPayload,
)

logger = get_logger(prefix="[Realtime-Voice]")


class VoiceRoomTracker:
    """
    Room id -> member identities.

    A room exists only while it has members: it is created by the first join
    and deleted when the last member leaves. Membership has set semantics, so a
    repeated join is absorbed.
    """

    def __init__(self, registry: ConnectionRegistry, store: ChatStore):
        self.registry = registry
        self.store = store
        # room_id -> insertion-ordered member set
        self._rooms: Dict[str, Dict[str, None]] = {}
        self._lock = asyncio.Lock()
        # Serializes voice-room-update so the last broadcast of a room carries its current membership
        self._broadcast_lock = asyncio.Lock()

    def members(self, room_id: str) -> List[str]:
        return list(self._rooms.get(room_id, ()))

    def room_ids(self) -> List[str]:
        return list(self._rooms)

    def rooms_of(self, identity: str) -> List[str]:
        return [room_id for room_id, members in self._rooms.items() if identity in members]

    async def _summaries(self, identities: Iterable[str]) -> List[UserSummary]:
        """Display data in member order; members without a stored user are omitted."""
        identities = list(identities)
        resolved = await self.store.get_user_summaries(identities)
        return [resolved[identity] for identity in identities if identity in resolved]

    async def _broadcast_room(self, room_id: str) -> None:
        """Broadcast the membership of ``room_id`` as it is when the broadcast is sent."""
        async with self._broadcast_lock:
            users = await self._summaries(self.members(room_id))
            payload = VoiceRoomUpdatePayload(room_id=room_id, users=users)
            await self.registry.broadcast(ServerEvent.VOICE_ROOM_UPDATE.value, payload.to_wire())

    async def join(self, identity: str, room_id: str) -> int:
        """
        Add ``identity`` to ``room_id`` and notify.

        Existing members get ``voice-user-joined``, the joiner gets
        ``voice-room-users`` listing the existing members, and everybody gets
        ``voice-room-update``. A repeated join does not re-notify the peers.

        Returns:
            The room size after the join.
        """
        async with self._lock:
            room = self._rooms.setdefault(room_id, {})
            already_member = identity in room
            existing = [member for member in room if member != identity]
            room[identity] = None
            members_after = list(room)

        resolved = await self.store.get_user_summaries(existing + [identity])
        joiner = resolved.get(identity)
        joiner_name = joiner.username if joiner else identity

        if already_member:
            logger.debug(f"{identity} re-joined room {room_id}", extra={"room_id": room_id, "user_id": identity})
        else:
            joined_payload = VoiceUserJoinedPayload(user_id=identity, username=joiner_name, room_id=room_id).to_wire()
            for peer in existing:
                await self.registry.send_to(peer, ServerEvent.VOICE_USER_JOINED.value, joined_payload)

        peers = [
            VoiceMember(id=resolved[peer].id, username=resolved[peer].username) for peer in existing if peer in resolved
        ]
        await self.registry.send_to(
            identity,
            ServerEvent.VOICE_ROOM_USERS.value,
            VoiceRoomUsersPayload(room_id=room_id, users=peers).to_wire(),
        )

        await self._broadcast_room(room_id)

        logger.info(
            f"{identity} joined voice room {room_id} ({len(members_after)} members)",
            extra={"room_id": room_id, "user_id": identity, "participant_count": len(members_after)},
        )
        return len(members_after)

    async def leave(self, identity: str, room_id: str) -> bool:
        """
        Remove ``identity`` from ``room_id`` and notify.

        A leave for an absent room or a non-member is a no-op without events.

        Returns:
            True if the identity was a member.
        """
        async with self._lock:
            room = self._rooms.get(room_id)
            if room is None or identity not in room:
                return False
            del room[identity]
            remaining = list(room)
            if not room:
                del self._rooms[room_id]

        left_payload = VoiceUserLeftPayload(user_id=identity, room_id=room_id).to_wire()
        for peer in remaining:
            await self.registry.send_to(peer, ServerEvent.VOICE_USER_LEFT.value, left_payload)

        await self._broadcast_room(room_id)

        if remaining:
            logger.info(
                f"{identity} left voice room {room_id} ({len(remaining)} members)",
                extra={"room_id": room_id, "user_id": identity, "participant_count": len(remaining)},
            )
        else:
            logger.info(f"{identity} left voice room {room_id}, room closed", extra={"room_id": room_id})
        return True

    async def leave_all(self, identity: str) -> List[str]:
        """Leave every room ``identity`` belongs to. Returns the rooms that were left."""
        left = []
        for room_id in self.rooms_of(identity):
            if await self.leave(identity, room_id):
                left.append(room_id)
        return left

    async def snapshot(self) -> Dict[str, List[UserSummary]]:
        """Current membership of every room, with display data resolved."""
        async with self._lock:
            rooms = {room_id: list(members) for room_id, members in self._rooms.items()}

        everyone = [identity for members in rooms.values() for identity in members]
        resolved = await self.store.get_user_summaries(everyone)
        return {
            room_id: [resolved[identity] for identity in members if identity in resolved]
            for room_id, members in rooms.items()
        }

    async def clear(self) -> None:
        async with self._lock:
            self._rooms.clear()
