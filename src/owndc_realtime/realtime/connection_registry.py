"""
Connection Registry

Maps a user identity to its single active realtime connection. Every targeted
delivery in the coordinator resolves its recipient here; an identity that is
not registered is simply offline and deliveries to it are dropped.
"""

import asyncio
from typing import Any, Dict, List, Optional, Set

from owndc_realtime.managers.logging_manager import get_logger
from owndc_realtime.realtime.connection import ClientConnection

logger = get_logger(prefix="[Realtime-Registry]")


class ConnectionRegistry:
    """
    Identity -> connection mapping with at most one entry per identity.

    Registering an identity that already has a connection overwrites the entry
    ("last register wins") and hands the superseded connection back to the
    caller. Unregistering re-validates ownership so that the late disconnect of
    a superseded connection cannot evict the newer one.
    """

    def __init__(self):
        self._connections: Dict[str, ClientConnection] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, identity: str) -> bool:
        return identity in self._connections

    async def register(self, identity: str, connection: ClientConnection) -> Optional[ClientConnection]:
        """
        Record ``connection`` as the active connection of ``identity``.

        Returns:
            The connection that was replaced, or None if there was none (or it
            was the same connection).
        """
        async with self._lock:
            previous = self._connections.get(identity)
            self._connections[identity] = connection

        if previous is not None and previous is not connection:
            logger.info(
                f"Connection for {identity} replaced by reconnect",
                extra={
                    "user_id": identity,
                    "old_connection_id": previous.connection_id,
                    "new_connection_id": connection.connection_id,
                },
            )
            return previous

        logger.debug(f"Registered {identity}", extra={"user_id": identity, "connection_id": connection.connection_id})
        return None

    def lookup(self, identity: str) -> Optional[ClientConnection]:
        """Return the active connection of ``identity``, or None if offline."""
        return self._connections.get(identity)

    async def unregister(self, identity: str, connection: ClientConnection) -> bool:
        """
        Remove ``identity`` only if ``connection`` is its registered connection.

        Returns:
            True if the mapping was removed.
        """
        async with self._lock:
            current = self._connections.get(identity)
            owned = current is not None and current is connection
            if owned:
                del self._connections[identity]

        if owned:
            logger.debug(f"Unregistered {identity}", extra={"user_id": identity})
            return True
        if current is not None:
            logger.info(
                f"Ignored stale unregister for {identity}",
                extra={"user_id": identity, "connection_id": connection.connection_id},
            )
        return False

    def is_online(self, identity: str) -> bool:
        return identity in self._connections

    def online_users(self) -> Set[str]:
        """Identities that currently have a registered connection."""
        return set(self._connections)

    def connections(self) -> List[ClientConnection]:
        return list(self._connections.values())

    async def send_to(self, identity: str, event: str, data: Any = None) -> bool:
        """Deliver to one identity; a silent no-op when it is offline."""
        connection = self._connections.get(identity)
        if connection is None:
            return False
        return await connection.send_event(event, data)

    async def broadcast(self, event: str, data: Any = None, exclude: Optional[str] = None) -> int:
        """Deliver to every registered connection. Returns the number of successful sends."""
        sent = 0
        for identity, connection in list(self._connections.items()):
            if exclude is not None and identity == exclude:
                continue
            if await connection.send_event(event, data):
                sent += 1
        return sent

    async def clear(self) -> List[ClientConnection]:
        """Drop every registration and return the dropped connections."""
        async with self._lock:
            dropped = list(self._connections.values())
            self._connections.clear()
        return dropped
