"""
Realtime Connection Handle

Wraps one accepted WebSocket together with the identity it was authenticated
as. Every delivery in the coordinator goes through :meth:`send_event`, which
is best effort: a broken socket is logged and reported as ``False``.
"""

from typing import Any, Optional
import uuid

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from owndc_realtime.managers.logging_manager import get_logger

logger = get_logger(prefix="[Realtime-Connection]")


class ClientConnection:
    """One active realtime session of one user."""

    def __init__(self, websocket: WebSocket, user_id: str, username: Optional[str] = None):
        self.websocket = websocket
        self.user_id = user_id
        self.username = username
        self.connection_id = uuid.uuid4().hex
        self.closed = False

    def __repr__(self) -> str:
        return f"ClientConnection(user_id={self.user_id!r}, connection_id={self.connection_id!r})"

    async def send_event(self, event: str, data: Any = None) -> bool:
        """Send one ``{"event", "data"}`` frame; never raises."""
        if self.closed or self.websocket.application_state != WebSocketState.CONNECTED:
            return False
        try:
            await self.websocket.send_json({"event": event, "data": data})
            return True
        except Exception as e:
            # Delivery is best effort; the receive loop notices the dead socket.
            logger.warning(
                f"Failed to deliver {event} to {self.user_id}: {e}",
                extra={"user_id": self.user_id, "connection_id": self.connection_id, "event": event},
            )
            return False

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.closed = True
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.websocket.close(code=code, reason=reason)
        except RuntimeError as e:
            # Starlette raises RuntimeError when the socket was already closed by the peer.
            logger.debug(f"Close of {self.connection_id} ignored: {e}")
