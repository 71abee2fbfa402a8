"""
Realtime Router

FastAPI router providing the realtime WebSocket endpoint and a few REST
endpoints for health and state inspection.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from owndc_realtime.database import db_manager
from owndc_realtime.managers.logging_manager import get_logger
from owndc_realtime.realtime.connection import ClientConnection
from owndc_realtime.realtime.coordinator import RealtimeCoordinator
from owndc_realtime.realtime.dependencies import get_current_user_dep, get_current_user_ws
from owndc_realtime.realtime.errors import InvalidPayloadError
from owndc_realtime.realtime.schemas import RealtimeEvent, ServerEvent

logger = get_logger(prefix="[Realtime-Router]")

router = APIRouter(prefix="/realtime", tags=["Realtime"])


def get_coordinator(request: Request) -> RealtimeCoordinator:
    return request.app.state.realtime


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    Realtime WebSocket endpoint.

    **Authentication**: the session token is read from ``?token=<jwt>`` or the
    session cookie before the socket is accepted. Failure closes with 1008.

    **Frames**: JSON text ``{"event": "<name>", "data": <payload>}`` in both
    directions.
    """
    coordinator: RealtimeCoordinator = websocket.app.state.realtime

    user = await get_current_user_ws(websocket)
    await websocket.accept()

    connection = ClientConnection(websocket, user_id=str(user["id"]), username=user.get("username"))
    await coordinator.connect(connection)

    try:
        while not connection.closed:
            try:
                frame = await websocket.receive_json()
            except (ValueError, KeyError):
                # KeyError: a binary frame has no "text" part
                error = InvalidPayloadError("frame", [{"msg": "frame must be JSON text"}])
                await connection.send_event(ServerEvent.ERROR.value, error.to_dict())
                continue

            try:
                message = RealtimeEvent.model_validate(frame)
            except ValidationError as e:
                errors = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]
                await connection.send_event(ServerEvent.ERROR.value, InvalidPayloadError("frame", errors).to_dict())
                continue

            await coordinator.handle_event(connection, message.event, message.data)

    except WebSocketDisconnect as e:
        logger.info(
            f"WebSocket disconnected: user {connection.user_id} (code {e.code})",
            extra={"user_id": connection.user_id, "connection_id": connection.connection_id},
        )
    except RuntimeError as e:
        # Raised by Starlette when reading from a socket the server already closed
        logger.debug(f"Receive loop ended for {connection.connection_id}: {e}")
    finally:
        await coordinator.disconnect(connection)


@router.get("/health")
async def health_check(coordinator: RealtimeCoordinator = Depends(get_coordinator)):
    """Realtime service health: connection counts plus database reachability."""
    health = coordinator.health()
    database_ok = await db_manager.health_check()
    health["database"] = "connected" if database_ok else "unavailable"
    if not database_ok:
        health["status"] = "degraded"
    return JSONResponse(status_code=status.HTTP_200_OK, content=health)


@router.get("/voice-states")
async def get_voice_states(
    coordinator: RealtimeCoordinator = Depends(get_coordinator),
    current_user: Dict[str, Any] = Depends(get_current_user_dep),
) -> Dict[str, List[Dict[str, Any]]]:
    """Current membership of every voice room, as sent in ``voice-states-sync``."""
    return await coordinator.voice_states()


@router.get("/online")
async def get_online_users(
    coordinator: RealtimeCoordinator = Depends(get_coordinator),
    current_user: Dict[str, Any] = Depends(get_current_user_dep),
) -> List[str]:
    """Identities that currently hold a realtime connection."""
    return coordinator.online_users()
