"""
Realtime Authentication Dependencies

Resolves the identity of a realtime client from its session token. The
WebSocket endpoint takes the token from the ``token`` query parameter or the
session cookie; the REST endpoints take it from an ``Authorization: Bearer``
header. The token is a JWT whose ``sub`` claim is the user id.
"""

from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, WebSocket, status
from fastapi.exceptions import WebSocketException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pymongo.errors import PyMongoError

from owndc_realtime.config import settings
from owndc_realtime.managers.chat_store import ChatStore
from owndc_realtime.managers.logging_manager import get_logger
from owndc_realtime.realtime.errors import AuthenticationError, RealtimeErrorCode
from owndc_realtime.utils.logging_utils import log_security_event

logger = get_logger(prefix="[Realtime-Auth]")

bearer_scheme = HTTPBearer(auto_error=False)


def _secret_key() -> str:
    secret_key = settings.SECRET_KEY
    if hasattr(secret_key, "get_secret_value"):
        secret_key = secret_key.get_secret_value()
    if not secret_key:
        logger.error("JWT secret key is missing. Check your settings.SECRET_KEY.")
        raise AuthenticationError("server has no signing key", RealtimeErrorCode.INTERNAL_ERROR)
    return secret_key


async def resolve_user(token: Optional[str], store: ChatStore) -> Dict[str, Any]:
    """
    Validate a session token and load the user it belongs to.

    Raises:
        AuthenticationError: If the token is missing or invalid, or the user
            does not exist or is inactive.
    """
    if not token:
        raise AuthenticationError("token required")

    try:
        payload = jwt.decode(token, _secret_key(), algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("token has expired", RealtimeErrorCode.INVALID_TOKEN) from e
    except JWTError as e:
        logger.warning("Invalid token: %s", e)
        raise AuthenticationError("invalid token", RealtimeErrorCode.INVALID_TOKEN) from e

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("token has no subject", RealtimeErrorCode.INVALID_TOKEN)

    try:
        user = await store.get_user(str(user_id))
    except (PyMongoError, RuntimeError) as e:
        logger.error(f"User lookup failed during authentication: {e}", exc_info=True)
        raise AuthenticationError("user lookup failed", RealtimeErrorCode.MONGODB_UNAVAILABLE) from e

    if user is None:
        raise AuthenticationError("user not found", RealtimeErrorCode.USER_NOT_FOUND)
    if not user.get("is_active", True):
        raise AuthenticationError("user account is not active")
    return user


def _client_host(connection) -> Optional[str]:
    return connection.client.host if connection.client else None


async def get_current_user_ws(websocket: WebSocket) -> Dict[str, Any]:
    """
    Authenticate a WebSocket before it is accepted.

    Raises:
        WebSocketException: With close code 1008 if authentication fails.
    """
    token = websocket.query_params.get("token") or websocket.cookies.get(settings.REALTIME_TOKEN_COOKIE_NAME)
    store = websocket.app.state.realtime.store

    try:
        user = await resolve_user(token, store)
    except AuthenticationError as e:
        log_security_event(
            "realtime_connect",
            ip_address=_client_host(websocket),
            success=False,
            details={"reason": e.details.get("reason"), "code": e.error_code.value},
        )
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason=e.message) from e

    logger.info(
        f"WebSocket authenticated for user {user.get('username')}",
        extra={"user_id": str(user["id"]), "client": _client_host(websocket)},
    )
    return user


async def get_current_user_dep(
    request: Request, credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Dict[str, Any]:
    """Authenticate a REST request from its bearer token."""
    token = credentials.credentials if credentials else None
    try:
        return await resolve_user(token, request.app.state.realtime.store)
    except AuthenticationError as e:
        log_security_event(
            "realtime_rest_auth",
            ip_address=_client_host(request),
            success=False,
            details={"reason": e.details.get("reason"), "path": request.url.path},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
