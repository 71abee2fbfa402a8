"""
Realtime Error Handling

Error codes and structured error payloads for the realtime coordinator.
Errors are scoped to one event or one connection; none of them is fatal to
the process. Routing misses (target offline) are deliberately not errors.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class RealtimeErrorCode(str, Enum):
    """Standard error codes reported to realtime clients."""

    # Connection establishment
    UNAUTHORIZED = "unauthorized"
    INVALID_TOKEN = "invalid_token"
    USER_NOT_FOUND = "user_not_found"

    # Inbound events
    INVALID_EVENT_TYPE = "invalid_event_type"
    INVALID_PAYLOAD = "invalid_payload"

    # Storage
    MESSAGE_PERSIST_FAILED = "message_persist_failed"
    MONGODB_UNAVAILABLE = "mongodb_unavailable"

    # General
    INTERNAL_ERROR = "internal_error"


class ErrorPayload(BaseModel):
    """Payload of the ``error`` event sent to the originating connection."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": "message_persist_failed",
                "message": "Message could not be saved",
                "details": {"event": "send-message"},
            }
        }
    )

    code: RealtimeErrorCode = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")


class RealtimeError(Exception):
    """Base exception for realtime coordinator errors."""

    def __init__(
        self,
        error_code: RealtimeErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        close_code: Optional[int] = None,
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        self.close_code = close_code
        super().__init__(message)

    def to_response(self) -> ErrorPayload:
        """Convert exception to the error event payload."""
        return ErrorPayload(code=self.error_code, message=self.message, details=self.details or None)

    def to_dict(self) -> dict:
        return self.to_response().model_dump(mode="json", exclude_none=True)


# WebSocket close code for policy violations (RFC 6455)
WS_POLICY_VIOLATION = 1008


class AuthenticationError(RealtimeError):
    """The connection has no resolvable identity and must be refused."""

    def __init__(self, reason: str, error_code: RealtimeErrorCode = RealtimeErrorCode.UNAUTHORIZED):
        super().__init__(
            error_code=error_code,
            message=f"Authentication failed: {reason}",
            details={"reason": reason},
            close_code=WS_POLICY_VIOLATION,
        )


class UnknownEventError(RealtimeError):
    """Inbound event name is not part of the protocol."""

    def __init__(self, event: str):
        super().__init__(
            error_code=RealtimeErrorCode.INVALID_EVENT_TYPE,
            message=f"Unknown event: {event}",
            details={"event": event},
        )


class InvalidPayloadError(RealtimeError):
    """Inbound payload failed validation."""

    def __init__(self, event: str, errors: Optional[list] = None):
        details: Dict[str, Any] = {"event": event}
        if errors:
            details["errors"] = errors
        super().__init__(
            error_code=RealtimeErrorCode.INVALID_PAYLOAD,
            message=f"Invalid payload for {event}",
            details=details,
        )


class MessagePersistenceError(RealtimeError):
    """A chat message could not be stored; it must not be broadcast."""

    def __init__(self, kind: str, reason: str):
        super().__init__(
            error_code=RealtimeErrorCode.MESSAGE_PERSIST_FAILED,
            message="Message could not be saved",
            details={"kind": kind, "reason": reason},
        )
