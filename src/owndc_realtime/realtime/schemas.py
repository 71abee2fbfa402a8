"""
Realtime Event Schemas

Pydantic models for the realtime protocol: the frame envelope, every inbound
client payload and the structured outbound payloads. Wire names are camelCase
(``roomId``, ``withVideo``); Python attributes are snake_case.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from owndc_realtime.config import settings


class ClientEvent(str, Enum):
    """Events a client may send to the server."""

    # Text chat
    JOIN_CHANNEL = "join-channel"
    LEAVE_CHANNEL = "leave-channel"
    SEND_MESSAGE = "send-message"
    TYPING = "typing"
    SEND_DM = "send-dm"
    JOIN_GROUP = "join-group"
    LEAVE_GROUP = "leave-group"
    SEND_GROUP_MESSAGE = "send-group-message"

    # Voice rooms
    JOIN_VOICE = "join-voice"
    LEAVE_VOICE = "leave-voice"
    GET_VOICE_STATES = "get-voice-states"

    # Mesh signaling
    OFFER = "offer"
    ANSWER = "answer"
    CANDIDATE = "candidate"

    # 1:1 calls
    CALL_USER = "call-user"
    ANSWER_CALL = "answer-call"
    REJECT_CALL = "reject-call"
    END_CALL = "end-call"
    CALL_ICE_CANDIDATE = "call-ice-candidate"
    SCREEN_SHARE_STARTED = "screen-share-started"
    SCREEN_SHARE_STOPPED = "screen-share-stopped"

    # Friend list sync hints
    FRIEND_REQUEST_SENT = "friend-request-sent"
    FRIEND_ACCEPTED = "friend-accepted"


class ServerEvent(str, Enum):
    """Events the server emits to clients."""

    NEW_MESSAGE = "new-message"
    NEW_DM = "new-dm"
    NEW_GROUP_MESSAGE = "new-group-message"
    USER_TYPING = "user-typing"

    USER_ONLINE = "user-online"
    USER_OFFLINE = "user-offline"

    VOICE_ROOM_USERS = "voice-room-users"
    VOICE_USER_JOINED = "voice-user-joined"
    VOICE_USER_LEFT = "voice-user-left"
    VOICE_ROOM_UPDATE = "voice-room-update"
    VOICE_STATES_SYNC = "voice-states-sync"

    OFFER = "offer"
    ANSWER = "answer"
    CANDIDATE = "candidate"

    INCOMING_CALL = "incoming-call"
    CALL_ACCEPTED = "call-accepted"
    CALL_REJECTED = "call-rejected"
    CALL_ENDED = "call-ended"
    CALL_ICE_CANDIDATE = "call-ice-candidate"
    SCREEN_SHARE_STARTED = "screen-share-started"
    SCREEN_SHARE_STOPPED = "screen-share-stopped"

    FRIEND_REQUEST_RECEIVED = "friend-request-received"
    FRIEND_ACCEPTED_SYNC = "friend-accepted-sync"

    ERROR = "error"


class WireModel(BaseModel):
    """Base model for camelCase wire payloads."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class RealtimeEvent(BaseModel):
    """One JSON frame on the realtime socket: ``{"event": ..., "data": ...}``."""

    event: str = Field(..., min_length=1, description="Event name")
    data: Any = Field(None, description="Event payload")


# ============================================================================
# Inbound payloads
# ============================================================================

class ChannelRef(WireModel):
    channel_id: str = Field(..., min_length=1)


class GroupRef(WireModel):
    group_id: str = Field(..., min_length=1)


class VoiceRoomRef(WireModel):
    room_id: str = Field(..., min_length=1)


class _ContentMixin(WireModel):
    content: str = Field(..., description="Message text")

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("content must not be empty")
        if len(v) > settings.REALTIME_MAX_MESSAGE_LENGTH:
            raise ValueError(f"content exceeds {settings.REALTIME_MAX_MESSAGE_LENGTH} characters")
        return v


class SendMessagePayload(_ContentMixin):
    channel_id: str = Field(..., min_length=1)


class SendDirectMessagePayload(_ContentMixin):
    receiver_id: str = Field(..., min_length=1)


class SendGroupMessagePayload(_ContentMixin):
    group_id: str = Field(..., min_length=1)


class SignalTarget(WireModel):
    """Routing envelope shared by every relayed signaling payload."""

    to: str = Field(..., min_length=1, description="Identity of the recipient")


class OfferPayload(SignalTarget):
    offer: Any = Field(..., description="Opaque session description")
    room_id: Optional[str] = Field(None, description="Voice room the offer belongs to")


class AnswerPayload(SignalTarget):
    answer: Any = Field(..., description="Opaque session description")


class CandidatePayload(SignalTarget):
    candidate: Any = Field(..., description="Opaque ICE candidate")


class CallUserPayload(SignalTarget):
    signal: Any = Field(..., description="Initial offer for the call")
    with_video: bool = Field(False, description="Caller requests video")


class AnswerCallPayload(SignalTarget):
    signal: Any = Field(..., description="Callee's answer")


class FriendNotifyPayload(WireModel):
    target_user_id: str = Field(..., min_length=1)


# Scalar-or-object inbound payloads and the key a bare scalar maps to
SCALAR_PAYLOAD_KEYS: Dict[str, str] = {
    ClientEvent.JOIN_CHANNEL.value: "channelId",
    ClientEvent.LEAVE_CHANNEL.value: "channelId",
    ClientEvent.JOIN_GROUP.value: "groupId",
    ClientEvent.LEAVE_GROUP.value: "groupId",
    ClientEvent.JOIN_VOICE.value: "roomId",
    ClientEvent.LEAVE_VOICE.value: "roomId",
}


def normalize_payload(event: str, data: Any) -> Any:
    """Wrap a bare id (``"join-voice", "lobby"``) into its object form."""
    key = SCALAR_PAYLOAD_KEYS.get(event)
    if key and isinstance(data, (str, int)) and not isinstance(data, bool):
        return {key: str(data)}
    return data


# ============================================================================
# Outbound payloads
# ============================================================================

class UserSummary(BaseModel):
    """Display data for a user, resolved server-side."""

    id: str = Field(..., description="User identity")
    username: str = Field(..., description="Display name")
    avatar: str = Field("", description="Avatar URL or path")


class VoiceMember(BaseModel):
    """Member entry sent to a new joiner so it can open a peer connection."""

    id: str
    username: str


class VoiceRoomUsersPayload(WireModel):
    room_id: str
    users: List[VoiceMember] = Field(default_factory=list)


class VoiceUserJoinedPayload(WireModel):
    user_id: str
    username: str
    room_id: str


class VoiceUserLeftPayload(WireModel):
    user_id: str
    room_id: str


class VoiceRoomUpdatePayload(WireModel):
    room_id: str
    users: List[UserSummary] = Field(default_factory=list)


class IncomingCallPayload(WireModel):
    from_: str = Field(..., alias="from")
    caller_name: Optional[str] = None
    caller_avatar: Optional[str] = None
    signal: Any = None
    with_video: bool = False


class TypingPayload(WireModel):
    username: str
    channel_id: str
