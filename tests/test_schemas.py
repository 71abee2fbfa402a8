"""
Realtime Schema Tests

Wire naming, payload normalization and validation rules.
"""

from pydantic import ValidationError
import pytest

from owndc_realtime.realtime.errors import (
    AuthenticationError,
    InvalidPayloadError,
    MessagePersistenceError,
    RealtimeErrorCode,
    UnknownEventError,
)
from owndc_realtime.realtime.schemas import (
    CallUserPayload,
    ClientEvent,
    IncomingCallPayload,
    SendMessagePayload,
    ServerEvent,
    VoiceRoomRef,
    normalize_payload,
)


class TestEvents:
    def test_protocol_event_names(self):
        inbound = {event.value for event in ClientEvent}
        assert {"join-voice", "leave-voice", "get-voice-states", "call-user", "typing"} <= inbound

        outbound = {event.value for event in ServerEvent}
        assert {"voice-room-users", "voice-states-sync", "incoming-call", "user-typing", "error"} <= outbound


class TestNormalization:
    @pytest.mark.parametrize(
        "event,data,expected",
        [
            ("join-voice", "lobby", {"roomId": "lobby"}),
            ("join-channel", 7, {"channelId": "7"}),
            ("leave-group", "band", {"groupId": "band"}),
            ("join-voice", {"roomId": "lobby"}, {"roomId": "lobby"}),
            ("offer", "lobby", "lobby"),
        ],
    )
    def test_normalize_payload(self, event, data, expected):
        assert normalize_payload(event, data) == expected

    def test_room_ref_rejects_empty_id(self):
        with pytest.raises(ValidationError):
            VoiceRoomRef.model_validate({"roomId": ""})


class TestPayloads:
    def test_message_content_limits(self):
        assert SendMessagePayload.model_validate({"channelId": "general", "content": "hi"}).content == "hi"
        with pytest.raises(ValidationError):
            SendMessagePayload.model_validate({"channelId": "general", "content": ""})
        with pytest.raises(ValidationError):
            SendMessagePayload.model_validate({"channelId": "general"})

    def test_call_payload_reads_camel_case(self):
        payload = CallUserPayload.model_validate({"to": "bob", "signal": {"sdp": "v=0"}, "withVideo": True})
        assert payload.with_video is True

    def test_incoming_call_wire_names(self):
        wire = IncomingCallPayload(from_="alice", caller_name="Alice", signal=None).to_wire()
        assert wire == {
            "from": "alice",
            "callerName": "Alice",
            "callerAvatar": None,
            "signal": None,
            "withVideo": False,
        }


class TestErrors:
    def test_error_payloads(self):
        assert UnknownEventError("x").to_dict() == {
            "code": "invalid_event_type",
            "message": "Unknown event: x",
            "details": {"event": "x"},
        }
        assert InvalidPayloadError("send-dm").to_dict()["code"] == "invalid_payload"
        assert MessagePersistenceError("dm", "timeout").error_code == RealtimeErrorCode.MESSAGE_PERSIST_FAILED

    def test_authentication_error_closes_with_policy_violation(self):
        error = AuthenticationError("token required")
        assert error.close_code == 1008
        assert error.to_dict()["code"] == "unauthorized"
