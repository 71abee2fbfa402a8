"""
Signaling Relay Tests

Forwarding of mesh signaling, 1:1 call control and friend-list hints.
"""

from pydantic import ValidationError
import pytest

from owndc_realtime.realtime.connection_registry import ConnectionRegistry
from owndc_realtime.realtime.signaling import SignalingRelay

from conftest import FakeConnection

OFFER = {"type": "offer", "sdp": "v=0 o=- 46117 2 IN IP4 127.0.0.1"}
ANSWER = {"type": "answer", "sdp": "v=0 o=- 46118 2 IN IP4 127.0.0.1"}
CANDIDATE = {"candidate": "candidate:1 1 UDP 2122252543 10.0.0.2 49203 typ host", "sdpMid": "0"}


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def relay(registry, mock_store):
    return SignalingRelay(registry, mock_store)


@pytest.fixture
async def peers(registry):
    alice, bob = FakeConnection("alice"), FakeConnection("bob")
    await registry.register("alice", alice)
    await registry.register("bob", bob)
    return alice, bob


class TestMeshSignaling:
    @pytest.mark.asyncio
    async def test_offer_is_forwarded_with_sender(self, relay, peers):
        alice, bob = peers

        delivered = await relay.relay("alice", "offer", {"to": "bob", "offer": OFFER, "roomId": "lobby"})

        assert delivered is True
        assert bob.received("offer") == [{"from": "alice", "offer": OFFER, "roomId": "lobby"}]
        assert alice.events == []

    @pytest.mark.asyncio
    async def test_answer_and_candidate_are_forwarded(self, relay, peers):
        alice, _ = peers

        await relay.relay("bob", "answer", {"to": "alice", "answer": ANSWER})
        await relay.relay("bob", "candidate", {"to": "alice", "candidate": CANDIDATE})

        assert alice.received("answer") == [{"from": "bob", "answer": ANSWER}]
        assert alice.received("candidate") == [{"from": "bob", "candidate": CANDIDATE}]

    @pytest.mark.asyncio
    async def test_client_supplied_from_is_overwritten(self, relay, peers):
        _, bob = peers

        await relay.relay("alice", "candidate", {"to": "bob", "from": "mallory", "candidate": CANDIDATE})

        assert bob.received("candidate")[0]["from"] == "alice"

    @pytest.mark.asyncio
    async def test_offline_recipient_is_dropped_silently(self, relay, peers, registry):
        alice, bob = peers

        assert await relay.relay("alice", "offer", {"to": "carol", "offer": OFFER}) is False
        assert alice.events == [] and bob.events == []
        assert registry.online_users() == {"alice", "bob"}

    @pytest.mark.asyncio
    async def test_missing_recipient_is_rejected(self, relay):
        with pytest.raises(ValidationError):
            await relay.relay("alice", "offer", {"offer": OFFER})


class TestCallControl:
    @pytest.mark.asyncio
    async def test_call_scenario(self, relay, peers, registry, mock_store):
        """A calls online B, B answers; then A calls B again while B is offline."""
        alice, bob = peers

        await relay.relay("alice", "call-user", {"to": "bob", "signal": OFFER, "withVideo": True})
        assert bob.received("incoming-call") == [
            {
                "from": "alice",
                "callerName": "Alice",
                "callerAvatar": "/avatars/alice.png",
                "signal": OFFER,
                "withVideo": True,
            }
        ]

        await relay.relay("bob", "answer-call", {"to": "alice", "signal": ANSWER})
        assert alice.received("call-accepted") == [{"from": "bob", "signal": ANSWER}]

        await registry.unregister("bob", bob)
        bob.clear()
        mock_store.get_user_summary.reset_mock()

        assert await relay.relay("alice", "call-user", {"to": "bob", "signal": OFFER}) is False
        assert bob.events == []
        mock_store.get_user_summary.assert_not_called()

    @pytest.mark.asyncio
    async def test_with_video_defaults_to_false(self, relay, peers):
        _, bob = peers
        await relay.relay("alice", "call-user", {"to": "bob", "signal": OFFER})
        assert bob.received("incoming-call")[0]["withVideo"] is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kind,outbound",
        [
            ("reject-call", "call-rejected"),
            ("end-call", "call-ended"),
            ("screen-share-started", "screen-share-started"),
            ("screen-share-stopped", "screen-share-stopped"),
        ],
    )
    async def test_bare_call_control(self, relay, peers, kind, outbound):
        alice, _ = peers
        await relay.relay("bob", kind, {"to": "alice"})
        assert alice.received(outbound) == [{"from": "bob"}]

    @pytest.mark.asyncio
    async def test_call_ice_candidate(self, relay, peers):
        _, bob = peers
        await relay.relay("alice", "call-ice-candidate", {"to": "bob", "candidate": CANDIDATE})
        assert bob.received("call-ice-candidate") == [{"from": "alice", "candidate": CANDIDATE}]


class TestFriendHints:
    @pytest.mark.asyncio
    async def test_friend_request_notifies_target(self, relay, peers):
        _, bob = peers
        assert await relay.relay("alice", "friend-request-sent", {"targetUserId": "bob"}) is True
        assert bob.received("friend-request-received") == [{"from": "alice"}]

    @pytest.mark.asyncio
    async def test_friend_accepted_notifies_target(self, relay, peers):
        alice, _ = peers
        await relay.relay("bob", "friend-accepted", {"targetUserId": "alice"})
        assert alice.received("friend-accepted-sync") == [{"from": "bob"}]

    def test_handles_only_signaling_events(self, relay):
        assert relay.handles("offer")
        assert relay.handles("friend-accepted")
        assert not relay.handles("send-message")
