"""
Signaling Relay

Point-to-point forwarding of WebRTC negotiation and call-control messages.
The relay never looks inside offers, answers or candidates: it validates the
routing envelope, stamps ``from`` with the sender's session identity and
hands the payload to the recipient's registered connection.

Delivery is fire-and-forget. A recipient that is offline is a routing miss:
nothing is sent, nothing is raised and no state changes.
"""

from typing import Any, Dict, NamedTuple, Optional, Tuple, Type

from owndc_realtime.managers.chat_store import ChatStore
from owndc_realtime.managers.logging_manager import get_logger
from owndc_realtime.realtime.connection_registry import ConnectionRegistry
from owndc_realtime.realtime.schemas import (
    AnswerCallPayload,
    AnswerPayload,
    CallUserPayload,
    CandidatePayload,
    ClientEvent,
    FriendNotifyPayload,
    IncomingCallPayload,
    OfferPayload,
    ServerEvent,
    SignalTarget,
    WireModel,
)

logger = get_logger(prefix="[Realtime-Signaling]")


class _Route(NamedTuple):
    model: Type[WireModel]
    outbound: ServerEvent
    # wire keys copied from the inbound payload, besides "from"
    fields: Tuple[str, ...]


ROUTES: Dict[str, _Route] = {
    ClientEvent.OFFER.value: _Route(OfferPayload, ServerEvent.OFFER, ("offer", "roomId")),
    ClientEvent.ANSWER.value: _Route(AnswerPayload, ServerEvent.ANSWER, ("answer",)),
    ClientEvent.CANDIDATE.value: _Route(CandidatePayload, ServerEvent.CANDIDATE, ("candidate",)),
    ClientEvent.CALL_USER.value: _Route(CallUserPayload, ServerEvent.INCOMING_CALL, ("signal", "withVideo")),
    ClientEvent.ANSWER_CALL.value: _Route(AnswerCallPayload, ServerEvent.CALL_ACCEPTED, ("signal",)),
    ClientEvent.REJECT_CALL.value: _Route(SignalTarget, ServerEvent.CALL_REJECTED, ()),
    ClientEvent.END_CALL.value: _Route(SignalTarget, ServerEvent.CALL_ENDED, ()),
    ClientEvent.CALL_ICE_CANDIDATE.value: _Route(CandidatePayload, ServerEvent.CALL_ICE_CANDIDATE, ("candidate",)),
    ClientEvent.SCREEN_SHARE_STARTED.value: _Route(SignalTarget, ServerEvent.SCREEN_SHARE_STARTED, ()),
    ClientEvent.SCREEN_SHARE_STOPPED.value: _Route(SignalTarget, ServerEvent.SCREEN_SHARE_STOPPED, ()),
}

# Friend-list hints address the recipient by targetUserId instead of "to"
FRIEND_ROUTES: Dict[str, ServerEvent] = {
    ClientEvent.FRIEND_REQUEST_SENT.value: ServerEvent.FRIEND_REQUEST_RECEIVED,
    ClientEvent.FRIEND_ACCEPTED.value: ServerEvent.FRIEND_ACCEPTED_SYNC,
}


class SignalingRelay:
    """Forwards signaling messages between identities."""

    def __init__(self, registry: ConnectionRegistry, store: ChatStore):
        self.registry = registry
        self.store = store

    def handles(self, kind: str) -> bool:
        return kind in ROUTES or kind in FRIEND_ROUTES

    async def relay(self, sender_id: str, kind: str, payload: Any) -> bool:
        """
        Validate and forward one signaling message.

        Args:
            sender_id: Session identity of the sender; becomes ``from``.
            kind: Inbound event name.
            payload: Raw inbound payload.

        Returns:
            True if the message was delivered to an online recipient.

        Raises:
            pydantic.ValidationError: If the payload lacks its routing fields.
            KeyError: If ``kind`` is not a signaling event.
        """
        if kind in FRIEND_ROUTES:
            target = FriendNotifyPayload.model_validate(payload or {}).target_user_id
            return await self._deliver(sender_id, target, kind, FRIEND_ROUTES[kind], {"from": sender_id})

        route = ROUTES[kind]
        message = route.model.model_validate(payload or {})
        wire = message.to_wire()

        if kind == ClientEvent.CALL_USER.value:
            outbound = await self._incoming_call(sender_id, message)
            if outbound is None:
                self._log_miss(sender_id, message.to, kind)
                return False
        else:
            outbound = {"from": sender_id}
            outbound.update({key: wire.get(key) for key in route.fields})

        return await self._deliver(sender_id, message.to, kind, route.outbound, outbound)

    async def _incoming_call(self, sender_id: str, message: CallUserPayload) -> Optional[Dict[str, Any]]:
        """Build ``incoming-call`` with the caller's display data, or None if the callee is offline."""
        if not self.registry.is_online(message.to):
            return None

        caller = await self.store.get_user_summary(sender_id)
        return IncomingCallPayload(
            from_=sender_id,
            caller_name=caller.username if caller else None,
            caller_avatar=caller.avatar if caller else None,
            signal=message.signal,
            with_video=message.with_video,
        ).to_wire()

    async def _deliver(
        self, sender_id: str, recipient: str, kind: str, outbound: ServerEvent, data: Dict[str, Any]
    ) -> bool:
        delivered = await self.registry.send_to(recipient, outbound.value, data)
        if delivered:
            logger.debug(
                f"Relayed {kind} from {sender_id} to {recipient} as {outbound.value}",
                extra={"from_user": sender_id, "to_user": recipient, "kind": kind},
            )
        else:
            self._log_miss(sender_id, recipient, kind)
        return delivered

    def _log_miss(self, sender_id: str, recipient: str, kind: str) -> None:
        logger.debug(
            f"Dropped {kind} from {sender_id}: {recipient} is offline",
            extra={"from_user": sender_id, "to_user": recipient, "kind": kind},
        )
