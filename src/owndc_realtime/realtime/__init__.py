"""
Realtime Module

WebSocket coordinator for presence, voice rooms, WebRTC signaling relay and
text chat fan-out. The application wires :mod:`.router` into FastAPI and keeps
one :class:`~owndc_realtime.realtime.coordinator.RealtimeCoordinator` on
``app.state.realtime``.
"""
