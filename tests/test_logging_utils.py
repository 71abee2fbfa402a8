"""
Logging Utility Tests

Redaction of sensitive values before they reach the log handlers.
"""

import pytest

from owndc_realtime.utils.logging_utils import _sanitize_args, _sanitize_security_details

ICE_CANDIDATE = "candidate:842163049 1 udp 1677729535 203.0.113.7 3478 typ srflx raddr 192.168.1.20 rport 3478"


class TestSanitizeArgs:
    @pytest.mark.parametrize("key", ["candidate", "sdp", "signal", "token", "SECRET_KEY"])
    def test_sensitive_kwargs_are_redacted(self, key):
        sanitized = _sanitize_args((), {key: "value"})
        assert sanitized["kwargs"][key] == "<REDACTED>"

    def test_ice_candidate_is_redacted(self):
        sanitized = _sanitize_args((ICE_CANDIDATE,), {"candidate": ICE_CANDIDATE, "room_id": "lobby"})

        assert sanitized["args"] == ["<REDACTED>"]
        assert sanitized["kwargs"]["candidate"] == "<REDACTED>"
        assert sanitized["kwargs"]["room_id"] == "lobby"
        assert "203.0.113.7" not in str(sanitized)

    def test_long_values_are_truncated(self):
        sanitized = _sanitize_args(("x" * 150,), {})
        assert sanitized["args"] == ["x" * 100 + "..."]


class TestSecurityDetails:
    def test_candidate_details_are_redacted(self):
        details = _sanitize_security_details({"candidate": ICE_CANDIDATE, "user_id": "alice"})
        assert details == {"candidate": "<REDACTED>", "user_id": "alice"}
