"""Utility modules for OwnDC Realtime."""

from .logging_utils import (
    log_application_lifecycle,
    log_error_with_context,
    log_performance,
    log_security_event,
)

__all__ = [
    "log_application_lifecycle",
    "log_error_with_context",
    "log_performance",
    "log_security_event",
]
