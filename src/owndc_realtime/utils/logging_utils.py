"""Logging utilities shared across the application.

Decorators and helpers for lifecycle, performance, security and error logging
on top of :mod:`owndc_realtime.managers.logging_manager`.
"""

from datetime import datetime, timezone
import functools
import inspect
import time
import traceback
from typing import Any, Callable, Dict, Optional
import uuid

from owndc_realtime.managers.logging_manager import get_logger

SLOW_OPERATION_SECONDS: float = 2.0


def log_performance(operation_name: str, log_args: bool = False):
    """
    Decorator for logging function/method performance with timing.

    Args:
        operation_name: Name of the operation for logging
        log_args: Whether to log function arguments (be careful with sensitive data)
    """

    def decorator(func: Callable) -> Callable:
        logger = get_logger(prefix="[PERFORMANCE]")

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.time()
            operation_id = str(uuid.uuid4())[:8]

            if log_args and (args or kwargs):
                logger.debug("[%s] Starting %s with args: %s", operation_id, operation_name, _sanitize_args(args, kwargs))
            else:
                logger.debug("[%s] Starting %s", operation_id, operation_name)

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                duration = time.time() - start_time
                logger.error("[%s] Failed %s after %.3fs: %s", operation_id, operation_name, duration, str(e))
                raise

            duration = time.time() - start_time
            logger.debug("[%s] Completed %s in %.3fs", operation_id, operation_name, duration)
            if duration > SLOW_OPERATION_SECONDS:
                logger.warning("[%s] SLOW OPERATION: %s took %.3fs", operation_id, operation_name, duration)
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            start_time = time.time()
            operation_id = str(uuid.uuid4())[:8]
            logger.debug("[%s] Starting %s", operation_id, operation_name)

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration = time.time() - start_time
                logger.error("[%s] Failed %s after %.3fs: %s", operation_id, operation_name, duration, str(e))
                raise

            duration = time.time() - start_time
            logger.debug("[%s] Completed %s in %.3fs", operation_id, operation_name, duration)
            return result

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def log_security_event(
    event_type: str,
    user_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    success: bool = True,
    details: Optional[Dict[str, Any]] = None,
):
    """
    Log a security-relevant event such as a refused realtime connection.

    Args:
        event_type: Type of security event
        user_id: User identity involved, if known
        ip_address: Client address, if known
        success: Whether the event was successful
        details: Additional event details
    """
    logger = get_logger(prefix="[SECURITY]")

    event_data = {
        "event_type": event_type,
        "user_id": user_id,
        "ip_address": ip_address,
        "success": success,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if details:
        event_data["details"] = _sanitize_security_details(details)

    status = "SUCCESS" if success else "FAILURE"
    logger.info("SECURITY EVENT [%s]: %s - %s", status, event_type, event_data)


def log_application_lifecycle(event: str, details: Optional[Dict[str, Any]] = None):
    """
    Log application lifecycle events (startup, shutdown, etc.).

    Args:
        event: Lifecycle event name
        details: Additional event details
    """
    logger = get_logger(prefix="[LIFECYCLE]")

    event_data = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat()}
    if details:
        event_data.update(details)

    logger.info("APPLICATION LIFECYCLE: %s - %s", event, event_data)


def log_error_with_context(error: Exception, context: Optional[Dict[str, Any]] = None, operation: Optional[str] = None):
    """
    Log errors with full context and stack trace.

    Args:
        error: The exception that occurred
        context: Additional context information
        operation: Name of the operation that failed
    """
    logger = get_logger(prefix="[ERROR]")

    error_data = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "stack_trace": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
    }
    if operation:
        error_data["operation"] = operation
    if context:
        error_data["context"] = _sanitize_args((), context)

    logger.error("ERROR OCCURRED: %s", error_data)


_SENSITIVE_KEYS = {
    "password",
    "token",
    "secret",
    "key",
    "auth",
    "credential",
    "private",
    "hash",
    "signal",
    "sdp",
    "candidate",
}


def _sanitize_args(args: tuple, kwargs: dict) -> dict:
    """
    Sanitize function arguments to avoid logging sensitive data.

    Session descriptions and ICE candidates count as sensitive: they carry
    network addresses of the participants.
    """
    sanitized: Dict[str, Any] = {}

    if args:
        sanitized["args"] = [
            (
                "<REDACTED>"
                if any(key in str(arg).lower() for key in _SENSITIVE_KEYS)
                else str(arg)[:100] + ("..." if len(str(arg)) > 100 else "")
            )
            for arg in args
        ]

    if kwargs:
        sanitized["kwargs"] = {}
        for key, value in kwargs.items():
            if any(sensitive_key in key.lower() for sensitive_key in _SENSITIVE_KEYS):
                sanitized["kwargs"][key] = "<REDACTED>"
            else:
                str_value = str(value)
                sanitized["kwargs"][key] = str_value[:100] + ("..." if len(str_value) > 100 else "")

    return sanitized


def _sanitize_security_details(details: Dict[str, Any]) -> Dict[str, Any]:
    """Redact values whose keys look sensitive."""
    return {
        key: "<REDACTED>" if any(sensitive_key in key.lower() for sensitive_key in _SENSITIVE_KEYS) else value
        for key, value in details.items()
    }
