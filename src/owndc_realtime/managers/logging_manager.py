"""
Centralized logging manager for the application.

Every module obtains its logger through :func:`get_logger`. Handlers are
attached once to the application's base logger:

- a console ``StreamHandler`` on stdout (always),
- a per-worker ``FileHandler`` under ``logs/`` when ``LOG_TO_FILE`` is set,
- a ``LokiLoggerHandler`` when ``LOKI_ENABLED`` is set.

Prefixed loggers (``get_logger(prefix="[Realtime-Voice]")``) are children of the
base logger, so they share its handlers and only add their prefix to messages.
"""

import logging
import os
import sys

from loki_logger_handler.loki_logger_handler import LokiLoggerHandler

from owndc_realtime.config import settings

BASE_LOGGER_NAME: str = "OwnDC_Realtime"
LOG_LEVEL: str = os.getenv("LOG_LEVEL", settings.LOG_LEVEL).upper()
LOKI_TAGS: dict[str, str] = {
    "app": os.getenv("APP_NAME", settings.APP_NAME),
    "env": os.getenv("ENV", settings.ENV),
}


class PrefixFilter(logging.Filter):
    """Prepend a fixed prefix to every record logged through one logger."""

    def __init__(self, prefix: str):
        super().__init__()
        self.prefix = prefix

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "_prefix_applied", False):
            record.msg = f"{self.prefix} {record.msg}"
            record._prefix_applied = True
        return True


def _ensure_console_handler(logger: logging.Logger, formatter: logging.Formatter) -> bool:
    """
    Ensure logger has a StreamHandler for console output.

    Returns:
        bool: True if a new StreamHandler was added, False if one already existed
    """
    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler) and getattr(handler, "stream", None) is sys.stdout:
            return False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    return True


def get_worker_log_filename() -> str:
    return os.path.join("logs", f"worker_{os.getpid()}.log")


def _ensure_file_handler(logger: logging.Logger, formatter: logging.Formatter) -> None:
    log_filename = get_worker_log_filename()
    os.makedirs(os.path.dirname(log_filename), exist_ok=True)
    if any(
        isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == os.path.abspath(log_filename)
        for h in logger.handlers
    ):
        return
    file_handler = logging.FileHandler(log_filename)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def _ensure_loki_handler(logger: logging.Logger) -> None:
    if any(isinstance(h, LokiLoggerHandler) for h in logger.handlers):
        return
    try:
        loki_handler = LokiLoggerHandler(
            url=settings.LOKI_URL,
            labels=LOKI_TAGS,
            auth=None,
            compressed=settings.LOKI_COMPRESS,
        )
    except (ValueError, OSError) as e:
        logger.warning("[LoggingManager] Could not attach Loki handler (%s), console logging only", e)
        return
    logger.addHandler(loki_handler)
    logger.info("[LoggingManager] LokiLoggerHandler attached (url=%s, labels=%s)", settings.LOKI_URL, LOKI_TAGS)


def _configure_base_logger(name: str, add_loki: bool) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    formatter = logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")

    if _ensure_console_handler(logger, formatter):
        logger.info("[LoggingManager] Console StreamHandler attached to logger '%s'", name)
    if settings.LOG_TO_FILE:
        _ensure_file_handler(logger, formatter)
    if add_loki and settings.LOKI_ENABLED:
        _ensure_loki_handler(logger)
    return logger


def get_logger(name: str = BASE_LOGGER_NAME, add_loki: bool = True, prefix: str = "") -> logging.Logger:
    """
    Get a configured logger.

    Args:
        name: Base logger name. Handlers are attached to this logger.
        add_loki: Attach the Loki handler when Loki is enabled in settings.
        prefix: Optional message prefix such as ``"[Realtime-Voice]"``.

    Returns:
        logging.Logger: The base logger, or a prefixed child of it.
    """
    base_logger = _configure_base_logger(name, add_loki)
    if not prefix:
        return base_logger

    child_name = prefix.strip("[] ").replace(" ", "_") or "prefixed"
    logger = base_logger.getChild(child_name)
    if not any(isinstance(f, PrefixFilter) for f in logger.filters):
        logger.addFilter(PrefixFilter(prefix))
    return logger
