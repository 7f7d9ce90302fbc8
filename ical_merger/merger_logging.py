"""
Central logging configuration for ical_merger.

Quiets chatty third-party loggers (aiohttp access logs, httpx request lines)
while keeping ical_merger's own messages, and tags every record with the
current request correlation ID.
"""

import logging
import os
from typing import Optional

NOISY_LOGGERS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
}


class CorrelationIdFilter(logging.Filter):
    """Add ``request_id`` to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        # Imported here so logging can be configured before aiohttp is imported
        try:
            from .api.middleware import get_request_id

            record.request_id = get_request_id()
        except ImportError:
            record.request_id = "no-request-id"
        return True


def _level_from_env(default: int) -> int:
    env_debug = os.getenv("ICAL_MERGER_DEBUG", "").lower() in ("1", "true", "yes", "on")
    if env_debug:
        return logging.DEBUG
    env_log_level = os.getenv("ICAL_MERGER_LOG_LEVEL", "").upper()
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        return getattr(logging, env_log_level)
    return default


def configure_merger_logging(level: Optional[int] = None) -> int:
    """
    Apply ical_merger log levels and the correlation ID filter.

    Args:
        level: Level for the root and ical_merger loggers (default INFO).
            ICAL_MERGER_DEBUG / ICAL_MERGER_LOG_LEVEL override it.

    Returns:
        The effective level that was applied
    """
    effective = _level_from_env(level if level is not None else logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(effective)

    correlation_filter = CorrelationIdFilter()
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] [%(request_id)s] %(levelname)s - %(name)s - %(message)s")
        )
        root_logger.addHandler(handler)

    for existing_handler in root_logger.handlers:
        if not any(isinstance(f, CorrelationIdFilter) for f in existing_handler.filters):
            existing_handler.addFilter(correlation_filter)

    for logger_name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(max(noisy_level, effective))

    logging.getLogger("ical_merger").setLevel(effective)
    logging.getLogger(__name__).debug(
        "Logging configured at level %s", logging.getLevelName(effective)
    )
    return effective


def get_logging_status() -> dict[str, str]:
    """Map of key logger names to their current level names."""
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ("ical_merger", *NOISY_LOGGERS):
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
