"""
Logging setup for applications embedding extloader.

The library itself only emits records through ``logging.getLogger(__name__)``;
call ``setup_logging()`` from the host application to get console output.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Optional

LOGGER_NAME = "extloader"

STANDARD_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(context)s] %(message)s"


class ContextFilter(logging.Filter):
    """Attach the configured context label to every record."""

    def __init__(self, context: str):
        super().__init__()
        self.context = context

    def filter(self, record: logging.LogRecord) -> bool:
        record.context = self.context
        return True


class JsonFormatter(logging.Formatter):
    """Render records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "context": getattr(record, "context", None),
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(
    context: str = "app",
    level: Optional[str] = None,
    log_format: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the extloader logger.

    Args:
        context: Label added to every record (e.g. "app", "tests")
        level: Log level name, defaults to settings.log_level
        log_format: "standard" or "json", defaults to settings.log_format

    Returns:
        The configured package logger

    Raises:
        ValueError: If the level or format is unknown
    """
    from extloader.config import settings

    level_name = (level or settings.log_level).upper()
    numeric_level = logging.getLevelName(level_name)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level_name}")

    format_name = (log_format or settings.log_format).lower()
    if format_name == "json":
        formatter: logging.Formatter = JsonFormatter()
    elif format_name == "standard":
        formatter = logging.Formatter(STANDARD_FORMAT)
    else:
        raise ValueError(f"Unknown log format: {format_name}")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(numeric_level)

    # Replace handlers from a previous call
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if settings.log_console_enabled:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        handler.addFilter(ContextFilter(context))
        logger.addHandler(handler)
    else:
        logger.addHandler(logging.NullHandler())

    logger.debug(f"Logging configured (context={context}, level={level_name})")
    return logger
