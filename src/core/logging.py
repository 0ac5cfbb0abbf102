"""
FireWatch Reports - Logging Configuration
One stdout handler for the service, with credentials masked out of every record.
"""

import logging
import re
import sys
from typing import Optional

from src.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"

# Bearer tokens, upload signatures and API keys as they appear in URLs or headers
_SECRET_PATTERNS = [
    (re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+"), r"\1***"),
    (re.compile(r"((?:signature|api_key|api_secret)=)[^&\s]+"), r"\1***"),
]


def redact(text: str) -> str:
    """Mask credentials in a log message."""
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class RedactingFilter(logging.Filter):
    """Rewrites each record's message with credentials masked."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


def setup_logging(
    level: Optional[str] = None,
    format_string: Optional[str] = None
) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_string: Custom format string for log messages

    Returns:
        Logger for the ``src`` package
    """
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RedactingFilter())

    logging.basicConfig(
        level=log_level,
        format=format_string or LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[handler]
    )

    logger = logging.getLogger("src")
    logger.setLevel(log_level)

    # Client libraries log every request at INFO
    for name in ("httpx", "httpcore", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.db_echo else logging.WARNING
    )

    return logger
