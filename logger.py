"""Logging for MindScribe.

Reminder titles and bodies come from personal diary entries. Call sites
already shorten them with sanitize_for_log; records are also redacted
before the file handler writes them.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from config import LOG_DIR, LOG_LEVEL
from utils.log_sanitizer import sanitize_log

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"


class RedactingFilter(logging.Filter):
    """Render the message once and redact it before it reaches a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = sanitize_log(record.getMessage())
        record.args = None
        return True


def setup_logging(
    name: str = "mindscribe",
    log_dir: Optional[Path] = None,
    level: Optional[str] = None,
) -> logging.Logger:
    """Configure a logger with a dated, redacted log file and a TTY console.

    Args:
        name: Logger name
        log_dir: Directory for the daily log file (default LOG_DIR)
        level: Level name such as "DEBUG" (default LOG_LEVEL)

    Returns:
        The configured logger; calling again replaces its handlers
    """
    log_dir = Path(log_dir) if log_dir is not None else LOG_DIR
    log_level = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)

    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(
        log_dir / f"{datetime.now():%Y-%m-%d}.log", encoding="utf-8"
    )
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    file_handler.addFilter(RedactingFilter())
    logger.addHandler(file_handler)

    # No console when running in the background
    if sys.stdout is not None and sys.stdout.isatty():
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
        logger.addHandler(console_handler)

    return logger


logger = setup_logging()
