"""Logging configuration for the fitness tracker client."""

import logging
import sys
from datetime import datetime

from config import LOG_DIR, LOG_LEVEL
from utils.log_sanitizer import sanitize_log

LOGGER_NAME = "fitness_tracker"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"


class SanitizingFilter(logging.Filter):
    """Strip e-mails and tokens from records before any handler sees them."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = sanitize_log(record.getMessage())
        record.args = None
        return True


def _file_handler(level: int) -> logging.Handler:
    """One log file per day in LOG_DIR."""
    path = LOG_DIR / f"{datetime.now():%Y-%m-%d}.log"
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    return handler


def setup_logging() -> logging.Logger:
    """Configure the shared logger: sanitizing filter, file output, console on a TTY."""
    log = logging.getLogger(LOGGER_NAME)
    level = getattr(logging, LOG_LEVEL.upper(), logging.INFO)
    log.setLevel(level)

    # Re-running setup must not stack handlers
    log.handlers.clear()
    log.filters.clear()
    log.addFilter(SanitizingFilter())

    log.addHandler(_file_handler(level))
    if sys.stdout is not None and sys.stdout.isatty():
        log.addHandler(_console_handler(level))

    return log


# Global logger instance
logger = setup_logging()
