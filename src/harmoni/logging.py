"""Logging configuration for harmoni.

Uses Python's standard logging module with support for:
- File logging via argument or HARMONI_LOG environment variable
- Level selection via argument or HARMONI_LOG_LEVEL environment variable
- Extra TRACE and VERBOSE levels for watcher diagnostics
- Stderr fallback when no log file is configured
"""

from __future__ import annotations

import logging
import os
import sys

# Custom log levels
TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

# Package logger; library code never configures handlers on import
logger = logging.getLogger("harmoni")
logger.addHandler(logging.NullHandler())

_initialized = False

# Map string level names to logging constants
_LEVEL_MAP = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "VERBOSE": VERBOSE,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class _LowercaseLevelFormatter(logging.Formatter):
    """Formatter that emits lowercase level names."""

    def format(self, record: logging.LogRecord) -> str:
        record.levelname = record.levelname.lower()
        return super().format(record)


def parse_level(level: str | int | None, default: int = logging.INFO) -> int:
    """Convert a level name or number to a logging level.

    Args:
        level: Level name (case-insensitive), numeric level, or None.
        default: Level returned for None or unknown names.

    Returns:
        A numeric logging level.
    """
    if level is None:
        return default
    if isinstance(level, int):
        return level
    return _LEVEL_MAP.get(level.strip().upper(), default)


def setup_logging(level: str | int | None = None, file: str | None = None) -> None:
    """Initialize harmoni logging for a host application.

    Arguments take precedence, with environment variable fallback.
    Call this once at startup. Subsequent calls are no-ops.

    Args:
        level: Log level name or number (default: HARMONI_LOG_LEVEL, then INFO).
        file: Log file path (default: HARMONI_LOG, then stderr on a TTY).
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    log_level = parse_level(level if level is not None else os.environ.get("HARMONI_LOG_LEVEL"))
    logger.setLevel(log_level)

    # Format: HH:MM:SS level: name: message
    formatter = _LowercaseLevelFormatter(
        "%(asctime)s %(levelname)s: %(name)s: %(message)s", datefmt="%H:%M:%S"
    )

    log_path = file or os.environ.get("HARMONI_LOG")

    if log_path:
        log_path = os.path.expanduser(log_path)
        try:
            file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            if sys.stderr.isatty():
                print(f"[harmoni] Failed to open log file: {e}", file=sys.stderr)
                _add_stderr_handler(formatter, log_level)
    elif sys.stderr.isatty():
        _add_stderr_handler(formatter, log_level)


def _add_stderr_handler(formatter: logging.Formatter, level: int = logging.DEBUG) -> None:
    """Add a stderr handler to the logger."""
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(level)
    stderr_handler.setFormatter(formatter)
    logger.addHandler(stderr_handler)


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Optional name for a child logger (e.g., "watcher", "formats").
              If None, returns the root harmoni logger.

    Returns:
        A logger instance.
    """
    if name:
        return logger.getChild(name)
    return logger
