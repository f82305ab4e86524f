"""
Non-Blocking Logging Configuration

Log records are put on a queue and written to stdout by a background
listener thread, so request handlers on the event loop never block on
console I/O.

Usage:
    from utils.logger_config import configure_non_blocking_logging

    # At application startup (before any logging)
    listener = configure_non_blocking_logging()

    # At shutdown (optional, atexit handles this automatically)
    stop_logging()
"""

import atexit
import logging
import logging.handlers
import os
import queue
import sys
from typing import Optional

# Module-level reference to the listener for shutdown handling
_log_listener: Optional[logging.handlers.QueueListener] = None

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%H:%M:%S"

# Libraries that flood INFO with per-request or per-connection lines
NOISY_LOGGERS: tuple[str, ...] = (
    "asyncio",
    "httpx",
    "httpcore",
    "uvicorn.access",
    "multipart",
)


def _resolve_log_level(value: str | None) -> int:
    """Resolve log level from a level name or numeric string."""
    if value is None:
        return logging.INFO

    stripped = value.strip().upper()
    level = logging.getLevelName(stripped)
    if isinstance(level, int):
        return level
    if stripped == "WARN":
        return logging.WARNING

    try:
        return int(stripped)
    except ValueError:
        return logging.INFO


def configure_non_blocking_logging(
    level: int | None = None,
    log_format: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    silence_noisy_libs: bool = True,
) -> logging.handlers.QueueListener:
    """
    Route all logging through a QueueHandler and a background listener.

    Calling it again replaces the previous listener instead of stacking
    handlers.

    Args:
        level: Log level (default: from LOG_LEVEL env var or INFO)
        log_format: Format string for log messages
        date_format: Format string for timestamps
        silence_noisy_libs: If True, set noisy libraries to WARNING level

    Returns:
        QueueListener instance (store reference for graceful shutdown)
    """
    global _log_listener

    if level is None:
        level = _resolve_log_level(os.getenv("LOG_LEVEL"))

    if _log_listener is not None:
        stop_logging()

    log_queue: queue.Queue = queue.Queue(-1)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))

    listener = logging.handlers.QueueListener(log_queue, console_handler, respect_handler_level=True)
    listener.start()

    queue_handler = logging.handlers.QueueHandler(log_queue)
    queue_handler.setLevel(level)

    root = logging.getLogger()
    root.setLevel(level)
    # Remove existing QueueHandlers to avoid duplicates; keep others (e.g. pytest capture)
    for handler in list(root.handlers):
        if isinstance(handler, logging.handlers.QueueHandler):
            root.removeHandler(handler)
    root.addHandler(queue_handler)

    if silence_noisy_libs:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    _log_listener = listener
    return listener


def stop_logging() -> None:
    """Stop the background logging thread and flush remaining logs."""
    global _log_listener
    if _log_listener is not None:
        try:
            _log_listener.stop()
        except RuntimeError:
            pass
        _log_listener = None


def is_logging_configured() -> bool:
    return _log_listener is not None


atexit.register(stop_logging)
