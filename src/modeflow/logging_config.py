"""
Logging configuration for Modeflow.

All loggers live under the ``modeflow`` namespace. Records carry the session
and mode being worked on, so interleaved hook and CLI output in a shared log
can be told apart:

    2026-01-05 10:12:00 - modeflow.gates.evaluator - INFO - [abcd1234/implementation] Exit blocked ...

Use ``log_context`` around work done for one session.
"""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional, Tuple


ROOT_LOGGER = "modeflow"

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(session)s/%(mode)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Session ids are uuids; the first block is enough to tell sessions apart
SESSION_ID_LENGTH = 8

_context: ContextVar[Tuple[Optional[str], Optional[str]]] = ContextVar(
    "modeflow_log_context", default=(None, None)
)


class SessionContextFilter(logging.Filter):
    """Stamp ``session`` and ``mode`` onto every record; ``-`` when unknown."""

    def filter(self, record: logging.LogRecord) -> bool:
        session_id, mode = _context.get()
        if not hasattr(record, "session"):
            record.session = session_id[:SESSION_ID_LENGTH] if session_id else "-"
        if not hasattr(record, "mode"):
            record.mode = mode or "-"
        return True


@contextmanager
def log_context(session_id: Optional[str], mode: Optional[str] = None) -> Iterator[None]:
    """
    Attach a session (and optionally a mode) to log records inside the block.

    A nested block without a mode keeps the enclosing block's mode for the
    same session.
    """
    outer_session, outer_mode = _context.get()
    if mode is None and session_id == outer_session:
        mode = outer_mode
    token = _context.set((session_id, mode))
    try:
        yield
    finally:
        _context.reset(token)


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure logging for Modeflow.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to WARNING for library usage; the CLI passes the
               configured ``log_level`` setting.
    """
    log_level = level or "WARNING"

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(getattr(logging, log_level.upper()))

    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        handler.addFilter(SessionContextFilter())
        root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger nested under the ``modeflow`` namespace
    """
    if not logging.getLogger(ROOT_LOGGER).handlers:
        setup_logging()

    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
