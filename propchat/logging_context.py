"""Session ID logging context for tracing one widget session across modules.

Provides a session-aware logger that attaches the session identifier to
every log record, so a single visitor's journey through agent transfers
can be followed in the logs.

Usage:
    from propchat.logging_context import get_session_logger, set_session_id

    set_session_id("5f0c6d2e-...")
    logger = get_session_logger(__name__)
    logger.info("Transfer complete")  # record.session_id == "5f0c6d2e-..."
"""

import logging
from contextvars import ContextVar

_session_id: ContextVar[str] = ContextVar("session_id", default="NO_SESSION")

LOG_FORMAT = "%(asctime)s [%(name)s] [%(session_id)s] %(levelname)s: %(message)s"


def set_session_id(session_id: str) -> None:
    """Set the session identifier for the current async context."""
    _session_id.set(session_id)


def get_session_id() -> str:
    """Retrieve the current session identifier."""
    return _session_id.get()


class SessionIdFilter(logging.Filter):
    """Injects session_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = _session_id.get()  # type: ignore[attr-defined]
        return True


def get_session_logger(name: str) -> logging.Logger:
    """Return a logger with the SessionIdFilter attached.

    The filter adds ``session_id`` to each record so formatters can
    include ``%(session_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, SessionIdFilter) for f in logger.filters):
        logger.addFilter(SessionIdFilter())
    return logger


def install_session_filter(handler: logging.Handler) -> None:
    """Attach a SessionIdFilter to ``handler``.

    Handler filters see records from every logger, including third-party
    ones, so ``LOG_FORMAT`` can be used without a KeyError on session_id.
    """
    if not any(isinstance(f, SessionIdFilter) for f in handler.filters):
        handler.addFilter(SessionIdFilter())
