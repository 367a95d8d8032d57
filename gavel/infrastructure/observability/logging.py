"""Logging helpers for gavel.

All modules log through :func:`get_logger`. Request and auction identifiers
are attached with :func:`log_context` so that every line emitted while an
operation runs carries them.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


class ContextualFormatter(logging.Formatter):
    """Formatter that appends the active context fields as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        ctx = _log_context.get()
        if not ctx:
            return message
        fields = " ".join(f"{key}={value}" for key, value in ctx.items())
        return f"{message} [{fields}]"


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Attach ``fields`` to every log line emitted inside the block.

    Usage::

        with log_context(auction_id=auction.id, bidder_id=bidder_id):
            logger.info("Bid accepted")

    Nested blocks merge their fields; the outer context is restored on exit.
    """
    token = _log_context.set({**_log_context.get(), **fields})
    try:
        yield
    finally:
        _log_context.reset(token)


def current_log_context() -> dict[str, Any]:
    """Return a copy of the fields currently attached to log lines."""
    return dict(_log_context.get())


_configured = False


def configure_logging(
    level: int = logging.INFO,
    third_party_level: int = logging.WARNING,
) -> None:
    """Install the contextual stderr handler on the root logger.

    Call once at startup (CLI entry point, FastAPI lifespan). Repeated calls
    are ignored.
    """
    global _configured
    if _configured:
        return
    _configured = True

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ContextualFormatter(_LOG_FORMAT))
    root.addHandler(handler)

    for name in ("httpx", "httpcore", "asyncio", "uvicorn.access"):
        logging.getLogger(name).setLevel(third_party_level)


def get_logger(name: str) -> logging.Logger:
    """Return the logger called ``name``.

    Loggers obtained before :func:`configure_logging` propagate to the root
    logger, so pytest's ``caplog`` and embedding applications see them.
    """
    return logging.getLogger(name)


def log_exception(
    logger: logging.Logger,
    message: str,
    exc: BaseException,
    **context: Any,
) -> None:
    """Log ``exc`` with its traceback and extra context fields."""
    with log_context(**context):
        logger.exception("%s: %s", message, exc)


__all__ = [
    "ContextualFormatter",
    "configure_logging",
    "current_log_context",
    "get_logger",
    "log_context",
    "log_exception",
]
