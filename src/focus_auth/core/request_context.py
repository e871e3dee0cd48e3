"""Request-scoped logging helpers."""

from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar

REQUEST_ID_HEADER = "X-Request-ID"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(rid)s] %(name)s: %(message)s"

_request_id: ContextVar[str] = ContextVar("request_id", default="-")


def new_request_id() -> str:
    """Return a fresh request identifier."""
    return uuid.uuid4().hex


def get_request_id() -> str:
    """Return the id of the request currently being handled ("-" outside requests)."""
    return _request_id.get()


def set_request_id(rid: str) -> None:
    _request_id.set(rid)


class RequestIdFilter(logging.Filter):
    """Attach the current request id to every record as ``rid``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.rid = get_request_id()
        return True


def configure_logging(level: str = "INFO") -> None:
    """Install a root handler whose records carry the request id."""
    root = logging.getLogger()
    for handler in root.handlers:
        if any(isinstance(f, RequestIdFilter) for f in handler.filters):
            root.setLevel(level.upper())
            return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)
    root.setLevel(level.upper())
