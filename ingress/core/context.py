"""Identifiers of the request currently being served.

The correlation ID follows one client operation across services; the
request ID names a single exchange with this one. Middleware sets both at
the start of a request. The error formatter, the span hooks and the log
records read them back from here, and concurrent requests never see each
other's values because each task runs in its own context copy.
"""

import uuid
from contextvars import ContextVar
from typing import ClassVar


class RequestContext:
    """Context-variable storage for the current request's identifiers."""

    _correlation_id: ClassVar[ContextVar[str | None]] = ContextVar(
        "correlation_id", default=None
    )
    _request_id: ClassVar[ContextVar[str | None]] = ContextVar(
        "request_id", default=None
    )

    @classmethod
    def set_correlation_id(cls, correlation_id: str) -> None:
        cls._correlation_id.set(correlation_id)

    @classmethod
    def get_correlation_id(cls) -> str | None:
        return cls._correlation_id.get()

    @classmethod
    def set_request_id(cls, request_id: str) -> None:
        cls._request_id.set(request_id)

    @classmethod
    def get_request_id(cls) -> str | None:
        return cls._request_id.get()

    @classmethod
    def clear(cls) -> None:
        """Forget both identifiers in the current context."""
        cls._correlation_id.set(None)
        cls._request_id.set(None)


def generate_correlation_id() -> str:
    """Return a new random correlation ID (a UUID4 string)."""
    return str(uuid.uuid4())


def generate_request_id() -> str:
    """Return a new request ID of the form `req-<uuid4>`."""
    return f"req-{uuid.uuid4()}"
