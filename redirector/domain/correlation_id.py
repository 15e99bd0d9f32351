"""Per-request correlation IDs carried through log records."""

import contextlib
import contextvars
import logging
import uuid
from typing import Any, Iterator, MutableMapping, Optional

LOGGER_PREFIX = "redirector."

_correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)


def generate_correlation_id() -> str:
    """Generate a new correlation ID using UUID4."""
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    """Retrieve the current correlation ID from context."""
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    """Store a correlation ID in the current context."""
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    """Remove the correlation ID from the current context."""
    _correlation_id_var.set(None)


@contextlib.contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation ID for the duration of one request.

    The previous value is restored on exit, so nested scopes and worker
    threads reusing a context never leak IDs between requests.
    """
    value = correlation_id or generate_correlation_id()
    token = _correlation_id_var.set(value)
    try:
        yield value
    finally:
        _correlation_id_var.reset(token)


def component_for(logger_name: str) -> str:
    """Strip the project prefix from a logger name."""
    if logger_name.startswith(LOGGER_PREFIX):
        return logger_name[len(LOGGER_PREFIX) :]
    return logger_name


class CorrelationLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter injecting correlation_id and component into every record."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})

        correlation_id = get_correlation_id()
        extra["correlation_id"] = correlation_id if correlation_id is not None else "-"
        extra["component"] = component_for(self.logger.name)

        kwargs["extra"] = extra
        return msg, kwargs
