"""Per-request correlation IDs carried through contextvars."""

import contextvars
import logging
import uuid
from typing import Any, MutableMapping, Optional

LOGGER_PREFIX = "witness."
MAX_INCOMING_ID_LENGTH = 128

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


def adopt_correlation_id(incoming: Optional[str]) -> str:
    """Use a client-supplied X-Request-ID when it is printable, else keep the current one."""
    if incoming:
        candidate = incoming.strip()
        if (
            candidate
            and len(candidate) <= MAX_INCOMING_ID_LENGTH
            and candidate.isprintable()
        ):
            set_correlation_id(candidate)
            return candidate
    current = get_correlation_id()
    if current is None:
        current = generate_correlation_id()
        set_correlation_id(current)
    return current


class CorrelationLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter injecting the correlation ID and component into every record."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})

        correlation_id = get_correlation_id()
        extra["correlation_id"] = correlation_id if correlation_id is not None else "-"

        logger_name = self.logger.name
        if logger_name.startswith(LOGGER_PREFIX):
            extra["component"] = logger_name[len(LOGGER_PREFIX) :]
        else:
            extra["component"] = logger_name

        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(component: str) -> CorrelationLoggerAdapter:
    """Return the adapter for ``witness.<component>``."""
    return CorrelationLoggerAdapter(logging.getLogger(LOGGER_PREFIX + component), {})
