"""Request correlation ID management and the context-aware logger adapter."""

import contextvars
import logging
import uuid
from typing import Any, MutableMapping, Optional

ROOT_LOGGER_NAME = "httphost"
CORRELATION_ID_KEY = "correlation_id"

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


class ContextLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter carrying bound fields, correlation ID and component.

    Bound fields come from ``with_fields``/``with_context``; fields passed in
    ``extra`` on a single call win over bound ones.
    """

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        """Merge bound fields, correlation_id and component into ``extra``."""
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})

        correlation_id = get_correlation_id() or extra.get("correlation_id")
        extra["correlation_id"] = correlation_id if correlation_id else "-"

        logger_name = self.logger.name
        prefix = f"{ROOT_LOGGER_NAME}."
        if logger_name.startswith(prefix):
            component = logger_name[len(prefix) :]
        else:
            component = logger_name
        extra["component"] = component

        kwargs["extra"] = extra
        return msg, kwargs

    def with_fields(self, **fields: Any) -> "ContextLoggerAdapter":
        """Return an adapter that adds ``fields`` to every record."""
        return ContextLoggerAdapter(self.logger, {**(self.extra or {}), **fields})

    def with_context(self, ctx) -> "ContextLoggerAdapter":
        """Return an adapter bound to the correlation ID carried by ``ctx``."""
        correlation_id = ctx.value(CORRELATION_ID_KEY)
        if correlation_id is None:
            return self.with_fields()
        return self.with_fields(correlation_id=correlation_id)

    def child(self, suffix: str) -> "ContextLoggerAdapter":
        """Return an adapter on a child logger keeping the bound fields."""
        return ContextLoggerAdapter(self.logger.getChild(suffix), dict(self.extra or {}))


def get_logger(name: str) -> ContextLoggerAdapter:
    """Return an adapter for a component logger under the project namespace."""
    return ContextLoggerAdapter(logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}"), {})
