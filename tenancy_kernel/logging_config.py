"""
Structured JSON logging for the tenancy kernel.

Every record is one JSON object per line.  Request-scoped identifiers
(correlation, actor, tenant, property, unit, lease) live in context
variables so that every step of an assignment saga, including its
compensation, carries the same fields without threading them through
call signatures.

Usage::

    logger = get_logger("services.assignment")

    with LogContext.operation(tenant_id=tenant_id, actor_id=actor_id):
        logger.info("assignment_started", extra={"space": str(key)})
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

_LOGGER_PREFIX = "tenancy_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "tenant_id",
    "property_id",
    "unit_id",
    "lease_id",
)

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"tenancy_log_{name}", default=None) for name in CONTEXT_FIELDS
}


def _context_var(name: str) -> ContextVar[str | None]:
    try:
        return _context[name]
    except KeyError:
        raise TypeError(f"Unknown log context field: {name}") from None


# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------


class LogContext:
    """Request-scoped log fields backed by contextvars (thread and task safe)."""

    @staticmethod
    def set(**fields: Any) -> None:
        """Set context fields for the rest of the current context.  None values are skipped."""
        for name, value in fields.items():
            if value is not None:
                _context_var(name).set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: value
            for name, var in _context.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Set fields on entry and restore the previous values on exit."""
        tokens: list[tuple[ContextVar[str | None], Token]] = []
        try:
            for name, value in fields.items():
                if value is None:
                    continue
                var = _context_var(name)
                tokens.append((var, var.set(str(value))))
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)

    @staticmethod
    @contextmanager
    def operation(**fields: Any) -> Iterator[str]:
        """
        Like bind(), and also opens a correlation scope.

        An already bound correlation id is kept so nested operations (a
        sweep repairing through the ledger) log under the caller's id.
        Yields the correlation id in force.
        """
        correlation_id = (
            fields.pop("correlation_id", None)
            or _context["correlation_id"].get()
            or uuid4().hex
        )
        with LogContext.bind(correlation_id=correlation_id, **fields):
            yield correlation_id


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # Typed kernel errors expose their structured attributes
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, message, context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }

        for name, value in vars(record).items():
            if name not in _RESERVED_ATTRS:
                payload.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Logger factory and initialisation
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the tenancy_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the tenancy_kernel hierarchy.  Idempotent."""
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

        root = logging.getLogger(_LOGGER_PREFIX)
        root.setLevel(level)
        root.propagate = False
        target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        root.addHandler(target)


def reset_logging() -> None:
    """Drop handlers and allow configure_logging() to run again.  Tests only."""
    global _configured
    with _configure_lock:
        _configured = False
        root = logging.getLogger(_LOGGER_PREFIX)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
