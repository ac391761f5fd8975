"""
Structured JSON logging for the membership kernel.

Every record is written as one JSON object per line.  Request-scoped ids
(correlation, member, actor, transition, plan) live in context variables and
are merged into every record emitted while they are set, so a single
lifecycle request can be followed across the engine, the recalculator and
the store without passing ids around.

    with LogContext.bind(member_id=member.id, actor_id=actor_id):
        logger.info("plan_applied", extra={"version": 4})

Kernel exceptions logged with ``exc_info`` contribute their ``code`` and
structured attributes as ``exc_*`` fields.
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
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

LOGGER_ROOT = "membership_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "member_id",
    "actor_id",
    "transition_id",
    "plan_id",
)

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"membership_log_{name}", default=None) for name in CONTEXT_FIELDS
}


class LogContext:
    """Request-scoped log fields, safe across threads and asyncio tasks."""

    @staticmethod
    def set(
        *,
        correlation_id: str | None = None,
        member_id: str | None = None,
        actor_id: str | None = None,
        transition_id: str | None = None,
        plan_id: str | None = None,
    ) -> None:
        """Set the given fields; ``None`` leaves a field as it is."""
        values = {
            "correlation_id": correlation_id,
            "member_id": member_id,
            "actor_id": actor_id,
            "transition_id": transition_id,
            "plan_id": plan_id,
        }
        for name, value in values.items():
            if value is not None:
                _context_vars[name].set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: value
            for name, var in _context_vars.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[type["LogContext"]]:
        """
        Set fields for the duration of a ``with`` block.

        Values are stored as strings (UUIDs are accepted).  Unknown names and
        ``None`` values are ignored.  On exit every field returns to the
        value it had before, including "unset".
        """
        tokens: list[tuple[ContextVar[str | None], Token]] = []
        for name, value in fields.items():
            var = _context_vars.get(name)
            if var is None or value is None:
                continue
            tokens.append((var, var.set(str(value))))
        try:
            yield LogContext
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json_value(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for attr, value in vars(exc).items():
        if not attr.startswith("_") and attr != "code":
            fields[f"exc_{attr}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Renders a LogRecord as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and key not in payload
        )

        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None:
            payload.update(_exception_fields(exc))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json_value)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger ``membership_kernel.<name>``."""
    return logging.getLogger(f"{LOGGER_ROOT}.{name}")


_setup_lock = threading.Lock()
_setup_done = False


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``membership_kernel`` logger.

    Only the first call has an effect until ``reset_logging`` is called.
    The kernel logger does not propagate to the root logger, so the host
    application's own handlers never see duplicate lines.
    """
    global _setup_done
    with _setup_lock:
        if _setup_done:
            return
        _setup_done = True

    target = handler or logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())

    kernel_logger = logging.getLogger(LOGGER_ROOT)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False
    kernel_logger.addHandler(target)


def reset_logging() -> None:
    """Drop kernel handlers and allow ``configure_logging`` again. Tests only."""
    global _setup_done
    with _setup_lock:
        _setup_done = False
    kernel_logger = logging.getLogger(LOGGER_ROOT)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
