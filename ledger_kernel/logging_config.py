"""
Structured JSON logging for the ledger kernel.

Every logger lives under the ``ledger_kernel`` namespace and writes one JSON
object per record.  The message is the snake_case event name; the payload
passed as ``extra=`` lands at the top level of the object.

Correlation fields (actor, document, entry, payment) are carried in
context variables and merged into every record emitted while they are
bound, so a posting's log lines can be joined without threading ids
through every call.
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
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

ROOT_LOGGER_NAME = "ledger_kernel"

CONTEXT_FIELDS = ("correlation_id", "actor_id", "document_ref", "entry_id", "payment_id")

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"ledger_log_{name}", default=None) for name in CONTEXT_FIELDS
}


class LogContext:
    """
    Correlation fields merged into every ledger_kernel record.

    Backed by ContextVars, so values are per thread and per asyncio task.
    Services use bind() around one operation; set() is for callers that own
    the whole request (an orchestrator setting correlation_id, for example).
    """

    @staticmethod
    def set(**fields: Any) -> None:
        """Set context fields.  None values are skipped."""
        for name, value in fields.items():
            if name not in _context:
                raise TypeError(f"Unknown log context field: {name}")
            if value is not None:
                _context[name].set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        """The bound fields, in CONTEXT_FIELDS order."""
        bound = {}
        for name in CONTEXT_FIELDS:
            value = _context[name].get()
            if value is not None:
                bound[name] = value
        return bound

    @staticmethod
    def clear() -> None:
        for var in _context.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[type["LogContext"]]:
        """
        Bind fields for the duration of a block, then restore what was there.

        None values and unknown names are ignored.
        """
        tokens = [
            (_context[name], _context[name].set(str(value)))
            for name, value in fields.items()
            if value is not None and name in _context
        ]
        try:
            yield LogContext
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord has; anything else came in through extra=
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "taskName",
}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # LedgerKernelError subclasses keep their details as plain attributes
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per record.

    Key precedence: the fixed keys (ts, level, logger, message) first, then
    LogContext fields, then extra= fields that do not collide with either.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS:
                payload.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger ``ledger_kernel.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_configure_lock = threading.Lock()
_configured = False


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ledger_kernel logger.

    Only the first call has an effect; later calls return without touching
    the level or the handlers.  The kernel logger does not propagate, so an
    application's root handlers never see the records twice.
    """
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())

        kernel_logger = logging.getLogger(ROOT_LOGGER_NAME)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False
        kernel_logger.addHandler(handler)


def reset_logging() -> None:
    """Undo configure_logging().  Tests only."""
    global _configured
    with _configure_lock:
        _configured = False
        kernel_logger = logging.getLogger(ROOT_LOGGER_NAME)
        kernel_logger.handlers.clear()
        kernel_logger.setLevel(logging.WARNING)
