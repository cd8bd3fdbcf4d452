"""
referral_kernel.logging_config -- JSON log lines for referral events.

Every event the kernel emits (``referral_created``,
``approval_decision_recorded``, ``concentration_alerts_computed`` ...) is
one JSON object per line.  Request-scoped identifiers bound through
``LogContext`` (correlation, request, acting user, referral) are merged
into each line so a decision can be traced without threading ids through
every call.
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
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

_ROOT = "referral_kernel"

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("referral_log_context", default=_EMPTY)


class LogContext:
    """Request-scoped log fields, safe across threads and tasks."""

    FIELDS = ("correlation_id", "request_id", "actor_id", "referral_id")

    @classmethod
    def _merged(cls, fields: dict[str, str | None]) -> Mapping[str, str]:
        unknown = set(fields) - set(cls.FIELDS)
        if unknown:
            raise TypeError(f"unknown log context field(s): {sorted(unknown)}")
        current = dict(_context.get())
        current.update({k: str(v) for k, v in fields.items() if v is not None})
        return MappingProxyType(current)

    @classmethod
    def set(
        cls,
        *,
        correlation_id: str | None = None,
        request_id: str | None = None,
        actor_id: str | None = None,
        referral_id: str | None = None,
    ) -> None:
        """Set fields for the rest of the current context.  None leaves a field as is."""
        _context.set(cls._merged({
            "correlation_id": correlation_id,
            "request_id": request_id,
            "actor_id": actor_id,
            "referral_id": referral_id,
        }))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[type["LogContext"]]:
        """Bind fields for the duration of a ``with`` block."""
        token = _context.set(cls._merged(fields))
        try:
            yield cls
        finally:
            _context.reset(token)


# Attributes every LogRecord has; anything else came in through ``extra=``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (frozenset, set, tuple)):
        return [_jsonable(v) for v in value]
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        line.update(_context.get())
        line.update(
            (k, v) for k, v in vars(record).items()
            if k not in _RECORD_ATTRS and k not in line
        )

        if record.exc_info and record.exc_info[1] is not None:
            line.update(self._exception_fields(record.exc_info[1]))
            line["traceback"] = self.formatException(record.exc_info)

        return json.dumps(line, default=_jsonable)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        # ReferralEngineError subclasses expose their context as public attributes.
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        for name, value in vars(exc).items():
            if not name.startswith("_") and name != "code":
                fields[f"exc_{name}"] = value
        return fields


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``referral_kernel`` namespace, e.g. ``services.approval_gate``."""
    return logging.getLogger(f"{_ROOT}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``referral_kernel`` logger.  Later calls are no-ops."""
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    kernel_logger = logging.getLogger(_ROOT)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False
    kernel_logger.addHandler(handler)


def reset_logging() -> None:
    """Undo ``configure_logging``.  Used by tests."""
    global _configured
    with _configure_lock:
        _configured = False
    kernel_logger = logging.getLogger(_ROOT)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
    kernel_logger.propagate = True
