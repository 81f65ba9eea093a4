"""
Structured JSON logging for the payroll kernel.

Every line is one JSON object::

    {"ts": ..., "level": "INFO", "logger": "payroll_kernel.services.lifecycle",
     "message": "configuration_approved", "entity_type": "PayGrade",
     "entity_id": "...", "actor_id": "...", "version": 2}

Messages are snake_case event names; details go in ``extra``.  The fields
bound with ``LogContext.bind`` (which record, which actor) are added to
every line emitted inside the block.  A logged PayrollKernelError
contributes its ``to_dict()`` fields with an ``exc_`` prefix, so a rejected
validation carries its violations and a storage failure its operation.
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
from collections.abc import Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, is_dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

_LOGGER_PREFIX = "payroll_kernel"


class LogContext:
    """Request-scoped log fields, safe across threads and tasks."""

    FIELDS = ("correlation_id", "actor_id", "entity_type", "entity_id")

    _fields: ContextVar[Mapping[str, str]] = ContextVar("payroll_log_context", default={})

    @classmethod
    def _clean(cls, values: Mapping[str, Any]) -> dict[str, str]:
        return {
            key: str(value)
            for key, value in values.items()
            if key in cls.FIELDS and value is not None
        }

    @classmethod
    def set(cls, **values: Any) -> None:
        """Merge non-None values into the current context."""
        cls._fields.set({**cls._fields.get(), **cls._clean(values)})

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(cls._fields.get())

    @classmethod
    def clear(cls) -> None:
        cls._fields.set({})

    @classmethod
    @contextmanager
    def bind(cls, **values: Any) -> Iterator[type["LogContext"]]:
        """Add fields for the duration of the block, then restore the previous context."""
        token = cls._fields.set({**cls._fields.get(), **cls._clean(values)})
        try:
            yield cls
        finally:
            cls._fields.reset(token)


_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {"exc_type": type(exc).__name__, "exc_message": str(exc)}
    to_dict = getattr(exc, "to_dict", None)
    if callable(to_dict):
        for key, value in to_dict().items():
            if key != "message":
                fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        # Bound context wins over a same-named extra.
        for key, value in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``payroll_kernel`` namespace, e.g. ``services.lifecycle``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Install the JSON handler on the ``payroll_kernel`` logger.  Later calls are no-ops."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)
    root.propagate = False

    installed = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    installed.setFormatter(StructuredFormatter())
    root.addHandler(installed)


def reset_logging() -> None:
    """Undo configure_logging.  Tests only."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_LOGGER_PREFIX)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
    root.propagate = True
