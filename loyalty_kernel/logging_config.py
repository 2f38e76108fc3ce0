"""
Structured JSON logging for the loyalty kernel.

Every record under the ``loyalty_kernel`` logger becomes one JSON line
carrying:

    - ts / level / logger / message
    - the fields bound with ``LogContext.bind`` (correlation id, operation,
      actor, account, transaction, event)
    - any ``extra={...}`` fields
    - for an attached exception: its type and message, and for kernel
      errors the code, category, HTTP status and structured attributes.

Rejections (validation, business rule, permission, not found, conflict,
rate limit) are expected outcomes, so their records carry no traceback.
Internal kernel errors and foreign exceptions do.
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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any

from loyalty_kernel.exceptions import ErrorCategory, LoyaltyKernelError, http_status_for

_LOGGER_PREFIX = "loyalty_kernel"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_EMPTY: Mapping[str, str] = MappingProxyType({})
_bound: ContextVar[Mapping[str, str]] = ContextVar("loyalty_log_context", default=_EMPTY)


class LogContext:
    """Request-scoped log fields, safe across threads and tasks.

    Only the names in ``FIELDS`` can be bound; values are stored as strings
    so integer ids render the same way as correlation ids.
    """

    FIELDS = (
        "correlation_id",
        "operation",
        "actor_id",
        "account_id",
        "transaction_id",
        "event_id",
    )

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[Mapping[str, str]]:
        """Layer ``fields`` over the current context for the ``with`` block.

        None values and unknown names are ignored.
        """
        merged = dict(_bound.get())
        merged.update(
            (name, str(value))
            for name, value in fields.items()
            if name in cls.FIELDS and value is not None
        )
        token = _bound.set(MappingProxyType(merged))
        try:
            yield _bound.get()
        finally:
            _bound.reset(token)

    @classmethod
    def current(cls) -> dict[str, str]:
        return dict(_bound.get())

    @classmethod
    def clear(cls) -> None:
        _bound.set(_EMPTY)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _to_json(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if isinstance(exc, LoyaltyKernelError):
        fields["exc_code"] = exc.code
        fields["exc_category"] = exc.category.value
        fields["exc_http_status"] = http_status_for(exc)
        for name, value in vars(exc).items():
            if not name.startswith("_"):
                fields[f"exc_{name}"] = value
    return fields


def _wants_traceback(exc: BaseException) -> bool:
    if isinstance(exc, LoyaltyKernelError):
        return exc.category is ErrorCategory.INTERNAL
    return True


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_bound.get(),
        }
        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS:
                payload.setdefault(key, val)

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload.update(_exception_fields(exc))
            if _wants_traceback(exc):
                payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the loyalty_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_installed: logging.Handler | None = None
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Install the JSON handler on the loyalty_kernel logger.

    Only the first call installs a handler; later calls leave the
    existing one (and any handlers other code attached) in place.
    """
    global _installed
    with _lock:
        if _installed is not None:
            return
        _installed = handler or logging.StreamHandler(stream or sys.stderr)
        _installed.setFormatter(StructuredFormatter())

        kernel_logger = logging.getLogger(_LOGGER_PREFIX)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False
        kernel_logger.addHandler(_installed)


def reset_logging() -> None:
    """Remove the handler installed by configure_logging. FOR TESTING ONLY."""
    global _installed
    with _lock:
        kernel_logger = logging.getLogger(_LOGGER_PREFIX)
        if _installed is not None:
            kernel_logger.removeHandler(_installed)
            _installed = None
        kernel_logger.setLevel(logging.NOTSET)
        kernel_logger.propagate = True
