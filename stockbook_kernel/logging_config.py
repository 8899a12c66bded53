"""
stockbook_kernel.logging_config -- Structured JSON logging.

Responsibility:
    Emit every stockbook log record as one JSON line carrying the event
    name, the structured ``extra`` fields of the call site, and the
    operation-scoped context bound through ``LogContext``.

Architecture position:
    Kernel -- imported by every layer. Services and engines log through
    ``get_logger(name)``; nothing outside this module attaches handlers.

Invariants enforced:
    - Ledger values serialize losslessly: Money and Decimal as strings,
      enums as their value, records through ``to_dict()``.
    - ``configure_logging`` attaches at most one handler per process until
      ``reset_logging`` is called.

Failure modes:
    - ``LogContext.set`` / ``bind`` with an unknown field raise ValueError.
    - An unknown level name passed to ``configure_logging`` raises ValueError.
"""

from __future__ import annotations

__all__ = [
    "CONTEXT_FIELDS",
    "LOG_LEVEL_ENV_VAR",
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

import json
import logging
import os
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

_LOGGER_PREFIX = "stockbook"
LOG_LEVEL_ENV_VAR = "STOCKBOOK_LOG_LEVEL"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "operation",
    "reference",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("stockbook_log_context", default=_EMPTY)


def _check_fields(fields: Mapping[str, Any]) -> None:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise ValueError(f"Unknown log context fields: {sorted(unknown)}")


class LogContext:
    """
    Operation-scoped fields merged into every log record.

    Backed by one ContextVar holding a read-only mapping, so values follow
    threads and asyncio tasks and a ``bind`` block restores exactly what
    it replaced.
    """

    @staticmethod
    def set(**fields: str | None) -> None:
        """Set fields for the rest of the current context. None values are skipped."""
        _check_fields(fields)
        merged = dict(_context.get())
        merged.update({k: v for k, v in fields.items() if v is not None})
        _context.set(MappingProxyType(merged))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[type[LogContext]]:
        """Set fields for the duration of a ``with`` block."""
        _check_fields(fields)
        merged = dict(_context.get())
        merged.update({k: v for k, v in fields.items() if v is not None})
        token = _context.set(MappingProxyType(merged))
        try:
            yield LogContext
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

_RESERVED: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json_safe(value: Any) -> Any:
    # Money: anything carrying an amount and a currency.
    if hasattr(value, "amount") and hasattr(value, "currency"):
        return str(value.amount)
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(str(v) for v in value)
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, message, context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_to_json_safe)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # StockbookError subclasses keep their structured detail as attributes.
        for name, value in vars(exc).items():
            if not name.startswith("_") and name != "code":
                fields[f"exc_{name}"] = value
        return fields


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``stockbook`` namespace, e.g. ``stockbook.services.sales``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_configured = False
_setup_lock = threading.Lock()


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV_VAR, "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def configure_logging(
    *,
    level: int | str | None = None,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``stockbook`` logger.

    ``level`` defaults to ``$STOCKBOOK_LOG_LEVEL`` (or INFO). Calls after
    the first are ignored until ``reset_logging()``.
    """
    global _configured
    resolved = _resolve_level(level)
    with _setup_lock:
        if _configured:
            return
        _configured = True

        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())

        root = logging.getLogger(_LOGGER_PREFIX)
        root.setLevel(resolved)
        root.propagate = False
        root.addHandler(handler)


def reset_logging() -> None:
    """Detach handlers and allow ``configure_logging`` again. Used by tests."""
    global _configured
    with _setup_lock:
        _configured = False
        root = logging.getLogger(_LOGGER_PREFIX)
        for attached in list(root.handlers):
            root.removeHandler(attached)
        root.setLevel(logging.NOTSET)
        root.propagate = True
