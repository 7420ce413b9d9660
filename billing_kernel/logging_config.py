"""
Structured JSON logging for the billing kernel and the invoice scheduler.

Every log line is one JSON object: a fixed envelope (``ts``, ``level``,
``logger``, ``message``), whatever scheduler context is bound at the time
of the call (pass, tenant, config, actor), then the ``extra`` fields passed
by the caller.  Exceptions raised from the kernel hierarchy contribute
their ``code`` and structured attributes as ``exc_*`` keys.

All loggers live under the ``billing_kernel`` namespace and do not
propagate to the root logger, so host applications keep control of their
own handlers.
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
from contextvars import ContextVar
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

_LOGGER_PREFIX = "billing_kernel"


# ---------------------------------------------------------------------------
# Scheduler context
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS: tuple[str, ...] = (
    "pass_id",
    "trigger",
    "tenant_id",
    "tenant_name",
    "config_id",
    "actor_id",
)

_context: ContextVar[Mapping[str, str]] = ContextVar(
    "billing_log_context", default={}
)


def _checked(fields: Mapping[str, Any]) -> dict[str, str]:
    unknown = set(fields) - set(_CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown log context field(s): {sorted(unknown)}")
    return {k: str(v) for k, v in fields.items() if v is not None}


class LogContext:
    """
    Per-thread / per-task log fields for the current scheduler pass.

    The scheduler binds ``pass_id`` and ``trigger`` around a pass, then
    ``tenant_id`` / ``config_id`` around each config it processes, so every
    event emitted underneath carries them without threading them through
    call signatures.  Values are stored as strings.
    """

    FIELDS = _CONTEXT_FIELDS

    @staticmethod
    def set(**fields: Any) -> None:
        """Merge non-None fields into the current context."""
        _context.set({**_context.get(), **_checked(fields)})

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set({})

    @staticmethod
    def bind(**fields: Any) -> "_Binding":
        """Context manager: merge fields on entry, restore the previous context on exit."""
        return _Binding(_checked(fields))


class _Binding:
    def __init__(self, fields: dict[str, str]):
        self._fields = fields
        self._token = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set({**_context.get(), **self._fields})
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        _context.reset(self._token)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

_RESERVED_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (UUID, Enum)):
        return str(value.value if isinstance(value, Enum) else value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if name != "code" and not name.startswith("_"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a LogRecord as one JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_context.get())

        for key, value in vars(record).items():
            if key not in _RESERVED_KEYS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Return ``billing_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_setup_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``billing_kernel`` logger.

    Only the first call installs a handler; later calls are no-ops until
    ``reset_logging()``.  ``level`` accepts an int or a level name.
    """
    global _installed_handler
    with _setup_lock:
        if _installed_handler is not None:
            return
        _installed_handler = handler or logging.StreamHandler(stream or sys.stderr)
        _installed_handler.setFormatter(StructuredFormatter())

        namespace = logging.getLogger(_LOGGER_PREFIX)
        namespace.setLevel(level.upper() if isinstance(level, str) else level)
        namespace.propagate = False
        namespace.addHandler(_installed_handler)


def reset_logging() -> None:
    """Remove the installed handler. Tests only."""
    global _installed_handler
    with _setup_lock:
        namespace = logging.getLogger(_LOGGER_PREFIX)
        namespace.handlers.clear()
        namespace.setLevel(logging.WARNING)
        _installed_handler = None
