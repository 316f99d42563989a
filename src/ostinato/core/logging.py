"""Structured logging infrastructure for Ostinato.

Every component logs through structlog with dotted event names
(``"ledger.evicted"``, ``"store.backup_rotated"``) and keyword fields.
Records flow through stdlib logging so one ``configure_logging`` call decides
where they go: a human-readable console on stderr, JSON lines on stdout, or
a rotating JSON file.

While an outcome is being processed the engine installs an
``EngineContext``; every log line emitted inside it carries the engine, run
and action identifiers without the callers passing them along.
"""

from __future__ import annotations

import logging
import re
import sys
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, field, replace
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console", "both"]

REDACTED = "[REDACTED]"

# Context and parameter keys that should never reach a log sink
SENSITIVE_PATTERNS = frozenset({
    "api_key",
    "apikey",
    "api-key",
    "token",
    "secret",
    "password",
    "credential",
    "auth",
    "bearer",
    "authorization",
})

_SENSITIVE_KEY = re.compile(
    "|".join(re.escape(p) for p in sorted(SENSITIVE_PATTERNS)), re.IGNORECASE
)


# =============================================================================
# Correlation context
# =============================================================================


@dataclass(frozen=True)
class EngineContext:
    """Identifiers attached to every log line emitted inside ``with_context``.

    ``run_id`` is unique per engine instance; ``action_id`` is set while a
    single outcome is being learned from.
    """

    engine_id: str
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    action_id: str | None = None
    component: str = "engine"

    def with_action(self, action_id: str) -> EngineContext:
        return replace(self, action_id=action_id)

    def to_dict(self) -> dict[str, Any]:
        """Fields to merge into a log entry; unset fields are left out."""
        return {key: value for key, value in asdict(self).items() if value is not None}


_active_context: ContextVar[EngineContext | None] = ContextVar(
    "ostinato_engine_context", default=None
)


def get_current_context() -> EngineContext | None:
    return _active_context.get()


@contextmanager
def with_context(ctx: EngineContext) -> Iterator[EngineContext]:
    """Make ``ctx`` the active context until the block exits.

    The context variable is per thread and per asyncio task, so concurrent
    outcomes never see each other's identifiers.
    """
    token = _active_context.set(ctx)
    try:
        yield ctx
    finally:
        _active_context.reset(token)


# =============================================================================
# Processors
# =============================================================================


def _sanitize_value(key: str, value: Any) -> Any:
    """Replace the value with a marker when the key looks like a credential."""
    return REDACTED if _SENSITIVE_KEY.search(key) else value


def _sanitize_map(values: Mapping[str, Any]) -> dict[str, Any]:
    return {key: _sanitize_value(key, value) for key, value in values.items()}


def _sanitize_event_dict(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Redact sensitive fields, including keys of directly nested maps.

    Context and parameter maps are logged whole, which is why one level of
    nesting is covered.
    """
    return {
        key: _sanitize_map(value) if isinstance(value, Mapping) else _sanitize_value(key, value)
        for key, value in event_dict.items()
    }


def _add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def _add_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Merge the active EngineContext without overriding explicit fields."""
    ctx = get_current_context()
    if ctx is None:
        return event_dict
    return {**ctx.to_dict(), **event_dict}


_LEADING_PROCESSORS: tuple[Processor, ...] = (
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_log_level,
    _sanitize_event_dict,
)

_TRAILING_PROCESSORS: tuple[Processor, ...] = (
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
)


def _build_processors(
    renderer: Processor,
    include_timestamps: bool,
    include_context: bool,
) -> list[Processor]:
    optional: list[Processor] = []
    if include_context:
        optional.append(_add_context)
    if include_timestamps:
        optional.append(_add_timestamp)
    return [*_LEADING_PROCESSORS, *optional, *_TRAILING_PROCESSORS, renderer]


# =============================================================================
# Component logger
# =============================================================================


class OstinatoLogger:
    """Thin wrapper that binds a component name to structlog calls.

    The structlog logger is looked up on every call rather than cached, so
    loggers created at import time follow a later ``configure_logging``.
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self._component = component
        self._context: dict[str, Any] = {"component": component, **initial_context}

    @classmethod
    def _derived(cls, component: str, context: dict[str, Any]) -> OstinatoLogger:
        logger = cls.__new__(cls)
        logger._component = component
        logger._context = context
        return logger

    def bind(self, **context: Any) -> OstinatoLogger:
        """Return a new logger with extra bound fields."""
        return self._derived(self._component, {**self._context, **context})

    def unbind(self, *keys: str) -> OstinatoLogger:
        """Return a new logger without the given fields."""
        dropped = set(keys)
        return self._derived(
            self._component,
            {key: value for key, value in self._context.items() if key not in dropped},
        )

    def _emit(self, method: str, event: str, fields: dict[str, Any]) -> None:
        bound = structlog.get_logger().bind(**self._context)
        getattr(bound, method)(event, **fields)

    def debug(self, event: str, **kw: Any) -> None:
        self._emit("debug", event, kw)

    def info(self, event: str, **kw: Any) -> None:
        self._emit("info", event, kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._emit("warning", event, kw)

    def error(self, event: str, **kw: Any) -> None:
        self._emit("error", event, kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Log at error level with the active traceback attached."""
        self._emit("exception", event, kw)


def get_logger(component: str, **initial_context: Any) -> OstinatoLogger:
    """Logger for one component ("ledger", "strategy", "store", ...)."""
    return OstinatoLogger(component, **initial_context)


# =============================================================================
# Configuration
# =============================================================================


def _stream_handler(stream: Any, level: int) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    return handler


def _build_handlers(
    format: LogFormat,  # noqa: A002
    file_path: Path | None,
    level: int,
    max_bytes: int,
    backup_count: int,
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if format != "json":
        handlers.append(_stream_handler(sys.stderr, level))
    if format == "console":
        return handlers

    if file_path is None:
        handlers.append(_stream_handler(sys.stdout, level))
        return handlers

    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        file_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(level)
    handlers.append(file_handler)
    return handlers


def configure_logging(
    level: LogLevel = "INFO",
    format: LogFormat = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 50,
    backup_count: int = 5,
    include_timestamps: bool = True,
    include_context: bool = True,
) -> None:
    """Route Ostinato logs; call once at startup.

    Args:
        level: Minimum level that reaches any sink.
        format: ``console`` renders for humans on stderr. ``json`` writes
            JSON lines to ``file_path``, or stdout without one. ``both``
            does console on stderr plus JSON to ``file_path``.
        file_path: Rotating log file; required for ``both``.
        max_file_size_mb: Size at which the log file rotates.
        backup_count: Rotated files kept next to the log file.
        include_timestamps: Add an ISO-8601 UTC ``timestamp`` field.
        include_context: Merge the active EngineContext into each entry.

    Raises:
        ValueError: If ``format`` is ``both`` and ``file_path`` is missing.
    """
    if format == "both" and file_path is None:
        raise ValueError("file_path is required when format='both'")

    numeric_level = getattr(logging, level)
    handlers = _build_handlers(
        format, file_path, numeric_level, max_file_size_mb * 1024 * 1024, backup_count
    )

    root = logging.getLogger()
    root.setLevel(numeric_level)
    for existing in list(root.handlers):
        root.removeHandler(existing)
    for handler in handlers:
        root.addHandler(handler)

    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if format == "json"
        else structlog.dev.ConsoleRenderer(colors=True)
    )
    # not cached: module-level loggers must pick up reconfiguration
    structlog.configure(
        processors=_build_processors(renderer, include_timestamps, include_context),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


__all__ = [
    "EngineContext",
    "OstinatoLogger",
    "SENSITIVE_PATTERNS",
    "configure_logging",
    "get_current_context",
    "get_logger",
    "with_context",
]
