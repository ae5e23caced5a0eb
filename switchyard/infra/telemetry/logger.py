"""
Structured Logger — Event-Style Logging
=========================================

Structured JSON logging for the control plane with automatic
correlation-id injection. Every log call names an event and attaches
key/value fields:

    logger.info("model_registered", model_id="gpt-4o", provider="openai")

Design:
  - JSON output for machine parsing, single-line human format for dev
  - Context variables carry request / pipeline / agent correlation ids
  - Field names that collide with LogRecord attributes are prefixed
  - Stdlib only; this is the lowest telemetry primitive
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# ── Correlation Context ───────────────────────────────────────────

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)
_trace_id: ContextVar[str | None] = ContextVar("trace_id", default=None)
_pipeline_id: ContextVar[str | None] = ContextVar("pipeline_id", default=None)
_agent_role: ContextVar[str | None] = ContextVar("agent_role", default=None)

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    "request_id": _request_id,
    "trace_id": _trace_id,
    "pipeline_id": _pipeline_id,
    "agent_role": _agent_role,
}

def set_request_context(**values: str | None) -> None:
    """Set correlation ids (request_id, trace_id, pipeline_id, agent_role). None clears one."""
    for key, value in values.items():
        var = _CONTEXT_VARS.get(key)
        if var is None:
            raise KeyError(f"Unknown log context field: {key}")
        var.set(value)

def get_request_context() -> dict[str, str]:
    """Correlation ids currently set in this context."""
    return {k: v.get() for k, v in _CONTEXT_VARS.items() if v.get() is not None}

def clear_request_context() -> None:
    for var in _CONTEXT_VARS.values():
        var.set(None)

# LogRecord attributes; extra fields may not overwrite these.
_RESERVED = frozenset({
    "name", "msg", "args", "created", "relativeCreated", "exc_info",
    "exc_text", "stack_info", "lineno", "funcName", "pathname", "filename",
    "module", "levelno", "levelname", "thread", "threadName", "process",
    "processName", "msecs", "taskName", "message", "asctime",
})

_JSON_SAFE = (str, int, float, bool, type(None))

# ── Formatter ─────────────────────────────────────────────────────

class StructuredFormatter(logging.Formatter):
    """Renders a LogRecord plus its extra fields as JSON or one text line."""

    def __init__(self, *, json_output: bool = True):
        super().__init__()
        self._json = json_output
        self._pid = os.getpid()

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
            "line": record.lineno,
            "pid": self._pid,
        }

        context = get_request_context()
        if context:
            entry["context"] = context

        data: dict[str, Any] = {}
        for key, val in record.__dict__.items():
            if key.startswith("_") or key in _RESERVED:
                continue
            data[key] = val if isinstance(val, _JSON_SAFE) else _stringify(val)
        if data:
            entry["data"] = data

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        if self._json:
            return json.dumps(entry, default=str, ensure_ascii=False)

        fields = " ".join(f"{k}={v}" for k, v in data.items())
        line = (
            f"{entry['timestamp']} | {entry['level']:8s} | "
            f"{entry['logger']}:{entry['line']} | {entry['event']}"
        )
        if fields:
            line = f"{line} | {fields}"
        if "exception" in entry:
            line = f"{line}\n{entry['exception']['traceback']}"
        return line

def _stringify(val: Any) -> str:
    if isinstance(val, (list, tuple, dict)):
        try:
            return json.dumps(val, default=str)
        except (TypeError, ValueError):
            return str(val)
    return str(val)

# ── Structured Logger ─────────────────────────────────────────────

class StructuredLogger:
    """
    Event-oriented wrapper around a stdlib logger.

    Usage:
        log = StructuredLogger("switchyard.infra.health")
        log.info("model_health_checked", model_id="llama3", latency_ms=12.5)
        log.warning("model_health_check_failed", model_id="gpt-4o", error="timeout")
    """

    __slots__ = ("_logger", "_name")

    def __init__(self, name: str):
        self._name = name
        self._logger = logging.getLogger(name)

    @property
    def name(self) -> str:
        return self._name

    def is_enabled_for(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    def _log(
        self,
        level: int,
        event: str,
        fields: dict[str, Any],
        exc: BaseException | None = None,
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = {(f"data_{k}" if k in _RESERVED else k): v for k, v in fields.items()}
        self._logger.log(level, event, extra=extra, exc_info=exc, stacklevel=3)

    def debug(self, event: str, **fields: Any) -> None:
        self._log(logging.DEBUG, event, fields)

    def info(self, event: str, **fields: Any) -> None:
        self._log(logging.INFO, event, fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._log(logging.WARNING, event, fields)

    def error(self, event: str, exc: BaseException | None = None, **fields: Any) -> None:
        self._log(logging.ERROR, event, fields, exc)

    def exception(self, event: str, **fields: Any) -> None:
        self._log(logging.ERROR, event, fields, sys.exc_info()[1])

    def bind(self, **context: Any) -> BoundLogger:
        """Create a child logger with pre-bound fields."""
        return BoundLogger(self, context)

class BoundLogger:
    """Logger with fields attached to every event."""

    __slots__ = ("_context", "_parent")

    def __init__(self, parent: StructuredLogger, context: dict[str, Any]):
        self._parent = parent
        self._context = context

    def debug(self, event: str, **fields: Any) -> None:
        self._parent.debug(event, **{**self._context, **fields})

    def info(self, event: str, **fields: Any) -> None:
        self._parent.info(event, **{**self._context, **fields})

    def warning(self, event: str, **fields: Any) -> None:
        self._parent.warning(event, **{**self._context, **fields})

    def error(self, event: str, exc: BaseException | None = None, **fields: Any) -> None:
        self._parent.error(event, exc=exc, **{**self._context, **fields})

# ── Setup ──────────────────────────────────────────────────────────

_initialized = False

def setup_logging(
    *,
    level: str = "INFO",
    json_output: bool | None = None,
    log_dir: str | None = None,
) -> None:
    """
    Configure root logging once at process startup.

    Args:
        level: Root log level name
        json_output: Force JSON output. None = JSON unless ENVIRONMENT=development
        log_dir: Directory for rotating log files. None = stdout only.
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    if json_output is None:
        json_output = os.getenv("ENVIRONMENT", "development") != "development"

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(StructuredFormatter(json_output=json_output))
    root.addHandler(console)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            path / "switchyard.log",
            maxBytes=20 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        handler.setFormatter(StructuredFormatter(json_output=True))
        root.addHandler(handler)

    for noisy in ("httpx", "httpcore", "asyncio", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)
