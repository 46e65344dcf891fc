"""Structured logging configuration.

Log lines carry a correlation ID from a context variable. HTTP requests get
theirs from the middleware; scheduled monitor and escalation runs bind a run
ID through ``bind_run_id`` so every line of one run can be grouped.
"""

import json
import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Request ID or scheduled run ID
correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Third-party loggers capped at WARNING
NOISY_LOGGERS = (
    "uvicorn.access",
    "sqlalchemy.engine",
    "apscheduler.executors",
    "apscheduler.scheduler",
)


class _ServiceFormatter(logging.Formatter):
    def __init__(self, service_name: str = "shiftwatch-api"):
        super().__init__()
        self.service_name = service_name

    @staticmethod
    def record_time(record: logging.LogRecord) -> datetime:
        return datetime.fromtimestamp(record.created, tz=UTC)

    @staticmethod
    def fields(record: logging.LogRecord) -> dict[str, Any]:
        return getattr(record, "extra_fields", None) or {}


class JsonFormatter(_ServiceFormatter):
    """One JSON object per record.

    ERROR and above also carry the source location.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.record_time(record).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = correlation_id_ctx.get()
        if correlation_id:
            payload["correlation_id"] = correlation_id

        payload.update(self.fields(record))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.levelno >= logging.ERROR:
            payload["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(payload, default=str)


class TextFormatter(_ServiceFormatter):
    """``time - service - LEVEL - [correlation] - message key=value ...``"""

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            self.record_time(record).strftime("%Y-%m-%d %H:%M:%S"),
            self.service_name,
            record.levelname,
            f"[{correlation_id_ctx.get() or '-'}]",
            record.getMessage(),
        ]
        line = " - ".join(parts)

        fields = self.fields(record)
        if fields:
            line += " " + " ".join(f"{key}={value}" for key, value in fields.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    log_format: str = "json",
    log_level: str = "INFO",
    service_name: str = "shiftwatch-api",
) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        log_format: 'json' for structured output, anything else for text
        log_level: Level name; unknown names fall back to INFO
        service_name: Value of the ``service`` field on every line
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    formatter_class = JsonFormatter if log_format.lower() == "json" else TextFormatter
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter_class(service_name=service_name))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class StructuredLogger:
    """Stdlib logger wrapper taking structured keyword fields.

    Every keyword except ``exc_info`` ends up in ``record.extra_fields``.
    """

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _emit(self, level: int, msg: str, fields: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        exc_info = fields.pop("exc_info", None)
        self._logger.log(
            level,
            msg,
            exc_info=exc_info,
            extra={"extra_fields": fields} if fields else None,
        )

    def debug(self, msg: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, msg, fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._emit(logging.INFO, msg, fields)

    def warning(self, msg: str, **fields: Any) -> None:
        self._emit(logging.WARNING, msg, fields)

    def error(self, msg: str, **fields: Any) -> None:
        self._emit(logging.ERROR, msg, fields)

    def exception(self, msg: str, **fields: Any) -> None:
        """ERROR with the traceback of the exception being handled."""
        fields.setdefault("exc_info", True)
        self._emit(logging.ERROR, msg, fields)


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(name)


@contextmanager
def bind_run_id(prefix: str) -> Iterator[str]:
    """Bind a fresh run ID as the correlation ID for the enclosed block.

    Args:
        prefix: Short job name, e.g. ``"monitor"``.

    Yields:
        The run ID that was bound.
    """
    run_id = f"{prefix}-{uuid.uuid4().hex[:12]}"
    token = correlation_id_ctx.set(run_id)
    try:
        yield run_id
    finally:
        correlation_id_ctx.reset(token)
