"""Structured JSON logging for wallet hosts."""

from __future__ import annotations

import json
import logging
from logging import LogRecord
from typing import TYPE_CHECKING, Any, Callable, Dict

from loguru import logger
from opentelemetry import trace

if TYPE_CHECKING:  # pragma: no cover
    from loyalty_wallet.core.settings import Settings


_STDLIB_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys() | {"message", "asctime"}
)

# Third-party loggers that are chatty at DEBUG.
_QUIET_LOGGERS = ("redis", "asyncio")

Writer = Callable[[str], None]


class InterceptHandler(logging.Handler):
    """Forward stdlib records (redis client, asyncio) into Loguru."""

    def emit(self, record: LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        try:
            message = record.getMessage()
        except Exception:  # pragma: no cover - malformed format strings
            message = record.msg if isinstance(record.msg, str) else str(record.msg)

        extra = {key: value for key, value in record.__dict__.items() if key not in _STDLIB_RECORD_ATTRS}
        bound = logger.bind(**extra) if extra else logger
        bound.opt(depth=6, exception=record.exc_info).log(level, message.replace("{", "{{").replace("}", "}}"))


class JsonLogSink:
    """Loguru sink that renders each record as a single JSON line."""

    def __init__(self, metadata: Dict[str, str], writer: Writer | None = None) -> None:
        self._metadata = dict(metadata)
        self._writer = writer or print

    def __call__(self, message: "logger.Message") -> None:
        self._writer(json.dumps(self.render(message.record), default=str))

    def render(self, record: Dict[str, Any]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name.lower(),
            "message": record["message"],
            "logger": record["name"],
            "function": record["function"],
            **self._metadata,
        }

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            payload["trace_id"] = f"{span_context.trace_id:032x}"
            payload["span_id"] = f"{span_context.span_id:016x}"

        if record["extra"]:
            payload.update(record["extra"])
        if record["exception"] is not None:
            exc_type = record["exception"].type
            payload["exception"] = exc_type.__name__ if exc_type else "unknown"
        return payload


def configure_logging(
    *,
    service_name: str,
    environment: str,
    version: str,
    level: str = "INFO",
    writer: Writer | None = None,
) -> JsonLogSink:
    """Route Loguru and stdlib logging through one JSON sink."""

    sink = JsonLogSink(
        {"service": service_name, "environment": environment, "version": version},
        writer=writer,
    )
    logger.remove()
    logger.add(sink, level=level, backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return sink


def configure_logging_from_settings(app_settings: "Settings", *, level: str | None = None) -> JsonLogSink:
    default_level = "DEBUG" if app_settings.environment == "development" else "INFO"
    return configure_logging(
        service_name=app_settings.service_name,
        environment=app_settings.environment,
        version=app_settings.service_version,
        level=level or default_level,
    )


__all__ = ["InterceptHandler", "JsonLogSink", "configure_logging", "configure_logging_from_settings"]
