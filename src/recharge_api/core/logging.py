"""Structured JSON logging for the recharge service."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace

# stdlib loggers that are chatty at INFO and only matter when they warn.
_QUIET_LOGGERS = ("uvicorn.access", "apscheduler", "httpx")


class InterceptHandler(logging.Handler):
    """Forward uvicorn, SQLAlchemy and apscheduler records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def _serialize_log(message: "logger.Message", metadata: Dict[str, str]) -> None:
    record = message.record
    payload: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["name"],
        **metadata,
    }

    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        payload["trace_id"] = f"{span_context.trace_id:032x}"
        payload["span_id"] = f"{span_context.span_id:016x}"

    payload.update(record["extra"])
    if record["exception"] is not None:
        payload["exception"] = str(record["exception"].value)

    print(json.dumps(payload, default=str))


def configure_logging(*, service_name: str, environment: str, version: str) -> None:
    """Replace loguru's default sink with a one-line JSON sink and route stdlib logging into it."""

    logger.remove()
    metadata = {"service": service_name, "environment": environment, "version": version}
    logger.add(lambda message: _serialize_log(message, metadata), backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def mask_code(code: str | None) -> str:
    """Return a log-safe rendition of a recharge code (last block only)."""

    if not code:
        return ""
    tail = code.replace(" ", "")[-4:]
    return f"****{tail}"
