"""Structured logging with purchase attempt correlation.

Every record emitted while a purchase attempt is active carries the
attempt id, so one saga can be followed across pricing, tokenization and
backend confirmation log lines.
"""
from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Optional

attempt_id_var: ContextVar[Optional[str]] = ContextVar("attempt_id", default=None)
partner_id_var: ContextVar[Optional[str]] = ContextVar("partner_id", default=None)

_RESERVED_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "attempt_id",
        "partner_id",
    )
)


class AttemptContextFilter(logging.Filter):
    """Logging filter that adds the purchase context to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.attempt_id = attempt_id_var.get()
        record.partner_id = partner_id_var.get()
        return True


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if getattr(record, "attempt_id", None):
            log_data["attempt_id"] = record.attempt_id
        if getattr(record, "partner_id", None):
            log_data["partner_id"] = record.partner_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure logging for the purchase client.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON structured logging (True) or simple format (False)
        log_file: Optional file path to also write logs to
    """
    root_logger = logging.getLogger("partner_seats")
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    if json_format:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(attempt_id)s] - %(message)s"
        )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(AttemptContextFilter())
        root_logger.addHandler(handler)


@contextmanager
def bind_attempt(attempt_id: str) -> Iterator[None]:
    """Bind a purchase attempt id to log records for the enclosed block."""
    token = attempt_id_var.set(attempt_id)
    try:
        yield
    finally:
        attempt_id_var.reset(token)


def bind_partner(partner_id: Optional[str]) -> None:
    """Bind the partner id for the current context."""
    partner_id_var.set(partner_id)
