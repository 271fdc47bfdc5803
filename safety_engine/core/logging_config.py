"""Structured logging configuration for the Safety Intelligence Engine.

Every line logged inside an ``operation`` block (one planning call, one
reputation cycle) carries that operation's id and name. Structured fields go
through ``extra=log_fields(...)`` and come out as JSON keys in production and
``key=value`` pairs in development.
"""

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

from safety_engine.config import get_settings

operation_id_var: ContextVar[str] = ContextVar("operation_id", default="")
operation_name_var: ContextVar[str] = ContextVar("operation_name", default="")


def log_fields(**fields: Any) -> Dict[str, Dict[str, Any]]:
    """``extra`` argument attaching structured fields to a log record."""
    return {"extra_fields": fields}


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON with operation context and fields."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        operation_id = operation_id_var.get()
        if operation_id:
            log_data["operation_id"] = operation_id
            log_data["operation"] = operation_name_var.get() or None

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        log_data.update(getattr(record, "extra_fields", {}))

        if get_settings().APP_ENV == "development":
            log_data["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
        reset = self.COLORS["RESET"]
        timestamp = datetime.now(timezone.utc).strftime("%H:%M:%S")

        operation_id = operation_id_var.get()
        operation = f" [{operation_id[:8]}]" if operation_id else ""

        message = (
            f"{color}{timestamp} {record.levelname:8}{reset} "
            f"{record.name}:{record.lineno}{operation} - {record.getMessage()}"
        )

        fields = getattr(record, "extra_fields", None)
        if fields:
            message += " | " + " ".join(f"{key}={value}" for key, value in fields.items())

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def setup_logging() -> None:
    """Configure engine logging.

    Uses structured JSON logging in production and human-readable
    format everywhere else.
    """
    settings = get_settings()
    log_level_str = settings.LOG_LEVEL or "INFO"
    log_level = getattr(logging, log_level_str.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)

    if settings.APP_ENV == "production":
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = HumanReadableFormatter()

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # SQL echo is far too noisy at DEBUG
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured",
        extra=log_fields(
            environment=settings.APP_ENV,
            log_level=log_level_str,
            formatter=formatter.__class__.__name__,
        ),
    )


@contextmanager
def operation(name: str) -> Iterator[str]:
    """Run a block as one named operation.

    A block entered while another operation is active joins it instead of
    starting a new one, so a comparative plan logs both searches under a
    single id.

    Yields:
        The active operation id
    """
    current = operation_id_var.get()
    if current:
        yield current
        return

    id_token = operation_id_var.set(str(uuid.uuid4()))
    name_token = operation_name_var.set(name)
    try:
        yield operation_id_var.get()
    finally:
        operation_id_var.reset(id_token)
        operation_name_var.reset(name_token)


def set_operation_id(operation_id: str | None = None) -> str:
    """Bind an operation ID (e.g. a caller's request id) to the current context.

    Args:
        operation_id: Operation ID to set, or None to generate a new one

    Returns:
        The operation ID that was set
    """
    if operation_id is None:
        operation_id = str(uuid.uuid4())

    operation_id_var.set(operation_id)
    return operation_id


def get_operation_id() -> str:
    """Current operation ID, or an empty string outside any operation."""
    return operation_id_var.get()


def clear_operation_id() -> None:
    operation_id_var.set("")
    operation_name_var.set("")
