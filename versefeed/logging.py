"""Request-scoped logging for VerseFeed, built on Loguru.

Records emitted while an HTTP request is handled carry its ``request_id``
and ``operation`` (``"PUT /api/profile"``) through ``logger.contextualize``,
and the caller's ``user_id`` once the bearer token has been resolved.
Production and staging write one JSON object per line; development gets a
colored console with the request id in the prefix.

Example:
    >>> from versefeed.logging import logger, request_context
    >>> with request_context("req-1", "POST /api/poems"):
    ...     logger.info("Poem stored")
"""

import json
import sys
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any

from loguru import logger

from versefeed.config import settings

# Per-request fields promoted to the top level of JSON lines
CONTEXT_FIELDS = ("request_id", "user_id", "operation")

caller_id_var: ContextVar[int | None] = ContextVar("caller_id", default=None)


# =============================================================================
# Record Formatting
# =============================================================================


def to_json(record: dict[str, Any]) -> str:
    """Render a record as one JSON line.

    Context fields that are unset are left out; other bound values follow
    them, and a logged exception becomes an ``error`` object.
    """
    extra = {key: value for key, value in record["extra"].items() if key != "json"}
    entry: dict[str, Any] = {
        "ts": record["time"].isoformat(),
        "level": record["level"].name,
        "event": record["message"],
        "source": f"{record['name']}:{record['function']}:{record['line']}",
    }
    for field in CONTEXT_FIELDS:
        value = extra.pop(field, None)
        if value is not None:
            entry[field] = value
    entry.update(extra)

    if record["exception"] is not None:
        exc_type, exc_value, exc_tb = record["exception"]
        entry["error"] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": str(exc_value),
            "traceback": "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
        }

    return json.dumps(entry, default=str)


def json_format(record: dict[str, Any]) -> str:
    record["extra"]["json"] = to_json(record)
    return "{extra[json]}\n"


def console_format(record: dict[str, Any]) -> str:
    line = "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    if record["extra"].get("request_id"):
        line += "<magenta>{extra[request_id]}</magenta> | "
    if record["extra"].get("user_id") is not None:
        line += "<yellow>user={extra[user_id]}</yellow> | "
    return line + "<cyan>{name}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>\n{exception}"


def _attach_caller(record: dict[str, Any]) -> None:
    caller = caller_id_var.get()
    if caller is not None:
        record["extra"].setdefault("user_id", caller)


# =============================================================================
# Logger Configuration
# =============================================================================


def setup_logging(
    level: str = "INFO",
    json_logs: bool = False,
    log_file: Path | None = None,
    colorize: bool = True,
) -> Any:
    """Replace Loguru's handlers with the VerseFeed sinks.

    Args:
        level: Minimum log level
        json_logs: JSON lines on stdout instead of the console format
        log_file: Optional rotating log file, always written as JSON lines
        colorize: Color the console format

    Returns:
        The configured Loguru logger
    """
    handlers: list[dict[str, Any]] = [
        {
            "sink": sys.stdout,
            "level": level,
            "format": json_format if json_logs else console_format,
            "colorize": colorize and not json_logs,
        }
    ]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            {
                "sink": log_file,
                "level": level,
                "format": json_format,
                "rotation": "50 MB",
                "retention": "14 days",
                "compression": "zip",
                "enqueue": True,
            }
        )

    logger.configure(handlers=handlers, patcher=_attach_caller)
    return logger


setup_logging(
    level=settings.log_level,
    json_logs=settings.log_json,
    log_file=settings.data_dir / "versefeed.log" if settings.log_to_file else None,
    colorize=not settings.log_json,
)


# =============================================================================
# Request Context
# =============================================================================


@contextmanager
def request_context(request_id: str, operation: str | None = None) -> Iterator[None]:
    """Tag every record logged inside the block with the request id and operation."""
    with logger.contextualize(request_id=request_id, operation=operation):
        yield


def bind_caller(user_id: int | None) -> None:
    """Record the resolved caller for the rest of the current task."""
    caller_id_var.set(user_id)


__all__ = [
    "logger",
    "setup_logging",
    "request_context",
    "bind_caller",
    "caller_id_var",
    "to_json",
    "json_format",
    "console_format",
]
