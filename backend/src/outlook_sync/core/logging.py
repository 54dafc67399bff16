"""Logging configuration for Outlook Sync.

Human-readable colored output for development, JSON lines for production.
Context is passed through ``extra={...}`` and rendered as key=value pairs.
"""

import json
import logging
import sys
import traceback
from datetime import UTC, datetime
from typing import ClassVar

from .config import get_settings_instance

# Guard against double configuration when setup_logging() is called by both
# the host and the agent.
_LOGGING_CONFIGURED = False

_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
    }
)


def _extra_fields(record: logging.LogRecord) -> dict:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS and v is not None}


class ColoredFormatter(logging.Formatter):
    """Colored formatter for human-readable logs."""

    COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        level_color = self.COLORS.get(record.levelname, "") if self.use_colors else ""
        reset_color = self.COLORS["RESET"] if self.use_colors else ""
        timestamp = datetime.fromtimestamp(record.created, UTC).strftime("%Y-%m-%d %H:%M:%S")

        extra = [
            f"{k}={v}"
            for k, v in _extra_fields(record).items()
            if isinstance(v, (str, int, float, bool)) and len(str(v)) < 100
        ]
        log_line = f"{timestamp} - {level_color}{record.levelname}{reset_color} - {record.name} - {record.getMessage()}"
        if extra:
            log_line += f" | {' '.join(extra)}"
        if record.exc_info:
            log_line += f"\n{level_color}Exception:{reset_color}\n" + "".join(traceback.format_exception(*record.exc_info))
        return log_line


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            exc_type = record.exc_info[0]
            log_data["exception"] = {
                "type": exc_type.__name__ if exc_type is not None else "Unknown",
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }
        log_data.update(_extra_fields(record))
        return json.dumps(log_data, default=str)


def setup_logging() -> None:
    """Install a stdout handler on the package logger using the configured format."""
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    if _LOGGING_CONFIGURED:
        return

    settings = get_settings_instance()
    use_colors = settings.environment == "development"
    formatter = JSONFormatter() if settings.log_format == "json" else ColoredFormatter(use_colors=use_colors)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger("outlook_sync")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.log_level))
    root.propagate = False

    # httpx logs every request at INFO; keep it quieter than ours
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    _LOGGING_CONFIGURED = True
    root.info("Logging configured", extra={"log_level": settings.log_level, "log_format": settings.log_format})


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name."""
    if name.startswith("outlook_sync"):
        return logging.getLogger(name)
    return logging.getLogger(f"outlook_sync.{name}")
