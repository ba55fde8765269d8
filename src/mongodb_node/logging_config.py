"""Logging setup for the MongoDB node.

Modules log through ``logging.getLogger(__name__)``; this module only wires
handlers and formatters onto the root logger once per process.

Features:
- JSON-formatted log output for machine parsing
- Correlation IDs tying every line of one invocation together
- Console and rotating file destinations
"""

import json
import logging
import sys
import threading
import uuid
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

from src.config.settings import settings

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord has; anything else was passed through ``extra``.
_STANDARD_ATTRS = frozenset(
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
        "message",
        "correlation_id",
    }
)


def get_correlation_id() -> str | None:
    """Return the correlation ID of the current task, if any."""
    return _correlation_id.get()


class CorrelationScope:
    """Context manager tagging log lines with a fresh correlation ID.

    The previous ID (or none) is restored on exit.

    Example:
        with CorrelationScope() as correlation_id:
            logger.info("Running find")
    """

    def __init__(self) -> None:
        self.correlation_id = str(uuid.uuid4())
        self._token: Token | None = None

    def __enter__(self) -> str:
        self._token = _correlation_id.set(self.correlation_id)
        return self.correlation_id

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _correlation_id.reset(self._token)
            self._token = None


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds the current correlation ID to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add correlation ID to log record.

        Args:
            record: Log record to filter

        Returns:
            Always True to include all records
        """
        if not hasattr(record, "correlation_id"):
            record.correlation_id = _correlation_id.get()
        return True


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as a single JSON line.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and key not in log_data:
                log_data[key] = value

        return json.dumps(log_data, default=str, separators=(",", ":"))


class ConsoleFormatter(logging.Formatter):
    """Console formatter with colors and the invocation context."""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output."""
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")

        parts = [
            f"{color}{self.BOLD}{record.levelname}{self.RESET}",
            timestamp,
            record.name,
        ]

        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id:
            parts.append(f"CID:{correlation_id[:8]}")

        context_parts = []
        if hasattr(record, "operation"):
            context_parts.append(f"op:{record.operation}")
        if hasattr(record, "collection"):
            context_parts.append(f"collection:{record.collection}")
        if hasattr(record, "item_count"):
            context_parts.append(f"items:{record.item_count}")
        if context_parts:
            parts.append(f"[{', '.join(context_parts)}]")

        parts.append(record.getMessage())

        message = " | ".join(parts)
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


_configure_lock = threading.Lock()
_configured = False


def configure_logging(
    level: str | None = None,
    structured: bool | None = None,
    file_path: str | None = None,
    file_max_bytes: int = 10 * 1024 * 1024,  # 10MB
    file_backup_count: int = 5,
    force: bool = False,
) -> None:
    """Configure the root logger.

    Arguments left as None fall back to the values in ``settings``. Repeated
    calls are no-ops unless ``force`` is set.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        structured: Use JSON structured logging on the console
        file_path: File path for JSON file logging (None disables)
        file_max_bytes: Maximum file size before rotation
        file_backup_count: Number of backup files to keep
        force: Replace handlers installed by an earlier call
    """
    global _configured

    with _configure_lock:
        if _configured and not force:
            return

        level = level or settings.log_level
        structured = settings.log_structured if structured is None else structured
        file_path = file_path or settings.log_file_path

        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        numeric_level = getattr(logging, level.upper(), logging.INFO)
        root_logger.setLevel(numeric_level)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(JsonFormatter() if structured else ConsoleFormatter())
        console_handler.addFilter(CorrelationIdFilter())
        console_handler.setLevel(numeric_level)
        root_logger.addHandler(console_handler)

        if file_path:
            file_handler = RotatingFileHandler(
                file_path,
                maxBytes=file_max_bytes,
                backupCount=file_backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(JsonFormatter())  # Always JSON for files
            file_handler.addFilter(CorrelationIdFilter())
            file_handler.setLevel(numeric_level)
            root_logger.addHandler(file_handler)

        _configured = True
