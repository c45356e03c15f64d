"""
Logging setup for the Jira bridge.

Human readable console output by default, JSON lines when LOG_FORMAT=json.
Records may carry an issue key, the application event name and a duration.
"""
import functools
import json
import logging
import sys
import time
from datetime import datetime
from typing import Any, Dict, Optional

LOGGER_NAME = "jira_bridge"

# Extra attributes copied from the record when present
CONTEXT_FIELDS = ("issue_key", "event", "webhook_event", "duration_ms", "context")


class StructuredFormatter(logging.Formatter):
    """
    Formats log messages as structured JSON for better parsing.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in CONTEXT_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Formats log messages for human readability.
    """

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, '')
        reset = self.RESET if color else ''

        parts = [
            f"{color}[{record.levelname}]{reset}",
            datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S"),
        ]

        if hasattr(record, "issue_key"):
            parts.append(f"issue={record.issue_key}")
        if hasattr(record, "event"):
            parts.append(f"event={record.event}")

        parts.append("-")
        parts.append(record.getMessage())

        if hasattr(record, "duration_ms"):
            parts.append(f"({record.duration_ms}ms)")

        message = " ".join(parts)

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "human",  # "human" or "json"
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Set up the bridge logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format ("human" or "json")
        log_file: Optional file path for log output

    Returns:
        Configured logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    level = getattr(logging, log_level.upper(), logging.INFO)
    logger.setLevel(level)

    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    if log_format == "json":
        console_handler.setFormatter(StructuredFormatter())
    else:
        console_handler.setFormatter(HumanReadableFormatter())

    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        file_handler.setFormatter(StructuredFormatter())  # Always use JSON for file
        logger.addHandler(file_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger below the bridge logger, e.g. get_logger("events")."""
    if name:
        return logging.getLogger(f"{LOGGER_NAME}.{name}")
    return logging.getLogger(LOGGER_NAME)


class ContextLogger:
    """
    Logger with context (issue_key, event).

    Usage:
        logger = ContextLogger("events", issue_key="TEST-34", event="issueUpdated")
        logger.info("Event sent to application")
    """

    def __init__(
        self,
        name: Optional[str] = None,
        issue_key: Optional[str] = None,
        event: Optional[str] = None
    ):
        self.issue_key = issue_key
        self.event = event
        self.logger = get_logger(name)

    def _log(self, level: int, message: str, context: Optional[Dict[str, Any]] = None, **kwargs):
        extra: Dict[str, Any] = {}

        if self.issue_key is not None:
            extra["issue_key"] = self.issue_key
        if self.event is not None:
            extra["event"] = self.event
        if context:
            extra["context"] = context

        # LogRecord rejects exc_info inside extra
        exc_info = kwargs.pop("exc_info", False)
        extra.update(kwargs)

        self.logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)


def log_performance(operation: str):
    """
    Decorator for performance logging.

    Usage:
        @log_performance("find_issue")
        def find_issue(self, params):
            ...
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger("perf")
            start = time.time()

            try:
                result = func(*args, **kwargs)
                duration_ms = int((time.time() - start) * 1000)
                logger.info(
                    f"{operation} completed",
                    extra={"duration_ms": duration_ms}
                )
                return result
            except Exception as e:
                duration_ms = int((time.time() - start) * 1000)
                logger.error(
                    f"{operation} failed: {e}",
                    extra={"duration_ms": duration_ms}
                )
                raise

        return wrapper
    return decorator
