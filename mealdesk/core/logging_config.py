"""
Logging setup for the console and the data-access layer.

Records carry their context (statement, entity, isolation level,
transaction name) as `extra=` fields. Both formatters render those fields:
JSONFormatter as keys of a single-line object, ConsoleFormatter as a
trailing `[key=value ...]` block. Logs go to stderr so command output on
stdout stays clean.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# Attributes every LogRecord carries; anything else came in through extra=
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName", "asctime",
})

# Third-party loggers that are chatty at DEBUG
_QUIET_LOGGERS = ("asyncio", "aiosqlite", "aiomysql", "sqlalchemy.engine", "sqlalchemy.pool")


def _context_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and value is not None
    }


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    Keys: timestamp (UTC, from the record), level, logger, message, then
    every context field, then exception/stack_info when present.

    Example output:
        {"timestamp": "2025-11-24T10:30:00.123456+00:00", "level": "ERROR",
         "logger": "mealdesk.core.executor", "message": "Transaction rolled back: ...",
         "statement_index": 2, "isolation_level": "REPEATABLE READ"}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in _context_fields(record).items():
            entry.setdefault(key, value)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable line with the context fields appended."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s %(levelname)-8s %(name)s: %(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _context_fields(record)
        if not fields:
            return line
        context = " ".join(f"{key}={value}" for key, value in fields.items())
        head, newline, rest = line.partition("\n")
        return f"{head} [{context}]{newline}{rest}"


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Replace the root logger's handlers with a single stderr handler.

    Args:
        level: Level name; unknown names fall back to INFO
        json_format: JSONFormatter when true, ConsoleFormatter otherwise
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(JSONFormatter() if json_format else ConsoleFormatter())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(log_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Module logger.

    Example:
        logger = get_logger(__name__)
        logger.debug("Cache populated", extra={"entity": "User", "count": 3})
    """
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: str, message: str, **fields: Any) -> None:
    """
    Log `message` with keyword arguments as context fields.

    None values are dropped, so optional context can be passed unconditionally.

    Example:
        log_with_context(
            logger, "info", "Transaction A: first read",
            transaction="A", isolation_level="READ COMMITTED", value="1000.00",
        )
    """
    context = {key: value for key, value in fields.items() if value is not None}
    getattr(logger, level.lower())(message, extra=context)
