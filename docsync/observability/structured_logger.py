"""
Structured Logger
=================

Provides structured logging for DocSync.

Features:
- JSON-formatted logs (one object per line)
- Context enrichment (config_id, document path, trace_id) via log_context
- Log correlation across a consolidation run or a change event
- Plain-text fallback for local runs

Usage:
    setup_logging("INFO", json_format=True)
    logger = logging.getLogger(__name__)

    with log_context(config_id="users", trace_id=new_trace_id()):
        logger.info("Consolidating", extra={"entries": 42})
"""

import json
import logging
import sys
import threading
import traceback
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Union

# Thread-local storage for context
_context = threading.local()

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'exc_info', 'exc_text', 'thread', 'threadName',
    'message', 'taskName'
}


def current_context() -> Dict[str, Any]:
    """Copy of the context attached to logs on this thread."""
    return dict(getattr(_context, 'data', {}))


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        # Add exception info if present
        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info)
            }

        # Add context from thread-local storage
        context = current_context()
        if context:
            log_entry["context"] = context

        # Add extra fields
        if self.include_extra:
            for key in set(record.__dict__.keys()) - _RESERVED_ATTRS:
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, default=str)


class ContextFilter(logging.Filter):
    """Prefixes plain-text records with the active context (text mode only)."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = current_context()
        record.context = " ".join(f"{k}={v}" for k, v in context.items()) if context else "-"
        return True


@contextmanager
def log_context(**kwargs) -> Iterator[None]:
    """
    Context manager for adding context to all logs within scope.

    Usage:
        with log_context(config_id="users", trace_id="ab12cd34"):
            logger.info("Processing")  # Includes config_id and trace_id
    """
    if not hasattr(_context, 'data'):
        _context.data = {}

    old_data = _context.data.copy()
    _context.data.update({k: v for k, v in kwargs.items() if v is not None})

    try:
        yield
    finally:
        _context.data = old_data


def setup_logging(
    level: Union[int, str] = logging.INFO,
    json_format: bool = True,
    stream: Optional[Any] = None
) -> logging.Logger:
    """
    Configure the "docsync" logger hierarchy.

    Args:
        level: Log level (name or number)
        json_format: JSON lines when True, plain text otherwise
        stream: Output stream (stdout by default)

    Returns:
        The configured package logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    package_logger = logging.getLogger("docsync")
    package_logger.setLevel(level)
    package_logger.handlers = []  # Clear existing handlers
    package_logger.propagate = False

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)

    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.addFilter(ContextFilter())
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(context)s] %(message)s'
        ))

    package_logger.addHandler(handler)
    return package_logger


def new_trace_id() -> str:
    """Generate a new trace ID."""
    return str(uuid.uuid4())[:8]
