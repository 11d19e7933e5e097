"""
Logging utilities for the local runtime stack.

Provides structured logging with operation context so a single ingest or
readiness run can be traced across the runtime, document and vector store
packages.
"""

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional


CONTEXT_FIELDS = ("operation_id", "subject_id", "file_id", "phase", "model")

# Loggers configured by configure_logging; one per top-level package
PACKAGE_LOGGERS = ("runtime", "downloads", "vectorstore", "documents", "localrag")


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs JSON-structured log lines.
    
    Each log line includes:
    - Standard log fields (timestamp, level, message, logger)
    - Operation context fields if present (operation_id, subject_id, file_id, phase)
    """
    
    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp
    
    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        
        if self.include_timestamp:
            log_entry["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()
        
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value
        
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        
        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Formatter that outputs human-readable log lines with operation context.
    
    Format: TIMESTAMP - LOGGER - LEVEL - MESSAGE [operation_id=X subject_id=Y]
    """
    
    def __init__(self, include_timestamp: bool = True):
        if include_timestamp:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        else:
            fmt = "%(name)s - %(levelname)s - %(message)s"
        super().__init__(fmt)
    
    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        
        context_parts = []
        for name in ("operation_id", "subject_id", "file_id"):
            value = getattr(record, name, None)
            if value is not None:
                context_parts.append(f"{name}={value}")
        
        if context_parts:
            return f"{base} [{' '.join(context_parts)}]"
        return base


def configure_logging(
    level: int = logging.INFO,
    structured: bool = False,
    include_timestamp: bool = True,
    stream=None,
) -> None:
    """
    Configure handlers for every package of the project.
    
    Library modules only log; the command-line entry point calls this once.
    
    Args:
        level: Logging level (default: INFO)
        structured: If True, output JSON-structured logs; if False, human-readable
        include_timestamp: Whether to include timestamp in log messages
        stream: Output stream (default: stderr)
        
    Example:
        >>> configure_logging(level=logging.DEBUG, structured=True)
    """
    if structured:
        formatter = StructuredFormatter(include_timestamp=include_timestamp)
    else:
        formatter = HumanReadableFormatter(include_timestamp=include_timestamp)
    
    for name in PACKAGE_LOGGERS:
        package_logger = logging.getLogger(name)
        package_logger.setLevel(level)
        
        # Only add handler if none exist (avoid duplicate handlers)
        if not package_logger.handlers:
            handler = logging.StreamHandler(stream or sys.stderr)
            handler.setLevel(level)
            handler.setFormatter(formatter)
            package_logger.addHandler(handler)


class OperationContext:
    """
    Context manager for adding operation fields to log records.
    
    Contexts nest per thread; leaving a context restores the enclosing one.
    
    Example:
        >>> with OperationContext(operation_id="ingest-1", subject_id="math"):
        ...     log_with_context(logger, logging.INFO, "Parsing file")
    """
    
    _local = threading.local()
    
    def __init__(
        self,
        operation_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        file_id: Optional[str] = None,
        phase: Optional[str] = None,
        **extra: Any,
    ):
        context = {
            "operation_id": operation_id,
            "subject_id": subject_id,
            "file_id": file_id,
            "phase": phase,
            **extra,
        }
        self.context = {k: v for k, v in context.items() if v is not None}
        self._previous: Optional["OperationContext"] = None
    
    def __enter__(self) -> "OperationContext":
        self._previous = getattr(OperationContext._local, "current", None)
        OperationContext._local.current = self
        return self
    
    def __exit__(self, *args) -> None:
        OperationContext._local.current = self._previous
    
    def update(self, **fields: Any) -> None:
        """Add or replace fields on this context (e.g. once a file_id is known)."""
        self.context.update({k: v for k, v in fields.items() if v is not None})
    
    @classmethod
    def get_current(cls) -> Dict[str, Any]:
        """Get the merged context of this thread's active contexts."""
        chain = []
        current = getattr(cls._local, "current", None)
        while current is not None:
            chain.append(current)
            current = current._previous
        merged: Dict[str, Any] = {}
        for context in reversed(chain):
            merged.update(context.context)
        return merged


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    **extra: Any,
) -> None:
    """
    Log a message with the current operation context.
    
    Args:
        logger: The logger to use
        level: Log level (e.g., logging.INFO)
        message: Log message
        **extra: Additional fields to include
    """
    context = OperationContext.get_current()
    context.update(extra)
    logger.log(level, message, extra=context)
