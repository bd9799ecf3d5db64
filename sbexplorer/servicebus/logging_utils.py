"""
Structured Logging for the Explorer

JSON log records that carry the request correlation id and the console
session id of the operation that produced them, plus helpers for the
per-message and per-operation events the engines emit.

Author: Ayodele Oladeji
Date: 2026-10-12
"""

import contextvars
import json
import logging
import time
import traceback
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Iterator, Optional

from .exceptions import ExplorerError


correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'correlation_id', default=None
)
session_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'session_id', default=None
)


class LogContext:
    """Request-scoped identifiers stamped onto every log record."""

    @staticmethod
    def correlation_id() -> str:
        """Current correlation id, generated on first use."""
        corr_id = correlation_id_var.get()
        if not corr_id:
            corr_id = str(uuid.uuid4())
            correlation_id_var.set(corr_id)
        return corr_id

    @staticmethod
    def session_id() -> Optional[str]:
        return session_id_var.get()

    @staticmethod
    def bind_session(session_id: Optional[str]) -> None:
        session_id_var.set(session_id)

    @staticmethod
    @contextmanager
    def request(correlation_id: str) -> Iterator[str]:
        """
        Scope a correlation id to one request. The session id bound during
        the request is dropped with it.
        """
        corr_token = correlation_id_var.set(correlation_id)
        session_token = session_id_var.set(None)
        try:
            yield correlation_id
        finally:
            session_id_var.reset(session_token)
            correlation_id_var.reset(corr_token)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record; extra fields are copied through."""

    STANDARD_ATTRS = {
        'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
        'levelno', 'lineno', 'module', 'msecs', 'message', 'pathname', 'process',
        'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
        'exc_text', 'stack_info', 'getMessage', 'taskName'
    }

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'correlation_id': LogContext.correlation_id(),
        }
        session_id = LogContext.session_id()
        if session_id:
            log_data['session_id'] = session_id

        for key, value in record.__dict__.items():
            if key not in self.STANDARD_ATTRS and not key.startswith('_'):
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': ''.join(traceback.format_exception(*record.exc_info))
            }

        return json.dumps(log_data, default=str)


class StructuredLogger:
    """
    Logger that passes keyword arguments as structured fields.

    Fields given as None are dropped. ``bind`` returns a logger that adds
    fixed fields to every record, e.g. the operation and entity of one run.
    """

    def __init__(self, name: str, **fields):
        self.logger = logging.getLogger(name)
        self.fields = fields

    def bind(self, **fields) -> "StructuredLogger":
        return StructuredLogger(self.logger.name, **{**self.fields, **fields})

    def _log(self, level: int, message: str, exc_info: bool = False, **kwargs) -> None:
        extra = {k: v for k, v in {**self.fields, **kwargs}.items() if v is not None}
        self.logger.log(level, message, exc_info=exc_info, extra=extra)

    def debug(self, message: str, **kwargs) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs) -> None:
        self._log(logging.ERROR, message, exc_info=exc_info, **kwargs)

    def log_operation(self, operation: str, entity_type: str, entity_name: str, **kwargs) -> None:
        """Summary line of a finished console operation."""
        self.info(
            f"{operation}: {entity_type}/{entity_name}",
            operation=operation,
            entity_type=entity_type,
            entity_name=entity_name,
            **kwargs
        )

    def log_message_operation(
        self,
        operation: str,
        entity_name: str,
        sequence_number: int,
        **kwargs
    ) -> None:
        """Per-message lifecycle transition, at debug level."""
        self.debug(
            f"{operation}: {entity_name} sequence={sequence_number}",
            operation=operation,
            entity_name=entity_name,
            sequence_number=sequence_number,
            **kwargs
        )

    def log_failure(self, operation: str, error: BaseException, level: int = logging.ERROR, **kwargs) -> None:
        """Log an exception by type and message, without the traceback."""
        fields = {
            "operation": operation,
            "error_type": type(error).__name__,
            "error_message": getattr(error, "message", None) or str(error),
            **kwargs
        }
        self._log(level, f"Error in {operation}: {fields['error_message']}", **fields)


def track_operation_time(logger: StructuredLogger, operation: str):
    """
    Log the duration of an async operation.

    Explorer errors (broker unreachable, entity not found) are logged as
    warnings; anything else is logged with its traceback.
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except ExplorerError as e:
                logger.log_failure(
                    operation,
                    e,
                    level=logging.WARNING,
                    duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                )
                raise
            except Exception as e:
                logger.error(
                    f"Operation failed: {operation}",
                    exc_info=True,
                    operation=operation,
                    duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                    error_type=type(e).__name__,
                )
                raise
            logger.debug(
                f"Operation completed: {operation}",
                operation=operation,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2)
            )
            return result
        return wrapper
    return decorator
