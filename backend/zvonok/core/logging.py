"""
Structured logging for zvonok.

Every line carries the current request id (set by RequestContextMiddleware).
Production emits one JSON object per line; other environments get a compact
human-readable form.
"""
import inspect
import json
import logging
import time
import uuid
from contextvars import ContextVar
from functools import wraps
from typing import Any, Dict, Optional

from zvonok.core.config import settings

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
request_start_var: ContextVar[Optional[float]] = ContextVar('request_start', default=None)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:8]


def elapsed_ms(start: Optional[float]) -> Optional[float]:
    if start is None:
        return None
    return round((time.time() - start) * 1000, 2)


class StructuredLogger:
    """Thin wrapper over a stdlib logger that renders records with request context."""

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)

    def _record(self, level: str, message: str, error: Optional[BaseException], extra: Dict[str, Any]) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            'timestamp': time.strftime('%Y-%m-%dT%H:%M:%S%z'),
            'level': level,
            'logger': self.name,
            'message': message,
            'env': settings.APP_ENV,
            'request_id': request_id_var.get(),
        }
        if extra:
            record['context'] = extra
        if error is not None:
            record['error'] = {'type': type(error).__name__, 'message': str(error)}
        return record

    @staticmethod
    def _render(record: Dict[str, Any]) -> str:
        if settings.APP_ENV == 'production':
            return json.dumps(record, default=str)

        line = f"[{record['request_id'] or '-'}] {record['message']}"
        if 'context' in record:
            line += ' | ' + ' '.join(f"{k}={v}" for k, v in record['context'].items())
        if 'error' in record:
            line += f" | error={record['error']['type']}: {record['error']['message']}"
        return line

    def _emit(self, levelno: int, message: str, error: Optional[BaseException] = None, **extra):
        if not self.logger.isEnabledFor(levelno):
            return
        record = self._record(logging.getLevelName(levelno), message, error, extra)
        self.logger.log(levelno, self._render(record))

    def debug(self, message: str, **extra):
        self._emit(logging.DEBUG, message, **extra)

    def info(self, message: str, **extra):
        self._emit(logging.INFO, message, **extra)

    def warning(self, message: str, **extra):
        self._emit(logging.WARNING, message, **extra)

    def error(self, message: str, error: Optional[BaseException] = None, **extra):
        self._emit(logging.ERROR, message, error, **extra)

    def critical(self, message: str, error: Optional[BaseException] = None, **extra):
        self._emit(logging.CRITICAL, message, error, **extra)


def get_logger(name: str = 'zvonok') -> StructuredLogger:
    return StructuredLogger(name)


api_logger = get_logger('zvonok.api')
db_logger = get_logger('zvonok.database')
permissions_logger = get_logger('zvonok.permissions')
servers_logger = get_logger('zvonok.servers')


def log_permission_decision(user_id: int, scope: str, scope_id: int, permission: str, allowed: bool) -> None:
    """Trace one facade decision; only when LOG_PERMISSION_DECISIONS is on."""
    if not settings.LOG_PERMISSION_DECISIONS:
        return
    permissions_logger.debug(
        '[PERMS] decision',
        user_id=user_id,
        scope=scope,
        scope_id=scope_id,
        permission=permission,
        allowed=allowed,
    )


def log_operation(operation: str, logger: Optional[StructuredLogger] = None):
    """
    Log start, completion and failure of an async service operation with timing.

    Usage:
        @log_operation("create_server", servers_logger)
        async def create_server(...):
            ...
    """
    def decorator(func):
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"log_operation expects a coroutine function, got {func!r}")

        @wraps(func)
        async def wrapper(*args, **kwargs):
            log = logger or api_logger
            start = time.time()
            log.debug(f"{operation} started")
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                log.error(f"{operation} failed", error=e, duration_ms=elapsed_ms(start))
                raise
            log.info(f"{operation} completed", duration_ms=elapsed_ms(start))
            return result

        return wrapper

    return decorator
