"""
Structured JSON logging for Synexa.

Provides correlation IDs (request, user, routine, run, step) through context
variables and emits one JSON document per log record, so routine executions
and device commands can be traced end to end.
"""

import asyncio
import json
import uuid
import logging
import time
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from contextvars import ContextVar
import functools

# Context variables for correlation
REQUEST_ID: ContextVar[str] = ContextVar('request_id', default=None)
USER_ID: ContextVar[str] = ContextVar('user_id', default=None)
ROUTINE_ID: ContextVar[str] = ContextVar('routine_id', default=None)
RUN_ID: ContextVar[str] = ContextVar('run_id', default=None)
STEP_ID: ContextVar[str] = ContextVar('step_id', default=None)

_CONTEXT_VARS = {
    'request_id': REQUEST_ID,
    'user_id': USER_ID,
    'routine_id': ROUTINE_ID,
    'run_id': RUN_ID,
    'step_id': STEP_ID,
}


class StructuredLogger:
    """Structured JSON logger with correlation IDs."""

    def __init__(self, name: str, level: int = logging.INFO):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)

        handler = logging.StreamHandler()
        handler.setFormatter(self.JSONFormatter())
        self.logger.addHandler(handler)

        self.logger.propagate = False

    class JSONFormatter(logging.Formatter):
        """JSON formatter with correlation IDs and structured fields."""

        def format(self, record):
            log_entry = {
                'timestamp': datetime.now(timezone.utc).isoformat(),
                'level': record.levelname,
                'logger': record.name,
                'service': 'synexa',
                'message': record.getMessage(),
                'module': record.module,
                'function': record.funcName,
                'line': record.lineno,
            }

            for key, ctx_var in _CONTEXT_VARS.items():
                value = ctx_var.get()
                if value:
                    log_entry[key] = value

            if hasattr(record, 'extra_fields'):
                log_entry.update(record.extra_fields)

            if record.exc_info:
                log_entry['exception'] = self.formatException(record.exc_info)
                log_entry['exception_type'] = record.exc_info[0].__name__ if record.exc_info[0] else None

            return json.dumps(log_entry, default=str)

    def _log_with_extras(self, level: int, message: str, **extra_fields):
        self.logger.log(level, message, extra={'extra_fields': extra_fields})

    def debug(self, message: str, **extra_fields):
        self._log_with_extras(logging.DEBUG, message, **extra_fields)

    def info(self, message: str, **extra_fields):
        self._log_with_extras(logging.INFO, message, **extra_fields)

    def warning(self, message: str, **extra_fields):
        self._log_with_extras(logging.WARNING, message, **extra_fields)

    def error(self, message: str, **extra_fields):
        self._log_with_extras(logging.ERROR, message, **extra_fields)

    def exception(self, message: str, **extra_fields):
        """Log exception with traceback and extra fields."""
        self.logger.exception(message, extra={'extra_fields': extra_fields})

    # Domain events
    def routine_started(self, routine_id: str, user_id: str, step_count: int, dry_run: bool):
        self.info(
            "Routine execution started",
            routine_id=routine_id,
            user_id=user_id,
            step_count=step_count,
            dry_run=dry_run,
            event_type="routine_started"
        )

    def routine_completed(self, routine_id: str, summary: str, duration_ms: float,
                          outcomes: Dict[str, int]):
        self.info(
            f"Routine execution finished with status '{summary}'",
            routine_id=routine_id,
            summary=summary,
            latency_ms=duration_ms,
            outcomes=outcomes,
            event_type="routine_completed"
        )

    def step_completed(self, step_order: int, action_type: str, status: str,
                       duration_ms: float, detail: Optional[str] = None):
        level = logging.WARNING if status == "error" else logging.INFO
        self._log_with_extras(
            level,
            f"Routine step {step_order} {status}",
            step_order=step_order,
            action_type=action_type,
            status=status,
            detail=detail,
            latency_ms=duration_ms,
            event_type="routine_step_completed"
        )

    def device_command(self, device_id: str, provider: str, action: str,
                       status: str, duration_ms: float, detail: Optional[str] = None):
        self.info(
            "Device command dispatched",
            device_id=device_id,
            provider=provider,
            action=action,
            status=status,
            detail=detail,
            latency_ms=duration_ms,
            event_type="device_command"
        )

    def recurrence_evaluated(self, rule_type: str, status: str,
                             base_date: datetime, next_date: Optional[datetime]):
        self.debug(
            "Recurrence evaluated",
            rule_type=rule_type,
            status=status,
            base_date=base_date,
            next_date=next_date,
            event_type="recurrence_evaluated"
        )

    def reminder_processed(self, reminder_id: str, success: bool,
                           next_reminder_id: Optional[str] = None, error: Optional[str] = None):
        self.info(
            "Reminder processed",
            reminder_id=reminder_id,
            success=success,
            next_reminder_id=next_reminder_id,
            error=error,
            event_type="reminder_processed"
        )

    def api_request(self, method: str, path: str, status_code: int,
                    duration_ms: float, user_id: Optional[str] = None):
        self.info(
            "API request processed",
            method=method,
            path=path,
            status_code=status_code,
            latency_ms=duration_ms,
            user_id=user_id,
            event_type="api_request"
        )


def set_request_context(request_id: str = None, user_id: str = None,
                        routine_id: str = None, run_id: str = None,
                        step_id: str = None):
    """Set request context for logging correlation."""
    values = {
        'request_id': request_id,
        'user_id': user_id,
        'routine_id': routine_id,
        'run_id': run_id,
        'step_id': step_id,
    }
    for key, value in values.items():
        if value:
            _CONTEXT_VARS[key].set(value)


def clear_request_context():
    """Clear all request context variables."""
    for ctx_var in _CONTEXT_VARS.values():
        ctx_var.set(None)


def get_request_context() -> Dict[str, Optional[str]]:
    return {key: ctx_var.get() for key, ctx_var in _CONTEXT_VARS.items()}


def generate_request_id() -> str:
    return f"req-{uuid.uuid4().hex[:8]}"


def generate_run_id() -> str:
    return f"run-{uuid.uuid4().hex[:8]}"


def generate_step_id(step_order: int) -> str:
    return f"step-{step_order}-{uuid.uuid4().hex[:6]}"


def log_function_call(logger: StructuredLogger = None, level: int = logging.DEBUG):
    """Log start, completion and failure of a call with its latency."""
    def decorator(func):
        func_logger = logger or StructuredLogger(func.__module__)
        name = func.__qualname__

        def started() -> float:
            func_logger._log_with_extras(level, f"{name} started", function=name)
            return time.time()

        def finished(start: float, error: Exception = None):
            latency_ms = (time.time() - start) * 1000
            if error is None:
                func_logger._log_with_extras(
                    level, f"{name} completed",
                    function=name, latency_ms=latency_ms, success=True
                )
            else:
                func_logger._log_with_extras(
                    logging.ERROR, f"{name} failed: {error}",
                    function=name, latency_ms=latency_ms, success=False,
                    exception_type=error.__class__.__name__
                )

        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                start = started()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    finished(start, e)
                    raise
                finished(start)
                return result
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            start = started()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                finished(start, e)
                raise
            finished(start)
            return result
        return sync_wrapper

    return decorator


# Pre-configured loggers for different components
api_logger = StructuredLogger("synexa.api")
routine_logger = StructuredLogger("synexa.routines")
device_logger = StructuredLogger("synexa.devices")
recurrence_logger = StructuredLogger("synexa.recurrence")
scheduler_logger = StructuredLogger("synexa.scheduler")
