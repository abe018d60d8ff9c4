"""Structured logger carrying run, region, stage and layer context."""

import logging
import sys
import time
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Worker threads started through utils.parallel copy these from the caller
run_context: ContextVar[Optional[str]] = ContextVar('run_id', default=None)
region_context: ContextVar[Optional[str]] = ContextVar('region', default=None)
stage_context: ContextVar[Optional[str]] = ContextVar('stage', default=None)
layer_context: ContextVar[Optional[str]] = ContextVar('layer', default=None)

_CONTEXT_VARS = (
    ('run_id', run_context),
    ('region', region_context),
    ('stage', stage_context),
    ('layer', layer_context),
)


def current_context() -> Dict[str, str]:
    """Snapshot of the context variables that are set."""
    return {key: var.get() for key, var in _CONTEXT_VARS if var.get() is not None}


def _format_exc_info(exc_info) -> Optional[str]:
    if isinstance(exc_info, BaseException):
        exc_info = (type(exc_info), exc_info, exc_info.__traceback__)
    elif exc_info is True:
        exc_info = sys.exc_info()
    if not exc_info or exc_info[0] is None:
        return None
    return ''.join(traceback.format_exception(*exc_info))


class StructuredLogger(logging.Logger):
    """Logger whose records carry ``context``, ``performance`` and ``traceback``.

    Callers pass structured data through ``extra``:

        logger.info("Aligned", extra={'context': {'layers': 3}})

    and the current run, region, stage and layer are merged in
    automatically.
    """

    def _log(self, level, msg, args, exc_info=None, extra=None, stack_info=False, **kwargs):
        extra = dict(extra or {})
        context = current_context()
        context['logger_name'] = self.name
        context.update(extra.pop('context', None) or {})

        structured = {
            'context': context,
            'performance': extra.pop('performance', None),
            'traceback': extra.pop('traceback', None) or _format_exc_info(exc_info),
        }
        extra.update(structured)
        super()._log(level, msg, args, exc_info=False, extra=extra,
                     stack_info=stack_info, **kwargs)

    def log_performance(self, operation: str, duration: float, **metrics: Any):
        """Log how long ``operation`` took.

        ``cells_processed`` in ``metrics`` adds a ``cells_per_second`` rate.
        """
        performance = {
            'operation': operation,
            'duration_seconds': round(duration, 3),
            'timestamp': datetime.now(timezone.utc).isoformat(),
            **metrics,
        }
        if metrics.get('cells_processed') and duration > 0:
            performance['cells_per_second'] = round(metrics['cells_processed'] / duration, 2)
        self.info(f"{operation} finished in {duration:.3f}s", extra={'performance': performance})

    def log_error_with_context(self, error: Exception, operation: Optional[str] = None,
                               **context: Any):
        """Log ``error`` at ERROR level with its type, traceback and extra context."""
        details = {'error_type': type(error).__name__, **context}
        if operation:
            details['operation'] = operation
        self.error(f"{type(error).__name__}: {error}", exc_info=error,
                   extra={'context': details})

    def timed(self, operation: str) -> 'OperationTimer':
        return OperationTimer(self, operation)


class OperationTimer:
    """``with logger.timed('reproject') as t: ...`` logs the elapsed time on exit."""

    def __init__(self, logger: StructuredLogger, operation: str):
        self.logger = logger
        self.operation = operation
        self.metrics: Dict[str, Any] = {}
        self._start = 0.0

    def __enter__(self) -> 'OperationTimer':
        self._start = time.time()
        return self

    def __exit__(self, exc_type, exc, tb):
        status = 'success' if exc_type is None else 'failed'
        self.logger.log_performance(self.operation, time.time() - self._start,
                                    status=status, **self.metrics)
        return False


_loggers: Dict[str, StructuredLogger] = {}


def get_logger(name: str) -> StructuredLogger:
    """Return the StructuredLogger for ``name``, creating it on first use."""
    logger = _loggers.get(name)
    if logger is not None:
        return logger

    previous = logging.getLoggerClass()
    logging.setLoggerClass(StructuredLogger)
    try:
        logger = logging.getLogger(name)
    finally:
        logging.setLoggerClass(previous)
    _loggers[name] = logger
    return logger
