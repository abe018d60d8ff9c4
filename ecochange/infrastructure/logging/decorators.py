"""``log_operation``: start/finish/failure records around pipeline calls."""

import functools
import inspect
import time
from typing import Any, Callable, Optional, TypeVar

from .structured_logger import get_logger, stage_context

F = TypeVar('F', bound=Callable[..., Any])

_SCALARS = (str, int, float, bool)


def _describe(value: Any) -> Any:
    """Scalars and flat scalar sequences as-is, anything else as ``<TypeName>``."""
    if value is None or isinstance(value, _SCALARS):
        return value
    if isinstance(value, (list, tuple)) and all(isinstance(v, _SCALARS) for v in value):
        return list(value)
    return f"<{type(value).__name__}>"


def log_operation(operation_name: Optional[str] = None, log_args: bool = False,
                  stage: bool = False):
    """Wrap a call with "Starting ..." and performance records.

    Args:
        operation_name: Name used in records (function name by default)
        log_args: Attach the call arguments, summarised, to the start record
        stage: Bind ``operation_name`` as the stage for the call's duration

    Failures are logged with their traceback and re-raised unchanged.
    """
    def decorator(func: F) -> F:
        name = operation_name or func.__name__
        logger = get_logger(func.__module__)
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            context: dict = {'operation': name}
            if log_args:
                bound = signature.bind(*args, **kwargs)
                bound.apply_defaults()
                context['arguments'] = {
                    key: _describe(value) for key, value in bound.arguments.items()
                    if key != 'self'
                }

            token = stage_context.set(name) if stage else None
            start = time.time()
            try:
                logger.info(f"Starting {name}", extra={'context': context})
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"{name} failed: {e}", exc_info=True,
                    extra={'context': context, 'performance': {
                        'duration_seconds': round(time.time() - start, 3),
                        'status': 'failed',
                        'error_type': type(e).__name__,
                    }},
                )
                raise
            finally:
                if token is not None:
                    stage_context.reset(token)

            logger.log_performance(name, time.time() - start, status='success')
            return result

        return wrapper  # type: ignore[return-value]
    return decorator
