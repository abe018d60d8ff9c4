"""Structured logging for pipeline runs."""

from .structured_logger import (
    StructuredLogger, OperationTimer, get_logger, current_context,
    run_context, region_context, stage_context, layer_context
)
from .context import LoggingContext, layer_scope
from .decorators import log_operation
from .setup import setup_logging, setup_simple_logging

__all__ = [
    'StructuredLogger',
    'OperationTimer',
    'get_logger',
    'current_context',
    'run_context',
    'region_context',
    'stage_context',
    'layer_context',
    'LoggingContext',
    'layer_scope',
    'log_operation',
    'setup_logging',
    'setup_simple_logging',
]
