"""Root logger configuration for the CLI and library users."""

import logging
from pathlib import Path
from typing import Any, Optional

from .handlers import ConsoleHandler, FileHandler
from .structured_logger import get_logger, run_context


def _reset_root(level: int) -> logging.Logger:
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(level)
    return root


def setup_logging(config: Any, run_id: Optional[str] = None, log_file: Optional[str] = None,
                  console: bool = True, log_level: Optional[str] = None):
    """Install console and/or JSON file handlers on the root logger.

    Args:
        config: Object with a dot-notation ``get`` (usually ``ecochange.config.config``)
        run_id: Bound as the run id for records outside a LoggingContext
        log_file: Explicit log file; otherwise ``paths.logs_dir/logging.log_file``
            when ``logging.file_logging`` is on
        console: Log to stderr
        log_level: Overrides ``logging.level``
    """
    level_name = (log_level or config.get('logging.level', 'INFO')).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO
    root = _reset_root(level)

    if console:
        handler = ConsoleHandler(
            show_context=config.get('logging.show_context', True),
        )
        handler.setLevel(level)
        root.addHandler(handler)

    if log_file is None and config.get('logging.file_logging', False):
        log_file = str(Path(config.get('paths.logs_dir', 'logs'))
                       / config.get('logging.log_file', 'ecochange.log'))
    if log_file is not None:
        handler = FileHandler(
            log_file,
            max_bytes=config.get('logging.max_file_size', 50 * 1024 * 1024),
            backup_count=config.get('logging.backup_count', 5),
        )
        handler.setLevel(logging.DEBUG)
        root.addHandler(handler)

    if run_id:
        run_context.set(run_id)

    get_logger(__name__).debug(
        f"Logging configured at {level_name}",
        extra={'context': {'log_file': log_file, 'console': console}},
    )


def setup_simple_logging(log_level: str = 'INFO'):
    """Console-only logging for scripts and notebooks."""
    level = logging.getLevelName(log_level.upper())
    root = _reset_root(level if isinstance(level, int) else logging.INFO)
    root.addHandler(ConsoleHandler())
