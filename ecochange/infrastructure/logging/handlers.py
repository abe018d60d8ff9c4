"""Console and rotating-file handlers wired to the pipeline formatters."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .formatters import HumanFormatter, JsonFormatter


def _wants_color(stream) -> bool:
    if os.environ.get('NO_COLOR') or os.environ.get('TERM') == 'dumb':
        return False
    return bool(getattr(stream, 'isatty', None) and stream.isatty())


class ConsoleHandler(logging.StreamHandler):
    """stderr handler using HumanFormatter, colored on terminals."""

    def __init__(self, stream=None, use_colors: Optional[bool] = None,
                 show_context: bool = True):
        stream = stream or sys.stderr
        super().__init__(stream)
        if use_colors is None:
            use_colors = _wants_color(stream)
        self.setFormatter(HumanFormatter(use_colors=use_colors, show_context=show_context))


class FileHandler(RotatingFileHandler):
    """Rotating log file, JSON lines by default; parent directories are created."""

    def __init__(self, filename: str, max_bytes: int = 50 * 1024 * 1024,
                 backup_count: int = 5, use_json: bool = True):
        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(str(path), maxBytes=max_bytes, backupCount=backup_count,
                         encoding='utf-8')
        if use_json:
            self.setFormatter(JsonFormatter())
        else:
            self.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(name)s: %(message)s'))
