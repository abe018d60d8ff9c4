"""Console and JSON-lines formatters for pipeline records."""

import json
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, List

# Context keys shown on the console, in display order
CONTEXT_KEYS = ('region', 'stage', 'layer')


def _record_traceback(record: logging.LogRecord) -> str:
    tb = getattr(record, 'traceback', None)
    if tb:
        return tb
    if record.exc_info:
        return ''.join(traceback.format_exception(*record.exc_info))
    return ''


class HumanFormatter(logging.Formatter):
    """One line per record: time, level, short logger, context, message.

    A performance payload adds an indented second line, a traceback is
    appended below it.
    """

    LEVEL_COLORS = {
        'DEBUG': '\033[36m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[1;31m',
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True, show_context: bool = True):
        super().__init__()
        self.use_colors = use_colors
        self.show_context = show_context

    def _paint(self, text: str, levelname: str) -> str:
        color = self.LEVEL_COLORS.get(levelname)
        if not self.use_colors or not color:
            return text
        return f"{color}{text}{self.RESET}"

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        head = [stamp, self._paint(f"{record.levelname:<7}", record.levelname),
                f"{record.name.rsplit('.', 1)[-1]}:"]

        if self.show_context:
            tags = self.context_tags(getattr(record, 'context', None) or {})
            if tags:
                head.append(f"[{' '.join(tags)}]")
        head.append(record.getMessage())
        lines = [' '.join(head)]

        perf = getattr(record, 'performance', None)
        if perf:
            summary = self.performance_summary(perf)
            if summary:
                lines.append(f"    took {summary}")

        tb = _record_traceback(record)
        if tb:
            lines.append(self._paint(tb.rstrip(), record.levelname))
        return '\n'.join(lines)

    @staticmethod
    def context_tags(context: Dict[str, Any]) -> List[str]:
        tags = []
        if context.get('run_id'):
            tags.append(f"run:{str(context['run_id'])[:8]}")
        tags.extend(f"{key}:{context[key]}" for key in CONTEXT_KEYS if context.get(key))
        return tags

    @staticmethod
    def performance_summary(perf: Dict[str, Any]) -> str:
        parts = []
        if 'duration_seconds' in perf:
            parts.append(f"{perf['duration_seconds']:.3f}s")
        if 'cells_per_second' in perf:
            parts.append(f"{perf['cells_per_second']:,.0f} cells/s")
        if perf.get('status') and perf['status'] != 'success':
            parts.append(str(perf['status']))
        return ', '.join(parts)


class JsonFormatter(logging.Formatter):
    """Single-line JSON with run, region, stage and layer lifted to the top."""

    def format(self, record: logging.LogRecord) -> str:
        context = dict(getattr(record, 'context', None) or {})
        entry = {
            'time': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'thread': record.threadName,
        }
        for key in ('run_id',) + CONTEXT_KEYS:
            if context.get(key) is not None:
                entry[key] = context[key]
        if context:
            entry['context'] = context

        perf = getattr(record, 'performance', None)
        if perf:
            entry['performance'] = perf

        tb = _record_traceback(record)
        if tb:
            entry['traceback'] = tb
        return json.dumps(entry, separators=(',', ':'), default=str)
