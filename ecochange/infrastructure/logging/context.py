"""Run and stage scopes that bind logging context and record timings."""

import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from .structured_logger import (
    get_logger, layer_context, region_context, run_context, stage_context
)


class LoggingContext:
    """Correlates the records of one pipeline run.

    ``run`` binds the run id and region, ``stage`` binds a stage name and
    times it, ``operation`` optionally binds a layer. Stage timings are
    kept under their nested path, e.g. ``report/integrate``.
    """

    def __init__(self, run_id: Optional[str] = None, region: Optional[str] = None):
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.region = region
        self.stage_stack: List[str] = []
        self.timings: Dict[str, Dict[str, Any]] = {}
        self.logger = get_logger(__name__)

    @contextmanager
    def run(self, name: str, **metadata):
        tokens = (run_context.set(self.run_id), region_context.set(self.region))
        start = time.time()
        self.logger.info(f"Run {name} started", extra={'context': {'run_name': name, **metadata}})
        try:
            yield self
        finally:
            self.logger.log_performance(f"run:{name}", time.time() - start)
            region_context.reset(tokens[1])
            run_context.reset(tokens[0])

    @contextmanager
    def stage(self, name: str, **metadata):
        token = stage_context.set(name)
        self.stage_stack.append(name)
        path = '/'.join(self.stage_stack)
        start = time.time()
        status = 'completed'
        self.logger.info(f"Stage {path} started", extra={'context': metadata})
        try:
            yield self
        except Exception as e:
            status = 'failed'
            self.logger.log_error_with_context(e, operation=f"stage:{name}")
            raise
        finally:
            duration = time.time() - start
            self.timings[path] = {'duration': duration, 'status': status}
            self.logger.log_performance(f"stage:{name}", duration, status=status)
            self.stage_stack.pop()
            stage_context.reset(token)

    @contextmanager
    def operation(self, name: str, layer: Optional[str] = None, **metadata):
        token = layer_context.set(layer) if layer is not None else None
        try:
            with self.logger.timed(name) as timer:
                timer.metrics.update(metadata)
                yield self
        except Exception as e:
            self.logger.log_error_with_context(e, operation=name, **metadata)
            raise
        finally:
            if token is not None:
                layer_context.reset(token)

    def get_timings(self) -> Dict[str, Dict[str, Any]]:
        return dict(self.timings)

    @property
    def current_stage(self) -> Optional[str]:
        return self.stage_stack[-1] if self.stage_stack else None


@contextmanager
def layer_scope(layer_name: str):
    """Bind ``layer_name`` to every record logged inside the block."""
    token = layer_context.set(layer_name)
    try:
        yield
    finally:
        layer_context.reset(token)
