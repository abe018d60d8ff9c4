"""Bounded fork/join helpers for per-layer and per-cell work."""

import contextvars
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Sequence, TypeVar

from ..config import config as global_config

T = TypeVar('T')
R = TypeVar('R')


def resolve_workers(requested: Optional[int], n_tasks: int, config=None) -> int:
    """Clamp a requested worker count to [1, min(tasks, worker_ceiling)]."""
    config = config or global_config
    if requested is None:
        requested = config.get('processing.max_workers', 1)
    if requested < 1:
        raise ValueError(f"parallelism must be >= 1, got {requested}")
    ceiling = config.get('processing.worker_ceiling') or requested
    return max(1, min(int(requested), int(ceiling), max(n_tasks, 1)))


def run_parallel(func: Callable[[T], R], items: Sequence[T],
                 max_workers: Optional[int] = 1, config=None) -> List[R]:
    """Apply ``func`` to every item and return results in input order.

    Work runs on a thread pool of at most ``max_workers`` threads. Each task
    runs in a copy of the caller's context so logging context follows the
    work. Results are merged only after every task has finished; the first
    failure (in input order) is re-raised and no partial result is returned.
    ``config`` supplies ``processing.worker_ceiling`` (global settings by default).
    """
    items = list(items)
    workers = resolve_workers(max_workers, len(items), config)

    if workers == 1:
        return [func(item) for item in items]

    results: List[Optional[R]] = [None] * len(items)
    errors: List[Optional[BaseException]] = [None] * len(items)

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {
            executor.submit(contextvars.copy_context().run, func, item): index
            for index, item in enumerate(items)
        }
        for future in as_completed(futures):
            index = futures[future]
            try:
                results[index] = future.result()
            except Exception as e:
                errors[index] = e

    for error in errors:
        if error is not None:
            raise error
    return results  # type: ignore[return-value]
