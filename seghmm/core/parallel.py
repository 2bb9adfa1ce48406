"""Fan-out of per-state work over a thread pool."""

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional


def resolve_n_jobs(n_jobs: int) -> int:
    """Map 0 (or negative) to the number of available cores."""
    if n_jobs is None or n_jobs <= 0:
        return os.cpu_count() or 1
    return int(n_jobs)


class StatePool:
    """
    Runs a per-state callable over range(N) and joins.

    Every task writes only its own state's row, so no locking is needed.
    With n_jobs == 1 (or a single state) the calls run inline.

    Usage:
        with StatePool(4) as pool:
            pool.map_states(fn, n_states)
    """

    def __init__(self, n_jobs: int = 1):
        self.n_jobs = resolve_n_jobs(n_jobs)
        self._executor: Optional[ThreadPoolExecutor] = None

    def __enter__(self) -> 'StatePool':
        if self.n_jobs > 1:
            self._executor = ThreadPoolExecutor(max_workers=self.n_jobs)
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
        return False

    def shutdown(self):
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def map_states(self, fn: Callable[[int], object], n_states: int) -> List[object]:
        """Call fn(i) for every state; re-raises the first task exception."""
        if self._executor is None or n_states < 2:
            return [fn(i) for i in range(n_states)]
        futures = [self._executor.submit(fn, i) for i in range(n_states)]
        return [f.result() for f in futures]
