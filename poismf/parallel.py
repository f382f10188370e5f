"""
Fork-join execution helpers for the row-parallel updates.

``WorkerPool`` wraps a fixed-size ``ThreadPoolExecutor``. Each call to
:meth:`WorkerPool.run` submits exactly one task per worker and blocks until
all of them are done, which is the barrier separating the half-iterations.

``ScratchBufferPool`` owns the per-worker scratch arrays. A worker only ever
touches the buffer at its own index, so no synchronization is needed.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

import numpy as np


def _allocate_buffer(size: int) -> np.ndarray:
    return np.empty(size, dtype=np.float64)


def resolve_nthreads(nthreads: int) -> int:
    """Map ``-1`` (or any value < 1) to the number of available cores."""
    if nthreads is None or nthreads < 1:
        return os.cpu_count() or 1
    return int(nthreads)


class WorkerPool:
    """Fixed set of worker threads, identified by ids ``0..nthreads-1``."""

    def __init__(self, nthreads: int = 1):
        self.nthreads = resolve_nthreads(nthreads)
        self._executor: Optional[ThreadPoolExecutor] = None

    def __enter__(self):
        if self.nthreads > 1:
            self._executor = ThreadPoolExecutor(max_workers=self.nthreads)
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        return False

    def run(self, fn: Callable[[int], object]) -> List[object]:
        """
        Call ``fn(worker_id)`` once per worker and wait for all of them.

        Results come back in worker order. An exception raised by any worker
        is re-raised here after every worker has finished.
        """
        if self._executor is None:
            return [fn(w) for w in range(self.nthreads)]
        futures = [self._executor.submit(fn, w) for w in range(self.nthreads)]
        # wait on all before raising so no task outlives the phase
        for fut in futures:
            fut.exception()
        return [fut.result() for fut in futures]


def parallel_for(n: int, fn: Callable[[int, int], None], workers: WorkerPool) -> None:
    """
    Run ``fn(i, worker_id)`` for every ``i`` in ``range(n)``.

    Indices are dealt out round-robin, so worker ``w`` handles
    ``w, w + nthreads, ...``. Every index is visited by exactly one worker.
    """
    step = workers.nthreads

    def _task(worker_id):
        for i in range(worker_id, n, step):
            fn(i, worker_id)

    workers.run(_task)


class ScratchBufferPool:
    """
    Per-worker scratch arrays, allocated once and released on exit.

    Parameters
    ----------
    workers : WorkerPool
        Pool whose workers will each allocate their own buffer.
    size : int
        Length of each buffer (``k`` for PGD, ``4 * k`` for CG).

    Notes
    -----
    A ``MemoryError`` during allocation does not propagate. It sets
    :attr:`alloc_error`, which the caller checks once every worker has
    tried to allocate.
    """

    def __init__(self, workers: WorkerPool, size: int):
        self.workers = workers
        self.size = size
        self.alloc_error = False
        self._buffers: List[Optional[np.ndarray]] = []
        self._shared: List[np.ndarray] = []

    def __enter__(self):
        self._buffers = self.workers.run(self._allocate_one)
        return self

    def __exit__(self, exc_type, exc, tb):
        self._buffers = []
        self._shared = []
        return False

    def _allocate_one(self, worker_id: int) -> Optional[np.ndarray]:
        try:
            return _allocate_buffer(self.size)
        except MemoryError:
            self.alloc_error = True
            return None

    def allocate_shared(self, size: int) -> Optional[np.ndarray]:
        """Allocate a run-scoped array that is released together with the pool."""
        try:
            arr = _allocate_buffer(size)
        except MemoryError:
            self.alloc_error = True
            return None
        self._shared.append(arr)
        return arr

    def __getitem__(self, worker_id: int) -> np.ndarray:
        return self._buffers[worker_id]

    def __len__(self) -> int:
        return len(self._buffers)
