r"""
Parallel execution backends for ensemble sampling.

This module provides:

Classes
    :class:`ThreadBackend` — Thread-based parallelism using ThreadPoolExecutor
    :class:`ProcessBackend` — Process-based parallelism using ProcessPoolExecutor

Both backends hand out half-open blocks of path indices. Each block writes only
its own slice of the result buffer, and each path draws from its own
index-keyed stream, so the ensemble does not depend on the worker count or on
the order in which blocks finish.
"""

from __future__ import annotations

import logging
import multiprocessing as mp
import threading
from concurrent.futures import Future, ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from typing import Callable, Iterable

import numpy as np

from ..config import CHUNKS_PER_WORKER, MAX_BLOCK_SIZE
from ..errors import SamplingCancelled
from .base import PathTask, make_blocks, worker_run_block

logger = logging.getLogger(__name__)

__all__ = [
    "ThreadBackend",
    "ProcessBackend",
]


def _cancel_all(futs: Iterable[Future]) -> None:
    for f in futs:
        f.cancel()


class _BlockedBackend:
    """Shared block layout for the pool-based backends."""

    def __init__(
        self,
        n_workers: int,
        chunks_per_worker: int = CHUNKS_PER_WORKER,
        block_size: int | None = None,
    ):
        self.n_workers = n_workers
        self.chunks_per_worker = chunks_per_worker
        self.block_size = block_size

    def _prepare_blocks(self, n_paths: int) -> list[tuple[int, int]]:
        """Split ``[0, n_paths)`` into blocks for load balancing."""
        block_size = self.block_size or min(
            MAX_BLOCK_SIZE, max(1, n_paths // (self.n_workers * self.chunks_per_worker))
        )
        return make_blocks(n_paths, block_size)


class ThreadBackend(_BlockedBackend):
    r"""
    Thread-based parallel execution backend.

    Uses :class:`concurrent.futures.ThreadPoolExecutor` for parallel execution.
    Effective for batch-capable models, whose vector arithmetic releases the GIL;
    plain Python models run concurrently but are serialized by the GIL.

    Parameters
    ----------
    n_workers : int
        Number of worker threads to use.
    chunks_per_worker : int, default 8
        Number of work blocks per worker for load balancing.
    block_size : int, optional
        Fixed block size overriding ``chunks_per_worker``.

    Examples
    --------
    >>> backend = ThreadBackend(n_workers=4)
    >>> values = backend.run(task, n_paths=100_000, root=root, progress_callback=None)
    """

    def run(
        self,
        task: PathTask,
        n_paths: int,
        root: np.random.SeedSequence,
        progress_callback: Callable[[int, int], None] | None,
        cancel: threading.Event | None = None,
    ) -> np.ndarray:
        r"""
        Integrate all paths in parallel using threads.

        Parameters
        ----------
        task : PathTask
            Model and integration parameters.
        n_paths : int
            Ensemble size.
        root : SeedSequence
            Root of the per-path random streams.
        progress_callback : callable or None
            Optional callback ``f(completed, total)`` for progress reporting.
        cancel : threading.Event or None
            Checked between steps inside every worker.

        Returns
        -------
        np.ndarray
            Array of terminal values with shape ``(n_paths,)``.
        """
        blocks = self._prepare_blocks(n_paths)
        results = np.empty(n_paths, dtype=float)
        completed = 0
        max_workers = min(self.n_workers, len(blocks))
        logger.debug("Thread backend: %d blocks on %d workers", len(blocks), max_workers)

        def _work(blk):
            a, b = blk
            return (a, b), task.run_block(a, b, root, cancel)

        with ThreadPoolExecutor(max_workers=max_workers) as ex:
            futs = [ex.submit(_work, blk) for blk in blocks]
            try:
                for f in as_completed(futs):
                    (i, j), arr = f.result()
                    results[i:j] = arr
                    completed += j - i
                    if progress_callback:
                        progress_callback(completed, n_paths)
            except BaseException:
                _cancel_all(futs)
                raise

        return results


class ProcessBackend(_BlockedBackend):
    r"""
    Process-based parallel execution backend.

    Uses :class:`concurrent.futures.ProcessPoolExecutor` with spawn context
    for parallel execution. Gives true parallelism for plain Python models
    and is the ``"auto"`` choice on Windows.

    Parameters
    ----------
    n_workers : int
        Number of worker processes to use.
    chunks_per_worker : int, default 8
        Number of work blocks per worker for load balancing.
    block_size : int, optional
        Fixed block size overriding ``chunks_per_worker``.

    Notes
    -----
    The model must be pickleable (module-level functions or the dataclass
    models in :mod:`mcsde.models`; not lambdas). A ``cancel`` event cannot
    cross the process boundary, so it is checked between completed blocks and
    pending blocks are cancelled.

    Examples
    --------
    >>> backend = ProcessBackend(n_workers=4)
    >>> values = backend.run(task, n_paths=100_000, root=root, progress_callback=None)
    """

    def run(
        self,
        task: PathTask,
        n_paths: int,
        root: np.random.SeedSequence,
        progress_callback: Callable[[int, int], None] | None,
        cancel: threading.Event | None = None,
    ) -> np.ndarray:
        r"""
        Integrate all paths in parallel using processes.

        Parameters
        ----------
        task : PathTask
            Model and integration parameters. Must be pickleable.
        n_paths : int
            Ensemble size.
        root : SeedSequence
            Root of the per-path random streams.
        progress_callback : callable or None
            Optional callback ``f(completed, total)`` for progress reporting.
        cancel : threading.Event or None
            Checked between completed blocks.

        Returns
        -------
        np.ndarray
            Array of terminal values with shape ``(n_paths,)``.
        """
        blocks = self._prepare_blocks(n_paths)
        results = np.empty(n_paths, dtype=float)
        completed = 0
        max_workers = min(self.n_workers, len(blocks))
        logger.debug("Process backend: %d blocks on %d workers", len(blocks), max_workers)

        with ProcessPoolExecutor(
            max_workers=max_workers,
            mp_context=mp.get_context("spawn"),
        ) as ex:
            futs = []
            for blk in blocks:
                f = ex.submit(worker_run_block, task, blk, root)
                f.blk = blk  # type: ignore[attr-defined]
                futs.append(f)
            try:
                for f in as_completed(futs):
                    if cancel is not None and cancel.is_set():
                        raise SamplingCancelled("sampling cancelled")
                    i, j = f.blk  # type: ignore[attr-defined]
                    results[i:j] = f.result()
                    completed += j - i
                    if progress_callback:
                        progress_callback(completed, n_paths)
            except BaseException:
                _cancel_all(futs)
                raise

        return results
