r"""
Sequential execution backend for ensemble sampling.

This module provides a single-threaded execution strategy that integrates
blocks of paths one after another with optional progress reporting.
"""

from __future__ import annotations

import threading
from typing import Callable

import numpy as np

from ..config import MAX_BLOCK_SIZE
from .base import PathTask, make_blocks

__all__ = ["SequentialBackend"]


class SequentialBackend:
    r"""
    Sequential (single-threaded) execution backend.

    Integrates blocks of paths one at a time on the calling thread.
    Suitable for small ensembles or debugging.

    Parameters
    ----------
    block_size : int, optional
        Paths per block. Defaults to about 1% of the ensemble (reported progress
        granularity), capped at :data:`~mcsde.config.MAX_BLOCK_SIZE`.

    Examples
    --------
    >>> backend = SequentialBackend()
    >>> values = backend.run(task, n_paths=1000, root=np.random.SeedSequence(1), progress_callback=None)
    """

    def __init__(self, block_size: int | None = None):
        self.block_size = block_size

    def run(
        self,
        task: PathTask,
        n_paths: int,
        root: np.random.SeedSequence,
        progress_callback: Callable[[int, int], None] | None,
        cancel: threading.Event | None = None,
    ) -> np.ndarray:
        r"""
        Integrate all paths sequentially on a single thread.

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
            Checked between steps.

        Returns
        -------
        np.ndarray
            Array of terminal values with shape ``(n_paths,)``.
        """
        block_size = self.block_size or min(MAX_BLOCK_SIZE, max(1, n_paths // 100))
        results = np.empty(n_paths, dtype=float)

        for i, j in make_blocks(n_paths, block_size):
            results[i:j] = task.run_block(i, j, root, cancel)
            if progress_callback:
                progress_callback(j, n_paths)

        return results
