r"""
Base classes and utilities for execution backends.

This module provides:

Protocol
    :class:`ExecutionBackend` — Interface for ensemble execution strategies

Classes
    :class:`PathTask` — Picklable description of one ensemble's paths

Functions
    :func:`make_blocks` — Chunking helper for parallel work distribution
    :func:`worker_run_block` — Top-level worker for process-based parallelism

Helpers
    :func:`is_windows_platform` — Platform detection for backend selection
"""

from __future__ import annotations

import sys
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

import numpy as np

from ..integrator import integrate_block, path_rng

__all__ = [
    "ExecutionBackend",
    "PathTask",
    "make_blocks",
    "worker_run_block",
    "is_windows_platform",
]


def is_windows_platform() -> bool:
    """Return True when running on a Windows platform."""
    return sys.platform.startswith("win") or (sys.platform == "cli")


def make_blocks(n: int, block_size: int = 1_000) -> list[tuple[int, int]]:
    r"""
    Partition an integer range :math:`[0, n)` into half-open blocks :math:`(i, j)`.

    Parameters
    ----------
    n : int
        Total number of items.
    block_size : int, default: 1_000
        Target block length.

    Returns
    -------
    list of tuple[int, int]
        List of ``(i, j)`` index pairs covering ``[0, n)``.

    Examples
    --------
    >>> make_blocks(5, block_size=2)
    [(0, 2), (2, 4), (4, 5)]
    """
    blocks = []
    i = 0
    while i < n:
        j = min(i + block_size, n)
        blocks.append((i, j))
        i = j
    return blocks


@dataclass(frozen=True)
class PathTask:
    r"""
    Everything a worker needs to integrate a range of sample paths.

    Attributes
    ----------
    model : callable
        ``model(x) -> (drift, diffusion)``. Must be pickleable for the process backend.
    x0 : float
        Initial state shared by all paths.
    t1 : float
        Integration horizon.
    dt : float
        Step size.
    """

    model: Callable[[Any], tuple[Any, Any]]
    x0: float
    t1: float
    dt: float

    def run_block(
        self,
        start: int,
        stop: int,
        root: np.random.SeedSequence,
        cancel: Optional[threading.Event] = None,
    ) -> np.ndarray:
        """Integrate paths ``start .. stop-1``, each on its own index-keyed stream."""
        rngs = [path_rng(root, k) for k in range(start, stop)]
        return integrate_block(self.model, self.x0, self.t1, self.dt, rngs, cancel)


def worker_run_block(
    task: PathTask,
    block: tuple[int, int],
    root: np.random.SeedSequence,
) -> np.ndarray:
    r"""
    Integrate one block of paths in a **separate worker process**.

    Parameters
    ----------
    task : PathTask
        Model and integration parameters. Must be pickleable.
    block : tuple[int, int]
        Half-open path index range ``(i, j)``.
    root : :class:`numpy.random.SeedSequence`
        Root sequence; path ``k`` uses :func:`~mcsde.integrator.path_rng` ``(root, k)``.

    Returns
    -------
    ndarray of float
        Terminal values for paths ``i .. j-1``.
    """
    i, j = block
    return task.run_block(i, j, root)


class ExecutionBackend(Protocol):
    r"""
    Protocol defining the interface for execution backends.

    Backends decide how the blocks of an ensemble are scheduled. They never
    decide which random stream a path uses: path ``k`` always draws from
    ``path_rng(root, k)``, so every backend returns the same ensemble.
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
        Integrate ``n_paths`` paths and return their terminal values.

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
            When set, remaining work is abandoned and
            :class:`~mcsde.errors.SamplingCancelled` is raised.

        Returns
        -------
        np.ndarray
            Array of terminal values with shape ``(n_paths,)``.
        """
