r"""
Ensemble sampling of terminal values.

:func:`sample` integrates ``n`` independent Euler–Maruyama paths of one model
from one initial condition and returns their terminal values in index order,
ready for histogramming or the statistics in :mod:`mcsde.stats_engine`.

Reproducibility
---------------
Path ``i`` draws from ``path_rng(root, i)`` where ``root`` is the
:class:`numpy.random.SeedSequence` built from ``seed``. The returned ensemble is
therefore determined by ``(model, x0, t1, dt, n, seed)`` alone: backend,
worker count and block size change only how fast it is computed.
"""

from __future__ import annotations

import logging
import multiprocessing as mp
import threading
from typing import Any, Callable, Optional, Union

import numpy as np

from .backends import PathTask, ProcessBackend, SequentialBackend, ThreadBackend, is_windows_platform
from .config import DEFAULT_DT, PARALLEL_THRESHOLD, SamplerConfig, check_count, check_finite, check_positive
from .errors import ConfigurationError
from .integrator import step_count

logger = logging.getLogger(__name__)

__all__ = ["sample", "as_seed_sequence", "resolve_backend", "create_backend"]

SeedLike = Union[None, int, np.random.SeedSequence]


def as_seed_sequence(seed: SeedLike) -> np.random.SeedSequence:
    r"""
    Normalize ``seed`` into a root :class:`numpy.random.SeedSequence`.

    ``None`` draws entropy from the OS (production sampling); an int gives a
    deterministic root (tests, reproducible figures); a ``SeedSequence`` is used
    as is.
    """
    if isinstance(seed, np.random.SeedSequence):
        return seed
    if seed is None:
        return np.random.SeedSequence()
    if isinstance(seed, (int, np.integer)) and not isinstance(seed, bool):
        if seed < 0:
            raise ConfigurationError(f"seed must be non-negative, got {seed!r}")
        return np.random.SeedSequence(int(seed))
    raise ConfigurationError(f"seed must be None, an int or a SeedSequence, got {type(seed).__name__}")


def resolve_backend(backend: str, n_paths: int, n_workers: int | None) -> tuple[str, int]:
    r"""
    Resolve ``backend`` and the worker count for an ensemble of ``n_paths``.

    Notes
    -----
    ``"auto"`` maps to:

    * ``"sequential"`` when there is a single worker or fewer than
      :data:`~mcsde.config.PARALLEL_THRESHOLD` paths;
    * ``"process"`` on Windows, where threads tend to serialize under the GIL;
    * ``"thread"`` elsewhere.
    """
    if n_workers is None:
        n_workers = mp.cpu_count()
    if backend != "auto":
        return backend, n_workers
    if n_workers <= 1 or n_paths < PARALLEL_THRESHOLD:
        return "sequential", 1
    if is_windows_platform():
        logger.info("Backend 'auto' resolved to 'process' on Windows platform.")
        return "process", n_workers
    return "thread", n_workers


def create_backend(
    backend: str, n_workers: int, block_size: int | None = None
) -> SequentialBackend | ThreadBackend | ProcessBackend:
    """Instantiate a resolved (non-``"auto"``) backend."""
    if backend == "sequential":
        return SequentialBackend(block_size=block_size)
    if backend == "thread":
        return ThreadBackend(n_workers=n_workers, block_size=block_size)
    if backend == "process":
        return ProcessBackend(n_workers=n_workers, block_size=block_size)
    raise ConfigurationError(f"cannot create backend '{backend}'")


def sample(
    model: Callable[[Any], tuple[Any, Any]],
    x0: float,
    t1: float,
    n: int,
    dt: float = DEFAULT_DT,
    *,
    seed: SeedLike = None,
    backend: str = "auto",
    n_workers: Optional[int] = None,
    block_size: Optional[int] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
    cancel: Optional[threading.Event] = None,
) -> np.ndarray:
    r"""
    Sample ``n`` independent terminal values of the SDE ``model``.

    Parameters
    ----------
    model : callable
        ``model(x) -> (drift, diffusion)``, shared read-only by all workers.
    x0 : float
        Initial state of every path.
    t1 : float
        Integration horizon, ``> 0``.
    n : int
        Number of paths, ``>= 1``.
    dt : float, default :data:`~mcsde.config.DEFAULT_DT`
        Step size, ``> 0``.
    seed : None, int or SeedSequence, optional
        Root of the per-path streams. ``None`` uses OS entropy.
    backend : {"auto", "sequential", "thread", "process"}, default ``"auto"``
        Execution strategy (see :func:`resolve_backend`).
    n_workers : int, optional
        Worker count for parallel backends. Defaults to CPU count.
    block_size : int, optional
        Paths per work block.
    progress_callback : callable, optional
        ``f(completed, total)`` called as blocks finish.
    cancel : threading.Event, optional
        Set it from another thread to abort with
        :class:`~mcsde.errors.SamplingCancelled`.

    Returns
    -------
    ndarray of float
        Shape ``(n,)``; slot ``i`` holds the terminal value of path ``i``.
        Non-finite values are kept in their slots.

    Raises
    ------
    ConfigurationError
        Before any work starts, for ``dt <= 0``, ``t1 <= 0``, ``n < 1``,
        a non-finite ``x0``, a non-callable model, invalid backend settings
        or a ``t1/dt`` ratio too large to count in steps.

    Examples
    --------
    >>> from mcsde.models import OrnsteinUhlenbeck
    >>> x = sample(OrnsteinUhlenbeck(1.0, 0.1), 0.0, 10.0, n=10_000, seed=42)
    >>> x.shape
    (10000,)
    """
    if not callable(model):
        raise ConfigurationError(f"model must be callable, got {type(model).__name__}")
    x0 = check_finite("x0", x0)
    t1 = check_positive("t1", t1)
    n = check_count("n", n)
    cfg = SamplerConfig(dt=dt, backend=backend, n_workers=n_workers, block_size=block_size)
    step_count(t1, cfg.dt)
    root = as_seed_sequence(seed)

    name, workers = resolve_backend(cfg.backend, n, cfg.n_workers)
    logger.debug("Sampling %d paths with %s backend (%d workers)", n, name, workers)
    runner = create_backend(name, workers, cfg.block_size)
    return runner.run(PathTask(model, x0, t1, cfg.dt), n, root, progress_callback, cancel)
