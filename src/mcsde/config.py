r"""
Defaults and validated configuration for ensemble sampling.

This module provides:

Constants
    :data:`DEFAULT_DT` — Default Euler–Maruyama step size
    :data:`PARALLEL_THRESHOLD` — Ensemble size below which ``"auto"`` stays sequential
    :data:`CHUNKS_PER_WORKER` — Blocks handed to each worker for load balancing
    :data:`MAX_BLOCK_SIZE` — Upper bound on paths per block
    :data:`VALID_BACKENDS` — Accepted backend names

Classes
    :class:`SamplerConfig` — Immutable-by-convention bundle of sampler settings

Functions
    :func:`check_positive`, :func:`check_finite`, :func:`check_count` — Input validation
"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, replace
from typing import Optional

from .errors import ConfigurationError

__all__ = [
    "DEFAULT_DT",
    "PARALLEL_THRESHOLD",
    "CHUNKS_PER_WORKER",
    "MAX_BLOCK_SIZE",
    "VALID_BACKENDS",
    "SamplerConfig",
    "check_positive",
    "check_finite",
    "check_count",
    "check_backend",
]

DEFAULT_DT = 0.01
# Minimum ensemble size to use parallel execution under backend="auto"
PARALLEL_THRESHOLD = 2_000
# Number of blocks per worker (keeps slow blocks from stalling the pool)
CHUNKS_PER_WORKER = 8
# Upper bound on paths per block (a block holds n_steps x block_size variates)
MAX_BLOCK_SIZE = 1_000
VALID_BACKENDS = ("auto", "sequential", "thread", "process")


def check_finite(name: str, value: float) -> float:
    """Return ``value`` as a float, raising :class:`ConfigurationError` if it is not finite."""
    try:
        value = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a real number, got {value!r}") from exc
    if not math.isfinite(value):
        raise ConfigurationError(f"{name} must be finite, got {value!r}")
    return value


def check_positive(name: str, value: float) -> float:
    """Return ``value`` as a float, raising :class:`ConfigurationError` unless it is finite and > 0."""
    value = check_finite(name, value)
    if value <= 0.0:
        raise ConfigurationError(f"{name} must be positive, got {value!r}")
    return value


def check_count(name: str, value: int) -> int:
    """Return ``value`` as an int, raising :class:`ConfigurationError` unless it is an integer >= 1."""
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if value < 1:
        raise ConfigurationError(f"{name} must be positive, got {value!r}")
    return int(value)


def check_backend(backend: str) -> str:
    if backend not in VALID_BACKENDS:
        raise ConfigurationError(f"backend must be one of {VALID_BACKENDS}, got '{backend}'")
    return backend


@dataclass(slots=True)
class SamplerConfig:
    r"""
    Settings shared by :func:`~mcsde.sampler.sample` and
    :class:`~mcsde.simulation.EnsembleSimulation`.

    Attributes
    ----------
    dt : float, default :data:`DEFAULT_DT`
        Euler–Maruyama step size. Must be small enough for the model to stay
        stable; this is not checked.
    backend : {"auto", "sequential", "thread", "process"}, default ``"auto"``
        Execution strategy for the ensemble.
    n_workers : int, optional
        Worker count for parallel backends. ``None`` means CPU count.
    block_size : int, optional
        Paths per work block. ``None`` derives it from the worker count and
        :data:`CHUNKS_PER_WORKER`.

    Notes
    -----
    The config is immutable by convention; use :meth:`with_overrides` to build a
    modified copy.

    Examples
    --------
    >>> cfg = SamplerConfig(dt=0.001)
    >>> cfg.with_overrides(backend="thread", n_workers=4).n_workers
    4
    """

    dt: float = DEFAULT_DT
    backend: str = "auto"
    n_workers: Optional[int] = None
    block_size: Optional[int] = None

    def __post_init__(self) -> None:
        """
        Validate field ranges.

        Raises
        ------
        ConfigurationError
            If any field is outside its allowed range.
        """
        self.dt = check_positive("dt", self.dt)
        check_backend(self.backend)
        if self.n_workers is not None:
            self.n_workers = check_count("n_workers", self.n_workers)
        if self.block_size is not None:
            self.block_size = check_count("block_size", self.block_size)

    def with_overrides(self, **changes) -> "SamplerConfig":
        """Return a copy with selected fields replaced (validated again)."""
        return replace(self, **changes)
