r"""
Fixed-step Euler–Maruyama integration of scalar SDEs.

This module provides:

Functions
    :func:`integrate` — Terminal value of one sample path
    :func:`integrate_block` — Terminal values of several paths, one generator each
    :func:`step_count` — Number of fixed steps covering ``[0, t1]``
    :func:`path_seed` / :func:`path_rng` — Per-path random streams

The scheme is

.. math::
   x_{k+1} = x_k + f(x_k)\,\Delta t + g(x_k)\,\sqrt{\Delta t}\,Z_k,
   \qquad Z_k \sim \mathcal{N}(0, 1),

applied :math:`\lceil t_1/\Delta t \rceil` times. The last step is not clipped,
so the simulated time may overshoot ``t1`` by less than ``dt``. Only the
terminal state is returned; intermediate states are discarded.

Non-finite drift or diffusion values are not guarded against. They propagate
into the terminal value, and keeping ``dt`` small enough for the model is up to
the caller.
"""

from __future__ import annotations

import math
import threading
from typing import Any, Callable, Optional, Sequence

import numpy as np

from .config import DEFAULT_DT, check_finite, check_positive
from .errors import ConfigurationError, SamplingCancelled
from .models import supports_batch

__all__ = [
    "integrate",
    "integrate_block",
    "step_count",
    "path_seed",
    "path_rng",
]

# Relative tolerance for treating t1/dt as an exact integer
_RATIO_RTOL = 1e-9
# Largest step count; beyond 2**53 consecutive integers are not representable as floats
_MAX_STEPS = 2**53
# Steps of noise drawn per generator call; bounds memory to _NOISE_CHUNK x block size
_NOISE_CHUNK = 1024


def step_count(t1: float, dt: float) -> int:
    r"""
    Number of Euler–Maruyama steps used to reach ``t1`` with step ``dt``.

    Returns :math:`\lceil t_1/\Delta t \rceil`, except that a ratio within
    ``1e-9`` (relative) of an integer counts as that integer, so that
    ``step_count(10.0, 0.01)`` is ``1000`` despite binary rounding of ``0.01``.

    Raises
    ------
    ConfigurationError
        If ``t1/dt`` is not finite or exceeds :math:`2^{53}`.

    Examples
    --------
    >>> step_count(10.0, 0.01)
    1000
    >>> step_count(1.0, 0.3)
    4
    """
    ratio = t1 / dt
    if not math.isfinite(ratio) or ratio > _MAX_STEPS:
        raise ConfigurationError(f"t1/dt is too large for a fixed-step run, got {t1!r}/{dt!r}")
    nearest = round(ratio)
    if nearest >= 1 and math.isclose(ratio, nearest, rel_tol=_RATIO_RTOL):
        return int(nearest)
    return max(1, math.ceil(ratio))


def path_seed(root: np.random.SeedSequence, index: int) -> np.random.SeedSequence:
    r"""
    Seed sequence of sample path ``index`` under ``root``.

    The child is keyed by the path index rather than by spawn order, which makes
    it independent of how paths are grouped into work blocks. Indices start
    after the children ``root`` has already spawned, so path ``index`` is
    ``root.spawn(index + 1)[index]`` on a fresh ``root`` and never repeats a
    stream previously handed out by ``root.spawn``. ``root`` itself is not
    advanced.
    """
    return np.random.SeedSequence(
        entropy=root.entropy,
        spawn_key=tuple(root.spawn_key) + (root.n_children_spawned + int(index),),
        pool_size=root.pool_size,
    )


def path_rng(root: np.random.SeedSequence, index: int) -> np.random.Generator:
    """Independent :class:`numpy.random.Generator` (Philox) for sample path ``index``."""
    return np.random.Generator(np.random.Philox(path_seed(root, index)))


def _validate(model: Any, x0: float, t1: float, dt: float) -> tuple[float, float, float]:
    if not callable(model):
        raise ConfigurationError(f"model must be callable, got {type(model).__name__}")
    return check_finite("x0", x0), check_positive("t1", t1), check_positive("dt", dt)


def _check_cancel(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise SamplingCancelled("sampling cancelled")


def _euler_maruyama(
    model: Callable[[Any], tuple[Any, Any]],
    x: Any,
    dt: float,
    z: np.ndarray,
    cancel: Optional[threading.Event],
) -> Any:
    # Same expression order for scalars and arrays, so both routes agree bit for bit
    sqrt_dt = math.sqrt(dt)
    with np.errstate(over="ignore", invalid="ignore"):
        for z_k in z:
            _check_cancel(cancel)
            f, g = model(x)
            x = x + f * dt + g * sqrt_dt * z_k
    return x


def _chunk_sizes(n_steps: int):
    for start in range(0, n_steps, _NOISE_CHUNK):
        yield min(_NOISE_CHUNK, n_steps - start)


def _integrate_path(
    model: Callable[[Any], tuple[Any, Any]],
    x0: float,
    dt: float,
    n_steps: int,
    rng: np.random.Generator,
    cancel: Optional[threading.Event],
) -> float:
    # np.float64 state overflows to inf like the batch route instead of raising
    x = np.float64(x0)
    for k in _chunk_sizes(n_steps):
        x = _euler_maruyama(model, x, dt, rng.standard_normal(k), cancel)
    return float(x)


def integrate(
    model: Callable[[Any], tuple[Any, Any]],
    x0: float,
    t1: float,
    dt: float = DEFAULT_DT,
    *,
    rng: Optional[np.random.Generator] = None,
    cancel: Optional[threading.Event] = None,
) -> float:
    r"""
    Integrate one sample path and return its terminal value.

    Parameters
    ----------
    model : callable
        ``model(x) -> (drift, diffusion)``.
    x0 : float
        Initial state.
    t1 : float
        Target elapsed time, ``> 0``.
    dt : float, default :data:`~mcsde.config.DEFAULT_DT`
        Step size, ``> 0``.
    rng : numpy.random.Generator, optional
        Source of standard-normal variates. Each call draws
        :func:`step_count` fresh variates from it. When omitted, a new
        OS-seeded generator is created for this call only.
    cancel : threading.Event, optional
        Checked before every step.

    Returns
    -------
    float
        State after the last step. May be ``nan``/``inf`` if the model blew up.

    Raises
    ------
    ConfigurationError
        If ``t1`` or ``dt`` is not positive, ``x0`` is not finite, or ``model``
        is not callable.
    SamplingCancelled
        If ``cancel`` is set before the path completes.

    Examples
    --------
    >>> from mcsde.models import OrnsteinUhlenbeck
    >>> rng = np.random.default_rng(0)
    >>> x = integrate(OrnsteinUhlenbeck(1.0, 0.1), 0.0, 10.0, rng=rng)
    """
    x0, t1, dt = _validate(model, x0, t1, dt)
    if rng is None:
        rng = np.random.default_rng()
    return _integrate_path(model, x0, dt, step_count(t1, dt), rng, cancel)


def integrate_block(
    model: Callable[[Any], tuple[Any, Any]],
    x0: float,
    t1: float,
    dt: float,
    rngs: Sequence[np.random.Generator],
    cancel: Optional[threading.Event] = None,
) -> np.ndarray:
    r"""
    Integrate one path per generator in ``rngs`` and return the terminal values.

    Path ``k`` draws all of its variates from ``rngs[k]`` exactly as
    :func:`integrate` would, so ``integrate_block(m, x0, t1, dt, [rng])[0]``
    equals ``integrate(m, x0, t1, dt, rng=rng)`` for an identically seeded
    generator.

    Models that declare ``supports_batch`` are evaluated on the whole block at
    once; other callables are integrated path by path. Variates are drawn in
    chunks of at most 1024 steps per generator, so memory does not grow with
    the number of steps.

    Returns
    -------
    ndarray of float
        Shape ``(len(rngs),)``.
    """
    x0, t1, dt = _validate(model, x0, t1, dt)
    n_steps = step_count(t1, dt)
    m = len(rngs)
    if m == 0:
        return np.empty(0, dtype=float)

    if not supports_batch(model):
        out = np.empty(m, dtype=float)
        for k, rng in enumerate(rngs):
            out[k] = _integrate_path(model, x0, dt, n_steps, rng, cancel)
        return out

    x = np.full(m, x0, dtype=float)
    for k in _chunk_sizes(n_steps):
        # Row j holds the j-th variate of the chunk for every path in the block
        z = np.empty((k, m), dtype=float)
        for col, rng in enumerate(rngs):
            z[:, col] = rng.standard_normal(k)
        x = _euler_maruyama(model, x, dt, z, cancel)
    return np.asarray(x, dtype=float).reshape(m)
