r"""
Deterministic nonlinear oscillators solved with :func:`scipy.integrate.solve_ivp`.

This module provides:

Classes
    :class:`Duffing` — Parameters of a periodically forced Duffing oscillator
    :class:`NTMD` — Parameters of a nonlinear tuned-mass-damper

Functions
    :func:`duffing_rhs`, :func:`integrate_duffing`
    :func:`ntmd_rhs`, :func:`ntmd_noise`, :func:`integrate_ntmd_ode`

The solver is SciPy's adaptive explicit Runge–Kutta 5(4) (``"RK45"``) unless
another ``method`` is passed through ``solver_kwargs``. The stochastic forcing of
the tuned-mass-damper acts on a four-dimensional state, which the scalar
Euler–Maruyama core in :mod:`mcsde.integrator` does not cover; only its
deterministic part is integrated here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
from scipy.integrate import solve_ivp

from .config import check_finite
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "Duffing",
    "NTMD",
    "duffing_rhs",
    "integrate_duffing",
    "ntmd_rhs",
    "ntmd_noise",
    "integrate_ntmd_ode",
]


@dataclass
class Duffing:
    r"""
    A Duffing equation with periodic forcing

    .. math::
       m x'' + c x' + k x + \mu x^3 = F_0 \cos(\omega t).
    """

    m: float = 1.0
    c: float = 0.01
    k: float = 2.0
    mu: float = 1.0
    F0: float = 0.05
    omega: float = 1.0


def duffing_rhs(t: float, u: np.ndarray, p: Duffing) -> np.ndarray:
    """Right-hand side of the Duffing equation for the state ``u = (x, x')``."""
    x, v = u[0], u[1]
    f = p.F0 * np.cos(p.omega * t)
    return np.array([v, (f - p.c * v - p.k * x - p.mu * x**3) / p.m])


@dataclass
class NTMD:
    r"""
    A nonlinear tuned-mass-damper with stochastic forcing

    .. math::
       m_1 x_1'' + c_1 (x_1' - x_2') + k_1 x_1 + k_2 (x_1 - x_2) + \mu (x_1 - x_2)^3 = f

       m_2 x_2'' + c_2 (x_2' - x_1') + k_2 (x_2 - x_1) + \mu (x_2 - x_1)^3 = 0

    where :math:`f = F_0 \cos(\omega t) + \xi(t)` and :math:`\xi` is white
    noise of intensity :math:`\sigma`. The state is
    :math:`u = (x_1, x_1', x_2, x_2')`.
    """

    m1: float = 1.0
    c1: float = 0.02
    k1: float = 1.0
    m2: float = 0.5
    c2: float = 0.05
    k2: float = 0.95
    mu: float = 0.1
    sigma: float = 0.5
    F0: float = 1.0
    omega: float = 1.0

    @property
    def period(self) -> float:
        """Forcing period :math:`2\\pi/\\omega`."""
        return 2.0 * np.pi / self.omega


def ntmd_rhs(t: float, u: np.ndarray, p: NTMD) -> np.ndarray:
    """Deterministic part of the tuned-mass-damper dynamics."""
    x1, v1, x2, v2 = u[0], u[1], u[2], u[3]
    f = p.F0 * np.cos(p.omega * t)
    d = x1 - x2
    return np.array([
        v1,
        (f - p.c1 * (v1 - v2) - p.k1 * x1 - p.k2 * d - p.mu * d**3) / p.m1,
        v2,
        (-p.c2 * (v2 - v1) + p.k2 * d + p.mu * d**3) / p.m2,
    ])


def ntmd_noise(t: float, u: np.ndarray, p: NTMD) -> np.ndarray:
    """Diagonal diffusion of the tuned-mass-damper: noise enters the primary mass only."""
    return np.array([0.0, p.sigma / p.m1, 0.0, 0.0])


def _check_state(u0: Sequence[float], size: int) -> np.ndarray:
    arr = np.asarray(u0, dtype=float).ravel()
    if arr.size != size:
        raise ConfigurationError(f"initial state must have {size} components, got {arr.size}")
    if not np.all(np.isfinite(arr)):
        raise ConfigurationError("initial state must be finite")
    return arr


def _check_span(t_span: Sequence[float]) -> tuple[float, float]:
    if len(t_span) != 2:
        raise ConfigurationError(f"t_span must be (t_start, t_end), got {t_span!r}")
    t0, t1 = check_finite("t_start", t_span[0]), check_finite("t_end", t_span[1])
    if t1 <= t0:
        raise ConfigurationError(f"t_end must be greater than t_start, got {t_span!r}")
    return t0, t1


def integrate_duffing(
    u0: Sequence[float],
    p: Duffing,
    t_span: Sequence[float],
    **solver_kwargs: Any,
):
    r"""
    Solve the Duffing equation over ``t_span`` from ``u0 = (x, x')``.

    Integer inputs are converted to floats. ``solver_kwargs`` go to
    :func:`scipy.integrate.solve_ivp` (e.g. ``t_eval``, ``rtol``, ``method``).

    Returns
    -------
    scipy.integrate._ivp.ivp.OdeResult
        ``sol.t`` and ``sol.y`` (shape ``(2, len(sol.t))``).

    Raises
    ------
    ConfigurationError
        For a malformed state or time span.
    RuntimeError
        If the solver reports failure.
    """
    return _solve(duffing_rhs, _check_state(u0, 2), _check_span(t_span), p, solver_kwargs)


def integrate_ntmd_ode(
    u0: Sequence[float],
    p: NTMD,
    t1: float,
    **solver_kwargs: Any,
):
    r"""
    Solve the deterministic tuned-mass-damper over ``[0, t1]`` from ``u0``.

    A long run (e.g. 1000 forcing periods) removes the transient; its end
    point ``sol.y[:, -1]`` is a convenient initial condition for further runs.
    """
    return _solve(ntmd_rhs, _check_state(u0, 4), _check_span((0.0, t1)), p, solver_kwargs)


def _solve(rhs, u0: np.ndarray, span: tuple[float, float], p: Any, solver_kwargs: dict[str, Any]):
    solver_kwargs.setdefault("method", "RK45")
    logger.debug("Solving %s over %s with %s", type(p).__name__, span, solver_kwargs["method"])
    sol = solve_ivp(rhs, span, u0, args=(p,), **solver_kwargs)
    if not sol.success:
        raise RuntimeError(f"ODE solver failed: {sol.message}")
    return sol
