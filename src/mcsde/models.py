r"""
Scalar SDE models.

A model is any callable ``model(x) -> (drift, diffusion)`` describing

.. math::
   dX_t = f(X_t)\,dt + g(X_t)\,dW_t .

The built-in models are frozen dataclasses, so their parameters are bound once
and they pickle cleanly for the process backend. They set
``supports_batch = True``: ``x`` may be a NumPy array, in which case a whole
block of paths is advanced in one vector operation.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Protocol, Tuple, runtime_checkable

__all__ = [
    "SDEModel",
    "OrnsteinUhlenbeck",
    "CubicDoubleWell",
    "supports_batch",
]


@runtime_checkable
class SDEModel(Protocol):
    r"""
    Protocol for drift/diffusion callables.

    Implementations must be pure: the same ``x`` always yields the same pair and
    no state is mutated, since one model instance is shared by every worker.
    """

    def __call__(self, x: Any, /) -> Tuple[Any, Any]: ...


def supports_batch(model: Any) -> bool:
    """Return True when ``model`` accepts NumPy arrays (declared via ``supports_batch``)."""
    return bool(getattr(model, "supports_batch", False))


@dataclass(frozen=True)
class OrnsteinUhlenbeck:
    r"""
    Ornstein–Uhlenbeck process :math:`dX = -\theta X\,dt + \sigma\,dW`.

    Attributes
    ----------
    theta : float
        Mean-reversion rate.
    sigma : float
        Noise intensity.

    Examples
    --------
    >>> ou = OrnsteinUhlenbeck(theta=1.0, sigma=0.1)
    >>> ou(2.0)
    (-2.0, 0.1)
    >>> ou.stationary_variance()
    0.005000000000000001
    """

    theta: float
    sigma: float
    supports_batch = True

    def __call__(self, x):
        return -self.theta * x, self.sigma

    def stationary_mean(self) -> float:
        return 0.0

    def stationary_variance(self) -> float:
        r"""
        Variance :math:`\sigma^2 / (2\theta)` of the invariant distribution.

        Raises
        ------
        ValueError
            If ``theta <= 0`` (the process has no invariant distribution).
        """
        if self.theta <= 0:
            raise ValueError("stationary_variance requires theta > 0")
        return self.sigma ** 2 / (2.0 * self.theta)


@dataclass(frozen=True)
class CubicDoubleWell:
    r"""
    Cubic double-well SDE :math:`dX = (\theta X - X^3)\,dt + \sigma\,dW`.

    For :math:`\theta > 0` the potential :math:`V(x) = x^4/4 - \theta x^2/2`
    has minima at :math:`\pm\sqrt{\theta}`. With small :math:`\sigma` the
    terminal ensemble splits between the two wells; large :math:`\sigma` washes
    the barrier out and the modes overlap.

    Attributes
    ----------
    theta : float
        Linear growth rate (sets the well positions).
    sigma : float
        Noise intensity.
    """

    theta: float
    sigma: float
    supports_batch = True

    def __call__(self, x):
        # x * x * x keeps scalar and array evaluation bit-identical
        return self.theta * x - x * x * x, self.sigma

    def well_positions(self) -> tuple[float, float]:
        """Return the two stable equilibria ``(-sqrt(theta), sqrt(theta))``."""
        if self.theta <= 0:
            raise ValueError("well_positions requires theta > 0")
        r = math.sqrt(self.theta)
        return -r, r
