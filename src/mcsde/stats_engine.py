r"""
mcsde.stats_engine
==================
Statistical metrics over terminal-value ensembles.

This module defines:

- :class:`StatsContext`: a typed, explicit configuration object shared by all metrics.
- :class:`FnMetric`: a frozen adapter that names a metric function.
- :class:`StatsEngine`: an orchestrator that evaluates one or more metrics.

Common metrics include :func:`mean`, :func:`std`, :func:`variance`,
:func:`percentiles`, :func:`skew`, :func:`kurtosis`, the confidence interval
:func:`ci_mean`, the diagnostic :func:`nonfinite_count`, and
:func:`histogram_modes`, which locates the peaks of the empirical density.

See Also
--------
mcsde.utils.autocrit
    Selects a z/t critical value for a target confidence level and effective sample size.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Generic, Iterable, Optional, Protocol, Sequence, TypeVar

import numpy as np
from scipy.signal import find_peaks
from scipy.stats import kurtosis as sp_kurtosis
from scipy.stats import skew as sp_skew

from .utils import autocrit

logger = logging.getLogger(__name__)


_PCTS = (5, 25, 50, 75, 95)  # default percentiles


class NanPolicy(str, Enum):
    r"""
    Strategies for handling non-finite terminal values.

    Attributes
    ----------
    propagate : str
        Keep NaNs/infinities; moment metrics become non-finite as well.
    omit : str
        Drop non-finite observations before computing a metric.
    """

    propagate = "propagate"
    omit = "omit"


class CIMethod(str, Enum):
    r"""
    Strategies for selecting confidence-interval critical values.

    Attributes
    ----------
    auto : str
        Choose Student-t when :math:`n_\text{eff} < 30`, otherwise z.
    z : str
        Always use the normal :math:`z` critical value.
    t : str
        Always use the Student-:math:`t` critical value.
    """

    auto = "auto"
    z = "z"
    t = "t"


@dataclass(slots=True)
class StatsContext:
    r"""
    Shared, explicit configuration for statistic and CI computations.

    Attributes
    ----------
    n : int
        Declared sample size (fallback when NaNs are not omitted).
    confidence : float, default 0.95
        Confidence level in :math:`(0, 1)`.
    ci_method : {"auto", "z", "t"}, default "auto"
        Strategy for :func:`ci_mean`.
    percentiles : tuple of int, default ``(5, 25, 50, 75, 95)``
        Percentiles to compute in :func:`percentiles`.
    nan_policy : {"propagate", "omit"}, default "propagate"
        If ``"omit"``, drop non-finite values before all computations.
    ddof : int, default 1
        Degrees of freedom for :func:`std` and :func:`variance`.
    bins : int, default 60
        Histogram bins used by :func:`histogram_modes`.
    mode_prominence : float, default 0.1
        Minimum peak prominence for :func:`histogram_modes`, relative to the
        tallest bin.

    Notes
    -----
    The context is immutable by convention at runtime; prefer :meth:`with_overrides`
    to construct a modified copy with a small set of changed fields.

    Examples
    --------
    >>> ctx = StatsContext(n=5000, confidence=0.95, nan_policy="omit")
    >>> round(ctx.alpha, 2)
    0.05
    """

    n: int
    confidence: float = 0.95
    ci_method: CIMethod = "auto"
    percentiles: tuple[int, ...] = _PCTS
    nan_policy: NanPolicy = "propagate"
    ddof: int = 1
    bins: int = 60
    mode_prominence: float = 0.1

    def with_overrides(self, **changes) -> "StatsContext":
        """Return a shallow copy with selected fields replaced."""
        return replace(self, **changes)

    @property
    def alpha(self) -> float:
        r"""Two-sided tail probability :math:`\alpha = 1 - \text{confidence}`."""
        return 1.0 - self.confidence

    def eff_n(self, observed_len: int, finite_count: Optional[int] = None) -> int:
        r"""
        Effective sample size :math:`n_\text{eff}` used by CI calculations.

        Count of finite values if ``nan_policy="omit"``, otherwise the declared
        :attr:`n`, else ``observed_len``.
        """
        if self.nan_policy == "omit" and finite_count is not None:
            return int(finite_count)
        return int(self.n or observed_len)

    def __post_init__(self) -> None:
        r"""
        Validate field ranges.

        Raises
        ------
        ValueError
            If any field is outside its allowed range.
        """
        if not (0.0 < self.confidence < 1.0):
            raise ValueError("confidence must be in (0,1)")
        if any(p < 0 or p > 100 for p in self.percentiles):
            raise ValueError("percentiles must be in [0,100]")
        if self.ddof < 0:
            raise ValueError("ddof must be >= 0")
        if self.bins < 2:
            raise ValueError("bins must be >= 2")
        if not (0.0 <= self.mode_prominence < 1.0):
            raise ValueError("mode_prominence must be in [0,1)")
        if self.nan_policy not in ("propagate", "omit"):
            raise ValueError(f"Unknown nan_policy: {self.nan_policy}")


class Metric(Protocol):
    r"""
    Protocol for metric callables used by :class:`StatsEngine`.

    A metric exposes a ``name`` attribute and is callable as
    ``metric(x: numpy.ndarray, ctx: StatsContext) -> Any``.
    """

    name: str

    def __call__(self, x: np.ndarray, ctx: StatsContext, /) -> Any: ...


T = TypeVar("T")


@dataclass(frozen=True)
class FnMetric(Generic[T]):
    r"""
    Lightweight adapter that binds a human-readable ``name`` to a metric function.

    Parameters
    ----------
    name : str
        Key under which the metric result is stored by :meth:`StatsEngine.compute`.
    fn : callable
        Function with signature ``fn(x: ndarray, ctx: StatsContext) -> T``.
    doc : str, optional
        Short description.

    Examples
    --------
    >>> m = FnMetric("mean", lambda a, ctx: float(np.mean(a)))
    >>> m(np.array([1, 2, 3]), StatsContext(n=3))
    2.0
    """

    name: str
    fn: Callable[[np.ndarray, StatsContext], T]
    doc: str = ""

    def __call__(self, x: np.ndarray, ctx: StatsContext) -> T:
        return self.fn(x, ctx)


@dataclass
class ComputeResult:
    r"""
    Output of :meth:`StatsEngine.compute`.

    Attributes
    ----------
    metrics : dict
        Metric name to value.
    skipped : list of str
        Names of metrics that failed and were left out.
    """

    metrics: dict[str, Any] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)


class StatsEngine:
    r"""
    Orchestrator that evaluates a set of metrics over an ensemble.

    Parameters
    ----------
    metrics : iterable of Metric
        Callables with a ``name`` and signature ``metric(x, ctx)``.

    Notes
    -----
    All metrics receive the *same* :class:`StatsContext`. A metric that raises
    is logged and skipped; the others are still reported.

    Examples
    --------
    >>> eng = StatsEngine([FnMetric("mean", mean), FnMetric("std", std)])
    >>> x = np.array([1., 2., 3.])
    >>> eng.compute(x, StatsContext(n=len(x))).metrics
    {'mean': 2.0, 'std': 1.0}
    """

    def __init__(self, metrics: Iterable[Metric]):
        self._metrics = list(metrics)

    def available(self) -> tuple[str, ...]:
        return tuple(m.name for m in self._metrics)

    def compute(
        self,
        x: np.ndarray,
        ctx: Optional[StatsContext] = None,
        select: Sequence[str] | None = None,
        **kwargs: Any,
    ) -> ComputeResult:
        r"""
        Evaluate the registered metrics on ``x``.

        Parameters
        ----------
        x : ndarray
            Sample values.
        ctx : StatsContext, optional
            Context parameters. If None, one is built from ``**kwargs``
            (``n`` defaults to ``x.size``).
        select : sequence of str, optional
            If given, compute only the metrics with these names.

        Returns
        -------
        ComputeResult
        """
        if ctx is not None:
            ctx = _ensure_ctx(ctx, x)
        else:
            base = dict(kwargs)
            base.setdefault("n", int(np.asarray(x).size))
            ctx = StatsContext(**base)

        wanted = None if select is None else set(select)
        out = ComputeResult()
        for m in self._metrics:
            if wanted is not None and m.name not in wanted:
                continue
            try:
                out.metrics[m.name] = m(x, ctx)
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Error computing metric %s", m.name)
                out.skipped.append(m.name)
        return out


def _ensure_ctx(ctx: Any, x: np.ndarray) -> StatsContext:
    r"""
    Normalize ``ctx`` (a :class:`StatsContext`, mapping or ``None``) into a :class:`StatsContext`.

    Raises
    ------
    TypeError
        If ``ctx`` cannot be interpreted as configuration data.
    """
    if isinstance(ctx, StatsContext):
        return ctx
    arr_len = int(np.asarray(x).size)
    if ctx is None:
        return StatsContext(n=arr_len)
    if isinstance(ctx, dict):
        data = dict(ctx)
        data.setdefault("n", arr_len)
        return StatsContext(**data)
    raise TypeError("ctx must be a StatsContext, dict, or None")


def _clean(x: np.ndarray, ctx: StatsContext) -> tuple[np.ndarray, int]:
    """Return the (possibly filtered) sample and its count of finite values."""
    arr = np.asarray(x, dtype=float).ravel()
    finite = np.isfinite(arr)
    if ctx.nan_policy == "omit":
        arr = arr[finite]
    return arr, int(np.count_nonzero(finite))


def mean(x: np.ndarray, ctx: Any = None) -> float:
    r"""
    Sample mean :math:`\bar X = \frac{1}{n}\sum_i x_i`.

    Examples
    --------
    >>> mean(np.array([1, 2, 3]))
    2.0
    """
    ctx = _ensure_ctx(ctx, x)
    arr, _ = _clean(x, ctx)
    return float(np.mean(arr)) if arr.size else float("nan")


def std(x: np.ndarray, ctx: Any = None) -> float:
    r"""
    Sample standard deviation (``ddof`` from the context, Bessel-corrected by default).

    Returns ``0.0`` when :math:`n_\text{eff} \le 1`.

    Examples
    --------
    >>> std(np.array([1, 2, 3]), {})
    1.0
    """
    ctx = _ensure_ctx(ctx, x)
    arr, finite = _clean(x, ctx)
    if ctx.eff_n(arr.size, finite) <= 1 or arr.size <= ctx.ddof:
        return 0.0
    return float(np.std(arr, ddof=ctx.ddof))


def variance(x: np.ndarray, ctx: Any = None) -> float:
    """Sample variance with the context's ``ddof``; ``0.0`` when :math:`n_\\text{eff} \\le 1`."""
    ctx = _ensure_ctx(ctx, x)
    arr, finite = _clean(x, ctx)
    if ctx.eff_n(arr.size, finite) <= 1 or arr.size <= ctx.ddof:
        return 0.0
    return float(np.var(arr, ddof=ctx.ddof))


def percentiles(x: np.ndarray, ctx: Any = None) -> dict[int, float]:
    r"""
    Empirical percentiles of the cleaned sample.

    Examples
    --------
    >>> percentiles(np.array([0., 1., 2., 3.]), {"percentiles": (50, 75)})
    {50: 1.5, 75: 2.25}
    """
    ctx = _ensure_ctx(ctx, x)
    arr, _ = _clean(x, ctx)
    if arr.size == 0:
        return {p: float("nan") for p in ctx.percentiles}
    pct_values = np.percentile(arr, ctx.percentiles)
    return dict(zip(ctx.percentiles, map(float, pct_values)))


def skew(x: np.ndarray, ctx: Any = None) -> float:
    """Unbiased sample skewness via :func:`scipy.stats.skew`; ``0.0`` for fewer than 3 values."""
    ctx = _ensure_ctx(ctx, x)
    arr, _ = _clean(x, ctx)
    return float(sp_skew(arr, bias=False)) if arr.size > 2 else 0.0  # type: ignore[arg-type]


def kurtosis(x: np.ndarray, ctx: Any = None) -> float:
    """Unbiased excess kurtosis via :func:`scipy.stats.kurtosis`; ``0.0`` for fewer than 4 values."""
    ctx = _ensure_ctx(ctx, x)
    arr, _ = _clean(x, ctx)
    return float(sp_kurtosis(arr, fisher=True, bias=False)) if arr.size > 3 else 0.0  # type: ignore[arg-type]


def ci_mean(x: np.ndarray, ctx: Any = None) -> dict[str, float | str]:
    r"""
    Parametric CI for :math:`\mathbb{E}[X]` using z/t critical values.

    The interval is :math:`\bar X \pm c \cdot s/\sqrt{n_\text{eff}}` where
    :math:`c` comes from :func:`mcsde.utils.autocrit`.

    Returns
    -------
    dict[str, float | str]
        Keys ``confidence``, ``method``, ``low``, ``high``, ``se``, ``crit``.
    """
    ctx = _ensure_ctx(ctx, x)
    arr, finite = _clean(x, ctx)
    method = getattr(ctx.ci_method, "value", ctx.ci_method)
    n_eff = ctx.eff_n(arr.size, finite)
    if arr.size == 0 or n_eff < 2:
        return {
            "confidence": ctx.confidence,
            "method": method,
            "low": float("nan"),
            "high": float("nan"),
            "se": float("nan"),
            "crit": float("nan"),
        }

    mu = float(np.mean(arr))
    s = float(np.std(arr, ddof=ctx.ddof))
    se = s / np.sqrt(n_eff) if s != 0.0 else 0.0
    crit, method = autocrit(ctx.confidence, n_eff, method)
    return {
        "confidence": ctx.confidence,
        "method": method,
        "se": float(se),
        "crit": float(crit),
        "low": float(mu - crit * se),
        "high": float(mu + crit * se),
    }


def nonfinite_count(x: np.ndarray, ctx: Any = None) -> int:
    """Number of NaN/inf terminal values (paths that blew up), regardless of ``nan_policy``."""
    arr = np.asarray(x, dtype=float)
    return int(arr.size - np.count_nonzero(np.isfinite(arr)))


def histogram_modes(x: np.ndarray, ctx: Any = None) -> dict[str, list[float]]:
    r"""
    Locate the modes of the empirical density.

    The finite values are binned into ``ctx.bins`` equal-width bins and
    :func:`scipy.signal.find_peaks` picks the local maxima whose prominence is
    at least ``ctx.mode_prominence`` times the tallest bin. Edge bins can be
    modes.

    Returns
    -------
    dict
        ``{"locations": [...], "densities": [...]}`` sorted by location; empty
        lists when fewer than two finite values are available.

    Examples
    --------
    >>> x = np.concatenate([np.full(50, -1.0), np.full(50, 1.0)])
    >>> histogram_modes(x, {"bins": 4})["locations"]
    [-0.75, 0.75]
    """
    ctx = _ensure_ctx(ctx, x)
    arr = np.asarray(x, dtype=float).ravel()
    arr = arr[np.isfinite(arr)]
    if arr.size < 2 or np.ptp(arr) == 0.0:
        return {"locations": [], "densities": []}

    density, edges = np.histogram(arr, bins=ctx.bins, density=True)
    centers = 0.5 * (edges[:-1] + edges[1:])
    # pad with zeros so a peak in the first or last bin is still detected
    padded = np.concatenate(([0.0], density, [0.0]))
    peaks, _ = find_peaks(padded, prominence=ctx.mode_prominence * float(density.max()))
    peaks = peaks - 1
    return {
        "locations": [float(c) for c in centers[peaks]],
        "densities": [float(d) for d in density[peaks]],
    }


def build_default_engine(include_modes: bool = True) -> StatsEngine:
    r"""
    Construct a :class:`StatsEngine` with a practical set of ensemble metrics.

    Parameters
    ----------
    include_modes : bool, default True
        Include :func:`histogram_modes`.

    Returns
    -------
    StatsEngine
    """
    metrics: list[Metric] = [
        FnMetric[float]("mean", mean, "Sample mean"),
        FnMetric[float]("std", std, "Sample standard deviation"),
        FnMetric[float]("variance", variance, "Sample variance"),
        FnMetric[dict[int, float]]("percentiles", percentiles, "Percentiles over the sample"),
        FnMetric[float]("skew", skew, "Fisher skewness (unbiased)"),
        FnMetric[float]("kurtosis", kurtosis, "Excess kurtosis (unbiased)"),
        FnMetric[dict[str, float | str]]("ci_mean", ci_mean, "z/t CI for the mean"),
        FnMetric[int]("nonfinite_count", nonfinite_count, "Paths with non-finite terminal value"),
    ]
    if include_modes:
        metrics.append(
            FnMetric[dict[str, list[float]]]("modes", histogram_modes, "Peaks of the empirical density")
        )
    return StatsEngine(metrics)


# Build a default engine at import time
DEFAULT_ENGINE = build_default_engine()

__all__ = [
    "NanPolicy",
    "CIMethod",
    "StatsContext",
    "Metric",
    "FnMetric",
    "ComputeResult",
    "StatsEngine",
    "mean",
    "std",
    "variance",
    "percentiles",
    "skew",
    "kurtosis",
    "ci_mean",
    "nonfinite_count",
    "histogram_modes",
    "build_default_engine",
    "DEFAULT_ENGINE",
]
