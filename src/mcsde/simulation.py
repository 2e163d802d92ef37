r"""
Ensemble simulation: a bound model, initial condition and horizon.

This module provides:

Classes
    :class:`EnsembleSimulation` — Runs :func:`~mcsde.sampler.sample` and summarizes the ensemble

The simulation class handles:
- Reproducible seeding via :class:`numpy.random.SeedSequence`
- Backend selection (delegated to :mod:`mcsde.sampler`)
- Statistics computation via the stats engine
- Result assembly and percentile handling

Example
-------
>>> from mcsde import EnsembleSimulation, OrnsteinUhlenbeck
>>> sim = EnsembleSimulation(OrnsteinUhlenbeck(1.0, 0.1), x0=0.0, t1=10.0, name="OU")
>>> sim.set_seed(42)
>>> result = sim.run(100_000)  # doctest: +SKIP

See Also
--------
mcsde.sampler
    The underlying ensemble sampler.
mcsde.stats_engine
    Statistical metrics and confidence intervals.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Iterable, Mapping

import numpy as np

from .config import SamplerConfig, check_count, check_finite, check_positive
from .core import EnsembleResult
from .errors import ConfigurationError
from .integrator import step_count
from .sampler import resolve_backend, sample
from .stats_engine import DEFAULT_ENGINE, CIMethod, StatsContext, StatsEngine

logger = logging.getLogger(__name__)

__all__ = ["EnsembleSimulation"]


class EnsembleSimulation:
    r"""
    Monte Carlo ensemble of Euler–Maruyama terminal values for one scenario.

    Parameters
    ----------
    model : callable
        ``model(x) -> (drift, diffusion)``.
    x0 : float
        Initial state.
    t1 : float
        Integration horizon.
    name : str, default ``"Ensemble"``
        Label used by :class:`~mcsde.core.EnsembleFramework` and in summaries.
    config : SamplerConfig, optional
        Step size and execution defaults; ``run`` keyword arguments override it.

    Notes
    -----
    **Seeding.** :meth:`set_seed` fixes the root sequence. Every call to
    :meth:`run` derives path ``i``'s stream from that same root, so repeated
    runs with the same seed and size return the same ensemble, and a larger
    run extends a smaller one (its first ``n`` slots are identical).

    **Percentiles.** If ``compute_stats=True``, the stats engine computes
    defaults ``_PCTS`` = ``(5, 25, 50, 75, 95)`` and merges them with
    user-requested percentiles.
    """

    # Default percentiles for stats engine
    _PCTS = (5, 25, 50, 75, 95)

    def __init__(
        self,
        model: Callable[[Any], tuple[Any, Any]],
        x0: float,
        t1: float,
        name: str = "Ensemble",
        config: SamplerConfig | None = None,
    ):
        if not callable(model):
            raise ConfigurationError(f"model must be callable, got {type(model).__name__}")
        self.model = model
        self.x0 = check_finite("x0", x0)
        self.t1 = check_positive("t1", t1)
        self.name = name
        self.config = config or SamplerConfig()
        self.seed_seq: np.random.SeedSequence | None = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, model={self.model!r}, x0={self.x0}, t1={self.t1})"

    def set_seed(self, seed: int | None) -> None:
        r"""
        Set the random seed for reproducible ensembles.

        Parameters
        ----------
        seed : int or None
            Seed for :class:`numpy.random.SeedSequence`. :data:`None` chooses entropy
            from the OS (recorded in the result metadata, so the run can still
            be reproduced).
        """
        self.seed_seq = np.random.SeedSequence(seed)

    def run(
        self,
        n_paths: int,
        *,
        backend: str | None = None,
        n_workers: int | None = None,
        dt: float | None = None,
        progress_callback: Callable[[int, int], None] | None = None,
        cancel: threading.Event | None = None,
        percentiles: Iterable[int] | None = None,
        compute_stats: bool = True,
        stats_engine: StatsEngine | None = None,
        confidence: float = 0.95,
        ci_method: str = "auto",
        extra_context: Mapping[str, Any] | None = None,
    ) -> EnsembleResult:
        r"""
        Sample the ensemble and summarize it.

        Parameters
        ----------
        n_paths : int
            Number of sample paths.
        backend : {"auto", "sequential", "thread", "process"}, optional
            Overrides :attr:`config.backend <mcsde.config.SamplerConfig.backend>`.
        n_workers : int, optional
            Overrides :attr:`config.n_workers`.
        dt : float, optional
            Overrides :attr:`config.dt`.
        progress_callback : callable, optional
            A function ``f(completed: int, total: int)`` called as blocks finish.
        cancel : threading.Event, optional
            Abort the run with :class:`~mcsde.errors.SamplingCancelled`.
        percentiles : iterable of int, optional
            Extra percentiles to compute from the raw ensemble.
        compute_stats : bool, default ``True``
            Compute additional metrics via a :class:`~mcsde.stats_engine.StatsEngine`.
        stats_engine : StatsEngine, optional
            Custom engine (defaults to :data:`mcsde.stats_engine.DEFAULT_ENGINE`).
        confidence : float, default ``0.95``
            Confidence level for CI-related metrics.
        ci_method : {"auto", "z", "t"}, default ``"auto"``
            Which critical values the stats engine should use.
        extra_context : mapping, optional
            Extra :class:`~mcsde.stats_engine.StatsContext` fields (e.g. ``bins``).

        Returns
        -------
        EnsembleResult
        """
        overrides = {
            k: v for k, v in (("backend", backend), ("n_workers", n_workers), ("dt", dt)) if v is not None
        }
        cfg = self.config.with_overrides(**overrides) if overrides else self.config
        n_paths = check_count("n_paths", n_paths)
        self._validate_run_params(confidence, ci_method)

        root = self.seed_seq if self.seed_seq is not None else np.random.SeedSequence()
        resolved, workers = resolve_backend(cfg.backend, n_paths, cfg.n_workers)
        if resolved == "sequential":
            logger.info("Sampling %d paths of '%s' sequentially...", n_paths, self.name)
        else:
            logger.info(
                "Sampling %d paths of '%s' in parallel using %s backend with %d workers...",
                n_paths, self.name, resolved, workers,
            )

        t0 = time.perf_counter()
        results = sample(
            self.model,
            self.x0,
            self.t1,
            n_paths,
            cfg.dt,
            seed=root,
            backend=resolved,
            n_workers=workers,
            block_size=cfg.block_size,
            progress_callback=progress_callback,
            cancel=cancel,
        )
        exec_time = time.perf_counter() - t0

        n_nonfinite = int(results.size - np.count_nonzero(np.isfinite(results)))
        if n_nonfinite:
            logger.warning(
                "%d of %d paths of '%s' ended non-finite; consider a smaller dt (now %g).",
                n_nonfinite, results.size, self.name, cfg.dt,
            )

        stats: dict[str, Any] = {}
        percentile_map: dict[int, float] = {}
        if compute_stats:
            stats, percentile_map = self._compute_stats_with_engine(
                results, confidence, ci_method, stats_engine, extra_context
            )
        user_pcts = [int(p) for p in (percentiles or ())]
        if user_pcts:
            percentile_map.update(self._percentiles(results, user_pcts))

        meta = {
            "simulation_name": self.name,
            "model": repr(self.model),
            "x0": self.x0,
            "t1": self.t1,
            "dt": cfg.dt,
            "n_steps": step_count(self.t1, cfg.dt),
            "backend": resolved,
            "n_workers": workers,
            "seed_entropy": root.entropy,
            "n_nonfinite": n_nonfinite,
            "requested_percentiles": user_pcts,
            "timestamp": time.time(),
        }
        return EnsembleResult(
            results=results,
            n_paths=int(results.size),
            execution_time=exec_time,
            mean=float(np.mean(results)),
            std=float(np.std(results, ddof=1)) if results.size > 1 else 0.0,
            percentiles=percentile_map,
            stats=stats,
            metadata=meta,
        )

    @staticmethod
    def _validate_run_params(confidence: float, ci_method: str) -> None:
        """Validate the statistics parameters of :meth:`run`."""
        if not 0.0 < confidence < 1.0:
            raise ConfigurationError("confidence must be in the interval (0, 1)")
        if ci_method not in ("auto", "z", "t"):
            raise ConfigurationError(f"ci_method must be one of 'auto', 'z', 't', got '{ci_method}'")

    def _compute_stats_with_engine(
        self,
        results: np.ndarray,
        confidence: float,
        ci_method: str,
        stats_engine: StatsEngine | None,
        extra_context: Mapping[str, Any] | None,
    ) -> tuple[dict[str, Any], dict[int, float]]:
        """
        Compute statistics using the stats engine.

        Returns
        -------
        tuple[dict[str, Any], dict[int, float]]
            (stats dict, percentiles dict)
        """
        eng = stats_engine or DEFAULT_ENGINE
        base = {
            "n": int(results.size),
            "percentiles": self._PCTS,
            "confidence": confidence,
            "ci_method": CIMethod(ci_method),
        }
        try:
            ctx = StatsContext(**{**base, **dict(extra_context or {})})
        except (TypeError, ValueError) as e:
            logger.warning("Invalid context parameters: %s. Using defaults.", e)
            ctx = StatsContext(**base)

        stats = dict(eng.compute(results, ctx).metrics)
        engine_perc = stats.pop("percentiles", None) or {}
        percentile_map = {int(k): float(v) for k, v in engine_perc.items()}
        return stats, percentile_map

    @staticmethod
    def _percentiles(arr: np.ndarray, ps: Iterable[int]) -> dict[int, float]:
        """Return a ``{percentile: value}`` map computed via :func:`numpy.percentile`."""
        return {int(p): float(np.percentile(arr, int(p))) for p in ps}
