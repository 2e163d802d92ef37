r"""

mcsde.core
==========

Result container and scenario registry for ensemble runs.

This module provides:

* :class:`~mcsde.core.EnsembleResult` – a lightweight container for one ensemble.
* :class:`~mcsde.core.EnsembleFramework` – registry + convenience runner for named
  :class:`~mcsde.simulation.EnsembleSimulation` scenarios.

Confidence intervals
--------------------

The summary printed by :meth:`EnsembleResult.result_to_string` uses

.. math::

   \bar{X} \pm c\,\frac{s}{\sqrt{n}}

with :math:`c` a z or t critical value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

import numpy as np

from .utils import autocrit

if TYPE_CHECKING:
    from .simulation import EnsembleSimulation

logger = logging.getLogger(__name__)

__all__ = ["EnsembleResult", "EnsembleFramework"]


@dataclass
class EnsembleResult:
    r"""
    Container for the outcome of an ensemble run.

    Attributes
    ----------
    results : ndarray of float
        Terminal values; slot ``i`` belongs to path ``i``.
    n_paths : int
        Number of sample paths.
    execution_time : float
        Wall-clock time in seconds.
    mean : float
        Sample mean :math:`\bar X`. Non-finite paths make it non-finite too.
    std : float
        Sample standard deviation with ``ddof=1``.
    percentiles : dict[int, float]
        Map of computed percentiles, e.g. ``{5: ..., 50: ..., 95: ...}``.
    stats : dict
        Additional statistics from the stats engine (e.g. ``"ci_mean"``, ``"modes"``).
    metadata : dict
        Freeform metadata. Includes ``"simulation_name"``, ``"model"``, ``"x0"``,
        ``"t1"``, ``"dt"``, ``"n_steps"``, ``"backend"``, ``"seed_entropy"``,
        ``"n_nonfinite"``, ``"requested_percentiles"`` and ``"timestamp"``.
    """

    results: np.ndarray
    n_paths: int
    execution_time: float
    mean: float
    std: float
    percentiles: dict[int, float]
    stats: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def n_nonfinite(self) -> int:
        """Number of paths whose terminal value is NaN or infinite."""
        return int(self.results.size - np.count_nonzero(np.isfinite(self.results)))

    def histogram(self, bins: int = 50, density: bool = True) -> tuple[np.ndarray, np.ndarray]:
        """Return ``(counts, edges)`` of the finite terminal values, as :func:`numpy.histogram` does."""
        finite = self.results[np.isfinite(self.results)]
        return np.histogram(finite, bins=bins, density=density)

    def result_to_string(
        self,
        confidence: float = 0.95,
        method: str = "auto",
    ) -> str:
        r"""
        Pretty, human-readable summary of the result.

        Parameters
        ----------
        confidence : float, default ``0.95``
            Confidence level for the displayed CI.
        method : {"auto", "z", "t"}, default ``"auto"``
            Which critical value to use (``"auto"`` chooses based on ``n``).

        Returns
        -------
        str
            Multiline textual summary.
        """
        if simulation_name := self.metadata.get("simulation_name"):
            title = f"Results for ensemble '{simulation_name}':"
        else:
            title = "Results for ensemble:"
        n = int(self.n_paths)
        crit, kind = autocrit(confidence, n, method)
        se = self.std / np.sqrt(max(1, n))
        lo = self.mean - crit * se
        hi = self.mean + crit * se
        lines = [
            "=" * 20 + " ENSEMBLE RESULTS " + "=" * 20,
            title,
            f"  Number of paths: {self.n_paths}",
            f"  Execution time: {self.execution_time:.2f} seconds",
            f"  Mean: {self.mean:.5f}   (SE: {se:.5f}, "
            f"{int(confidence * 100)}% {kind}-CI: [{lo:.5f}, {hi:.5f}])",
            f"  Std Dev (sample): {self.std:.5f}",
            f"  Non-finite paths: {self.n_nonfinite}",
            "  Percentiles:",
        ]
        for p in sorted(self.percentiles):
            lines.append(f"    {p}th: {self.percentiles[p]:.5f}")
        modes = self.stats.get("modes")
        if isinstance(modes, dict) and modes.get("locations"):
            locs = ", ".join(f"{m:.3f}" for m in modes["locations"])
            lines.append(f"  Modes: [{locs}]")
        if self.stats:
            lines.append("Additional Stats:")
        for k, v in self.stats.items():
            lines.append(f"  {k}: {v}")

        if self.metadata:
            lines.append("Metadata:")
        for k, v in self.metadata.items():
            lines.append(f"    {k}: {v}")
        lines.append("=" * 20 + " END " + "=" * 20)
        return "\n".join(lines)


class EnsembleFramework:
    r"""
    Registry for named ensemble scenarios that runs and compares results.

    Examples
    --------
    >>> from mcsde import CubicDoubleWell, EnsembleSimulation
    >>> fw = EnsembleFramework()
    >>> fw.register_simulation(EnsembleSimulation(CubicDoubleWell(1.0, 0.1), 0.0, 10.0, name="narrow"))
    >>> fw.register_simulation(EnsembleSimulation(CubicDoubleWell(1.0, 1.5), 0.0, 10.0, name="wide"))
    >>> _ = fw.run_simulation("narrow", 10_000)  # doctest: +SKIP
    >>> _ = fw.run_simulation("wide", 10_000)  # doctest: +SKIP
    >>> fw.compare_results(["narrow", "wide"], metric="std")  # doctest: +SKIP
    {'narrow': 1.0, 'wide': 1.1}
    """

    def __init__(self):
        self.simulations: dict[str, EnsembleSimulation] = {}
        self.results: dict[str, EnsembleResult] = {}

    def register_simulation(
        self,
        simulation: "EnsembleSimulation",
        name: Optional[str] = None,
    ):
        r"""
        Register a scenario under a name.

        Parameters
        ----------
        simulation : EnsembleSimulation
            The scenario to register.
        name : str, optional
            If omitted, :attr:`EnsembleSimulation.name` is used.
        """
        sim_name = name or simulation.name
        self.simulations[sim_name] = simulation

    def run_simulation(
        self,
        name: str,
        n_paths: int,
        **kwargs,
    ) -> EnsembleResult:
        r"""
        Run a registered scenario by name and remember its result.

        Parameters
        ----------
        name : str
            Key used in :meth:`register_simulation`.
        n_paths : int
            Ensemble size.
        **kwargs :
            Forwarded to :meth:`EnsembleSimulation.run`.

        Returns
        -------
        EnsembleResult
        """
        if name not in self.simulations:
            raise ValueError(f"Simulation '{name}' not found")
        res = self.simulations[name].run(n_paths, **kwargs)
        self.results[name] = res
        logger.info(
            "Simulation '%s' finished in %.2f s (%d non-finite paths)",
            name, res.execution_time, res.n_nonfinite,
        )
        return res

    def compare_results(
        self,
        names: list[str],
        metric: str = "mean",
    ) -> dict[str, float]:
        r"""
        Compare a metric across previously run scenarios.

        Parameters
        ----------
        names : list of str
            Scenario names (must exist in :attr:`results`).
        metric : {"mean", "std", "var", "se", "nonfinite", "pX"}, default ``"mean"``
            Metric to extract. ``"pX"`` requests the X-th percentile (e.g. ``"p95"``).

        Returns
        -------
        dict
            ``{name: value}`` pairs.

        Raises
        ------
        ValueError
            If a scenario has no result, a requested percentile was not
            computed, or the metric name is unknown.
        """
        out: dict[str, float] = {}
        for name in names:
            if name not in self.results:
                raise ValueError(f"No results found for simulation '{name}'")
            r = self.results[name]
            if metric == "mean":
                out[name] = r.mean
            elif metric == "std":
                out[name] = r.std
            elif metric == "var":
                out[name] = r.std**2
            elif metric == "se":
                out[name] = r.std / np.sqrt(max(1, r.n_paths))
            elif metric == "nonfinite":
                out[name] = float(r.n_nonfinite)
            elif metric.lower().startswith("p") and metric[1:].isdigit():
                p = int(metric[1:])
                if p not in r.percentiles:
                    raise ValueError(f"Percentile {p} not computed")
                out[name] = r.percentiles[p]
            else:
                raise ValueError(f"Unknown metric: {metric}")
        return out
