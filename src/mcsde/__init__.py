"""mcsde package public API."""

import logging

from .config import DEFAULT_DT, SamplerConfig
from .core import EnsembleFramework, EnsembleResult
from .errors import ConfigurationError, SamplingCancelled
from .integrator import integrate, integrate_block, path_rng, path_seed, step_count
from .models import CubicDoubleWell, OrnsteinUhlenbeck, SDEModel
from .sampler import sample
from .simulation import EnsembleSimulation
from .stats_engine import DEFAULT_ENGINE, FnMetric, StatsContext, StatsEngine
from .utils import autocrit, t_crit, z_crit

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "integrate",
    "integrate_block",
    "step_count",
    "path_seed",
    "path_rng",
    "sample",
    "SDEModel",
    "OrnsteinUhlenbeck",
    "CubicDoubleWell",
    "EnsembleSimulation",
    "EnsembleResult",
    "EnsembleFramework",
    "SamplerConfig",
    "DEFAULT_DT",
    "ConfigurationError",
    "SamplingCancelled",
    "StatsEngine",
    "StatsContext",
    "FnMetric",
    "DEFAULT_ENGINE",
    "z_crit",
    "t_crit",
    "autocrit",
]

__version__ = "0.1.0"
