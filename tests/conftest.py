import multiprocessing as mp

import numpy as np
import pytest

from mcsde import CubicDoubleWell, EnsembleFramework, EnsembleSimulation, OrnsteinUhlenbeck


class CountingModel:
    """Scalar-only model that records how often it is evaluated."""
    def __init__(self, drift: float = 0.0, diffusion: float = 0.0):
        self.drift = drift
        self.diffusion = diffusion
        self.calls = 0

    def __call__(self, x):
        self.calls += 1
        return self.drift, self.diffusion


class CappedOU:
    """OU model whose drift turns NaN once the state exceeds ``cap``."""
    def __init__(self, theta: float, sigma: float, cap: float):
        self.theta = theta
        self.sigma = sigma
        self.cap = cap

    def __call__(self, x):
        if x > self.cap:
            return float("nan"), self.sigma
        return -self.theta * x, self.sigma


def ou_scalar(x):
    """Scalar-only twin of ``OrnsteinUhlenbeck(1.0, 0.1)``."""
    return -1.0 * x, 0.1


@pytest.fixture(scope="session", autouse=True)
def _set_spawn_start_method():
    try:
        mp.set_start_method("spawn")
    except RuntimeError:
        pass  # already set


@pytest.fixture
def ou_model():
    """OU model from the reference histograms (theta=1, sigma=0.1)."""
    return OrnsteinUhlenbeck(theta=1.0, sigma=0.1)


@pytest.fixture
def narrow_well():
    """Cubic double-well with small noise (well separated modes)."""
    return CubicDoubleWell(theta=1.0, sigma=0.1)


@pytest.fixture
def wide_well():
    """Cubic double-well with large noise (overlapping modes)."""
    return CubicDoubleWell(theta=1.0, sigma=1.5)


@pytest.fixture
def counting_model():
    return CountingModel(drift=1.0, diffusion=0.0)


@pytest.fixture
def root_seq():
    return np.random.SeedSequence(2024)


@pytest.fixture
def ou_simulation(ou_model):
    """Provide a seeded OU ensemble over the short horizon t1=1."""
    sim = EnsembleSimulation(ou_model, x0=0.5, t1=1.0, name="OU")
    sim.set_seed(42)
    return sim


@pytest.fixture
def framework():
    """Provide a framework with default state."""
    return EnsembleFramework()


@pytest.fixture
def sample_data():
    """Fixture providing sample data for testing"""
    return np.random.default_rng(42).normal(5.0, 2.0, 1000)


@pytest.fixture
def ctx_basic():
    """Basic context for stats engine tests"""
    return {
        "n": 1000,
        "confidence": 0.95,
        "nan_policy": "propagate",
        "ci_method": "auto",
        "percentiles": (5, 25, 50, 75, 95),
    }
