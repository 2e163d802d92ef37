import math
import pickle

import numpy as np
import pytest
from conftest import ou_scalar

from mcsde import CubicDoubleWell, OrnsteinUhlenbeck, SDEModel
from mcsde.models import supports_batch


class TestOrnsteinUhlenbeck:
    """Test the Ornstein-Uhlenbeck model"""

    def test_drift_and_diffusion(self):
        """Test scalar evaluation"""
        assert OrnsteinUhlenbeck(2.0, 0.3)(1.5) == (-3.0, 0.3)

    def test_array_evaluation(self):
        """Test vector evaluation keeps the diffusion scalar"""
        f, g = OrnsteinUhlenbeck(1.0, 0.1)(np.array([1.0, -2.0]))
        np.testing.assert_array_equal(f, [-1.0, 2.0])
        assert g == 0.1

    def test_stationary_moments(self):
        """Test invariant distribution"""
        ou = OrnsteinUhlenbeck(2.0, 1.0)
        assert ou.stationary_mean() == 0.0
        assert ou.stationary_variance() == pytest.approx(0.25)

    def test_no_stationary_variance_without_reversion(self):
        """Test theta <= 0 has no invariant distribution"""
        with pytest.raises(ValueError, match="theta > 0"):
            OrnsteinUhlenbeck(0.0, 1.0).stationary_variance()

    def test_frozen(self):
        """Test parameters cannot change after construction"""
        ou = OrnsteinUhlenbeck(1.0, 0.1)
        with pytest.raises(AttributeError):
            ou.theta = 2.0


class TestCubicDoubleWell:
    """Test the cubic double-well model"""

    def test_drift_vanishes_at_equilibria(self):
        """Test the three equilibria of the drift"""
        m = CubicDoubleWell(4.0, 0.5)
        for x in (-2.0, 0.0, 2.0):
            assert m(x)[0] == 0.0

    def test_drift_sign(self):
        """Test the drift pushes towards the wells"""
        m = CubicDoubleWell(1.0, 0.1)
        assert m(0.5)[0] > 0
        assert m(2.0)[0] < 0
        assert m(-0.5)[0] < 0

    def test_well_positions(self):
        """Test stable equilibria at +/- sqrt(theta)"""
        assert CubicDoubleWell(2.0, 0.1).well_positions() == pytest.approx((-math.sqrt(2), math.sqrt(2)))
        with pytest.raises(ValueError):
            CubicDoubleWell(-1.0, 0.1).well_positions()

    def test_scalar_and_array_agree(self):
        """Test array evaluation matches element-wise scalar evaluation"""
        m = CubicDoubleWell(1.0, 1.5)
        xs = np.linspace(-3.0, 3.0, 25)
        f, _ = m(xs)
        assert f.tolist() == [m(float(x))[0] for x in xs]


class TestModelProtocol:
    """Test model capabilities"""

    def test_builtin_models_support_batch(self):
        """Test the built-in models declare batch support"""
        assert supports_batch(OrnsteinUhlenbeck(1.0, 0.1))
        assert supports_batch(CubicDoubleWell(1.0, 0.1))

    def test_plain_function_is_scalar(self):
        """Test plain callables are integrated per path"""
        assert not supports_batch(ou_scalar)
        assert not supports_batch(lambda x: (0.0, 1.0))

    def test_protocol(self):
        """Test callables satisfy the runtime protocol"""
        assert isinstance(OrnsteinUhlenbeck(1.0, 0.1), SDEModel)
        assert isinstance(ou_scalar, SDEModel)

    @pytest.mark.parametrize("model", [OrnsteinUhlenbeck(1.0, 0.1), CubicDoubleWell(1.0, 1.5)])
    def test_models_pickle(self, model):
        """Test models can be shipped to worker processes"""
        assert pickle.loads(pickle.dumps(model)) == model
