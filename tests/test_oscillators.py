import numpy as np
import pytest

from mcsde import ConfigurationError
from mcsde.oscillators import (
    NTMD,
    Duffing,
    duffing_rhs,
    integrate_duffing,
    integrate_ntmd_ode,
    ntmd_noise,
    ntmd_rhs,
)


class TestDuffing:
    """Test the forced Duffing oscillator"""

    def test_rhs_at_rest(self):
        """Test only the forcing acts on a resting oscillator at t=0"""
        p = Duffing()
        np.testing.assert_allclose(duffing_rhs(0.0, np.array([0.0, 0.0]), p), [0.0, p.F0 / p.m])

    def test_rhs_restoring_force(self):
        """Test linear plus cubic stiffness"""
        p = Duffing(F0=0.0, c=0.0)
        np.testing.assert_allclose(duffing_rhs(0.0, np.array([1.0, 0.5]), p), [0.5, -(p.k + p.mu)])

    def test_unforced_undamped_conserves_energy(self):
        """Test the Hamiltonian case stays on its energy level"""
        p = Duffing(c=0.0, F0=0.0)
        sol = integrate_duffing([1.0, 0.0], p, (0.0, 20.0), rtol=1e-9, atol=1e-12)
        x, v = sol.y
        energy = 0.5 * p.m * v**2 + 0.5 * p.k * x**2 + 0.25 * p.mu * x**4
        np.testing.assert_allclose(energy, energy[0], rtol=1e-5)

    def test_t_eval(self):
        """Test solver keyword arguments are forwarded"""
        t_eval = np.linspace(0.0, 5.0, 11)
        sol = integrate_duffing([0, 0], Duffing(), (0.0, 5.0), t_eval=t_eval)
        np.testing.assert_allclose(sol.t, t_eval)
        assert sol.y.shape == (2, 11)

    @pytest.mark.parametrize(
        ("u0", "span", "message"),
        [
            ([0.0], (0.0, 1.0), "2 components"),
            ([0.0, np.nan], (0.0, 1.0), "finite"),
            ([0.0, 0.0], (1.0, 1.0), "greater than t_start"),
            ([0.0, 0.0], (0.0, np.inf), "t_end must be finite"),
            ([0.0, 0.0], (0.0,), "t_span must be"),
        ],
    )
    def test_invalid_inputs(self, u0, span, message):
        """Test malformed states and spans"""
        with pytest.raises(ConfigurationError, match=message):
            integrate_duffing(u0, Duffing(), span)


class TestNTMD:
    """Test the tuned-mass-damper"""

    def test_period(self):
        """Test the forcing period"""
        assert NTMD(omega=2.0).period == pytest.approx(np.pi)

    def test_noise_on_primary_velocity_only(self):
        """Test the diffusion vector"""
        p = NTMD(sigma=0.5, m1=2.0)
        np.testing.assert_array_equal(ntmd_noise(0.0, np.zeros(4), p), [0.0, 0.25, 0.0, 0.0])

    def test_rhs_momentum_exchange(self):
        """Test coupling forces are equal and opposite"""
        p = NTMD(F0=0.0, k1=0.0, c1=0.0, c2=0.0)
        du = ntmd_rhs(0.0, np.array([0.3, 0.0, -0.1, 0.0]), p)
        assert du[0] == 0.0 and du[2] == 0.0
        assert p.m1 * du[1] == pytest.approx(-p.m2 * du[3])

    def test_long_run(self):
        """Test a multi-period run reaches its horizon with a finite state"""
        p = NTMD()
        sol = integrate_ntmd_ode([0.0, 0.0, 0.0, 0.0], p, 50 * p.period)
        assert sol.y.shape[0] == 4
        assert sol.t[-1] == pytest.approx(50 * p.period)
        assert np.all(np.isfinite(sol.y[:, -1]))

    def test_rejects_wrong_dimension(self):
        """Test the state must have four components"""
        with pytest.raises(ConfigurationError, match="4 components"):
            integrate_ntmd_ode([0.0, 0.0], NTMD(), 1.0)

    def test_rejects_nonpositive_horizon(self):
        """Test the horizon must be after the start"""
        with pytest.raises(ConfigurationError):
            integrate_ntmd_ode(np.zeros(4), NTMD(), 0.0)
