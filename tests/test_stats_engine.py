import logging

import numpy as np
import pytest

from mcsde.stats_engine import (
    CIMethod,
    ComputeResult,
    FnMetric,
    StatsContext,
    StatsEngine,
    build_default_engine,
    ci_mean,
    histogram_modes,
    kurtosis,
    mean,
    nonfinite_count,
    percentiles,
    skew,
    std,
    variance,
)
from mcsde.utils import autocrit, t_crit, z_crit


class TestStatsEngine:
    """Test StatsEngine class"""

    def test_engine_creation(self):
        """Test creating a stats engine with metrics"""
        engine = StatsEngine([FnMetric("mean", mean), FnMetric("std", std)])
        assert engine.available() == ("mean", "std")

    def test_engine_compute(self, sample_data, ctx_basic):
        """Test computing all metrics"""
        engine = StatsEngine([FnMetric("mean", mean), FnMetric("std", std)])
        result = engine.compute(sample_data, **ctx_basic)
        assert isinstance(result, ComputeResult)
        assert result.metrics["mean"] == pytest.approx(5.0, abs=0.2)
        assert result.metrics["std"] == pytest.approx(2.0, abs=0.2)
        assert result.skipped == []

    def test_compute_with_context_dict(self, sample_data, ctx_basic):
        """Test passing the context as a mapping"""
        engine = build_default_engine()
        result = engine.compute(sample_data, ctx_basic)
        assert set(result.metrics["percentiles"]) == {5, 25, 50, 75, 95}

    def test_compute_rejects_bad_context(self, sample_data):
        """Test an unusable context object"""
        with pytest.raises(TypeError, match="ctx must be a StatsContext"):
            StatsEngine([FnMetric("mean", mean)]).compute(sample_data, ctx=[1, 2])

    def test_select(self, sample_data):
        """Test computing a subset of metrics"""
        result = build_default_engine().compute(sample_data, select=["mean", "skew"])
        assert set(result.metrics) == {"mean", "skew"}

    def test_default_engine_metrics(self):
        """Test the default metric set"""
        assert build_default_engine().available() == (
            "mean", "std", "variance", "percentiles", "skew", "kurtosis",
            "ci_mean", "nonfinite_count", "modes",
        )
        assert "modes" not in build_default_engine(include_modes=False).available()

    def test_failing_metric_is_skipped(self, sample_data, caplog):
        """Test a raising metric is logged and the others still run"""
        def boom(x, ctx):
            raise RuntimeError("bad metric")

        engine = StatsEngine([FnMetric("boom", boom), FnMetric("mean", mean)])
        with caplog.at_level(logging.ERROR, logger="mcsde.stats_engine"):
            result = engine.compute(sample_data)
        assert result.skipped == ["boom"]
        assert "mean" in result.metrics
        assert "Error computing metric boom" in caplog.text


class TestStatsContext:
    """Test context validation"""

    @pytest.mark.parametrize(
        ("kwargs", "message"),
        [
            ({"confidence": 1.0}, "confidence"),
            ({"percentiles": (5, 101)}, "percentiles"),
            ({"ddof": -1}, "ddof"),
            ({"bins": 1}, "bins"),
            ({"mode_prominence": 1.0}, "mode_prominence"),
            ({"nan_policy": "raise"}, "nan_policy"),
        ],
    )
    def test_invalid(self, kwargs, message):
        """Test out-of-range fields raise"""
        with pytest.raises(ValueError, match=message):
            StatsContext(n=10, **kwargs)

    def test_alpha_and_overrides(self):
        """Test derived fields"""
        ctx = StatsContext(n=10, confidence=0.9)
        assert ctx.alpha == pytest.approx(0.1)
        assert ctx.with_overrides(bins=12).bins == 12
        assert ctx.bins == 60

    def test_eff_n(self):
        """Test effective sample size under each NaN policy"""
        assert StatsContext(n=10).eff_n(10, 7) == 10
        assert StatsContext(n=10, nan_policy="omit").eff_n(7, 7) == 7


class TestMoments:
    """Test moment metrics"""

    def test_basic_values(self):
        """Test known small-sample values"""
        x = np.array([1.0, 2.0, 3.0])
        assert mean(x) == 2.0
        assert std(x) == 1.0
        assert variance(x) == 1.0
        assert percentiles(np.array([0.0, 1.0, 2.0, 3.0]), {"percentiles": (50, 75)}) == {50: 1.5, 75: 2.25}

    def test_single_value(self):
        """Test spread of a single path is zero"""
        assert std(np.array([4.0])) == 0.0
        assert variance(np.array([4.0])) == 0.0

    def test_skew_and_kurtosis_of_normal(self):
        """Test a large normal sample"""
        x = np.random.default_rng(0).standard_normal(50_000)
        assert abs(skew(x)) < 0.05
        assert abs(kurtosis(x)) < 0.1

    def test_small_samples(self):
        """Test higher moments fall back to zero for tiny samples"""
        assert skew(np.array([1.0, 2.0])) == 0.0
        assert kurtosis(np.array([1.0, 2.0, 3.0])) == 0.0

    def test_nan_propagates(self):
        """Test non-finite paths poison the moments by default"""
        x = np.array([1.0, np.nan, 3.0])
        assert np.isnan(mean(x))
        assert np.isnan(std(x))

    def test_nan_omitted(self):
        """Test the omit policy drops non-finite paths"""
        x = np.array([1.0, np.nan, 3.0, np.inf])
        ctx = {"nan_policy": "omit"}
        assert mean(x, ctx) == 2.0
        assert std(x, ctx) == pytest.approx(np.sqrt(2.0))
        assert percentiles(x, {"nan_policy": "omit", "percentiles": (50,)}) == {50: 2.0}

    def test_all_nonfinite_omitted(self):
        """Test an empty sample after omission"""
        x = np.array([np.nan, np.inf])
        assert np.isnan(mean(x, {"nan_policy": "omit"}))
        assert np.isnan(percentiles(x, {"nan_policy": "omit", "percentiles": (50,)})[50])

    def test_nonfinite_count(self):
        """Test the blow-up diagnostic ignores the NaN policy"""
        x = np.array([1.0, np.nan, -np.inf, 2.0])
        assert nonfinite_count(x) == 2
        assert nonfinite_count(x, {"nan_policy": "omit"}) == 2


class TestConfidenceInterval:
    """Test the CI for the mean"""

    def test_large_sample_uses_z(self, sample_data):
        """Test auto method with n >= 30"""
        ci = ci_mean(sample_data, {"confidence": 0.95})
        assert ci["method"] == "z"
        assert ci["crit"] == pytest.approx(1.959964, rel=1e-5)
        assert ci["low"] < np.mean(sample_data) < ci["high"]
        assert ci["se"] == pytest.approx(np.std(sample_data, ddof=1) / np.sqrt(1000))

    def test_small_sample_uses_t(self):
        """Test auto method with n < 30"""
        ci = ci_mean(np.arange(10.0), {"ci_method": CIMethod.auto})
        assert ci["method"] == "t"
        assert ci["crit"] == pytest.approx(t_crit(0.95, 9))

    def test_forced_method(self):
        """Test explicit z on a small sample"""
        ci = ci_mean(np.arange(10.0), {"ci_method": "z"})
        assert ci["method"] == "z"

    def test_degenerate_sample(self):
        """Test a single value has no interval"""
        ci = ci_mean(np.array([1.0]))
        assert np.isnan(ci["low"]) and np.isnan(ci["high"])

    def test_constant_sample(self):
        """Test zero spread gives a zero-width interval"""
        ci = ci_mean(np.full(50, 2.0))
        assert ci["low"] == ci["high"] == 2.0


class TestHistogramModes:
    """Test mode detection"""

    def test_two_point_masses(self):
        """Test peaks in the edge bins"""
        x = np.concatenate([np.full(50, -1.0), np.full(50, 1.0)])
        modes = histogram_modes(x, {"bins": 4})
        assert modes["locations"] == [-0.75, 0.75]
        assert modes["densities"][0] == modes["densities"][1]

    def test_bimodal_mixture(self):
        """Test two separated normal clusters"""
        rng = np.random.default_rng(1)
        x = np.concatenate([rng.normal(-1.0, 0.05, 5000), rng.normal(1.0, 0.05, 5000)])
        locs = histogram_modes(x)["locations"]
        assert len(locs) == 2
        assert locs[0] == pytest.approx(-1.0, abs=0.1)
        assert locs[1] == pytest.approx(1.0, abs=0.1)

    def test_unimodal(self):
        """Test a single normal cluster"""
        x = np.random.default_rng(2).normal(0.0, 1.0, 20_000)
        locs = histogram_modes(x, {"bins": 30, "mode_prominence": 0.2})["locations"]
        assert len(locs) == 1
        assert locs[0] == pytest.approx(0.0, abs=0.3)

    def test_degenerate(self):
        """Test constant or tiny samples have no modes"""
        assert histogram_modes(np.full(10, 3.0)) == {"locations": [], "densities": []}
        assert histogram_modes(np.array([np.nan, 1.0])) == {"locations": [], "densities": []}

    def test_ignores_nonfinite(self):
        """Test blown-up paths do not break mode detection"""
        x = np.concatenate([np.full(50, -1.0), np.full(50, 1.0), [np.nan, np.inf]])
        assert histogram_modes(x, {"bins": 4})["locations"] == [-0.75, 0.75]


class TestCriticalValues:
    """Test z/t critical values"""

    def test_z_crit(self):
        """Test the familiar 95% value"""
        assert round(z_crit(0.95), 3) == 1.96

    def test_t_crit_exceeds_z(self):
        """Test t is wider than z for small df"""
        assert t_crit(0.95, 5) > z_crit(0.95)

    def test_autocrit(self):
        """Test automatic selection"""
        assert autocrit(0.95, 10)[1] == "t"
        assert autocrit(0.95, 100)[1] == "z"
        assert autocrit(0.95, 100, CIMethod.t)[1] == "t"

    @pytest.mark.parametrize(
        ("call", "message"),
        [
            (lambda: z_crit(1.0), "confidence"),
            (lambda: t_crit(0.95, 0), "df"),
            (lambda: autocrit(0.95, 10, "bootstrap"), "Unknown CI method"),
        ],
    )
    def test_invalid(self, call, message):
        """Test invalid inputs"""
        with pytest.raises(ValueError, match=message):
            call()
