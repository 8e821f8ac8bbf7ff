"""Unit tests for bayesian_survival.priors and bayesian_survival.likelihood."""
import pytest
import numpy as np
from bayesian_survival.likelihood import (
    linear_predictor,
    log_posterior,
    pointwise_log_likelihood,
    simulate_times,
    survival_probability,
)
from bayesian_survival.priors import PRESET_NAMES, PriorConfiguration, PriorSpec


def finite_difference(f, x, eps=1e-6):
    return (f(x + eps) - f(x - eps)) / (2 * eps)


class TestPriorSpec:
    """Tests for PriorSpec."""

    @pytest.mark.parametrize("spec, x", [
        (PriorSpec("normal", 1.0, 2.0), 0.3),
        (PriorSpec("student_t", 3.0, 2.5, df=3.0), -1.2),
        (PriorSpec("gamma", 2.0, 2.0), 0.7),
        (PriorSpec("half_normal", 0.0, 10.0), 1.5),
        (PriorSpec("lognormal", 0.0, 1.0), 1.3),
    ])
    def test_derivatives(self, spec, x):
        """Test analytic first and second derivatives against finite differences."""
        lp, d1, d2 = spec.log_density(x)
        assert float(d1) == pytest.approx(finite_difference(lambda v: spec.log_density(v)[0], x), rel=1e-5)
        assert float(d2) == pytest.approx(finite_difference(lambda v: spec.log_density(v)[1], x), rel=1e-5)

    def test_below_lower_bound(self):
        """Test that positive families have zero density below 0."""
        assert PriorSpec("half_normal", 0.0, 1.0).log_density(-0.5)[0] == -np.inf

    def test_invalid_parameters(self):
        """Test construction-time validation."""
        with pytest.raises(ValueError):
            PriorSpec("normal", 0.0, -1.0)
        with pytest.raises(ValueError):
            PriorSpec("student_t", 0.0, 1.0)
        with pytest.raises(ValueError):
            PriorSpec("cauchy", 0.0, 1.0)


class TestPriorConfiguration:
    """Tests for PriorConfiguration."""

    def test_shape_prior_needs_non_negative_support(self):
        """Test that a shape prior allowing negative values is rejected."""
        with pytest.raises(ValueError, match="non-negative support"):
            PriorConfiguration(
                name="bad",
                coefficient=PriorSpec("normal", 0.0, 1.0),
                shape=PriorSpec("normal", 1.0, 1.0),
                intercept=PriorSpec("normal", 0.0, 1.0),
            )

    def test_truncated_shape_prior_is_accepted(self):
        """Test that a lower bound at zero makes any family valid for the shape."""
        priors = PriorConfiguration(
            name="truncated",
            coefficient=PriorSpec("normal", 0.0, 1.0),
            shape=PriorSpec("normal", 1.0, 1.0, lower=0.0),
            intercept=PriorSpec("normal", 0.0, 1.0),
        )
        assert priors.shape.non_negative_support

    def test_dict_round_trip(self):
        """Test serialization used for cache keys."""
        for name in PRESET_NAMES:
            priors = PriorConfiguration.preset(name)
            assert PriorConfiguration.from_dict(priors.to_dict()) == priors

    def test_tightened_differs_only_in_coefficient_scale(self):
        """Test the preset used for sensitivity analysis."""
        default, tightened = PriorConfiguration.default(), PriorConfiguration.tightened()
        assert tightened.coefficient.scale < default.coefficient.scale
        assert tightened.shape == default.shape
        assert tightened.intercept == default.intercept

    def test_unknown_preset(self):
        """Test that unknown preset names are rejected."""
        with pytest.raises(ValueError, match="Unknown prior preset"):
            PriorConfiguration.preset("flat")


class TestWeibullLikelihood:
    """Tests for the censored Weibull likelihood."""

    def test_survival_function(self):
        """Test S(t) = exp(-(t / lambda)^k)."""
        eta = np.log(20.0)
        assert float(survival_probability(20.0, eta, 1.0)) == pytest.approx(np.exp(-1.0))
        assert float(survival_probability(10.0, eta, 2.0)) == pytest.approx(np.exp(-0.25))

    def test_pointwise_censored_equals_log_survival(self):
        """Test that censored records contribute log S(t)."""
        eta = np.array([[np.log(30.0)]])
        ll = pointwise_log_likelihood(np.array([12.0]), np.array([0]), eta, np.array([1.5]))
        assert ll[0, 0] == pytest.approx(np.log(survival_probability(12.0, np.log(30.0), 1.5)))

    def test_pointwise_event_equals_log_density(self):
        """Test that events contribute the Weibull log density."""
        lam, k, t = 30.0, 1.5, 12.0
        ll = pointwise_log_likelihood(np.array([t]), np.array([1]), np.array([[np.log(lam)]]), np.array([k]))
        density = (k / lam) * (t / lam) ** (k - 1) * np.exp(-(t / lam) ** k)
        assert ll[0, 0] == pytest.approx(np.log(density))

    def test_linear_predictor_shape(self):
        """Test broadcasting over draws and records."""
        X = np.ones((5, 3))
        eta = linear_predictor(np.zeros(4), np.ones((4, 3)), X)
        assert eta.shape == (4, 5)
        assert (eta == 3.0).all()

    def test_simulated_survival_matches_closed_form(self):
        """Test that simulated times reproduce S(t)."""
        rng = np.random.default_rng(1)
        times = simulate_times(np.full(200_000, np.log(20.0)), 1.3, rng)
        assert (times > 15.0).mean() == pytest.approx(survival_probability(15.0, np.log(20.0), 1.3), abs=0.005)

    def test_log_posterior_gradient_and_hessian(self):
        """Test analytic derivatives of the log posterior against finite differences."""
        rng = np.random.default_rng(3)
        X = rng.normal(size=(40, 2))
        time = rng.uniform(1.0, 40.0, size=40)
        event = rng.integers(0, 2, size=40)
        priors = PriorConfiguration.default()
        theta = np.array([2.5, 0.3, -0.2, np.log(1.1)])

        _, grad, hess = log_posterior(theta, X, time, event, priors)
        eps = 1e-6
        for j in range(theta.size):
            step = np.zeros_like(theta)
            step[j] = eps
            lp_plus, g_plus, _ = log_posterior(theta + step, X, time, event, priors)
            lp_minus, g_minus, _ = log_posterior(theta - step, X, time, event, priors)
            assert grad[j] == pytest.approx((lp_plus - lp_minus) / (2 * eps), rel=1e-4, abs=1e-6)
            np.testing.assert_allclose(hess[:, j], (g_plus - g_minus) / (2 * eps), rtol=1e-4, atol=1e-5)
