"""Unit tests for bayesian_survival.metrics module.

Tests the structured outcome helper, C-index and Kaplan-Meier lookups.
"""
import pytest
import numpy as np
from bayesian_survival.metrics import compute_cindex, kaplan_meier_at, to_structured


@pytest.fixture
def simple_survival_data():
    """Small censored sample: (time, event)."""
    time = np.array([5.0, 10.0, 15.0, 20.0, 25.0, 30.0])
    event = np.array([1, 0, 1, 1, 0, 1])
    return time, event


class TestToStructured:
    """Tests for to_structured function."""

    def test_fields(self, simple_survival_data):
        time, event = simple_survival_data
        y = to_structured(time, event)

        assert y.dtype.names == ("event", "time")
        assert y["event"].dtype == bool
        np.testing.assert_array_equal(y["time"], time)


class TestComputeCindex:
    """Tests for compute_cindex function."""

    def test_perfect_ordering(self, simple_survival_data):
        """Test that risk decreasing with time gives C = 1."""
        time, event = simple_survival_data
        assert compute_cindex(time, event, -time) == pytest.approx(1.0)

    def test_reversed_ordering(self, simple_survival_data):
        time, event = simple_survival_data
        assert compute_cindex(time, event, time) == pytest.approx(0.0)

    def test_constant_scores(self, simple_survival_data):
        """Test that tied risk scores give 0.5."""
        time, event = simple_survival_data
        assert compute_cindex(time, event, np.ones_like(time)) == pytest.approx(0.5)

    def test_all_censored_is_nan(self, simple_survival_data):
        """Test that outcomes without events give NaN instead of raising."""
        time, _ = simple_survival_data
        assert np.isnan(compute_cindex(time, np.zeros_like(time), -time))


class TestKaplanMeierAt:
    """Tests for kaplan_meier_at function."""

    def test_hand_computed_values(self, simple_survival_data):
        """Test the product-limit estimate against a hand calculation."""
        time, event = simple_survival_data
        km = kaplan_meier_at(time, event, [4.0, 5.0, 12.0, 15.0, 20.0, 40.0])

        s5 = 5 / 6
        s15 = s5 * (3 / 4)
        s20 = s15 * (2 / 3)
        expected = [1.0, s5, s5, s15, s20, 0.0]
        np.testing.assert_allclose(km, expected)

    def test_no_events(self):
        """Test that all-censored data stays at 1."""
        km = kaplan_meier_at(np.array([3.0, 6.0]), np.array([0, 0]), [1.0, 10.0])
        np.testing.assert_allclose(km, [1.0, 1.0])

    def test_bounds_and_monotone(self, prepared):
        frame = prepared.frame
        km = kaplan_meier_at(frame["time"], frame["event"], np.arange(1, 73))
        assert ((km >= 0) & (km <= 1)).all()
        assert (np.diff(km) <= 0).all()
