"""Unit tests for bayesian_survival.filtering module."""
import pytest
import numpy as np
import pandas as pd
from bayesian_survival.filtering import CoxDevianceResiduals, ResidualModel, filter_influential


class FixedResiduals(ResidualModel):
    """Residual service returning preset values."""

    name = "fixed"

    def __init__(self, values):
        self.values = np.asarray(values, dtype=float)

    def deviance_residuals(self, formula, data):
        return pd.Series(self.values, index=data.index)


class TestFilterInfluential:
    """Tests for filter_influential with a stub residual service."""

    def test_removes_above_threshold(self, prepared, formula):
        """Test that only |residual| > threshold is removed."""
        n = prepared.n_records
        values = np.zeros(n)
        values[[0, 5, 9]] = [3.5, -4.0, 3.0]  # exactly 3.0 is kept
        result = filter_influential(prepared, formula, threshold=3.0, residual_model=FixedResiduals(values))

        expected = list(prepared.frame.index[[0, 5]])
        assert result.removed_index == expected
        assert result.n_removed == 2
        assert result.data.n_records == n - 2
        assert result.data.n_influential_removed == 2
        assert not result.frame.index.isin(expected).any()

    def test_input_untouched(self, prepared, formula):
        """Test that the prepared input keeps all records."""
        n = prepared.n_records
        filter_influential(prepared, formula, residual_model=FixedResiduals(np.full(n, 10.0)))
        assert prepared.n_records == n

    def test_invalid_threshold(self, prepared, formula):
        """Test that a non-positive threshold is rejected."""
        with pytest.raises(ValueError):
            filter_influential(prepared, formula, threshold=0.0)

    def test_summary(self, prepared, formula):
        """Test the reporting dictionary."""
        values = np.zeros(prepared.n_records)
        values[1] = -5.0
        summary = filter_influential(prepared, formula, residual_model=FixedResiduals(values)).summary()

        assert summary["n_removed"] == 1
        assert summary["n_after"] == summary["n_before"] - 1
        assert summary["max_abs_residual"] == 5.0


class TestCoxDevianceResiduals:
    """Tests for the lifelines-based residual service."""

    @pytest.fixture(scope="class")
    def residuals(self, prepared, formula):
        return CoxDevianceResiduals().deviance_residuals(formula, prepared.frame)

    def test_one_residual_per_record_in_input_order(self, residuals, prepared):
        """Test alignment with the input index."""
        assert len(residuals) == prepared.n_records
        assert residuals.index.equals(prepared.frame.index)
        assert np.isfinite(residuals).all()

    def test_censored_residuals_are_negative(self, residuals, prepared):
        """Test the sign pattern of deviance residuals: censored records are <= 0."""
        censored = prepared.frame["event"] == 0
        assert (residuals[censored] <= 1e-12).all()

    def test_deterministic(self, prepared, formula):
        """Test that identical data and formula remove identical records."""
        first = filter_influential(prepared, formula, threshold=2.0)
        second = filter_influential(prepared, formula, threshold=2.0)

        assert first.removed_index == second.removed_index
        pd.testing.assert_series_equal(first.residuals, second.residuals)
        assert first.n_removed == int((first.residuals.abs() > 2.0).sum())
