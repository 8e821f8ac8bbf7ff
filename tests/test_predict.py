"""Unit tests for bayesian_survival.predict module."""
import pytest
import numpy as np
from bayesian_survival.exceptions import DataValidationError, ExtrapolationWarning
from bayesian_survival.predict import predict_survival, reference_profiles

HORIZONS = (12, 24, 36, 48, 60, 72)


@pytest.fixture(scope="module")
def profiles():
    return reference_profiles(total_charges=1400.0)


@pytest.fixture(scope="module")
def prediction(true_draws, profiles, formula, prepared):
    """Predictions without an extrapolation limit."""
    return predict_survival(true_draws, profiles, formula, prepared.scaling, horizons=HORIZONS, n_draws=2000, seed=3)


class TestReferenceProfiles:
    """Tests for reference_profiles function."""

    def test_differ_only_in_contract_and_payment(self, profiles):
        differing = [c for c in profiles.columns if profiles[c].nunique() > 1]
        assert sorted(differing) == ["Contract", "PaymentMethod", "customerID"]

    def test_valid_for_formula(self, profiles, formula):
        formula.validate(profiles)


class TestPredictSurvival:
    """Tests for predict_survival function."""

    def test_secure_profile_survives_longer(self, prediction):
        """Test that the two-year bank-transfer customer outlives the monthly e-check customer."""
        secure, at_risk = prediction.curves
        assert secure.profile == "secure_two_year"
        assert secure.at(24) > at_risk.at(24)
        assert secure.median > at_risk.median

    def test_matches_closed_form(self, prediction):
        """Test simulated survival against S(24) at the generating parameters."""
        # at_risk_monthly: 3.0 + 0.3 + 0.4 + 0.2 - 0.5 on the log scale
        expected = np.exp(-(24.0 / np.exp(3.4)) ** 1.2)
        assert prediction.curves[1].at(24) == pytest.approx(expected, abs=0.04)

    def test_monotone_in_horizon(self, prediction):
        for curve in prediction.curves:
            assert (np.diff(curve.survival) <= 0).all()

    def test_interval_bounds(self, prediction):
        """Test both interval kinds per profile and horizon."""
        table = prediction.survival
        assert list(table.columns) == [
            "profile", "horizon", "survival_probability", "indicator_lower", "indicator_upper", "lower", "upper",
        ]
        assert len(table) == 2 * len(HORIZONS)
        assert table[["survival_probability", "lower", "upper"]].stack().between(0.0, 1.0).all()
        assert table["indicator_lower"].isin([0.0, 1.0]).all()
        assert table["indicator_upper"].isin([0.0, 1.0]).all()
        assert (table["lower"] <= table["upper"]).all()

    def test_time_quantiles(self, prediction):
        times = prediction.times
        assert times["profile"].tolist() == ["secure_two_year", "at_risk_monthly"]
        assert (times["q25"] <= times["median"]).all()
        assert (times["median"] <= times["q75"]).all()
        assert not times["extrapolated"].any()
        assert prediction.warnings == []

    def test_extrapolation_flagged_not_clipped(self, true_draws, profiles, formula, prepared):
        """Test that a median far past the longest observed tenure is flagged but kept."""
        with pytest.warns(ExtrapolationWarning, match="secure_two_year"):
            result = predict_survival(
                true_draws, profiles, formula, prepared.scaling,
                horizons=HORIZONS, n_draws=2000, seed=3, max_observed_time=prepared.max_time,
            )

        flags = result.times.set_index("profile")["extrapolated"]
        assert flags["secure_two_year"]
        assert not flags["at_risk_monthly"]
        assert result.curves[0].median > prepared.max_time
        assert [w.kind for w in result.warnings] == ["extrapolation"]
        assert result.warnings[0].details["profile"] == "secure_two_year"

    def test_same_seed_same_result(self, true_draws, profiles, formula, prepared, prediction):
        again = predict_survival(true_draws, profiles, formula, prepared.scaling, horizons=HORIZONS, n_draws=2000, seed=3)
        assert again.survival.equals(prediction.survival)

    def test_wide(self, prediction):
        wide = prediction.wide()
        assert wide["profile"].tolist() == ["secure_two_year", "at_risk_monthly"]
        assert "survival_prob_24m" in wide.columns
        assert wide.loc[0, "survival_prob_24m"] == prediction.curves[0].at(24)

    def test_unknown_horizon(self, prediction):
        with pytest.raises(KeyError):
            prediction.curves[0].at(18)

    def test_unknown_level_rejected(self, true_draws, profiles, formula, prepared):
        bad = profiles.copy()
        bad.loc[0, "Contract"] = "Three year"
        with pytest.raises(DataValidationError):
            predict_survival(true_draws, bad, formula, prepared.scaling, n_draws=100)

    def test_missing_covariate_rejected(self, true_draws, profiles, formula, prepared):
        with pytest.raises(DataValidationError):
            predict_survival(true_draws, profiles.drop(columns=["TotalCharges"]), formula, prepared.scaling, n_draws=100)

    def test_empty_profiles_rejected(self, true_draws, profiles, formula, prepared):
        with pytest.raises(DataValidationError):
            predict_survival(true_draws, profiles.iloc[:0], formula, prepared.scaling)

    def test_index_labels_without_id_column(self, true_draws, profiles, formula, prepared):
        result = predict_survival(true_draws, profiles.drop(columns=["customerID"]), formula, prepared.scaling, n_draws=200)
        assert result.times["profile"].tolist() == [0, 1]

    def test_duplicate_ids_rejected(self, true_draws, profiles, formula, prepared):
        """Test that repeated profile ids fail before the wide table can collide."""
        twins = profiles.assign(customerID="same")
        with pytest.raises(DataValidationError, match="same"):
            predict_survival(true_draws, twins, formula, prepared.scaling, n_draws=100)
