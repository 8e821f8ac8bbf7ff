"""Survival predictions for new customer profiles.

For each profile, survival times are drawn from the posterior predictive
distribution of the fitted Weibull model. Survival probability at a horizon
is the fraction of simulated times exceeding it. Profiles whose predicted
median lies far beyond the longest observed tenure are flagged as
extrapolations; their values are reported unchanged.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Sequence
import logging
import warnings
import numpy as np
import pandas as pd

from bayesian_survival.data import ModelFormula, ScalingParameters, apply_scaling
from bayesian_survival.draws import PosteriorDrawSet
from bayesian_survival.exceptions import DataValidationError, ExtrapolationWarning, PipelineWarning
from bayesian_survival.likelihood import linear_predictor, simulate_times, survival_probability

logger = logging.getLogger("bayesian_survival.predict")


@dataclass
class SurvivalCurve:
    """Predicted survival of one profile at a set of horizons.

    Attributes:
        profile: Profile identifier
        horizons: Months
        survival: Fraction of simulated times beyond each horizon
        lower: 2.5th percentile of S(h | theta) over posterior draws
        upper: 97.5th percentile of S(h | theta) over posterior draws
        median: Median simulated survival time
        extrapolated: True when the median exceeds the extrapolation limit
    """
    profile: object
    horizons: np.ndarray
    survival: np.ndarray
    lower: np.ndarray
    upper: np.ndarray
    median: float
    extrapolated: bool = False

    def at(self, horizon: float) -> float:
        matches = np.flatnonzero(self.horizons == horizon)
        if len(matches) == 0:
            raise KeyError(f"Horizon {horizon} was not predicted")
        return float(self.survival[matches[0]])


@dataclass
class PredictionResult:
    """Prediction tables for a batch of profiles.

    Attributes:
        survival: Long table (profile, horizon, survival_probability,
            indicator_lower, indicator_upper, lower, upper)
        times: Per profile median, q25, q75 of simulated times and the
            extrapolation flag
        curves: SurvivalCurve per profile, in input order
        max_observed_time: Longest training time used for the flag
        warnings: Structured extrapolation warnings
    """
    survival: pd.DataFrame
    times: pd.DataFrame
    curves: List[SurvivalCurve]
    max_observed_time: Optional[float]
    warnings: List[PipelineWarning] = field(default_factory=list)

    def wide(self) -> pd.DataFrame:
        """One row per profile, ``survival_prob_<h>m`` columns plus time quantiles."""
        pivot = self.survival.pivot(index="profile", columns="horizon", values="survival_probability")
        pivot.columns = [f"survival_prob_{h:g}m" for h in pivot.columns]
        out = self.times.set_index("profile").join(pivot)
        return out.loc[self.times["profile"]].reset_index()


def reference_profiles(total_charges: float = 1400.0) -> pd.DataFrame:
    """Two contrasting profiles that differ only in contract and payment.

    ``secure_two_year``: two-year contract, automatic bank transfer and the
    full security/protection bundle. ``at_risk_monthly``: the same customer
    on a month-to-month contract paying by electronic check.
    """
    base = {
        "Partner": "Yes",
        "InternetService": "DSL",
        "OnlineSecurity": "Yes",
        "DeviceProtection": "Yes",
        "StreamingTV": "No",
        "StreamingMovies": "No",
        "PaperlessBilling": "Yes",
        "TotalCharges": float(total_charges),
    }
    return pd.DataFrame([
        {"customerID": "secure_two_year", **base, "Contract": "Two year",
         "PaymentMethod": "Bank transfer (automatic)"},
        {"customerID": "at_risk_monthly", **base, "Contract": "Month-to-month",
         "PaymentMethod": "Electronic check"},
    ])


def predict_survival(
    draws: PosteriorDrawSet,
    profiles: pd.DataFrame,
    formula: ModelFormula,
    scaling: ScalingParameters,
    horizons: Sequence[float] = (6, 12, 24, 36, 48, 60, 72),
    n_draws: int = 4000,
    seed: int = 123,
    max_observed_time: Optional[float] = None,
    extrapolation_factor: float = 1.0,
    id_column: str = "customerID",
) -> PredictionResult:
    """Posterior-predictive survival for new profiles.

    Continuous covariates of ``profiles`` are given on the raw scale and
    transformed with the retained training ``scaling``; scaling is never
    refit on scoring data.

    Per profile and horizon the output carries both intervals: the literal
    2.5/97.5 percentiles of the per-draw indicator ``T > h`` (always 0 or
    1) and the credible interval of ``S(h | theta)`` across draws, which is
    the interval kept in SurvivalCurve.

    Args:
        draws: Posterior draw set of the fitted model
        profiles: New records with every covariate of the formula
        formula: Formula used for the fit
        scaling: Scaling parameters retained by ``prepare_data``
        horizons: Months at which survival is reported
        n_draws: Posterior-predictive draws per profile
        seed: Seed for draw selection and simulation
        max_observed_time: Longest training time; None disables the flag
        extrapolation_factor: Median above factor x max_observed_time is flagged
        id_column: Column identifying profiles (index labels when absent)

    Returns:
        PredictionResult

    Raises:
        DataValidationError: If a profile misses a covariate or has an unknown level,
            or two profiles share an id

    Example:
        >>> result = predict_survival(fit.draws, profiles, formula, prepared.scaling,
        ...                           horizons=(12, 24), max_observed_time=prepared.max_time)
        >>> result.curves[0].at(24)
        0.93
    """
    if len(profiles) == 0:
        raise DataValidationError("No profiles to predict")
    scaled = apply_scaling(profiles, scaling)
    X = formula.design_matrix(scaled)
    horizons = np.asarray(horizons, dtype=float)
    ids = profiles[id_column].tolist() if id_column in profiles.columns else profiles.index.tolist()
    id_index = pd.Index(ids)
    if id_index.has_duplicates:
        repeated = sorted({str(p) for p in id_index[id_index.duplicated()]})
        raise DataValidationError(f"Duplicate profile ids: {repeated}")

    rng = np.random.default_rng(seed)
    idx = rng.choice(draws.n_total, size=n_draws, replace=n_draws > draws.n_total)
    intercept, beta, shape = draws.components(formula.coefficient_names)
    shape = shape[idx]
    eta = linear_predictor(intercept[idx], beta[idx], X)  # (n_draws, n_profiles)
    simulated = simulate_times(eta, shape[:, None], rng)

    limit = None if max_observed_time is None else extrapolation_factor * float(max_observed_time)
    survival_rows, time_rows, curves, found = [], [], [], []
    for j, profile in enumerate(ids):
        t_j = simulated[:, j]
        exceed = t_j[:, None] > horizons[None, :]
        surv = exceed.mean(axis=0)
        ind_lo, ind_hi = np.percentile(exceed.astype(float), [2.5, 97.5], axis=0)
        s_theta = survival_probability(horizons[None, :], eta[:, j][:, None], shape[:, None])
        lo, hi = np.percentile(s_theta, [2.5, 97.5], axis=0)
        q25, median, q75 = np.percentile(t_j, [25.0, 50.0, 75.0])

        extrapolated = limit is not None and median > limit
        if extrapolated:
            message = (
                f"Profile {profile}: predicted median survival {median:.1f} months exceeds "
                f"{extrapolation_factor:g} x longest observed time ({max_observed_time:g}); parametric tail extrapolation"
            )
            found.append(PipelineWarning("extrapolation", message, {
                "profile": profile,
                "median": float(median),
                "max_observed_time": float(max_observed_time),
            }))
            warnings.warn(message, ExtrapolationWarning, stacklevel=2)

        for h, s, a, b, c, d in zip(horizons, surv, ind_lo, ind_hi, lo, hi):
            survival_rows.append({
                "profile": profile,
                "horizon": h,
                "survival_probability": s,
                "indicator_lower": a,
                "indicator_upper": b,
                "lower": c,
                "upper": d,
            })
        time_rows.append({
            "profile": profile,
            "median": float(median),
            "q25": float(q25),
            "q75": float(q75),
            "extrapolated": bool(extrapolated),
        })
        curves.append(SurvivalCurve(profile, horizons, surv, lo, hi, float(median), bool(extrapolated)))

    logger.info(
        f"Predicted survival for {len(ids):,} profiles at {len(horizons)} horizons "
        f"({n_draws:,} draws each, {len(found)} extrapolated)"
    )
    return PredictionResult(
        survival=pd.DataFrame(survival_rows),
        times=pd.DataFrame(time_rows),
        curves=curves,
        max_observed_time=max_observed_time,
        warnings=found,
    )
