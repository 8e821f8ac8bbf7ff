"""Posterior summaries and hazard ratios.

Sign convention: the Weibull model is parameterized as an accelerated
failure time model, so a positive coefficient lengthens survival and lowers
the hazard. ``hazard_ratio`` is the single place where that inversion
happens: ``HR = exp(-beta)``, and because the map is decreasing the
credible bounds swap.
"""
from __future__ import annotations
from typing import Tuple
import numpy as np
import pandas as pd

from bayesian_survival.draws import INTERCEPT, SHAPE, PosteriorDrawSet

SUMMARY_COLUMNS = ["parameter", "mean", "median", "sd", "q2.5", "q97.5", "prob_positive", "low_confidence"]
HAZARD_RATIO_COLUMNS = ["parameter", "HR_mean", "HR_lower", "HR_upper", "prob_positive", "low_confidence"]


def summarize_posterior(draws: PosteriorDrawSet, low_confidence: bool = False) -> pd.DataFrame:
    """Per-parameter posterior summary, pooled across chains.

    Rows are ordered by descending absolute mean for presentation only;
    look parameters up by name, not by position.

    Args:
        draws: Posterior draw set
        low_confidence: Tag carried on every row; set when the fit failed
            convergence diagnostics

    Returns:
        DataFrame with columns parameter, mean, median, sd, q2.5, q97.5,
        prob_positive, low_confidence

    Example:
        >>> summary = summarize_posterior(fit.draws, low_confidence=not report.converged)
        >>> summary.set_index("parameter").loc["Contract[Two year]", "prob_positive"]
        1.0
    """
    flat = draws.flat_matrix()
    q_low, q_mid, q_high = np.percentile(flat, [2.5, 50.0, 97.5], axis=0)
    df = pd.DataFrame({
        "parameter": list(draws.parameter_names),
        "mean": flat.mean(axis=0),
        "median": q_mid,
        "sd": flat.std(axis=0, ddof=1) if flat.shape[0] > 1 else np.zeros(flat.shape[1]),
        "q2.5": q_low,
        "q97.5": q_high,
        "prob_positive": (flat > 0).mean(axis=0),
        "low_confidence": bool(low_confidence),
    })
    order = np.argsort(-df["mean"].abs().to_numpy(), kind="stable")
    return df.iloc[order].reset_index(drop=True)[SUMMARY_COLUMNS]


def hazard_ratio(mean, lower, upper) -> Tuple:
    """Map a coefficient summary to the hazard-ratio scale.

    Args:
        mean: Posterior mean of the coefficient
        lower: 2.5th percentile of the coefficient
        upper: 97.5th percentile of the coefficient

    Returns:
        Tuple (HR_mean, HR_lower, HR_upper) with ``HR_lower = exp(-upper)``
        and ``HR_upper = exp(-lower)``

    Example:
        >>> hazard_ratio(1.2, 0.9, 1.5)
        (0.301..., 0.223..., 0.406...)
    """
    return np.exp(-mean), np.exp(-upper), np.exp(-lower)


def hazard_ratio_table(summary: pd.DataFrame) -> pd.DataFrame:
    """Hazard ratios for regression coefficients (shape and intercept excluded).

    Keeps the row order of ``summary``.
    """
    coefs = summary.loc[~summary["parameter"].isin([INTERCEPT, SHAPE])]
    hr_mean, hr_lower, hr_upper = hazard_ratio(coefs["mean"], coefs["q2.5"], coefs["q97.5"])
    return pd.DataFrame({
        "parameter": coefs["parameter"].to_numpy(),
        "HR_mean": np.asarray(hr_mean, dtype=float),
        "HR_lower": np.asarray(hr_lower, dtype=float),
        "HR_upper": np.asarray(hr_upper, dtype=float),
        "prob_positive": coefs["prob_positive"].to_numpy(),
        "low_confidence": coefs["low_confidence"].to_numpy(),
    })[HAZARD_RATIO_COLUMNS]
