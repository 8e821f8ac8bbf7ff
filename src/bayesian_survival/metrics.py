from __future__ import annotations
import logging
from typing import Sequence
import numpy as np
from sksurv.metrics import concordance_index_censored
from sksurv.nonparametric import kaplan_meier_estimator
from sksurv.util import Surv

logger = logging.getLogger("bayesian_survival.metrics")


def to_structured(time: np.ndarray, event: np.ndarray) -> np.ndarray:
    """Build the sksurv structured outcome array.

    Args:
        time: Observed months, shape (n,)
        event: Event indicator (1 = churn observed), shape (n,)

    Returns:
        Structured array with dtype=[('event', bool), ('time', float)]
    """
    return Surv.from_arrays(event=np.asarray(event).astype(bool), time=np.asarray(time, dtype=float))


def compute_cindex(time: np.ndarray, event: np.ndarray, risk_scores: np.ndarray) -> float:
    """Harrell's concordance index of risk scores against censored outcomes.

    Args:
        time: Observed months, shape (n,)
        event: Event indicator, shape (n,)
        risk_scores: Higher means earlier expected churn, shape (n,)

    Returns:
        C-index between 0.5 (random) and 1.0 (perfect ordering); NaN when
        the outcomes admit no comparable pair (for example, no events)

    Example:
        >>> # risk = minus the posterior-mean log scale
        >>> compute_cindex(frame["time"], frame["event"], -eta_mean)
        0.781
    """
    y = to_structured(time, event)
    try:
        result = concordance_index_censored(y["event"], y["time"], np.asarray(risk_scores, dtype=float))
    except ValueError as e:
        logger.warning(f"C-index undefined: {e}")
        return float("nan")
    return float(result[0])  # (cindex, concordant, discordant, tied_risk, tied_time)


def kaplan_meier_at(time: np.ndarray, event: np.ndarray, horizons: Sequence[float]) -> np.ndarray:
    """Censoring-aware Kaplan-Meier survival estimate at each horizon.

    The step function is evaluated right-continuously; horizons before the
    first observed time get 1.0, horizons past the last observed time get
    the final value.

    Returns:
        Array of shape (len(horizons),) with values in [0, 1]
    """
    y = to_structured(time, event)
    km_times, km_surv = kaplan_meier_estimator(y["event"], y["time"])
    idx = np.searchsorted(km_times, np.asarray(horizons, dtype=float), side="right") - 1
    return np.where(idx >= 0, km_surv[np.clip(idx, 0, None)], 1.0)
