"""Pytest configuration and shared fixtures for bayesian_survival tests.

Test data is synthetic telco churn data drawn from a known Weibull
accelerated-failure-time model, so effect directions and magnitudes are
known in advance. Fits use the Laplace sampler to keep the suite fast.
"""
import numpy as np
import pandas as pd
import pytest

from bayesian_survival.config import SamplingConfig
from bayesian_survival.data import ModelFormula, prepare_data
from bayesian_survival.draws import INTERCEPT, SHAPE, PosteriorDrawSet
from bayesian_survival.fitting import ModelFitOrchestrator
from bayesian_survival.priors import PriorConfiguration
from bayesian_survival.samplers import LaplaceWeibullSampler

TRUE_INTERCEPT = 3.0
TRUE_SHAPE = 1.2
# log-scale effects; positive lengthens survival
TRUE_EFFECTS = {
    "Partner[Yes]": 0.3,
    "InternetService[Fiber optic]": -0.5,
    "OnlineSecurity[Yes]": 0.4,
    "DeviceProtection[Yes]": 0.2,
    "Contract[One year]": 1.0,
    "Contract[Two year]": 2.0,
    "PaymentMethod[Electronic check]": -0.5,
}


def make_telco_frame(n: int = 1500, seed: int = 7) -> pd.DataFrame:
    """Raw records in the telco churn schema with administrative censoring at 72 months."""
    rng = np.random.default_rng(seed)
    internet = rng.choice(["DSL", "Fiber optic", "No"], size=n, p=[0.35, 0.45, 0.20])

    def addon():
        return np.where(internet == "No", "No internet service", rng.choice(["No", "Yes"], size=n))

    df = pd.DataFrame({
        "customerID": [f"{i:04d}-SYN" for i in range(n)],
        "Partner": rng.choice(["No", "Yes"], size=n),
        "InternetService": internet,
        "OnlineSecurity": addon(),
        "DeviceProtection": addon(),
        "StreamingTV": addon(),
        "StreamingMovies": addon(),
        "Contract": rng.choice(["Month-to-month", "One year", "Two year"], size=n, p=[0.55, 0.2, 0.25]),
        "PaperlessBilling": rng.choice(["No", "Yes"], size=n),
        "PaymentMethod": rng.choice(
            ["Bank transfer (automatic)", "Credit card (automatic)", "Electronic check", "Mailed check"], size=n
        ),
    })

    eta = np.full(n, TRUE_INTERCEPT)
    for name, effect in TRUE_EFFECTS.items():
        col, level = name[:-1].split("[")
        eta += effect * (df[col] == level).to_numpy()
    event_time = np.exp(eta) * rng.weibull(TRUE_SHAPE, size=n)
    censor_time = rng.uniform(1.0, 73.0, size=n)

    observed = np.minimum(event_time, censor_time)
    tenure = np.floor(observed).astype(int)
    monthly = rng.uniform(20.0, 110.0, size=n).round(2)
    df["tenure"] = tenure
    df["Churn"] = np.where(event_time <= censor_time, "Yes", "No")
    # drawn independently of tenure so the generating effects stay identifiable
    months_billed = rng.integers(1, 73, size=n)
    df["TotalCharges"] = [f"{b * m:.2f}" if t > 0 else " " for t, b, m in zip(tenure, months_billed, monthly)]
    return df


def make_draws(formula, effects=None, intercept=TRUE_INTERCEPT, shape=TRUE_SHAPE,
               n_chains=2, n_draws=500, jitter=0.02, seed=0) -> PosteriorDrawSet:
    """Draw set concentrated around given parameter values (unlisted coefficients are 0)."""
    effects = TRUE_EFFECTS if effects is None else effects
    names = (INTERCEPT,) + formula.coefficient_names + (SHAPE,)
    center = np.array([intercept] + [effects.get(n, 0.0) for n in formula.coefficient_names] + [shape])
    rng = np.random.default_rng(seed)
    values = center + jitter * rng.standard_normal((n_chains, n_draws, len(names)))
    values[:, :, -1] = np.abs(values[:, :, -1])
    return PosteriorDrawSet(values=values, parameter_names=names, sampler="fixture")


@pytest.fixture(scope="session")
def formula():
    return ModelFormula.telco()


@pytest.fixture(scope="session")
def telco_frame():
    """Raw synthetic telco records (never mutate; copy first)."""
    return make_telco_frame()


@pytest.fixture(scope="session")
def telco_csv(telco_frame, tmp_path_factory):
    path = tmp_path_factory.mktemp("inputs") / "telco_churn.csv"
    telco_frame.to_csv(path, index=False)
    return path


@pytest.fixture(scope="session")
def prepared(telco_frame, formula):
    return prepare_data(telco_frame, formula)


@pytest.fixture(scope="session")
def true_draws(formula):
    """Draws centred on the generating parameters (TotalCharges effect 0)."""
    return make_draws(formula)


@pytest.fixture
def draws_factory(formula):
    def factory(**kwargs):
        return make_draws(formula, **kwargs)
    return factory


@pytest.fixture(scope="session")
def fast_sampling():
    return SamplingConfig(chains=2, warmup=0, iterations=500, cores=1, seed=42)


@pytest.fixture(scope="session")
def laplace_sampler():
    return LaplaceWeibullSampler()


@pytest.fixture(scope="session")
def laplace_fit(prepared, formula, laplace_sampler, fast_sampling):
    """Laplace fit of the default-prior model on the prepared synthetic data."""
    return ModelFitOrchestrator(laplace_sampler).fit(prepared, formula, PriorConfiguration.default(), fast_sampling)


@pytest.fixture
def temp_cache_dir(tmp_path):
    cache_dir = tmp_path / "models"
    cache_dir.mkdir(exist_ok=True)
    return cache_dir


@pytest.fixture(autouse=True)
def cleanup_mlflow_runs():
    """End dangling runs and reset the tracking URI after each test."""
    import mlflow
    yield
    while mlflow.active_run() is not None:
        mlflow.end_run()
    mlflow.set_tracking_uri(None)
