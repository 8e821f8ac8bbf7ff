"""Posterior sampling services for the Weibull survival model.

Every service implements the same narrow contract:
``sample(formula, data, priors, sampling) -> PosteriorDrawSet`` or raise
``FitFailureError``. The orchestrator treats the call as opaque and
blocking; chains run inside the service.

- PyMCWeibullSampler: NUTS (Hamiltonian Monte Carlo) via PyMC
- LaplaceWeibullSampler: Gaussian approximation at the posterior mode,
  fast enough for sample runs and unit tests
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict
import logging
import numpy as np
import pandas as pd
import pymc as pm
from pymc.exceptions import SamplingError
from scipy import optimize

from bayesian_survival.config import SamplingConfig
from bayesian_survival.data import ModelFormula
from bayesian_survival.draws import INTERCEPT, SHAPE, PosteriorDrawSet
from bayesian_survival.exceptions import FitFailureError
from bayesian_survival.likelihood import log_posterior
from bayesian_survival.priors import PriorConfiguration, PriorSpec

logger = logging.getLogger("bayesian_survival.samplers")


class BasePosteriorSampler:
    """Base class for posterior sampling services with a unified interface.

    Attributes:
        name: String identifier for the sampler
    """

    name: str = "base"

    def sample(
        self,
        formula: ModelFormula,
        data: pd.DataFrame,
        priors: PriorConfiguration,
        sampling: SamplingConfig,
    ) -> PosteriorDrawSet:
        """Draw from the posterior of the Weibull model.

        Args:
            formula: Covariate formula; fixes response, censoring and design
            data: Prepared, filtered modeling frame
            priors: Prior configuration
            sampling: Chains, warmup, iterations, cores and seed

        Returns:
            PosteriorDrawSet merged across chains, chain identity retained

        Raises:
            FitFailureError: If no usable draw set could be produced
        """
        raise NotImplementedError

    @staticmethod
    def _arrays(formula: ModelFormula, data: pd.DataFrame):
        X = formula.design_matrix(data)
        time = data[formula.time_col].to_numpy(dtype=float)
        event = data[formula.event_col].to_numpy(dtype=float)
        if (time <= 0).any():
            raise FitFailureError("Survival times must be strictly positive", context={"n_nonpositive": int((time <= 0).sum())})
        return X, time, event

    @staticmethod
    def _parameter_names(formula: ModelFormula) -> tuple:
        return (INTERCEPT,) + formula.coefficient_names + (SHAPE,)


_PYMC_FAMILIES = {
    "normal": (pm.Normal, lambda s: {"mu": s.location, "sigma": s.scale}),
    "student_t": (pm.StudentT, lambda s: {"nu": s.df, "mu": s.location, "sigma": s.scale}),
    "gamma": (pm.Gamma, lambda s: {"alpha": s.location, "beta": s.scale}),
    "half_normal": (pm.HalfNormal, lambda s: {"sigma": s.scale}),
    "lognormal": (pm.LogNormal, lambda s: {"mu": s.location, "sigma": s.scale}),
}


def _pymc_prior(name: str, spec: PriorSpec, size: int | None = None):
    """Register a prior variable on the active PyMC model."""
    dist_cls, params = _PYMC_FAMILIES[spec.family]
    kwargs = params(spec)
    if size is not None:
        kwargs["shape"] = size
    if spec.lower is not None:
        return pm.Truncated(name, dist_cls.dist(**kwargs), lower=spec.lower)
    return dist_cls(name, **kwargs)


@dataclass
class PyMCWeibullSampler(BasePosteriorSampler):
    """NUTS sampler for the right-censored Weibull model using PyMC.

    The censored likelihood is added as a ``pm.Potential``: events
    contribute the Weibull log density, censored records the log survival
    function.

    Attributes:
        name: Sampler identifier, "pymc"
        target_accept: NUTS target acceptance rate

    Example:
        >>> sampler = PyMCWeibullSampler()
        >>> draws = sampler.sample(formula, prepared.frame, priors, SamplingConfig())
    """
    name: str = "pymc"
    target_accept: float = 0.9

    def build_model(self, X: np.ndarray, time: np.ndarray, event: np.ndarray, priors: PriorConfiguration) -> pm.Model:
        log_t = np.log(time)
        with pm.Model() as model:
            intercept = _pymc_prior(INTERCEPT, priors.intercept)
            beta = _pymc_prior("beta", priors.coefficient, size=X.shape[1])
            shape = _pymc_prior(SHAPE, priors.shape)
            eta = intercept + pm.math.dot(X, beta)
            u = pm.math.exp(shape * (log_t - eta))
            pm.Potential(
                "log_likelihood",
                pm.math.sum(event * (pm.math.log(shape) + (shape - 1.0) * log_t - shape * eta) - u),
            )
        return model

    def sample(self, formula, data, priors, sampling):
        X, time, event = self._arrays(formula, data)
        model = self.build_model(X, time, event, priors)
        context = {"sampler": self.name, **sampling.to_dict()}

        try:
            with model:
                idata = pm.sample(
                    draws=sampling.draws,
                    tune=sampling.warmup,
                    chains=sampling.chains,
                    cores=sampling.cores,
                    random_seed=sampling.seed,
                    target_accept=self.target_accept,
                    initvals={INTERCEPT: float(np.log(time.mean()))},
                    progressbar=False,
                    compute_convergence_checks=False,
                    return_inferencedata=True,
                )
        except SamplingError as e:
            raise FitFailureError(f"Chain initialization failed: {e}", context=context) from e
        except (FloatingPointError, ValueError) as e:
            raise FitFailureError(f"Sampling failed: {e}", context=context) from e

        divergences = idata.sample_stats["diverging"].values.astype(bool)
        rates = divergences.mean(axis=1)
        failed = [int(c) for c in np.flatnonzero(rates > sampling.max_divergence_rate)]
        if failed:
            raise FitFailureError(
                f"Divergent transitions exceed tolerance {sampling.max_divergence_rate:.3f}",
                failed_chains=failed,
                context={**context, "divergence_rates": rates.round(4).tolist()},
            )

        post = idata.posterior
        values = np.concatenate(
            [
                post[INTERCEPT].values[:, :, None],
                post["beta"].values,
                post[SHAPE].values[:, :, None],
            ],
            axis=2,
        )
        return PosteriorDrawSet(
            values=values,
            parameter_names=self._parameter_names(formula),
            sampler=self.name,
            metadata={"n_divergent": int(divergences.sum()), **sampling.to_dict()},
        )


@dataclass
class LaplaceWeibullSampler(BasePosteriorSampler):
    """Gaussian approximation of the posterior around its mode.

    Finds the maximum a posteriori estimate with a trust-region Newton
    method (analytic gradient and Hessian), then draws independent
    multivariate-normal samples per chain. The shape is sampled on the
    log scale, so every draw has k > 0. Chain c uses the c-th child of
    ``SeedSequence(seed)``; chains are reproducible independently.

    Attributes:
        name: Sampler identifier, "laplace"
        max_iter: Iteration cap for the optimizer
        gtol: Gradient-norm tolerance for the optimizer
    """
    name: str = "laplace"
    max_iter: int = 500
    gtol: float = 1e-6

    def find_mode(self, X, time, event, priors) -> Dict:
        p = X.shape[1]
        theta0 = np.zeros(p + 2)
        theta0[0] = np.log(time.mean())

        def objective(theta):
            lp, grad, _ = log_posterior(theta, X, time, event, priors)
            return -lp, -grad

        def hessian(theta):
            return -log_posterior(theta, X, time, event, priors)[2]

        with np.errstate(over="ignore", invalid="ignore"):
            res = optimize.minimize(
                objective,
                theta0,
                jac=True,
                hess=hessian,
                method="trust-exact",
                options={"maxiter": self.max_iter, "gtol": self.gtol},
            )
        return {"theta": res.x, "success": bool(res.success), "message": str(res.message), "nit": int(res.nit)}

    def sample(self, formula, data, priors, sampling):
        X, time, event = self._arrays(formula, data)
        context = {"sampler": self.name, **sampling.to_dict()}

        mode = self.find_mode(X, time, event, priors)
        theta = mode["theta"]
        if not np.all(np.isfinite(theta)):
            raise FitFailureError(f"Posterior mode not found: {mode['message']}", context=context)

        _, grad, hess = log_posterior(theta, X, time, event, priors)
        # trust-exact can stop short of gtol at machine precision; accept a flat gradient
        if not mode["success"] and np.max(np.abs(grad)) > 1e-3:
            raise FitFailureError(
                f"Posterior mode not found: {mode['message']}",
                context={**context, "max_abs_gradient": float(np.max(np.abs(grad)))},
            )

        neg_hess = -hess
        try:
            cov = np.linalg.inv(neg_hess)
            chol = np.linalg.cholesky((cov + cov.T) / 2)
        except np.linalg.LinAlgError as e:
            raise FitFailureError("Posterior curvature is not positive definite", context=context) from e

        children = np.random.SeedSequence(sampling.seed).spawn(sampling.chains)
        chains = []
        for child in children:
            rng = np.random.default_rng(child)
            z = rng.standard_normal((sampling.draws, theta.size))
            chains.append(theta + z @ chol.T)
        values = np.stack(chains)
        values[:, :, -1] = np.exp(values[:, :, -1])

        logger.debug(f"Laplace mode found in {mode['nit']} iterations")
        return PosteriorDrawSet(
            values=values,
            parameter_names=self._parameter_names(formula),
            sampler=self.name,
            metadata={"optimizer_iterations": mode["nit"], **sampling.to_dict()},
        )


def build_sampler(name: str) -> BasePosteriorSampler:
    """Construct a sampling service by name ("pymc" or "laplace")."""
    samplers = {"pymc": PyMCWeibullSampler, "laplace": LaplaceWeibullSampler}
    if name not in samplers:
        raise ValueError(f"Unknown sampler '{name}'. Available: {sorted(samplers)}")
    return samplers[name]()
