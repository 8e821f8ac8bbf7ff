"""Weibull survival likelihood with right-censoring.

Parameterization (accelerated failure time): for record i with covariates
x_i the Weibull scale is ``lambda_i = exp(eta_i)``, ``eta_i = Intercept +
x_i . beta``, and ``k`` is the shared shape. Then

    S(t) = exp(-(t / lambda)^k)
    log f(t) = log k + (k - 1) log t - k eta - (t / lambda)^k

Observed events contribute ``log f(t)``, right-censored records ``log S(t)``.
A positive coefficient lengthens survival time and therefore lowers the
hazard.
"""
from __future__ import annotations
from typing import Tuple
import numpy as np

from bayesian_survival.priors import PriorConfiguration


def linear_predictor(intercept: np.ndarray, beta: np.ndarray, X: np.ndarray) -> np.ndarray:
    """Log-scale per draw and record.

    Args:
        intercept: Shape (n_draws,)
        beta: Shape (n_draws, n_coefficients)
        X: Design matrix, shape (n_records, n_coefficients)

    Returns:
        Array of shape (n_draws, n_records)
    """
    return np.asarray(intercept, dtype=float)[:, None] + np.asarray(beta, dtype=float) @ X.T


def pointwise_log_likelihood(
    time: np.ndarray, event: np.ndarray, eta: np.ndarray, shape: np.ndarray
) -> np.ndarray:
    """Log-likelihood contribution of every record under every draw.

    Args:
        time: Observed times, shape (n_records,), strictly positive
        event: Event indicator, shape (n_records,)
        eta: Linear predictor, shape (n_draws, n_records)
        shape: Weibull shape per draw, shape (n_draws,)

    Returns:
        Array of shape (n_draws, n_records)
    """
    log_t = np.log(np.asarray(time, dtype=float))[None, :]
    delta = np.asarray(event, dtype=float)[None, :]
    k = np.asarray(shape, dtype=float)[:, None]
    u = np.exp(k * (log_t - eta))
    return delta * (np.log(k) + (k - 1.0) * log_t - k * eta) - u


def survival_probability(t: np.ndarray, eta: np.ndarray, shape: np.ndarray) -> np.ndarray:
    """S(t | eta, k) with broadcasting over draws and times."""
    with np.errstate(over="ignore"):
        return np.exp(-np.exp(shape * (np.log(t) - eta)))


def simulate_times(eta: np.ndarray, shape: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """Draw survival times T = lambda * W, W ~ Weibull(k), elementwise.

    Args:
        eta: Linear predictor, any shape
        shape: Weibull shape, broadcastable to eta
        rng: Seeded generator

    Returns:
        Array of simulated times with the shape of eta
    """
    k = np.broadcast_to(np.asarray(shape, dtype=float), np.shape(eta))
    with np.errstate(over="ignore"):
        return np.exp(eta) * rng.weibull(k)


def log_posterior(
    theta: np.ndarray,
    X: np.ndarray,
    time: np.ndarray,
    event: np.ndarray,
    priors: PriorConfiguration,
) -> Tuple[float, np.ndarray, np.ndarray]:
    """Unnormalized log posterior with analytic gradient and Hessian.

    ``theta = [Intercept, beta_1..beta_p, log k]``. The shape prior is
    defined on k; the log-Jacobian of ``k = exp(rho)`` is included.

    Returns:
        Tuple of (log posterior, gradient (p + 2,), Hessian (p + 2, p + 2))
    """
    p = X.shape[1]
    intercept, beta, rho = theta[0], theta[1:p + 1], theta[p + 1]
    k = np.exp(rho)
    log_t = np.log(time)
    delta = event.astype(float)

    eta = intercept + X @ beta
    r = log_t - eta
    u = np.exp(k * r)
    ll = float(np.sum(delta * (rho + (k - 1.0) * log_t - k * eta) - u))

    # derivatives per record, with respect to eta and rho
    g_eta = k * (u - delta)
    g_rho = delta * (1.0 + k * r) - k * u * r
    h_eta_eta = -(k**2) * u
    h_eta_rho = k * (u - delta) + k**2 * r * u
    h_rho_rho = delta * k * r - k * u * r - k**2 * r**2 * u

    Z = np.column_stack([np.ones(len(time)), X])
    grad = np.empty(p + 2)
    grad[: p + 1] = Z.T @ g_eta
    grad[p + 1] = g_rho.sum()

    hess = np.empty((p + 2, p + 2))
    hess[: p + 1, : p + 1] = (Z * h_eta_eta[:, None]).T @ Z
    hess[: p + 1, p + 1] = Z.T @ h_eta_rho
    hess[p + 1, : p + 1] = hess[: p + 1, p + 1]
    hess[p + 1, p + 1] = h_rho_rho.sum()

    lp_int, d1_int, d2_int = priors.intercept.log_density(intercept)
    lp_beta, d1_beta, d2_beta = priors.coefficient.log_density(beta)
    lp_k, d1_k, d2_k = priors.shape.log_density(k)

    lp = ll + float(lp_int) + float(np.sum(lp_beta)) + float(lp_k) + rho
    grad[0] += d1_int
    grad[1: p + 1] += d1_beta
    grad[p + 1] += d1_k * k + 1.0
    hess[0, 0] += d2_int
    hess[np.arange(1, p + 1), np.arange(1, p + 1)] += d2_beta
    hess[p + 1, p + 1] += d2_k * k**2 + d1_k * k
    return lp, grad, hess
