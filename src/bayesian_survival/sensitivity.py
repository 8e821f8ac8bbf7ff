"""Prior sensitivity analysis.

Fits the same data and formula under several prior configurations,
compares the resulting hazard ratios side by side and ranks the
configurations by WAIC and PSIS-LOO (deviance scale, lower is better).
A best configuration is only named when its LOO advantage over the
runner-up exceeds the standard error of the pointwise difference.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence
import logging
import arviz as az
import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from bayesian_survival.config import DiagnosticsConfig, ExecutionConfig, SamplingConfig
from bayesian_survival.data import ModelFormula, PreparedData
from bayesian_survival.diagnostics import diagnose
from bayesian_survival.draws import PosteriorDrawSet
from bayesian_survival.exceptions import PipelineWarning
from bayesian_survival.fitting import ModelFitOrchestrator
from bayesian_survival.likelihood import linear_predictor, pointwise_log_likelihood
from bayesian_survival.logging_config import ProgressLogger, log_performance
from bayesian_survival.priors import PriorConfiguration
from bayesian_survival.summary import hazard_ratio_table, summarize_posterior

logger = logging.getLogger("bayesian_survival.sensitivity")

INDISTINGUISHABLE = "indistinguishable"


@dataclass
class SensitivityResult:
    """Side-by-side comparison of prior configurations.

    Attributes:
        comparison: One row per coefficient, ``HR_mean[<prior>]`` columns
            and ``max_abs_diff`` (largest pairwise HR_mean difference)
        criteria: One row per prior with waic, waic_se, p_waic, loo, loo_se,
            p_loo, n_high_pareto_k, loo_rank; sorted by loo
        best: Best-supported prior name, or None when indistinguishable
        verdict: ``best`` name or "indistinguishable"
        loo_gap: LOO difference between runner-up and best
        gap_se: Standard error of the pointwise LOO difference
        summaries: Parameter summary per prior
        warnings: Structured warnings from the individual fits
    """
    comparison: pd.DataFrame
    criteria: pd.DataFrame
    best: Optional[str]
    verdict: str
    loo_gap: float
    gap_se: float
    summaries: Dict[str, pd.DataFrame] = field(default_factory=dict)
    warnings: List[PipelineWarning] = field(default_factory=list)


def pointwise_log_likelihood_for(draws: PosteriorDrawSet, data: PreparedData, formula: ModelFormula) -> np.ndarray:
    """Log-likelihood of every record under every draw, shape (chain, draw, record)."""
    frame = data.frame
    X = formula.design_matrix(frame)
    time = frame[formula.time_col].to_numpy(dtype=float)
    event = frame[formula.event_col].to_numpy(dtype=float)
    intercept, beta, shape = draws.components(formula.coefficient_names)
    ll = pointwise_log_likelihood(time, event, linear_predictor(intercept, beta, X), shape)
    return ll.reshape(draws.n_chains, draws.n_draws, -1)


def information_criteria(draws: PosteriorDrawSet, data: PreparedData, formula: ModelFormula) -> dict:
    """WAIC and PSIS-LOO on the deviance scale, with pointwise LOO values.

    Returns:
        Dict with waic, waic_se, p_waic, loo, loo_se, p_loo, n_high_pareto_k
        and loo_i (array of length n_records)
    """
    idata = draws.to_inference_data(log_likelihood=pointwise_log_likelihood_for(draws, data, formula))
    waic = az.waic(idata, scale="deviance")
    loo = az.loo(idata, scale="deviance", pointwise=True)
    return {
        "waic": float(waic["elpd_waic"]),
        "waic_se": float(waic["se"]),
        "p_waic": float(waic["p_waic"]),
        "loo": float(loo["elpd_loo"]),
        "loo_se": float(loo["se"]),
        "p_loo": float(loo["p_loo"]),
        "n_high_pareto_k": int((np.asarray(loo["pareto_k"]) > 0.7).sum()),
        "loo_i": np.asarray(loo["loo_i"], dtype=float),
    }


def _fit_and_score(
    orchestrator: ModelFitOrchestrator,
    name: str,
    priors: PriorConfiguration,
    data: PreparedData,
    formula: ModelFormula,
    sampling: SamplingConfig,
    diagnostics: DiagnosticsConfig,
) -> dict:
    """Fit, diagnose, summarize and score one configuration (runs in a worker)."""
    fit = orchestrator.fit(data, formula, priors, sampling)
    report = diagnose(fit.draws, diagnostics)
    summary = summarize_posterior(fit.draws, low_confidence=not report.converged)
    return {
        "name": name,
        "summary": summary,
        "hazard_ratios": hazard_ratio_table(summary),
        "criteria": information_criteria(fit.draws, data, formula),
        "from_cache": fit.from_cache,
        "duration_sec": fit.duration_sec,
        "warnings": report.warnings,
    }


def compare_priors(
    orchestrator: ModelFitOrchestrator,
    data: PreparedData,
    formula: ModelFormula,
    priors: Mapping[str, PriorConfiguration],
    sampling: SamplingConfig,
    parameters: Optional[Sequence[str]] = None,
    execution: Optional[ExecutionConfig] = None,
    diagnostics: Optional[DiagnosticsConfig] = None,
) -> SensitivityResult:
    """Fit once per prior configuration and compare hazard ratios and fit criteria.

    Configurations are independent, so they run in parallel through joblib
    when ``execution.is_parallel()``. A FitFailureError in any configuration
    aborts the comparison.

    Args:
        orchestrator: Fit orchestrator (sampler + cache)
        data: Prepared, filtered data
        formula: Model formula
        priors: Mapping of configuration name to PriorConfiguration (>= 2)
        sampling: Sampling settings shared by every fit
        parameters: Coefficients to show side by side (None = all)
        execution: Parallelization of the fits
        diagnostics: Convergence thresholds used to tag low-confidence fits

    Returns:
        SensitivityResult

    Example:
        >>> result = compare_priors(orchestrator, filtered.data, formula,
        ...     {"default": PriorConfiguration.default(), "tightened": PriorConfiguration.tightened()},
        ...     SamplingConfig())
        >>> result.comparison.loc["Contract[Two year]", "max_abs_diff"]
        0.004
    """
    if len(priors) < 2:
        raise ValueError(f"At least two prior configurations are required, got {len(priors)}")
    execution = execution or ExecutionConfig()
    diagnostics = diagnostics or DiagnosticsConfig()
    names = list(priors)

    if parameters is not None:
        unknown = sorted(set(parameters) - set(formula.coefficient_names))
        if unknown:
            raise ValueError(f"Unknown coefficients for comparison: {unknown}")

    if execution.is_parallel():
        logger.info(f"Fitting {len(names)} prior configurations in parallel (n_jobs={execution.n_jobs})")
        results = Parallel(n_jobs=min(execution.n_jobs, len(names)), verbose=execution.verbose, backend=execution.backend)(
            delayed(_fit_and_score)(orchestrator, name, priors[name], data, formula, sampling, diagnostics)
            for name in names
        )
    else:
        progress = ProgressLogger(logger, total=len(names), desc="Sensitivity fits")
        results = []
        for name in names:
            res = _fit_and_score(orchestrator, name, priors[name], data, formula, sampling, diagnostics)
            results.append(res)
            progress.update(1, metrics={"prior": name, "loo": res["criteria"]["loo"]})

    for res in results:
        log_performance(
            logger,
            f"Sensitivity fit '{res['name']}'",
            duration_sec=round(res["duration_sec"], 2),
            from_cache=res["from_cache"],
            loo=round(res["criteria"]["loo"], 2),
        )

    comparison = _hazard_ratio_comparison(results, parameters)
    criteria = pd.DataFrame([
        {"prior": r["name"], **{k: v for k, v in r["criteria"].items() if k != "loo_i"}, "from_cache": r["from_cache"]}
        for r in results
    ]).sort_values("loo", kind="stable").reset_index(drop=True)
    criteria["loo_rank"] = np.arange(1, len(criteria) + 1)

    by_name = {r["name"]: r for r in results}
    first, second = criteria["prior"].iloc[0], criteria["prior"].iloc[1]
    diff = by_name[second]["criteria"]["loo_i"] - by_name[first]["criteria"]["loo_i"]
    gap = float(diff.sum())
    gap_se = float(np.sqrt(len(diff) * np.var(diff)))
    best = first if gap > gap_se else None
    verdict = best if best is not None else INDISTINGUISHABLE
    logger.info(
        f"Prior comparison: best LOO '{first}', gap to '{second}'={gap:.2f} (SE {gap_se:.2f}) -> {verdict}"
    )

    return SensitivityResult(
        comparison=comparison,
        criteria=criteria,
        best=best,
        verdict=verdict,
        loo_gap=gap,
        gap_se=gap_se,
        summaries={r["name"]: r["summary"] for r in results},
        warnings=[w for r in results for w in r["warnings"]],
    )


def _hazard_ratio_comparison(results: List[dict], parameters: Optional[Sequence[str]]) -> pd.DataFrame:
    columns = {}
    for res in results:
        hr = res["hazard_ratios"].set_index("parameter")
        columns[f"HR_mean[{res['name']}]"] = hr["HR_mean"]
        columns[f"HR_lower[{res['name']}]"] = hr["HR_lower"]
        columns[f"HR_upper[{res['name']}]"] = hr["HR_upper"]
    wide = pd.DataFrame(columns)
    if parameters is not None:
        wide = wide.loc[list(parameters)]
    means = wide[[f"HR_mean[{r['name']}]" for r in results]]
    wide["max_abs_diff"] = means.max(axis=1) - means.min(axis=1)
    wide.index.name = "parameter"
    return wide
