from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import pandas as pd

from bayesian_survival.cache import ArtifactCache
from bayesian_survival.checks import PredictiveCheckReport, posterior_predictive_check
from bayesian_survival.config import SurvivalFrameworkConfig
from bayesian_survival.data import ModelFormula, PreparedData, coerce_total_charges, load_data, prepare_data
from bayesian_survival.diagnostics import ConvergenceReport, diagnose
from bayesian_survival.exceptions import PipelineWarning, warnings_frame
from bayesian_survival.filtering import CoxDevianceResiduals, FilterResult, filter_influential
from bayesian_survival.fitting import FitResult, ModelFitOrchestrator
from bayesian_survival.logging_config import capture_warnings, log_performance
from bayesian_survival.predict import PredictionResult, predict_survival, reference_profiles
from bayesian_survival.priors import PriorConfiguration
from bayesian_survival.samplers import BasePosteriorSampler, build_sampler
from bayesian_survival.sensitivity import SensitivityResult, compare_priors
from bayesian_survival.summary import hazard_ratio_table, summarize_posterior
from bayesian_survival.timing import Timer
from bayesian_survival.tracking import safe_log_artifact, safe_log_dict, safe_log_metrics, safe_log_params, start_run
from bayesian_survival.utils import get_output_paths, save_frame


@dataclass
class AnalysisResult:
    """Everything produced by one analysis run.

    Attributes:
        prepared: Prepared data before influential-observation filtering
        filtering: Filter report; ``filtering.data`` is what the model saw
        fit: Main fit (draws, cache status, duration)
        convergence: Convergence diagnostics of the main fit
        summary: Parameter summary of the main fit
        hazard_ratios: Hazard ratios of the main fit
        predictive_check: Posterior predictive calibration report
        sensitivity: Prior comparison, or None when skipped
        predictions: Survival predictions for the requested profiles
        warnings: All structured warnings, in pipeline order
        output_files: Name -> path of every CSV written
    """
    prepared: PreparedData
    filtering: FilterResult
    fit: FitResult
    convergence: ConvergenceReport
    summary: pd.DataFrame
    hazard_ratios: pd.DataFrame
    predictive_check: PredictiveCheckReport
    sensitivity: Optional[SensitivityResult]
    predictions: PredictionResult
    warnings: List[PipelineWarning] = field(default_factory=list)
    output_files: Dict[str, str] = field(default_factory=dict)


def run_analysis(
    file_path: str,
    config: Optional[SurvivalFrameworkConfig] = None,
    sampler: Optional[BasePosteriorSampler] = None,
    profiles: Optional[pd.DataFrame] = None,
    run_sensitivity: bool = True,
    base_dir: str = "data/outputs",
    logger: Optional[logging.Logger] = None,
) -> AnalysisResult:
    """Run the full Bayesian survival analysis on a customer file.

    Stages:
    1. Load and prepare data (event encoding, zero-tenure removal, scaling)
    2. Remove influential observations (Cox deviance residuals)
    3. Fit the Weibull model (cached by data, formula, priors and sampling)
    4. Convergence diagnostics, posterior summary and hazard ratios
    5. Posterior predictive calibration check
    6. Prior sensitivity comparison (optional)
    7. Survival predictions for new profiles
    8. Write CSV outputs and log the run to MLflow

    Validation and fit failures raise and abort the run. Convergence,
    calibration and extrapolation issues are collected in
    ``AnalysisResult.warnings`` and written to ``warnings.csv``.

    Args:
        file_path: Input CSV or pickle with the telco churn schema
        config: Master configuration; defaults to ``for_run_type("sample")``
        sampler: Sampling service; defaults to ``build_sampler(config.sampler)``
        profiles: New profiles to score; defaults to ``reference_profiles()``
            at the median total charges of the input
        run_sensitivity: Whether to run the prior comparison
        base_dir: Root of all outputs
        logger: Logger; defaults to ``bayesian_survival.pipeline``

    Returns:
        AnalysisResult

    Example:
        >>> cfg = SurvivalFrameworkConfig.for_run_type("sample")
        >>> result = run_analysis("data/inputs/sample/telco_churn.csv", cfg)
        >>> result.hazard_ratios.head()
    """
    logger = logger or logging.getLogger("bayesian_survival.pipeline")
    config = config or SurvivalFrameworkConfig.for_run_type("sample")
    run_type = config.run_type
    analysis = config.analysis
    paths = get_output_paths(run_type, base=base_dir)
    formula = ModelFormula.telco()

    with Timer(logger, "Data preparation"):
        raw = load_data(file_path, run_type=run_type)
        prepared = prepare_data(raw, formula, config.data)

    with Timer(logger, "Influential-observation filter"):
        filtered = filter_influential(
            prepared,
            formula,
            threshold=config.data.residual_threshold,
            residual_model=CoxDevianceResiduals(penalizer=config.data.residual_penalizer),
        )
    data = filtered.data

    sampler = sampler or build_sampler(config.sampler)
    cache = ArtifactCache(paths["models"]) if config.cache_enabled else None
    orchestrator = ModelFitOrchestrator(sampler, cache)
    priors = PriorConfiguration.preset(config.prior)

    collected: List[PipelineWarning] = []
    with capture_warnings(logger) as warning_logger:
        with Timer(logger, f"Posterior fit ({sampler.name})"):
            fit = orchestrator.fit(data, formula, priors, config.sampling)

        convergence = diagnose(fit.draws, config.diagnostics)
        collected.extend(convergence.warnings)
        summary = summarize_posterior(fit.draws, low_confidence=not convergence.converged)
        hazard_ratios = hazard_ratio_table(summary)

        with Timer(logger, "Posterior predictive check"):
            ppc = posterior_predictive_check(
                fit.draws,
                data,
                formula,
                horizons=analysis.check_horizons,
                n_replicates=analysis.n_replicates,
                seed=config.sampling.seed,
                tolerance=analysis.calibration_tolerance,
                bins=analysis.density_bins,
            )
        collected.extend(ppc.warnings)

        sensitivity = None
        if run_sensitivity and len(analysis.sensitivity_priors) >= 2:
            with Timer(logger, "Prior sensitivity analysis"):
                sensitivity = compare_priors(
                    orchestrator,
                    data,
                    formula,
                    {name: PriorConfiguration.preset(name) for name in analysis.sensitivity_priors},
                    config.sampling,
                    parameters=analysis.sensitivity_parameters,
                    execution=config.execution,
                    diagnostics=config.diagnostics,
                )
            collected.extend(sensitivity.warnings)

        if profiles is None:
            profiles = reference_profiles(total_charges=float(coerce_total_charges(raw["TotalCharges"]).median()))
        with Timer(logger, "Survival prediction"):
            predictions = predict_survival(
                fit.draws,
                profiles,
                formula,
                prepared.scaling,
                horizons=analysis.prediction_horizons,
                n_draws=analysis.n_prediction_draws,
                seed=config.sampling.seed,
                max_observed_time=data.max_time,
                extrapolation_factor=analysis.extrapolation_factor,
                id_column=config.data.id_column,
            )
        collected.extend(predictions.warnings)

    if warning_logger.summary():
        logger.info(f"Library warnings during analysis: {warning_logger.summary()}")

    result = AnalysisResult(
        prepared=prepared,
        filtering=filtered,
        fit=fit,
        convergence=convergence,
        summary=summary,
        hazard_ratios=hazard_ratios,
        predictive_check=ppc,
        sensitivity=sensitivity,
        predictions=predictions,
        warnings=collected,
    )
    result.output_files = write_outputs(result, paths["artifacts"], paths["predictions"])
    logger.info(f"Outputs written to {paths['base_dir']}")

    if config.tracking_enabled:
        _track(result, config, file_path, paths["mlruns"], logger)

    log_performance(
        logger,
        f"[{run_type.upper()}] Analysis complete",
        n_records=data.n_records,
        converged=convergence.converged,
        n_warnings=len(collected),
    )
    return result


def write_outputs(result: AnalysisResult, artifacts_dir: str, predictions_dir: str) -> Dict[str, str]:
    """Persist every result table as CSV and return name -> path."""
    files = {
        "parameter_summary": save_frame(result.summary, artifacts_dir, "parameter_summary"),
        "hazard_ratios": save_frame(result.hazard_ratios, artifacts_dir, "hazard_ratios"),
        "convergence": save_frame(result.convergence.table, artifacts_dir, "convergence"),
        "ppc_horizons": save_frame(result.predictive_check.horizons, artifacts_dir, "ppc_horizons"),
        "ppc_density": save_frame(result.predictive_check.density, artifacts_dir, "ppc_density"),
        "residuals": save_frame(
            result.filtering.residuals.rename("deviance_residual").to_frame()
            .assign(removed=lambda d: d.index.isin(result.filtering.removed_index)),
            artifacts_dir, "deviance_residuals", index=True,
        ),
        "predictions": save_frame(result.predictions.wide(), predictions_dir, "survival_predictions"),
        "prediction_intervals": save_frame(result.predictions.survival, predictions_dir, "survival_intervals"),
    }
    if result.sensitivity is not None:
        files["sensitivity_comparison"] = save_frame(
            result.sensitivity.comparison, artifacts_dir, "sensitivity_comparison", index=True
        )
        files["sensitivity_criteria"] = save_frame(result.sensitivity.criteria, artifacts_dir, "sensitivity_criteria")
    if result.warnings:
        files["warnings"] = save_frame(warnings_frame(result.warnings), artifacts_dir, "warnings")
    return files


def _track(result: AnalysisResult, config: SurvivalFrameworkConfig, file_path: str, mlruns: str, logger) -> None:
    """Log parameters, metrics and output files of a run to MLflow."""
    try:
        run = start_run(f"bayesian_survival_{config.run_type}", tracking_uri=mlruns,
                        tags={"sampler": result.fit.draws.sampler, "prior": config.prior})
    except Exception as e:
        logger.warning(f"MLflow unavailable, results saved to CSV only: {e}")
        return

    with run:
        safe_log_params({
            "run_type": config.run_type,
            "input_file": file_path,
            "sampler": result.fit.draws.sampler,
            "prior": config.prior,
            "chains": config.sampling.chains,
            "warmup": config.sampling.warmup,
            "iterations": config.sampling.iterations,
            "seed": config.sampling.seed,
            "residual_threshold": config.data.residual_threshold,
            "from_cache": result.fit.from_cache,
        }, logger=logger)
        metrics = {
            "n_input": result.prepared.n_input,
            "n_zero_time_removed": result.prepared.n_zero_time_removed,
            "n_influential_removed": result.filtering.n_removed,
            "n_records": result.filtering.data.n_records,
            "fit_duration_sec": result.fit.duration_sec,
            **result.convergence.to_metrics(),
            **result.predictive_check.to_metrics(),
            "n_warnings": len(result.warnings),
        }
        if result.sensitivity is not None:
            for _, row in result.sensitivity.criteria.iterrows():
                metrics[f"loo_{row['prior']}"] = row["loo"]
                metrics[f"waic_{row['prior']}"] = row["waic"]
        safe_log_metrics(metrics, logger=logger)
        safe_log_dict("config", config.to_dict(), logger=logger)
        for path in result.output_files.values():
            safe_log_artifact(path, logger=logger)
