"""Main entry point for the Bayesian survival analysis.

Fits the Weibull survival model to customer tenure data, checks and
summarizes the posterior, compares priors and predicts survival for new
profiles. Supports sample (development) and production runs, CSV or
pickle input.

Can be used as CLI or imported as a function.
"""
from bayesian_survival.pipeline import run_analysis
from bayesian_survival.config import SurvivalFrameworkConfig, create_execution_config
from bayesian_survival.data import RunType
from bayesian_survival.exceptions import DataValidationError, FitFailureError
from bayesian_survival.logging_config import setup_logging
from bayesian_survival.priors import PRESET_NAMES
from dataclasses import replace
import os
import argparse
import logging
from typing import Optional


def run_pipeline(
    input_file: str = "data/inputs/sample/telco_churn.csv",
    run_type: RunType = "sample",
    config: Optional[SurvivalFrameworkConfig] = None,
    run_sensitivity: bool = True,
    log_level: int = logging.INFO,
) -> int:
    """Run the Bayesian survival analysis.

    Args:
        input_file: Path to input file (CSV or pickle). Relative paths are
            resolved against the repository root
        run_type: "sample" for development, "production" for full data
        config: Full configuration; defaults to ``for_run_type(run_type)``
        run_sensitivity: Whether to run the prior comparison
        log_level: Console log level

    Returns:
        Exit code (0 success, 1 missing input, 2 invalid data, 3 fit failure)

    Example:
        >>> from main import run_pipeline
        >>> run_pipeline("data/inputs/sample/telco_churn.csv", run_type="sample")
        0
    """
    if not os.path.isabs(input_file):
        repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        input_file = os.path.join(repo_root, input_file)

    logger = setup_logging(run_type=run_type, log_level=log_level)

    if not os.path.exists(input_file):
        logger.error(f"Input file not found: {input_file}")
        return 1

    config = config or SurvivalFrameworkConfig.for_run_type(run_type)

    logger.info("=" * 70)
    logger.info(f"BAYESIAN SURVIVAL ANALYSIS - {run_type.upper()} RUN")
    logger.info("=" * 70)
    logger.info(f"Input file: {input_file}")
    logger.info(f"Sampler:    {config.sampler} (prior={config.prior})")
    logger.info(f"Sampling:   {config.sampling}")
    logger.info(f"Execution:  {config.execution}")

    try:
        result = run_analysis(input_file, config, run_sensitivity=run_sensitivity, logger=logger)
    except DataValidationError as e:
        logger.error(f"Input data rejected: {e}")
        return 2
    except FitFailureError as e:
        logger.error(f"Model fit failed: {e} | context={e.context}")
        return 3

    for warning in result.warnings:
        logger.warning(f"[{warning.kind.upper()}] {warning.message}")
    if result.sensitivity is not None:
        logger.info(f"Prior comparison verdict: {result.sensitivity.verdict}")
    logger.info(f"{run_type.upper()} RUN COMPLETED ({len(result.warnings)} warnings)")
    return 0


def main():
    """Main execution function with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Bayesian Weibull survival analysis of customer churn",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Quick sample run with the Laplace approximation
  python src/main.py --input data/inputs/sample/telco_churn.csv --sampler laplace

  # Production run with NUTS, sensitivity fits in parallel
  python src/main.py --input data/inputs/production/telco_churn.pkl --run-type production --n-jobs -1

  # Load a saved configuration
  python src/main.py --config configs/production.json
        """
    )
    parser.add_argument("--input", type=str, default="data/inputs/sample/telco_churn.csv",
                        help="Path to input file (CSV or pickle). Default: sample CSV")
    parser.add_argument("--run-type", type=str, choices=["sample", "production"], default="sample",
                        help="Run type: 'sample' for development, 'production' for full data. Default: sample")
    parser.add_argument("--config", type=str, default=None,
                        help="JSON configuration saved with SurvivalFrameworkConfig.save")
    parser.add_argument("--sampler", type=str, choices=["pymc", "laplace"], default=None,
                        help="Posterior sampling service. Default: from configuration (pymc)")
    parser.add_argument("--prior", type=str, choices=PRESET_NAMES, default=None,
                        help="Prior preset for the main fit. Default: from configuration (default)")
    parser.add_argument("--chains", type=int, default=None, help="Number of Markov chains")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--time-budget", type=float, default=None, help="Wall-clock budget per fit in seconds")
    parser.add_argument("--no-sensitivity", action="store_true", help="Skip the prior sensitivity analysis")
    parser.add_argument("--no-cache", action="store_true", help="Always sample, ignoring cached draw sets")
    parser.add_argument("--no-tracking", action="store_true", help="Disable MLflow tracking")
    parser.add_argument("--n-jobs", type=int, default=None,
                        help="Parallel sensitivity fits. -1 means use all cores. Default: from configuration")
    parser.add_argument("--verbose", type=int, default=0, choices=[0, 10, 50],
                        help="Joblib verbosity: 0 (silent), 10 (progress), 50 (detailed). Default: 0")
    parser.add_argument("--debug", action="store_true", help="Write a debug log and show DEBUG on console")

    args = parser.parse_args()

    if args.config:
        config = SurvivalFrameworkConfig.load(args.config)
    else:
        config = SurvivalFrameworkConfig.for_run_type(args.run_type)

    sampling = config.sampling
    if args.chains is not None:
        sampling = replace(sampling, chains=args.chains, cores=min(sampling.cores, args.chains))
    if args.seed is not None:
        sampling = replace(sampling, seed=args.seed)
    if args.time_budget is not None:
        sampling = replace(sampling, time_budget_sec=args.time_budget)
    config.sampling = sampling

    if args.sampler:
        config.sampler = args.sampler
    if args.prior:
        config.prior = args.prior
    if args.no_cache:
        config.cache_enabled = False
    if args.no_tracking:
        config.tracking_enabled = False
    if args.n_jobs is not None:
        config.execution = create_execution_config(n_jobs=args.n_jobs, verbose=args.verbose)

    return run_pipeline(
        input_file=args.input,
        run_type=config.run_type,
        config=config,
        run_sensitivity=not args.no_sensitivity,
        log_level=logging.DEBUG if args.debug else logging.INFO,
    )


if __name__ == "__main__":
    exit(main())
