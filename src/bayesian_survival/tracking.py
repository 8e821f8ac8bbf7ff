"""MLflow experiment tracking with graceful degradation.

Tracking failures never abort an analysis: every ``safe_*`` wrapper logs a
warning and returns False, and all results are persisted to CSV anyway.
"""
from __future__ import annotations
import json
import logging
import os
import tempfile
from typing import Dict, Any, Optional
import mlflow
import mlflow.exceptions

EXPERIMENT_NAME = "bayesian_survival"


def start_run(run_name: str, tracking_uri: str | None = None, tags: Dict[str, str] | None = None):
    """Start an MLflow run under the bayesian_survival experiment.

    Args:
        run_name: Name identifier for this run
        tracking_uri: Directory or URI of the tracking store, e.g. the
            run type's ``mlruns`` directory; None keeps MLflow's default
        tags: Optional tags attached to the run

    Returns:
        Active MLflow run context manager

    Example:
        >>> paths = get_output_paths("sample")
        >>> with start_run("weibull_default", tracking_uri=paths["mlruns"]):
        ...     safe_log_params({"chains": 4})
    """
    if tracking_uri is not None:
        if "://" not in tracking_uri:
            tracking_uri = f"file://{os.path.abspath(tracking_uri)}"
        mlflow.set_tracking_uri(tracking_uri)
    mlflow.set_experiment(EXPERIMENT_NAME)
    return mlflow.start_run(run_name=run_name, tags=tags)


def _report(logger: Optional[logging.Logger], what: str, error: Exception) -> None:
    if logger is None:
        return
    if isinstance(error, mlflow.exceptions.MlflowException):
        logger.warning(f"MLflow {what} logging failed: {error}", extra={"category": "mlflow_error"})
    else:
        logger.error(f"Unexpected error in MLflow {what} logging: {error}", extra={"category": "mlflow_error"})


def safe_log_params(params: Dict[str, Any], logger: Optional[logging.Logger] = None) -> bool:
    """Log parameters, stringifying values MLflow rejects.

    Returns:
        True if logging succeeded, False if it failed

    Example:
        >>> safe_log_params({"sampler": "pymc", "prior": "default"}, logger=logger)
        True
    """
    try:
        for k, v in params.items():
            try:
                mlflow.log_param(k, v)
            except mlflow.exceptions.MlflowException:
                mlflow.log_param(k, str(v))
        return True
    except Exception as e:
        _report(logger, "params", e)
        return False


def safe_log_metrics(
    metrics: Dict[str, float],
    step: Optional[int] = None,
    logger: Optional[logging.Logger] = None,
) -> bool:
    """Log numeric metrics; non-finite values are dropped first.

    Returns:
        True if logging succeeded, False if it failed

    Example:
        >>> safe_log_metrics({"max_rhat": 1.004, "min_ess_bulk": 1650.0}, logger=logger)
        True
    """
    clean = {}
    for k, v in metrics.items():
        try:
            v = float(v)
        except (TypeError, ValueError):
            continue
        if v == v and abs(v) != float("inf"):
            clean[k] = v
    try:
        mlflow.log_metrics(clean, step=step)
        return True
    except Exception as e:
        _report(logger, "metrics", e)
        return False


def safe_log_artifact(path: str, logger: Optional[logging.Logger] = None) -> bool:
    """Log a file artifact if it exists.

    Returns:
        True if logging succeeded, False if it failed or the file is missing
    """
    if not os.path.exists(path):
        if logger:
            logger.warning(f"Artifact not found, skipping: {path}")
        return False
    try:
        mlflow.log_artifact(path)
        return True
    except Exception as e:
        _report(logger, f"artifact ({path})", e)
        return False


def safe_log_dict(name: str, d: Dict[str, Any], logger: Optional[logging.Logger] = None) -> bool:
    """Serialize a dictionary to JSON and log it as an artifact.

    Example:
        >>> safe_log_dict("config", config.to_dict(), logger=logger)
        True
    """
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, f"{name}.json")
        with open(path, "w") as f:
            json.dump(d, f, indent=2, default=str)
        return safe_log_artifact(path, logger=logger)
