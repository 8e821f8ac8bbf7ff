"""Centralized logging configuration for the Bayesian survival framework.

This module provides:
- Multiple log files (main, performance, warnings, debug) per run type
- Performance metric logging with timing data
- Categorization of warnings raised by the pipeline and by PyMC, ArviZ,
  lifelines and numpy (convergence, calibration, extrapolation, numerical,
  sampler)
- Progress tracking for sequences of fits

Example:
    >>> from bayesian_survival.logging_config import setup_logging, log_performance
    >>> logger = setup_logging(run_type="production", log_level=logging.INFO)
    >>> logger.info("Starting analysis")
    >>> log_performance(logger, "Fit completed", duration_sec=84.2, max_rhat=1.003)
"""
import logging
import sys
import warnings
from pathlib import Path
from datetime import datetime
from typing import Optional, Literal
from contextlib import contextmanager

from bayesian_survival.exceptions import CalibrationWarning, ConvergenceWarning, ExtrapolationWarning

RunType = Literal["sample", "production"]

ROOT_LOGGER = "bayesian_survival"


class PerformanceFilter(logging.Filter):
    """Pass only records tagged with an ``is_performance`` attribute."""

    def filter(self, record):
        return getattr(record, "is_performance", False)


class WarningErrorFilter(logging.Filter):
    """Pass only WARNING and above."""

    def filter(self, record):
        return record.levelno >= logging.WARNING


def setup_logging(
    run_type: RunType = "sample",
    log_level: int = logging.INFO,
    console_output: bool = True,
    base_dir: str = "data/outputs",
) -> logging.Logger:
    """Setup logging for the framework.

    Creates log files in ``{base_dir}/{run_type}/logs/``:
    - main_{timestamp}.log: All log messages
    - performance_{timestamp}.log: Performance metrics only
    - warnings_{timestamp}.log: Warnings and errors only
    - debug_{timestamp}.log: Debug messages (if log_level=DEBUG)

    Args:
        run_type: Type of run (sample/production), determines log directory
        log_level: Minimum console log level
        console_output: Whether to output logs to console
        base_dir: Root of all run outputs

    Returns:
        Configured ``bayesian_survival`` logger
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_dir = Path(base_dir) / run_type / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG)  # filter at handlers
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = False

    detailed_formatter = logging.Formatter(
        fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    performance_formatter = logging.Formatter(
        fmt='%(asctime)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    simple_formatter = logging.Formatter(fmt='%(levelname)-8s | %(message)s')

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(simple_formatter)
        logger.addHandler(console_handler)

    def _file_handler(name: str, level: int, formatter: logging.Formatter) -> logging.FileHandler:
        handler = logging.FileHandler(log_dir / f"{name}_{timestamp}.log", mode='w', encoding='utf-8')
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        return handler

    _file_handler("main", logging.DEBUG, detailed_formatter)
    _file_handler("performance", logging.INFO, performance_formatter).addFilter(PerformanceFilter())
    _file_handler("warnings", logging.WARNING, detailed_formatter).addFilter(WarningErrorFilter())
    if log_level == logging.DEBUG:
        _file_handler("debug", logging.DEBUG, detailed_formatter)

    logger.info(f"Logging initialized for {run_type} run")
    logger.info(f"Log directory: {log_dir.absolute()}")
    return logger


def log_performance(logger: logging.Logger, message: str, **kwargs):
    """Log a performance-related message with timing data.

    Goes to the main log and to the dedicated performance log.

    Example:
        >>> log_performance(logger, "Sensitivity fit 'tightened' completed",
        ...                 duration_sec=42.1, loo=10234.5)
        # Output: "Sensitivity fit 'tightened' completed | duration_sec=42.1 | loo=10234.5"
    """
    extra = {'is_performance': True}
    if kwargs:
        metrics_str = " | ".join(f"{k}={v}" for k, v in kwargs.items())
        message = f"{message} | {metrics_str}"
    logger.info(message, extra=extra)


class WarningLogger:
    """Captures warnings and categorizes them for analysis.

    Categories:
    - convergence: R-hat / ESS thresholds missed, optimizer did not converge
    - calibration: Posterior predictive survival diverges from observed data
    - extrapolation: Predictions beyond the observed time range
    - numerical: Overflow, underflow, invalid values
    - sampler: Divergent transitions, tuning and step-size issues
    - other: Uncategorized warnings
    """

    CATEGORY_CLASSES = {
        ConvergenceWarning: 'convergence',
        CalibrationWarning: 'calibration',
        ExtrapolationWarning: 'extrapolation',
    }

    WARNING_CATEGORIES = {
        'convergence': ['r-hat', 'rhat', 'effective sample size', 'did not converge', 'maximum iterations'],
        'calibration': ['calibration', 'posterior predictive'],
        'extrapolation': ['extrapolat', 'beyond observed'],
        'numerical': ['overflow', 'underflow', 'invalid value', 'divide by zero'],
        'sampler': ['divergen', 'tuning', 'step size', 'treedepth'],
    }

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.warning_counts = {cat: 0 for cat in self.WARNING_CATEGORIES}
        self.warning_counts['other'] = 0

    def categorize_warning(self, message: str, category: Optional[type] = None) -> str:
        """Categorize by warning class first, then by message keywords."""
        if category is not None:
            for cls, name in self.CATEGORY_CLASSES.items():
                if issubclass(category, cls):
                    return name
        message_lower = message.lower()
        for name, keywords in self.WARNING_CATEGORIES.items():
            if any(kw in message_lower for kw in keywords):
                return name
        return 'other'

    def log_warning(self, message: str, category: Optional[str] = None):
        """Log a warning with category tag (auto-detected if None)."""
        if category is None:
            category = self.categorize_warning(message)
        self.warning_counts[category] += 1
        self.logger.warning(f"[{category.upper()}] {message}")

    def summary(self) -> dict:
        """Return {category: count} for categories with warnings."""
        return {k: v for k, v in self.warning_counts.items() if v > 0}


@contextmanager
def capture_warnings(logger: logging.Logger):
    """Redirect Python warnings to the logging system, categorized.

    Args:
        logger: Logger instance

    Yields:
        WarningLogger instance for accessing warning counts

    Example:
        >>> with capture_warnings(logger) as warning_logger:
        ...     report = diagnose(draws)
        >>> warning_logger.summary()
        {'convergence': 1}
    """
    warning_logger = WarningLogger(logger)

    def warning_handler(message, category, filename, lineno, file=None, line=None):
        text = f"{message}"
        warning_logger.log_warning(text, warning_logger.categorize_warning(text, category))

    old_showwarning = warnings.showwarning
    warnings.showwarning = warning_handler
    try:
        yield warning_logger
    finally:
        warnings.showwarning = old_showwarning
        summary = warning_logger.summary()
        if summary:
            summary_str = ", ".join(f"{k}={v}" for k, v in summary.items())
            logger.info(f"Warning summary: {summary_str}")


class ProgressLogger:
    """Logs progress updates for a sequence of steps.

    Example:
        >>> progress = ProgressLogger(logger, total=2, desc="Sensitivity fits")
        >>> for name in ("default", "tightened"):
        ...     progress.update(1, metrics={'loo': 10234.5})
        # Output: "Sensitivity fits: 1/2 (50.0%) | loo=10234.5000"
    """

    def __init__(self, logger: logging.Logger, total: int, desc: str, log_interval: int = 1):
        self.logger = logger
        self.total = total
        self.desc = desc
        self.log_interval = log_interval
        self.current = 0

    def update(self, n: int = 1, metrics: Optional[dict] = None):
        self.current += n
        if self.current % self.log_interval == 0 or self.current == self.total:
            pct = (self.current / self.total) * 100
            msg = f"{self.desc}: {self.current}/{self.total} ({pct:.1f}%)"
            if metrics:
                metrics_str = ", ".join(f"{k}={v:.4f}" if isinstance(v, float) else f"{k}={v}"
                                        for k, v in metrics.items())
                msg += f" | {metrics_str}"
            self.logger.info(msg)
