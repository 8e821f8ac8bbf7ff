"""Timing utilities for performance logging.

Example:
    >>> from bayesian_survival.timing import log_execution_time, Timer
    >>>
    >>> @log_execution_time()
    ... def run_analysis(path, config):
    ...     ...
    >>> with Timer(logger, "Posterior predictive check") as timer:
    ...     report = posterior_predictive_check(draws, data, formula)
    >>> timer.duration
    3.41
"""
import time
import functools
import logging
from typing import Callable, Optional

from bayesian_survival.logging_config import log_performance


def log_execution_time(logger: Optional[logging.Logger] = None):
    """Decorator logging a function's wall-clock duration.

    Success goes to the performance log; failure is logged as ERROR with
    the traceback and re-raised.

    Args:
        logger: Logger instance (defaults to ``bayesian_survival.<module>``)
    """
    def decorator(func: Callable) -> Callable:
        log = logger or logging.getLogger(f"bayesian_survival.{func.__module__.rsplit('.', 1)[-1]}")

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            log.info(f"Starting: {func.__name__}")
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                log.error(f"{func.__name__} failed after {time.perf_counter() - start:.2f}s: {e}", exc_info=True)
                raise
            log_performance(log, f"Completed: {func.__name__}", duration_sec=round(time.perf_counter() - start, 2))
            return result

        return wrapper
    return decorator


class Timer:
    """Context manager timing a code block.

    Args:
        logger: Logger instance
        description: Description of the operation being timed

    Attributes:
        duration: Seconds spent inside the block, set on exit
    """

    def __init__(self, logger: logging.Logger, description: str):
        self.logger = logger
        self.description = description
        self.start_time = None
        self.duration = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.info(f"Starting: {self.description}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self.start_time
        if exc_type is None:
            log_performance(self.logger, f"Completed: {self.description}", duration_sec=round(self.duration, 2))
        else:
            self.logger.error(f"{self.description} failed after {self.duration:.2f}s: {exc_val}")
        return False

    def elapsed(self) -> float:
        """Seconds since entering the context (0.0 before entry)."""
        if self.start_time is None:
            return 0.0
        return time.perf_counter() - self.start_time
