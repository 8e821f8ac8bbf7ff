"""Model fit orchestration: cache lookup, sampler call, cache store.

The posterior sampling service is injected and treated as a blocking
black box. A fit either yields a complete PosteriorDrawSet or raises
FitFailureError; nothing partial is returned or cached.
"""
from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Optional
import logging
import time

from bayesian_survival.cache import ArtifactCache, cache_key
from bayesian_survival.config import SamplingConfig
from bayesian_survival.data import ModelFormula, PreparedData
from bayesian_survival.draws import PosteriorDrawSet
from bayesian_survival.exceptions import FitFailureError
from bayesian_survival.logging_config import log_performance
from bayesian_survival.priors import PriorConfiguration
from bayesian_survival.samplers import BasePosteriorSampler

logger = logging.getLogger("bayesian_survival.fitting")


@dataclass
class FitResult:
    """Outcome of one fit request.

    Attributes:
        draws: Posterior draw set (shared read-only by downstream stages)
        from_cache: True if loaded from the artifact cache
        cache_key: Key identifying the request
        duration_sec: Wall-clock time spent sampling or loading
    """
    draws: PosteriorDrawSet
    from_cache: bool
    cache_key: str
    duration_sec: float


class ModelFitOrchestrator:
    """Submit fit requests to a sampling service, with caching.

    Args:
        sampler: Posterior sampling service
        cache: Optional artifact cache; when None every request samples

    Example:
        >>> orchestrator = ModelFitOrchestrator(PyMCWeibullSampler(), ArtifactCache(paths["models"]))
        >>> result = orchestrator.fit(filtered.data, formula, PriorConfiguration.default(), SamplingConfig())
        >>> result.draws.n_chains
        4
    """

    def __init__(self, sampler: BasePosteriorSampler, cache: Optional[ArtifactCache] = None):
        self.sampler = sampler
        self.cache = cache

    def key_for(
        self,
        data: PreparedData,
        formula: ModelFormula,
        priors: PriorConfiguration,
        sampling: SamplingConfig,
    ) -> str:
        return cache_key(data.signature(), formula, priors, sampling, self.sampler.name)

    def fit(
        self,
        data: PreparedData,
        formula: ModelFormula,
        priors: PriorConfiguration,
        sampling: SamplingConfig,
    ) -> FitResult:
        """Return draws for the request, sampling only on a cache miss.

        Raises:
            FitFailureError: If the sampler fails, reports divergences beyond
                tolerance, or exceeds ``sampling.time_budget_sec``
        """
        key = self.key_for(data, formula, priors, sampling)
        start = time.perf_counter()

        if self.cache is not None:
            cached = self.cache.load(key)
            if cached is not None:
                return FitResult(cached, True, key, time.perf_counter() - start)

        logger.info(
            f"Sampling posterior with '{self.sampler.name}' (prior={priors.name}, "
            f"chains={sampling.chains}, draws={sampling.draws}, seed={sampling.seed})"
        )
        draws = self._run_sampler(data, formula, priors, sampling)
        duration = time.perf_counter() - start

        if self.cache is not None:
            self.cache.store(key, draws)
        log_performance(
            logger,
            f"Fit completed ({self.sampler.name}, prior={priors.name})",
            duration_sec=round(duration, 2),
            n_records=data.n_records,
        )
        return FitResult(draws, False, key, duration)

    def _run_sampler(self, data, formula, priors, sampling) -> PosteriorDrawSet:
        if sampling.time_budget_sec is None:
            return self.sampler.sample(formula, data.frame, priors, sampling)

        # the worker thread cannot be interrupted; its result is discarded on timeout
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sampler")
        future = executor.submit(self.sampler.sample, formula, data.frame, priors, sampling)
        try:
            return future.result(timeout=sampling.time_budget_sec)
        except FutureTimeout:
            raise FitFailureError(
                f"Sampling exceeded time budget of {sampling.time_budget_sec}s",
                context={"sampler": self.sampler.name, "time_budget_sec": sampling.time_budget_sec},
            ) from None
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
