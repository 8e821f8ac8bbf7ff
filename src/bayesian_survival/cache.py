"""Cached artifact store for fitted posterior draw sets.

Draw sets are keyed by a hash of (data signature, formula, prior
configuration, seed, sampling settings) and persisted with joblib, the same
way fitted models are saved elsewhere in the framework. Stored draw sets
are read-only; a store for an existing key overwrites it atomically.
"""
from __future__ import annotations
import hashlib
import json
import logging
import os
from typing import Optional
import joblib

from bayesian_survival.config import SamplingConfig
from bayesian_survival.data import ModelFormula
from bayesian_survival.draws import PosteriorDrawSet
from bayesian_survival.priors import PriorConfiguration
from bayesian_survival.utils import ensure_dir

logger = logging.getLogger("bayesian_survival.cache")


def cache_key(
    data_signature: str,
    formula: ModelFormula,
    priors: PriorConfiguration,
    sampling: SamplingConfig,
    sampler_name: str,
) -> str:
    """Deterministic key for one fit request.

    The time budget is excluded: it bounds the call, not its result.

    Example:
        >>> key = cache_key(prepared.signature(), formula, priors, sampling, "pymc")
        >>> len(key)
        64
    """
    settings = sampling.to_dict()
    settings.pop("time_budget_sec", None)
    payload = {
        "data": data_signature,
        "formula": formula.to_dict(),
        "priors": priors.to_dict(),
        "seed": sampling.seed,
        "sampling": settings,
        "sampler": sampler_name,
    }
    blob = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(blob).hexdigest()


class ArtifactCache:
    """Load-if-present / store-after-fit store for posterior draw sets.

    Args:
        cache_dir: Directory holding ``<key>.joblib`` files

    Example:
        >>> cache = ArtifactCache("data/outputs/sample/models/draws")
        >>> draws = cache.load(key)
        >>> if draws is None:
        ...     draws = sampler.sample(...)
        ...     cache.store(key, draws)
    """

    def __init__(self, cache_dir: str):
        self.cache_dir = cache_dir
        ensure_dir(cache_dir)

    def path_for(self, key: str) -> str:
        return os.path.join(self.cache_dir, f"{key}.joblib")

    def __contains__(self, key: str) -> bool:
        return os.path.exists(self.path_for(key))

    def load(self, key: str) -> Optional[PosteriorDrawSet]:
        path = self.path_for(key)
        if not os.path.exists(path):
            return None
        draws = joblib.load(path)
        if not isinstance(draws, PosteriorDrawSet):
            logger.warning(f"Ignoring cache entry with unexpected type at {path}")
            return None
        logger.info(f"Loaded cached draw set {key[:12]} from {path}")
        return draws

    def store(self, key: str, draws: PosteriorDrawSet) -> str:
        path = self.path_for(key)
        tmp = f"{path}.tmp"
        joblib.dump(draws, tmp)
        os.replace(tmp, path)
        logger.info(f"Stored draw set {key[:12]} at {path}")
        return path
