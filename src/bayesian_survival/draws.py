from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple
import arviz as az
import numpy as np
import pandas as pd

INTERCEPT = "Intercept"
SHAPE = "shape"


@dataclass(frozen=True, eq=False)
class PosteriorDrawSet:
    """Posterior samples with chain identity retained.

    Holds a read-only array of shape (n_chains, n_draws, n_parameters).
    Parameter names are ``Intercept``, the regression coefficients in
    formula order and ``shape``. Produced once per fit and shared read-only
    by downstream consumers.

    Attributes:
        values: Array (chain, draw, parameter); write access is disabled
        parameter_names: Column names of the last axis
        sampler: Name of the sampling service that produced the draws
        metadata: Sampling settings and sampler statistics (e.g. divergences)

    Example:
        >>> draws.n_chains, draws.n_draws
        (4, 1000)
        >>> draws.flat("shape").mean()
        0.98
    """
    values: np.ndarray
    parameter_names: Tuple[str, ...]
    sampler: str = "unknown"
    metadata: Dict = field(default_factory=dict)

    def __post_init__(self):
        values = np.array(self.values, dtype=float, copy=True)
        if values.ndim != 3:
            raise ValueError(f"Draws must be 3-D (chain, draw, parameter), got shape {values.shape}")
        if values.shape[2] != len(self.parameter_names):
            raise ValueError(
                f"{values.shape[2]} parameter columns but {len(self.parameter_names)} names"
            )
        if len(set(self.parameter_names)) != len(self.parameter_names):
            raise ValueError("Parameter names must be unique")
        for required in (INTERCEPT, SHAPE):
            if required not in self.parameter_names:
                raise ValueError(f"Draw set must contain '{required}'")
        values.setflags(write=False)
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "parameter_names", tuple(self.parameter_names))

    def __setstate__(self, state):
        # unpickled arrays come back writeable
        for key, value in state.items():
            object.__setattr__(self, key, value)
        values = np.array(self.values, dtype=float, copy=True)
        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    @property
    def n_chains(self) -> int:
        return self.values.shape[0]

    @property
    def n_draws(self) -> int:
        return self.values.shape[1]

    @property
    def n_total(self) -> int:
        return self.n_chains * self.n_draws

    @property
    def coefficient_names(self) -> Tuple[str, ...]:
        return tuple(n for n in self.parameter_names if n not in (INTERCEPT, SHAPE))

    def index_of(self, name: str) -> int:
        try:
            return self.parameter_names.index(name)
        except ValueError:
            raise KeyError(f"Unknown parameter '{name}'") from None

    def chains(self, name: str) -> np.ndarray:
        """Draws of one parameter, shape (n_chains, n_draws)."""
        return self.values[:, :, self.index_of(name)]

    def flat(self, name: str) -> np.ndarray:
        """Draws of one parameter pooled across chains, shape (n_total,)."""
        return self.chains(name).reshape(-1)

    def flat_matrix(self, names: Optional[Sequence[str]] = None) -> np.ndarray:
        """Pooled draws of several parameters, shape (n_total, len(names))."""
        names = list(names) if names is not None else list(self.parameter_names)
        idx = [self.index_of(n) for n in names]
        return self.values[:, :, idx].reshape(-1, len(idx))

    def components(self, coefficient_names: Sequence[str]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Pooled (intercept, beta, shape) arrays with beta ordered as requested."""
        return (
            self.flat(INTERCEPT),
            self.flat_matrix(coefficient_names),
            self.flat(SHAPE),
        )

    def to_frame(self) -> pd.DataFrame:
        """One row per draw with ``chain`` and ``draw`` columns."""
        chain_idx, draw_idx = np.meshgrid(
            np.arange(self.n_chains), np.arange(self.n_draws), indexing="ij"
        )
        df = pd.DataFrame(self.values.reshape(-1, len(self.parameter_names)), columns=list(self.parameter_names))
        df.insert(0, "draw", draw_idx.reshape(-1))
        df.insert(0, "chain", chain_idx.reshape(-1))
        return df

    def posterior_dict(self) -> Dict[str, np.ndarray]:
        """Mapping parameter name -> (chain, draw) array, as ArviZ expects."""
        return {name: np.asarray(self.chains(name)) for name in self.parameter_names}

    def to_inference_data(self, log_likelihood: Optional[np.ndarray] = None):
        """Convert to ``arviz.InferenceData``.

        Args:
            log_likelihood: Optional pointwise log-likelihood of shape
                (n_chains, n_draws, n_records), stored under variable ``time``
        """
        kwargs = {"posterior": self.posterior_dict()}
        if log_likelihood is not None:
            kwargs["log_likelihood"] = {"time": np.asarray(log_likelihood)}
        return az.from_dict(**kwargs)
