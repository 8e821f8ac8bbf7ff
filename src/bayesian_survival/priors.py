"""Prior configurations for the Bayesian Weibull survival model.

A ``PriorConfiguration`` maps each parameter class (regression
``coefficient``, Weibull ``shape``, ``intercept``) to a ``PriorSpec``.
Several configurations coexist for sensitivity analysis; presets are
available through ``PriorConfiguration.preset``.

Besides describing priors to a sampling service, each spec evaluates its
log density and the first two derivatives, which the Laplace sampler needs
for the posterior mode and curvature.
"""
from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Literal, Optional, Tuple
import numpy as np

PriorFamily = Literal["normal", "student_t", "gamma", "half_normal", "lognormal"]

POSITIVE_FAMILIES = {"gamma", "half_normal", "lognormal"}
PRESET_NAMES = ("default", "informative", "tightened", "vague")


@dataclass(frozen=True)
class PriorSpec:
    """Distribution family plus hyperparameters for one parameter class.

    Attributes:
        family: Distribution family
        location: Location (normal, student_t, lognormal on log scale) or gamma shape
        scale: Scale (normal, student_t, half_normal, lognormal) or gamma rate
        df: Degrees of freedom for student_t
        lower: Optional lower bound (truncation) of the support
    """
    family: PriorFamily
    location: float = 0.0
    scale: float = 1.0
    df: Optional[float] = None
    lower: Optional[float] = None

    def __post_init__(self):
        if self.family not in ("normal", "student_t", "gamma", "half_normal", "lognormal"):
            raise ValueError(f"Unsupported prior family: {self.family}")
        if self.scale <= 0:
            raise ValueError(f"Prior scale must be positive, got {self.scale}")
        if self.family == "student_t" and (self.df is None or self.df <= 0):
            raise ValueError("student_t prior requires positive df")
        if self.family == "gamma" and self.location <= 0:
            raise ValueError(f"gamma prior shape (location) must be positive, got {self.location}")

    @property
    def non_negative_support(self) -> bool:
        return self.family in POSITIVE_FAMILIES or (self.lower is not None and self.lower >= 0)

    def describe(self) -> str:
        if self.family == "gamma":
            text = f"gamma({self.location:g}, {self.scale:g})"
        elif self.family == "half_normal":
            text = f"half_normal({self.scale:g})"
        elif self.family == "student_t":
            text = f"student_t({self.df:g}, {self.location:g}, {self.scale:g})"
        else:
            text = f"{self.family}({self.location:g}, {self.scale:g})"
        if self.lower is not None:
            text += f" T[{self.lower:g},]"
        return text

    def log_density(self, x: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Unnormalized log density and its first two derivatives at x.

        The truncation constant of a lower bound is omitted; it does not
        depend on x. Points below the bound get ``-inf``.
        """
        x = np.asarray(x, dtype=float)
        mu, s = self.location, self.scale
        if self.family == "normal":
            d = x - mu
            lp, d1, d2 = -0.5 * (d / s) ** 2, -d / s**2, np.full_like(x, -1.0 / s**2)
        elif self.family == "student_t":
            nu, d = self.df, x - mu
            q = nu * s**2 + d**2
            lp = -0.5 * (nu + 1) * np.log1p(d**2 / (nu * s**2))
            d1 = -(nu + 1) * d / q
            d2 = -(nu + 1) * (nu * s**2 - d**2) / q**2
        elif self.family == "gamma":
            a, b = self.location, self.scale
            lp = (a - 1) * np.log(x) - b * x
            d1 = (a - 1) / x - b
            d2 = -(a - 1) / x**2
        elif self.family == "half_normal":
            lp, d1, d2 = -0.5 * (x / s) ** 2, -x / s**2, np.full_like(x, -1.0 / s**2)
        else:
            z = np.log(x) - mu
            lp = -np.log(x) - 0.5 * (z / s) ** 2
            d1 = -1.0 / x - z / (s**2 * x)
            d2 = 1.0 / x**2 - (1.0 - z) / (s**2 * x**2)

        lower = 0.0 if self.family in POSITIVE_FAMILIES else self.lower
        if lower is not None:
            lp = np.where(x < lower, -np.inf, lp)
        return lp, d1, d2


@dataclass(frozen=True)
class PriorConfiguration:
    """Immutable mapping from parameter class to prior.

    Attributes:
        name: Identifier used in reports and cache keys
        coefficient: Prior shared by every regression coefficient
        shape: Prior of the Weibull shape parameter (non-negative support)
        intercept: Prior of the intercept (log-scale of survival time)

    Raises:
        ValueError: If the shape prior allows negative values

    Example:
        >>> priors = PriorConfiguration.preset("informative")
        >>> priors.coefficient.describe()
        'normal(0, 1)'
    """
    name: str
    coefficient: PriorSpec
    shape: PriorSpec
    intercept: PriorSpec

    def __post_init__(self):
        if not self.shape.non_negative_support:
            raise ValueError(
                f"Shape prior must have non-negative support, got {self.shape.describe()}"
            )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "coefficient": asdict(self.coefficient),
            "shape": asdict(self.shape),
            "intercept": asdict(self.intercept),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PriorConfiguration":
        return cls(
            name=data["name"],
            coefficient=PriorSpec(**data["coefficient"]),
            shape=PriorSpec(**data["shape"]),
            intercept=PriorSpec(**data["intercept"]),
        )

    @classmethod
    def default(cls) -> "PriorConfiguration":
        """Weakly informative defaults: wide normal coefficients, gamma(0.01, 0.01) shape."""
        return cls(
            name="default",
            coefficient=PriorSpec("normal", 0.0, 10.0),
            shape=PriorSpec("gamma", 0.01, 0.01),
            intercept=PriorSpec("student_t", 3.0, 2.5, df=3.0),
        )

    @classmethod
    def informative(cls) -> "PriorConfiguration":
        return cls(
            name="informative",
            coefficient=PriorSpec("normal", 0.0, 1.0),
            shape=PriorSpec("gamma", 2.0, 2.0),
            intercept=PriorSpec("normal", 3.0, 1.0),
        )

    @classmethod
    def tightened(cls) -> "PriorConfiguration":
        """Default priors with the coefficient scale tightened to 2.5."""
        base = cls.default()
        return cls(
            name="tightened",
            coefficient=PriorSpec("normal", 0.0, 2.5),
            shape=base.shape,
            intercept=base.intercept,
        )

    @classmethod
    def vague(cls) -> "PriorConfiguration":
        return cls(
            name="vague",
            coefficient=PriorSpec("normal", 0.0, 100.0),
            shape=PriorSpec("half_normal", 0.0, 10.0),
            intercept=PriorSpec("normal", 0.0, 100.0),
        )

    @classmethod
    def preset(cls, name: str) -> "PriorConfiguration":
        if name not in PRESET_NAMES:
            raise ValueError(f"Unknown prior preset '{name}'. Available: {list(PRESET_NAMES)}")
        return getattr(cls, name)()
