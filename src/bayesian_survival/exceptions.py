"""Error taxonomy and structured warnings for the Bayesian survival pipeline.

Validation and fit failures are exceptions and abort the stage that raised
them. Convergence, calibration and extrapolation problems are not fatal:
they are emitted as Python warnings (so ``capture_warnings`` can log them)
and recorded as ``PipelineWarning`` entries attached to stage results.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Sequence
import pandas as pd

WarningKind = Literal["convergence", "calibration", "extrapolation"]


class SurvivalFrameworkError(Exception):
    """Base class for all errors raised by bayesian_survival."""


class DataValidationError(SurvivalFrameworkError, ValueError):
    """Input record is malformed or misses a required field.

    Attributes:
        column: Offending column, if a single column is involved
        rows: Index labels of offending rows (truncated in the message)
    """

    def __init__(self, message: str, column: Optional[str] = None, rows: Sequence = ()):
        self.column = column
        self.rows = list(rows)
        if self.rows:
            shown = ", ".join(str(r) for r in self.rows[:10])
            more = f" (+{len(self.rows) - 10} more)" if len(self.rows) > 10 else ""
            message = f"{message} [rows: {shown}{more}]"
        super().__init__(message)


class FitFailureError(SurvivalFrameworkError, RuntimeError):
    """Sampling service could not produce a usable draw set.

    Attributes:
        failed_chains: Chain indices that failed (empty when unknown)
        context: Free-form diagnostic context (sampler name, settings, cause)
    """

    def __init__(
        self,
        message: str,
        failed_chains: Sequence[int] = (),
        context: Optional[Dict[str, Any]] = None,
    ):
        self.failed_chains = list(failed_chains)
        self.context = dict(context or {})
        if self.failed_chains:
            message = f"{message} (failed chains: {self.failed_chains})"
        super().__init__(message)


class ConvergenceWarning(UserWarning):
    """Fit completed but R-hat / ESS thresholds were not met."""


class CalibrationWarning(UserWarning):
    """Posterior predictive survival diverges materially from observed data."""


class ExtrapolationWarning(UserWarning):
    """Prediction lies far outside the observed range of training times."""


@dataclass(frozen=True)
class PipelineWarning:
    """Structured, non-fatal finding attached to a stage result.

    Attributes:
        kind: One of "convergence", "calibration", "extrapolation"
        message: Human-readable description
        details: Numeric evidence backing the warning
    """
    kind: WarningKind
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, **self.details}


def warnings_frame(items: List[PipelineWarning]) -> pd.DataFrame:
    """Render structured warnings as a DataFrame for reporting."""
    return pd.DataFrame([w.to_dict() for w in items])
