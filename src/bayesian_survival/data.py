from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Tuple, Literal
import hashlib
import logging
import numpy as np
import pandas as pd
from pathlib import Path
from sklearn.preprocessing import OneHotEncoder, StandardScaler

from bayesian_survival.config import DataConfig
from bayesian_survival.exceptions import DataValidationError

logger = logging.getLogger("bayesian_survival.data")

# Run type for distinguishing sample vs production runs
RunType = Literal["sample", "production"]

TIME_COL = "time"
EVENT_COL = "event"

# Reference level first; matches the alphabetical ordering of the source analysis
CATEGORY_LEVELS: Dict[str, Tuple[str, ...]] = {
    "Partner": ("No", "Yes"),
    "InternetService": ("DSL", "Fiber optic", "No"),
    "OnlineSecurity": ("No", "No internet service", "Yes"),
    "DeviceProtection": ("No", "No internet service", "Yes"),
    "StreamingTV": ("No", "No internet service", "Yes"),
    "StreamingMovies": ("No", "No internet service", "Yes"),
    "Contract": ("Month-to-month", "One year", "Two year"),
    "PaperlessBilling": ("No", "Yes"),
    "PaymentMethod": (
        "Bank transfer (automatic)",
        "Credit card (automatic)",
        "Electronic check",
        "Mailed check",
    ),
}
NUM_COLS = ["TotalCharges"]
CAT_COLS = list(CATEGORY_LEVELS)

CHURN_LABELS = {"yes", "true", "1", "1.0"}


@dataclass(frozen=True)
class ModelFormula:
    """Covariate formula of the Weibull survival model.

    Fixes the response (``time``), the censoring indicator (``event``; rows
    with ``event == 0`` are right-censored), the categorical covariates with
    their level sets and the continuous covariates. Categorical covariates
    are dummy coded against their first level.

    Attributes:
        categorical: Tuple of (column, levels) pairs, reference level first
        continuous: Continuous covariates, expected pre-scaled
        time_col: Response column
        event_col: Event indicator column

    Example:
        >>> formula = ModelFormula.telco()
        >>> formula.coefficient_names[:2]
        ('Partner[Yes]', 'InternetService[Fiber optic]')
        >>> X = formula.design_matrix(prepared.frame)
    """
    categorical: Tuple[Tuple[str, Tuple[str, ...]], ...]
    continuous: Tuple[str, ...] = ("TotalCharges",)
    time_col: str = TIME_COL
    event_col: str = EVENT_COL

    @classmethod
    def telco(cls) -> "ModelFormula":
        """Formula of the churn analysis: nine service attributes plus scaled total charges."""
        return cls(categorical=tuple(CATEGORY_LEVELS.items()), continuous=tuple(NUM_COLS))

    @property
    def covariates(self) -> List[str]:
        return [col for col, _ in self.categorical] + list(self.continuous)

    @property
    def levels(self) -> Dict[str, Tuple[str, ...]]:
        return dict(self.categorical)

    @property
    def coefficient_names(self) -> Tuple[str, ...]:
        names = [f"{col}[{level}]" for col, levels in self.categorical for level in levels[1:]]
        return tuple(names) + tuple(self.continuous)

    def describe(self) -> str:
        """Formula string, e.g. ``time | cens(1 - event) ~ Partner + ... + TotalCharges``."""
        rhs = " + ".join(self.covariates)
        return f"{self.time_col} | cens(1 - {self.event_col}) ~ {rhs}"

    def to_dict(self) -> dict:
        return {
            "categorical": {col: list(levels) for col, levels in self.categorical},
            "continuous": list(self.continuous),
            "time_col": self.time_col,
            "event_col": self.event_col,
        }

    def validate(self, df: pd.DataFrame) -> None:
        """Check that every covariate is present, non-null and within its level set.

        Raises:
            DataValidationError: On the first offending column
        """
        for col in self.covariates:
            if col not in df.columns:
                raise DataValidationError(f"Required covariate '{col}' is missing", column=col)
            missing = df.index[df[col].isna()]
            if len(missing) > 0:
                raise DataValidationError(
                    f"Required covariate '{col}' has {len(missing)} missing values",
                    column=col,
                    rows=missing,
                )
        for col, levels in self.categorical:
            unknown = df.index[~df[col].isin(levels)]
            if len(unknown) > 0:
                found = sorted(df.loc[unknown, col].astype(str).unique())
                raise DataValidationError(
                    f"Covariate '{col}' has unknown levels {found}; expected {list(levels)}",
                    column=col,
                    rows=unknown,
                )

    def design_matrix(self, df: pd.DataFrame) -> np.ndarray:
        """Build the (n_records, n_coefficients) design matrix without intercept.

        Columns follow ``coefficient_names``: dummy columns per categorical
        covariate (reference level dropped), then continuous covariates as is.
        """
        self.validate(df)
        cols = [col for col, _ in self.categorical]
        encoder = OneHotEncoder(
            categories=[list(levels) for _, levels in self.categorical],
            drop="first",
            sparse_output=False,
            handle_unknown="error",
            dtype=float,
        )
        dummies = encoder.fit_transform(df[cols].astype(object))
        numeric = df[list(self.continuous)].to_numpy(dtype=float)
        return np.hstack([dummies, numeric])


@dataclass(frozen=True)
class ScalingParameters:
    """Standardization parameters computed on the included training records.

    Retained so new profiles are scaled exactly as the training data was;
    they are never refit on scoring data.
    """
    columns: Tuple[str, ...]
    mean: Tuple[float, ...]
    scale: Tuple[float, ...]

    @classmethod
    def from_scaler(cls, columns: List[str], scaler: StandardScaler) -> "ScalingParameters":
        return cls(
            columns=tuple(columns),
            mean=tuple(float(m) for m in scaler.mean_),
            scale=tuple(float(s) for s in scaler.scale_),
        )

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        out = df.copy()
        for col, mu, sd in zip(self.columns, self.mean, self.scale):
            out[col] = (out[col].astype(float) - mu) / sd
        return out

    def to_dict(self) -> dict:
        return {c: {"mean": m, "scale": s} for c, m, s in zip(self.columns, self.mean, self.scale)}


@dataclass
class PreparedData:
    """Censoring-annotated, scaled modeling dataset.

    Attributes:
        frame: One row per retained record with covariates, ``time`` and ``event``
        scaling: Retained standardization parameters
        n_input: Number of raw input records
        n_zero_time_removed: Records excluded because tenure was zero
    """
    frame: pd.DataFrame
    scaling: ScalingParameters
    n_input: int
    n_zero_time_removed: int = 0
    n_influential_removed: int = 0
    removed_index: List = field(default_factory=list)

    @property
    def n_records(self) -> int:
        return len(self.frame)

    @property
    def max_time(self) -> float:
        return float(self.frame[TIME_COL].max())

    def signature(self) -> str:
        """Content hash of the modeling frame (index included)."""
        hashed = pd.util.hash_pandas_object(self.frame, index=True).to_numpy()
        return hashlib.sha256(hashed.tobytes()).hexdigest()


def load_data(file_path: str, run_type: RunType = "sample") -> pd.DataFrame:
    """Load raw customer records from CSV or pickle file.

    Args:
        file_path: Path to input file (CSV or pickle)
        run_type: Type of run, used for logging only

    Returns:
        Raw DataFrame, one row per customer

    Raises:
        FileNotFoundError: If file_path does not exist
        ValueError: If file format is not supported
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    suffix = file_path.suffix.lower()

    if suffix == '.csv':
        logger.info(f"Loading CSV data from {file_path} (run_type={run_type})")
        df = pd.read_csv(file_path)
    elif suffix in ['.pkl', '.pickle']:
        logger.info(f"Loading pickle data from {file_path} (run_type={run_type})")
        df = pd.read_pickle(file_path)
    else:
        raise ValueError(
            f"Unsupported file format: {suffix}. "
            f"Supported formats: .csv, .pkl, .pickle"
        )

    logger.info(f"Loaded {len(df):,} records with {len(df.columns)} columns")
    return df


def coerce_total_charges(values: pd.Series) -> pd.Series:
    """Convert TotalCharges to float, treating blank or missing entries as zero.

    Blank strings appear for customers in their first month. Any other
    non-numeric content is malformed input.

    Raises:
        DataValidationError: If a non-blank entry is not numeric
    """
    blank = values.isna() | (values.astype(str).str.strip() == "")
    numeric = pd.to_numeric(values.where(~blank), errors="coerce")
    malformed = values.index[numeric.isna() & ~blank]
    if len(malformed) > 0:
        raise DataValidationError("TotalCharges contains non-numeric values", column=values.name, rows=malformed)
    return numeric.fillna(0.0).astype(float)


def encode_event(labels: pd.Series) -> pd.Series:
    """Encode the churn label as event indicator: 1 iff churn, else 0 (right-censored).

    Raises:
        DataValidationError: If any label is missing
    """
    missing = labels.index[labels.isna()]
    if len(missing) > 0:
        raise DataValidationError("Churn label is missing", column=labels.name, rows=missing)
    return labels.astype(str).str.strip().str.lower().isin(CHURN_LABELS).astype(int)


def drop_zero_time(frame: pd.DataFrame, time_col: str = TIME_COL) -> Tuple[pd.DataFrame, int]:
    """Remove records with zero time-to-event, which is undefined at inception.

    Returns:
        Tuple of (filtered copy, number of removed records). Other rows are
        returned unchanged.
    """
    zero = frame[time_col] == 0
    return frame.loc[~zero].copy(), int(zero.sum())


def prepare_data(
    df: pd.DataFrame,
    formula: ModelFormula | None = None,
    config: DataConfig | None = None,
) -> PreparedData:
    """Build the censoring-aware modeling dataset from raw customer records.

    Steps:
    1. Validate required columns and covariates (fail fast, nothing partial)
    2. ``event = 1`` iff the churn label indicates churn, else 0
    3. ``time = tenure``
    4. Exclude records with ``time == 0``
    5. Standardize continuous covariates using included records only

    Args:
        df: Raw records (e.g. the telco churn CSV)
        formula: Model formula; defaults to ``ModelFormula.telco()``
        config: Column names; defaults to ``DataConfig()``

    Returns:
        PreparedData with the modeling frame and retained scaling parameters

    Raises:
        DataValidationError: If a required field is missing or malformed

    Example:
        >>> prepared = prepare_data(load_data("data/inputs/sample/telco.csv"))
        >>> (prepared.frame["time"] > 0).all()
        True
    """
    formula = formula or ModelFormula.telco()
    config = config or DataConfig()

    for col in (config.tenure_column, config.churn_column, *formula.continuous):
        if col not in df.columns:
            raise DataValidationError(f"Required column '{col}' is missing", column=col)

    data = df.copy()
    for col in formula.continuous:
        data[col] = coerce_total_charges(data[col]) if col == "TotalCharges" else data[col].astype(float)
    formula.validate(data)

    tenure = pd.to_numeric(data[config.tenure_column], errors="coerce")
    invalid = data.index[tenure.isna() | (tenure < 0)]
    if len(invalid) > 0:
        raise DataValidationError(
            f"'{config.tenure_column}' must be a non-negative number", column=config.tenure_column, rows=invalid
        )

    keep = [config.id_column] if config.id_column in data.columns else []
    frame = data[keep + formula.covariates].copy()
    frame[formula.event_col] = encode_event(data[config.churn_column])
    frame[formula.time_col] = tenure.astype(float)

    frame, n_zero = drop_zero_time(frame, formula.time_col)
    if n_zero > 0:
        logger.warning(f"Removed {n_zero:,} records with zero tenure")
    if frame.empty:
        raise DataValidationError("No records with positive tenure remain")

    scaler = StandardScaler().fit(frame[list(formula.continuous)].to_numpy(dtype=float))
    scaling = ScalingParameters.from_scaler(list(formula.continuous), scaler)
    frame = scaling.transform(frame)

    logger.info(
        f"Prepared {len(frame):,} of {len(df):,} records "
        f"({int(frame[formula.event_col].sum()):,} events, {n_zero:,} zero-tenure removed)"
    )
    return PreparedData(frame=frame, scaling=scaling, n_input=len(df), n_zero_time_removed=n_zero)


def apply_scaling(profiles: pd.DataFrame, scaling: ScalingParameters) -> pd.DataFrame:
    """Scale continuous covariates of new profiles with the retained training parameters."""
    missing = [c for c in scaling.columns if c not in profiles.columns]
    if missing:
        raise DataValidationError(f"Profiles are missing continuous covariates {missing}")
    profiles = profiles.copy()
    for col in scaling.columns:
        if col == "TotalCharges":
            profiles[col] = coerce_total_charges(profiles[col])
    return scaling.transform(profiles)
