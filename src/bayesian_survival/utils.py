from __future__ import annotations
import os
import pandas as pd

from bayesian_survival.data import RunType

OUTPUT_SUBDIRS = ("predictions", "artifacts", "models", "mlruns")


def ensure_dir(path: str):
    """Create ``path`` and any missing parents; existing directories are left alone."""
    os.makedirs(path, exist_ok=True)


def save_frame(df: pd.DataFrame, outdir: str, name: str, index: bool = False) -> str:
    """Save a result table as CSV under outdir.

    Args:
        df: Table to save
        outdir: Output directory path (created if missing)
        name: File name without extension
        index: Whether to write the index

    Returns:
        Path of the written ``<name>.csv``

    Example:
        >>> path = save_frame(hr_table, "data/outputs/sample/artifacts", "hazard_ratios")
        >>> path
        'data/outputs/sample/artifacts/hazard_ratios.csv'
    """
    ensure_dir(outdir)
    path = os.path.join(outdir, f"{name}.csv")
    df.to_csv(path, index=index)
    return path


def get_output_paths(run_type: RunType = "sample", base: str = "data/outputs") -> dict:
    """Output directories of one run type, created on first use.

    Sample and production runs never share a directory, so cached draw
    sets and MLflow runs of a quick sample analysis cannot leak into a
    production one.

    Args:
        run_type: "sample" or "production"
        base: Root of all outputs

    Returns:
        Dict with ``base_dir`` plus one entry per subdirectory:
        ``predictions`` (survival prediction CSVs), ``artifacts``
        (summaries, diagnostics, checks, sensitivity), ``models`` (cached
        posterior draw sets) and ``mlruns`` (MLflow tracking store)
    """
    base_dir = os.path.join(base, run_type)
    paths = {"base_dir": base_dir}
    paths.update({sub: os.path.join(base_dir, sub) for sub in OUTPUT_SUBDIRS})
    for path in paths.values():
        ensure_dir(path)
    return paths
