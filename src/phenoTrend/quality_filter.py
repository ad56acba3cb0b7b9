"""
Quality filtering of first-event dates.

Two stages are applied to the reduced table:

a. Minimum history: individuals observed in too few distinct years are
   dropped. This stage is keyed on the individual alone.
b. Outlier fence: within each individual-species-phenophase group, rows
   outside ``(Q1 - k*IQR, Q3 + k*IQR)`` are dropped.

The per-individual year counts and per-group quartiles are joined onto the
rows (`n_years`, `q1`, `q3`, `iqr`). When a table that already carries
them is filtered again, the carried values are reused, so filtering the
output of `quality_filter` returns it unchanged.
"""

import logging
from typing import Dict, Sequence, Tuple

import pandas as pd

from .exceptions import EmptyDataError

logger = logging.getLogger(__name__)

MIN_YEARS = 4
IQR_MULTIPLIER = 1.5
GROUP_KEY_COLUMNS = ["individual_id", "species_id", "phenophase_description"]
GROUP_KEY_SEPARATOR = "_"
FENCE_COLUMNS = ["q1", "q3", "iqr"]


def filter_min_years(
    df: pd.DataFrame,
    min_years: int = MIN_YEARS,
    id_col: str = "individual_id",
) -> pd.DataFrame:
    """
    Drops individuals with `min_years` or fewer distinct observed years.

    The distinct-year count is stored in an `n_years` column.
    """
    if "year" not in df.columns:
        raise ValueError("Column 'year' not found. Run `add_date_parts` first.")

    filtered = df.copy()
    if "n_years" not in filtered.columns:
        filtered["n_years"] = filtered.groupby(id_col)["year"].transform("nunique")
    return filtered[filtered["n_years"] > min_years].copy()


def make_group_key(
    df: pd.DataFrame,
    columns: Sequence[str] = GROUP_KEY_COLUMNS,
    sep: str = GROUP_KEY_SEPARATOR,
) -> pd.DataFrame:
    """Adds a `group_key` column identifying each individual-species-phenophase."""
    keyed = df.copy()
    if keyed.empty:
        keyed["group_key"] = pd.Series(dtype=str)
        return keyed
    keyed["group_key"] = keyed[list(columns)].astype(str).agg(sep.join, axis=1)
    return keyed


def compute_iqr_stats(
    df: pd.DataFrame,
    value_col: str = "day_of_year",
    key_col: str = "group_key",
) -> pd.DataFrame:
    """
    Computes the first quartile, third quartile and IQR of `value_col` per group.

    Quartiles use linear interpolation between order statistics (the
    "type 7" definition), which is the pandas default.

    Returns:
        pd.DataFrame: Indexed by `key_col`, with columns `q1`, `q3`, `iqr`.
    """
    grouped = df.groupby(key_col)[value_col]
    stats = pd.DataFrame(
        {
            "q1": grouped.quantile(0.25),
            "q3": grouped.quantile(0.75),
        }
    )
    stats["iqr"] = stats["q3"] - stats["q1"]
    return stats


def apply_iqr_fence(
    df: pd.DataFrame,
    multiplier: float = IQR_MULTIPLIER,
    value_col: str = "day_of_year",
    key_col: str = "group_key",
) -> pd.DataFrame:
    """
    Keeps rows strictly inside ``(q1 - multiplier*iqr, q3 + multiplier*iqr)``.

    Group statistics are computed on the rows passed in and joined onto
    them, unless the rows already carry `q1`, `q3` and `iqr`.
    """
    if all(col in df.columns for col in FENCE_COLUMNS):
        fenced = df.copy()
    else:
        stats = compute_iqr_stats(df, value_col=value_col, key_col=key_col)
        fenced = df.drop(columns=FENCE_COLUMNS, errors="ignore").join(stats, on=key_col)

    lower = fenced["q1"] - multiplier * fenced["iqr"]
    upper = fenced["q3"] + multiplier * fenced["iqr"]
    inside = (fenced[value_col] > lower) & (fenced[value_col] < upper)
    return fenced[inside].copy()


def quality_filter(
    df: pd.DataFrame,
    min_years: int = MIN_YEARS,
    iqr_multiplier: float = IQR_MULTIPLIER,
) -> Tuple[pd.DataFrame, Dict]:
    """
    Runs the minimum-history filter, builds group keys and applies the fence.

    Returns:
        Tuple[pd.DataFrame, Dict]: The analysis-ready table and a
        diagnostics dict with row and group counts.
    """
    if df.empty:
        raise EmptyDataError("quality filtering", "The input table is empty.")

    n_individuals = df["individual_id"].nunique()
    history = filter_min_years(df, min_years=min_years)
    if history.empty:
        raise EmptyDataError(
            "the minimum-history filter",
            f"No individual has more than {min_years} distinct years of observations.",
        )
    dropped_individuals = n_individuals - history["individual_id"].nunique()
    if dropped_individuals:
        logger.info(
            "Dropped %d of %d individuals with %d or fewer observed years.",
            dropped_individuals,
            n_individuals,
            min_years,
        )

    keyed = make_group_key(history)
    fenced = apply_iqr_fence(keyed, multiplier=iqr_multiplier)
    if fenced.empty:
        raise EmptyDataError("the IQR outlier fence")

    n_outliers = len(keyed) - len(fenced)
    if n_outliers:
        logger.info("Removed %d outlier(s) outside the %.1fxIQR fence.", n_outliers, iqr_multiplier)
    # A group with IQR 0 loses every row to the strict fence.
    lost_groups = set(keyed["group_key"]) - set(fenced["group_key"])
    if lost_groups:
        logger.warning(
            "The IQR fence removed every row of %d group(s): %s",
            len(lost_groups),
            sorted(lost_groups),
        )

    diagnostics = {
        "n_input": len(df),
        "n_after_min_years": len(history),
        "n_after_fence": len(fenced),
        "n_outliers": n_outliers,
        "n_individuals": int(fenced["individual_id"].nunique()),
        "n_groups": int(fenced["group_key"].nunique()),
        "min_years": min_years,
        "iqr_multiplier": iqr_multiplier,
    }
    return fenced, diagnostics
