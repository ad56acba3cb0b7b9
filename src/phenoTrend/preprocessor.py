import logging
from typing import Dict, Iterable, Optional, Tuple

import numpy as np
import pandas as pd

from .exceptions import EmptyDataError

logger = logging.getLogger(__name__)

# Reserved code the phenology service uses for "value not available".
MISSING_VALUE_SENTINEL = -9999

# Seasonal climate covariates attached when climate data is requested.
CLIMATE_COLUMNS = [
    "tmax_winter",
    "tmax_spring",
    "tmax_summer",
    "tmax_fall",
    "tmin_winter",
    "tmin_spring",
    "tmin_summer",
    "tmin_fall",
    "prcp_winter",
    "prcp_spring",
    "prcp_summer",
    "prcp_fall",
    "tmax",
    "tmin",
    "prcp",
    "gdd",
    "gddf",
    "acc_prcp",
    "daylength",
]

# Observations of a phenophase are coded 1 (yes), 0 (no) or -1 (uncertain).
POSITIVE_STATUS = 1

# Only first events before July 1st (day 182) are kept.
DOY_CUTOFF = 182

EVENT_KEYS = ["year", "individual_id", "species_id", "phenophase_description"]

TIE_POLICIES = ("all", "first")


def recode_missing_values(
    df: pd.DataFrame,
    columns: Optional[Iterable[str]] = None,
    sentinel: float = MISSING_VALUE_SENTINEL,
) -> pd.DataFrame:
    """
    Replaces the missing-value sentinel with NaN in the given columns.

    This is the only place the sentinel is compared against; downstream code
    sees ordinary nullable floats. Returns a new DataFrame.

    Args:
        df (pd.DataFrame): Observation rows.
        columns (Iterable[str], optional): Columns to recode. Defaults to
            every known climate column present in `df`.
        sentinel (float, optional): The reserved missing-value code.
    """
    if columns is None:
        columns = [c for c in CLIMATE_COLUMNS if c in df.columns]
    recoded = df.copy()
    for col in columns:
        values = pd.to_numeric(recoded[col], errors="raise").astype(float)
        n_sentinel = int((values == sentinel).sum())
        if n_sentinel:
            logger.info(
                "Recoded %d missing-value sentinel(s) in '%s' to NaN.", n_sentinel, col
            )
        recoded[col] = values.mask(values == sentinel, np.nan)
    return recoded


def add_date_parts(
    df: pd.DataFrame,
    date_col: str = "observation_date",
    date_format: Optional[str] = None,
) -> pd.DataFrame:
    """
    Derives `year`, `month` and `day` columns from the observation date.

    Dates are read as calendar dates; no timezone conversion is applied.
    Any missing or unparseable date fails the run instead of dropping rows.

    Returns:
        pd.DataFrame: A copy of `df` with the three derived columns.
    """
    if date_col not in df.columns:
        raise ValueError(f"Date column '{date_col}' not found in the data.")

    dates = pd.to_datetime(df[date_col], format=date_format, errors="coerce")
    n_bad = int(dates.isna().sum())
    if n_bad:
        msg = (
            f"{n_bad} value(s) in the date column '{date_col}' are missing or "
            "could not be parsed as dates."
        )
        if date_format:
            msg += f" Please check that the format string '{date_format}' is correct."
        raise ValueError(msg)

    normalized = df.copy()
    normalized["year"] = dates.dt.year.astype(int)
    normalized["month"] = dates.dt.month.astype(int)
    normalized["day"] = dates.dt.day.astype(int)
    return normalized


def reduce_to_first_events(
    df: pd.DataFrame,
    doy_cutoff: int = DOY_CUTOFF,
    tie_policy: str = "all",
) -> pd.DataFrame:
    """
    Reduces status records to first-event (e.g. first flower) dates.

    Applied per (year, individual, species, phenophase) group:

    1. Keep only positive status records (``phenophase_status == 1``).
    2. Keep the record(s) with the minimum day of year.
    3. Drop them if the day of year is at or after `doy_cutoff`.

    Args:
        df (pd.DataFrame): Observation rows with a `year` column
            (see `add_date_parts`).
        doy_cutoff (int, optional): Exclusive upper bound on day of year.
        tie_policy (str, optional): What to do when several records share
            the minimum day of year. ``"all"`` keeps every one of them,
            ``"first"`` keeps the first in input order.

    Returns:
        pd.DataFrame: The reduced rows, in input order. May be empty.
    """
    if tie_policy not in TIE_POLICIES:
        raise ValueError(f"`tie_policy` must be one of {TIE_POLICIES}.")
    missing = [c for c in EVENT_KEYS + ["phenophase_status", "day_of_year"] if c not in df.columns]
    if missing:
        raise ValueError(
            f"Column(s) {missing} not found. Run `add_date_parts` before reducing."
        )

    positive = df[df["phenophase_status"] == POSITIVE_STATUS]
    group_min = positive.groupby(EVENT_KEYS, dropna=False)["day_of_year"].transform("min")
    first = positive[positive["day_of_year"] == group_min]

    if tie_policy == "first":
        first = first[~first.duplicated(subset=EVENT_KEYS, keep="first")]

    return first[first["day_of_year"] < doy_cutoff].copy()


def preprocess_data(
    df: pd.DataFrame,
    doy_cutoff: int = DOY_CUTOFF,
    tie_policy: str = "all",
    date_format: Optional[str] = None,
) -> Tuple[pd.DataFrame, Dict]:
    """
    A wrapper that applies the preprocessing steps in a defined order:
    1. Derive year/month/day from the observation date
    2. Reduce to first events before the day-of-year cutoff

    Missing-value sentinels are recoded at ingestion (see
    `data_loader.process_dataframe`), before this step.

    Returns:
        Tuple[pd.DataFrame, Dict]: The reduced table and a diagnostics dict
        with row counts at each step.
    """
    if df.empty:
        raise EmptyDataError("preprocessing", "The input table is empty.")

    normalized = add_date_parts(df, date_format=date_format)
    n_positive = int((normalized["phenophase_status"] == POSITIVE_STATUS).sum())
    reduced = reduce_to_first_events(
        normalized, doy_cutoff=doy_cutoff, tie_policy=tie_policy
    )

    diagnostics = {
        "n_input": len(df),
        "n_positive": n_positive,
        "n_first_events": len(reduced),
        "doy_cutoff": doy_cutoff,
        "tie_policy": tie_policy,
    }
    logger.info(
        "Reduced %d records (%d positive) to %d first events before day %d.",
        len(df),
        n_positive,
        len(reduced),
        doy_cutoff,
    )

    if reduced.empty:
        raise EmptyDataError(
            "first-event reduction",
            f"No positive observations occur before day of year {doy_cutoff}.",
        )
    return reduced, diagnostics
