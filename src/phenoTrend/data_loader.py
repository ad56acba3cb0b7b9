import logging
import os
from typing import Iterable, Optional, Sequence, Union

import pandas as pd
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .exceptions import EmptyDataError, FetchError
from .preprocessor import CLIMATE_COLUMNS, recode_missing_values
from .utils import as_list

logger = logging.getLogger(__name__)

NPN_OBSERVATIONS_URL = (
    "https://services.usanpn.org/npn_portal/observations/getObservations.json"
)

# Query used by the first-flowering report.
DEFAULT_NETWORK_IDS = [72]
DEFAULT_YEARS = range(2011, 2023)
DEFAULT_SPECIES_IDS = [82]
DEFAULT_PHENOPHASE_IDS = [500]
DEFAULT_ADDITIONAL_FIELDS = ["Site_Name", "Network_Name", "Phenophase_Category"]
DEFAULT_REQUEST_SOURCE = "phenoTrend"

# No retries: a failed fetch aborts the run.
NO_RETRY = Retry(total=0, raise_on_status=False)

DEFAULT_TIMEOUT = 120  # seconds, status downloads can be slow

REQUIRED_COLUMNS = [
    "individual_id",
    "species_id",
    "phenophase_description",
    "observation_date",
    "phenophase_status",
    "day_of_year",
]
NUMERIC_COLUMNS = ["phenophase_status", "day_of_year"]


def create_session(
    retry: Optional[Retry] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> requests.Session:
    """
    Build a ``requests.Session`` for the phenology data service.

    Args:
        retry: Retry strategy for the mounted adapter. Defaults to no retries.
        timeout: Default timeout applied to every request.
    """
    s = requests.Session()
    adapter = HTTPAdapter(max_retries=retry or NO_RETRY)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    s.headers["User-Agent"] = "phenoTrend/0.1"

    # Inject a default timeout so callers don't need to pass one every time.
    _original_send = s.send

    def _send_with_timeout(prepared, **kwargs):
        kwargs.setdefault("timeout", timeout)
        return _original_send(prepared, **kwargs)

    s.send = _send_with_timeout
    return s


def build_query(
    network_ids: Union[int, Iterable[int]] = DEFAULT_NETWORK_IDS,
    years: Iterable[int] = DEFAULT_YEARS,
    species_ids: Union[int, Iterable[int]] = DEFAULT_SPECIES_IDS,
    phenophase_ids: Union[int, Iterable[int]] = DEFAULT_PHENOPHASE_IDS,
    additional_fields: Optional[Iterable[str]] = DEFAULT_ADDITIONAL_FIELDS,
    climate_data: bool = True,
    request_source: str = DEFAULT_REQUEST_SOURCE,
) -> dict:
    """
    Builds the form payload for a status-data download.

    List arguments are sent as indexed fields (``species_id[0]``,
    ``species_id[1]``, ...). The year range is expanded to a date range
    running from January 1st of the first year to December 31st of the last.
    """
    years = sorted(int(y) for y in as_list(years, "years"))
    if not request_source:
        raise ValueError("`request_source` must identify the caller.")

    query = {
        "request_src": request_source,
        "start_date": f"{years[0]}-01-01",
        "end_date": f"{years[-1]}-12-31",
        "climate_data": 1 if climate_data else 0,
    }
    indexed = [
        ("species_id", as_list(species_ids, "species_ids")),
        ("phenophase_id", as_list(phenophase_ids, "phenophase_ids")),
        ("network", as_list(network_ids, "network_ids")),
        (
            "additional_field",
            as_list(additional_fields, "additional_fields", allow_empty=True),
        ),
    ]
    for field, values in indexed:
        for i, value in enumerate(values):
            query[f"{field}[{i}]"] = value
    return query


def fetch_status_data(
    network_ids: Union[int, Iterable[int]] = DEFAULT_NETWORK_IDS,
    years: Iterable[int] = DEFAULT_YEARS,
    species_ids: Union[int, Iterable[int]] = DEFAULT_SPECIES_IDS,
    phenophase_ids: Union[int, Iterable[int]] = DEFAULT_PHENOPHASE_IDS,
    additional_fields: Optional[Iterable[str]] = DEFAULT_ADDITIONAL_FIELDS,
    climate_data: bool = True,
    request_source: str = DEFAULT_REQUEST_SOURCE,
    session: Optional[requests.Session] = None,
    base_url: str = NPN_OBSERVATIONS_URL,
) -> pd.DataFrame:
    """
    Downloads status and intensity observations from the USA-NPN service.

    Args:
        network_ids: Partner network id(s) to restrict the query to.
        years: Years to download; only the first and last matter.
        species_ids: Species id(s).
        phenophase_ids: Phenophase id(s).
        additional_fields: Extra descriptive fields to include
            (e.g. ``"Site_Name"``).
        climate_data: If True, the service attaches seasonal climate
            covariates (``tmax_winter``, ``tmax_spring``, ...).
        request_source: Caller tag sent with every request.
        session: Optional ``requests.Session``; one without retries is
            created when omitted.
        base_url: Endpoint to query.

    Returns:
        pd.DataFrame: Validated observation rows (see `process_dataframe`).

    Raises:
        requests.RequestException: Network or HTTP failures, unmodified.
        FetchError: The service answered with an error message.
        EmptyDataError: The query matched no observations.
    """
    query = build_query(
        network_ids=network_ids,
        years=years,
        species_ids=species_ids,
        phenophase_ids=phenophase_ids,
        additional_fields=additional_fields,
        climate_data=climate_data,
        request_source=request_source,
    )
    session = session or create_session()

    logger.info(
        "Requesting status data (%s to %s) from %s",
        query["start_date"],
        query["end_date"],
        base_url,
    )
    resp = session.post(base_url, data=query)
    resp.raise_for_status()
    payload = resp.json()

    if isinstance(payload, dict):
        message = payload.get("error") or payload.get("message")
        if message:
            raise FetchError(f"Phenology service rejected the request: {message}")
        payload = payload.get("data", [])

    if not payload:
        raise EmptyDataError("fetch", "The query matched no observation records.")

    df = pd.DataFrame.from_records(payload)
    logger.info("Downloaded %d observation records.", len(df))
    return process_dataframe(df, source="fetch")


def process_dataframe(
    df: pd.DataFrame,
    climate_cols: Optional[Sequence[str]] = None,
    source: str = "ingestion",
) -> pd.DataFrame:
    """
    Validates a raw observation table and returns a cleaned copy.

    Column names are lower-cased, required columns are checked, numeric
    fields are coerced (any value that cannot be parsed is an error, never
    silently dropped) and the missing-value sentinel is recoded to NaN in
    the climate columns.

    Args:
        df (pd.DataFrame): Raw observation rows.
        climate_cols (Sequence[str], optional): Climate columns to validate
            and recode. Defaults to every known climate column present.
        source (str, optional): Stage name used in error messages.

    Returns:
        pd.DataFrame: A new, validated DataFrame.
    """
    if df is None or df.empty:
        raise EmptyDataError(source, "The provided table is empty.")

    # Check for ambiguities (duplicate lowercased column names)
    lower_cols = pd.Series([str(c).lower() for c in df.columns])
    if lower_cols.duplicated().any():
        counts = lower_cols.value_counts()
        duplicates = counts[counts > 1].index.tolist()
        raise ValueError(
            "Duplicate column names found (case-insensitive): "
            f"{duplicates}. Please rename columns to be unique."
        )
    clean_df = df.copy()
    clean_df.columns = lower_cols.tolist()

    missing = [c for c in REQUIRED_COLUMNS if c not in clean_df.columns]
    if missing:
        raise ValueError(f"Required column(s) not found in the data: {missing}")

    if climate_cols is None:
        climate_cols = [c for c in CLIMATE_COLUMNS if c in clean_df.columns]
    else:
        climate_cols = [c.lower() for c in climate_cols]
        absent = [c for c in climate_cols if c not in clean_df.columns]
        if absent:
            raise ValueError(f"Climate column(s) not found in the data: {absent}")

    for col in NUMERIC_COLUMNS + list(climate_cols):
        original_na = clean_df[col].isna().sum()
        coerced = pd.to_numeric(clean_df[col], errors="coerce")
        num_failed = coerced.isna().sum() - original_na
        if num_failed > 0:
            raise ValueError(
                f"{num_failed} value(s) in column '{col}' could not be "
                "converted to a numeric type."
            )
        clean_df[col] = coerced

    if clean_df["day_of_year"].isna().any():
        raise ValueError("The 'day_of_year' column contains missing values.")

    return recode_missing_values(clean_df, columns=climate_cols)


def load_data(file_path: str, climate_cols: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """
    Loads a previously downloaded observation table from a CSV or JSON file.

    Args:
        file_path (str): Path to the data file.
        climate_cols (Sequence[str], optional): See `process_dataframe`.

    Returns:
        pd.DataFrame: Validated observation rows.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"The specified file was not found: {file_path}")

    _, file_extension = os.path.splitext(str(file_path))
    file_extension = file_extension.lower()
    if file_extension == ".csv":
        try:
            # low_memory=False prevents mixed-type columns from chunked inference.
            df = pd.read_csv(file_path, low_memory=False, index_col=False)
        except pd.errors.EmptyDataError:
            df = pd.DataFrame()
    elif file_extension == ".json":
        df = pd.read_json(file_path, orient="records", dtype=False)
    else:
        raise ValueError(f"Unsupported file format: {file_extension}")

    if df.empty:
        raise EmptyDataError("loading", f"The file at {file_path} is empty.")

    logger.info("Loaded %d observation records from %s", len(df), file_path)
    return process_dataframe(df, climate_cols=climate_cols, source="loading")


def save_data(df: pd.DataFrame, file_path: str) -> str:
    """
    Writes a validated observation table to CSV so a run can be reproduced
    offline. Missing climate values are written as empty cells, which
    `load_data` reads back as NaN.
    """
    directory = os.path.dirname(str(file_path))
    if directory:
        os.makedirs(directory, exist_ok=True)
    df.to_csv(file_path, index=False)
    logger.info("Saved %d observation records to %s", len(df), file_path)
    return str(file_path)
