from importlib.metadata import version, PackageNotFoundError

"""
phenoTrend: first-flowering-date analysis of USA-NPN phenology observations.
"""

try:
    __version__ = version("phenoTrend")
except PackageNotFoundError:
    # If the package is not installed, we don't have a version number
    __version__ = "unknown"

from .analysis import Analysis
from .data_loader import fetch_status_data, load_data, process_dataframe
from .exceptions import EmptyDataError, FetchError, InsufficientDataError
from .fitter import check_residual_normality, fit_linear_model
from .interpreter import interpret_results
from .plotting import plot_regression, plot_residual_diagnostics
from .preprocessor import add_date_parts, preprocess_data, reduce_to_first_events
from .quality_filter import quality_filter
from .report import render_report

__all__ = [
    "Analysis",
    "fetch_status_data",
    "load_data",
    "process_dataframe",
    "add_date_parts",
    "reduce_to_first_events",
    "preprocess_data",
    "quality_filter",
    "fit_linear_model",
    "check_residual_normality",
    "interpret_results",
    "plot_regression",
    "plot_residual_diagnostics",
    "render_report",
    "EmptyDataError",
    "FetchError",
    "InsufficientDataError",
]
