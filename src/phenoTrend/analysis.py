import logging
import os
from typing import Dict, Iterable, Optional, Sequence

import pandas as pd
import requests

from .data_loader import (
    DEFAULT_ADDITIONAL_FIELDS,
    DEFAULT_NETWORK_IDS,
    DEFAULT_PHENOPHASE_IDS,
    DEFAULT_REQUEST_SOURCE,
    DEFAULT_SPECIES_IDS,
    DEFAULT_YEARS,
    fetch_status_data,
    load_data,
    process_dataframe,
    save_data,
)
from .exceptions import InsufficientDataError
from .fitter import check_residual_normality, fit_linear_model
from .interpreter import describe_variable, interpret_results
from .plotting import plot_regression, plot_residual_diagnostics
from .preprocessor import DOY_CUTOFF, TIE_POLICIES, preprocess_data
from .quality_filter import IQR_MULTIPLIER, MIN_YEARS, quality_filter
from .report import render_report, write_report
from .utils import as_list, sanitize_filename

# Explanatory variables of the two first-flowering models.
DEFAULT_EXPLANATORY_VARIABLES = ("tmax_spring", "year")


class Analysis:
    """
    A class to perform a complete first-flowering-date analysis.

    This class encapsulates the data download, first-event reduction,
    quality filtering, model fitting and report generation, providing a
    streamlined workflow.
    """

    def __init__(
        self,
        network_ids: Iterable[int] = DEFAULT_NETWORK_IDS,
        years: Iterable[int] = DEFAULT_YEARS,
        species_ids: Iterable[int] = DEFAULT_SPECIES_IDS,
        phenophase_ids: Iterable[int] = DEFAULT_PHENOPHASE_IDS,
        additional_fields: Optional[Iterable[str]] = DEFAULT_ADDITIONAL_FIELDS,
        climate_data: bool = True,
        request_source: str = DEFAULT_REQUEST_SOURCE,
        file_path: Optional[str] = None,
        dataframe: Optional[pd.DataFrame] = None,
        session: Optional[requests.Session] = None,
        raw_data_path: Optional[str] = None,
        doy_cutoff: int = DOY_CUTOFF,
        min_years: int = MIN_YEARS,
        iqr_multiplier: float = IQR_MULTIPLIER,
        tie_policy: str = "all",
        date_format: Optional[str] = None,
        verbose: bool = False,
    ):
        """
        Initializes the Analysis object by loading, reducing and filtering
        the data.

        The constructor accepts one of three data sources:
        1. The USA-NPN service, queried with the fetch parameters (default).
        2. A file path (`file_path`) to a previously downloaded table.
        3. A pandas DataFrame (`dataframe`).

        Args:
            network_ids (Iterable[int], optional): Partner network id(s).
            years (Iterable[int], optional): Years to download.
            species_ids (Iterable[int], optional): Species id(s).
            phenophase_ids (Iterable[int], optional): Phenophase id(s).
            additional_fields (Iterable[str], optional): Extra descriptive
                fields to request.
            climate_data (bool, optional): Request seasonal climate covariates.
            request_source (str, optional): Caller tag sent to the service.
            file_path (str, optional): Path to a CSV or JSON data file.
            dataframe (pd.DataFrame, optional): Raw observation rows.
            session (requests.Session, optional): Session used for the download.
            raw_data_path (str, optional): If set, the downloaded table is
                saved here as CSV after validation (lower-cased columns,
                -9999 recoded to empty cells). It can be passed back as
                `file_path` to repeat the run offline.
            doy_cutoff (int, optional): First events on or after this day of
                year are discarded.
            min_years (int, optional): Individuals need more than this many
                distinct years to be kept.
            iqr_multiplier (float, optional): Width of the outlier fence in IQRs.
            tie_policy (str, optional): "all" or "first"; see
                `preprocessor.reduce_to_first_events`.
            date_format (str, optional): `strftime` format of the observation
                dates. If None, pandas infers it.
            verbose (bool, optional): If True, sets logging level to INFO.
        """
        self.logger = logging.getLogger(__name__)
        if verbose:
            self.logger.setLevel(logging.INFO)

        self._validate_parameters(doy_cutoff, min_years, iqr_multiplier, tie_policy)
        if file_path is not None and dataframe is not None:
            raise ValueError(
                "Please provide only one data source: `file_path` or `dataframe`."
            )

        self.parameters = {}

        # --- Data Loading ---
        self.logger.info("Loading observation data...")
        if file_path is not None:
            self.parameters["source"] = str(file_path)
            self.raw_data = load_data(file_path)
        elif dataframe is not None:
            self.parameters["source"] = "dataframe"
            self.raw_data = process_dataframe(dataframe)
        else:
            # Normalized once; the lists are both recorded and sent.
            query = {
                "network_ids": as_list(network_ids, "network_ids"),
                "years": as_list(years, "years"),
                "species_ids": as_list(species_ids, "species_ids"),
                "phenophase_ids": as_list(phenophase_ids, "phenophase_ids"),
            }
            self.parameters["source"] = "USA-NPN"
            self.parameters.update(query)
            self.raw_data = fetch_status_data(
                **query,
                additional_fields=additional_fields,
                climate_data=climate_data,
                request_source=request_source,
                session=session,
            )
            if raw_data_path is not None:
                save_data(self.raw_data, raw_data_path)
        self.parameters.update(
            {
                "doy_cutoff": doy_cutoff,
                "min_years": min_years,
                "iqr_multiplier": iqr_multiplier,
                "tie_policy": tie_policy,
            }
        )
        self.logger.info(f"Checkpoint: {len(self.raw_data)} records loaded.")

        # --- Preprocessing ---
        self.first_events, self.preprocessing_diagnostics = preprocess_data(
            self.raw_data,
            doy_cutoff=doy_cutoff,
            tie_policy=tie_policy,
            date_format=date_format,
        )
        self.logger.info(
            f"Checkpoint: {len(self.first_events)} first flower dates after reduction."
        )

        # --- Quality filter ---
        self.data, self.filter_diagnostics = quality_filter(
            self.first_events, min_years=min_years, iqr_multiplier=iqr_multiplier
        )
        self.logger.info(
            f"Checkpoint: {len(self.data)} analysis-ready rows from "
            f"{self.filter_diagnostics['n_groups']} individual-species-phenophase groups."
        )

        self.row_counts = {
            "fetched": len(self.raw_data),
            "first_events": len(self.first_events),
            "analysis_ready": len(self.data),
        }

        # Attributes to be populated by analysis methods
        self.results = None

    @staticmethod
    def _validate_parameters(doy_cutoff, min_years, iqr_multiplier, tie_policy):
        """Validates the filtering parameters."""
        if not isinstance(doy_cutoff, int) or not 1 < doy_cutoff <= 367:
            raise ValueError("`doy_cutoff` must be an integer between 2 and 367.")
        if not isinstance(min_years, int) or min_years < 0:
            raise ValueError("`min_years` must be a non-negative integer.")
        if not isinstance(iqr_multiplier, (int, float)) or iqr_multiplier <= 0:
            raise ValueError("`iqr_multiplier` must be a positive number.")
        if tie_policy not in TIE_POLICIES:
            raise ValueError(f"`tie_policy` must be one of {TIE_POLICIES}.")

    def _fit_model(self, x_col: str) -> Dict:
        """Fits one regression, tests its residuals and interprets it."""
        self.logger.info(f"Fitting day_of_year ~ {x_col}...")
        try:
            fit_results = fit_linear_model(self.data, x_col=x_col)
            normality = check_residual_normality(fit_results["residuals"])
        except InsufficientDataError as e:
            self.logger.error(f"Model day_of_year ~ {x_col} could not be fitted: {e}")
            raise

        title = f"First flower date vs. {describe_variable(x_col)[0]}"
        interp_results = interpret_results(fit_results, normality=normality, title=title)
        self.logger.info(
            f"Model fit complete. Slope: {fit_results['slope']:.3f} "
            f"(p = {fit_results['slope_pvalue']:.3g}), R²: {fit_results['rsquared']:.3f}"
        )
        return {
            **fit_results,
            "normality": normality,
            "title": title,
            "interpretation": interp_results["interpretation"],
            "normality_text": interp_results["normality_text"],
            "warnings": interp_results["warnings"],
            "interpretation_text": interp_results["summary_text"],
        }

    def _generate_outputs(self, x_col: str, model: Dict, output_dir: str) -> None:
        """Generates and saves the plots and summary text file for one model."""
        sanitized_name = sanitize_filename(f"ffd_vs_{x_col}")

        plot_path = os.path.join(output_dir, f"{sanitized_name}_plot.png")
        plot_regression(model, output_path=plot_path, title=model["title"])
        model["plot_path"] = plot_path

        diagnostics_path = os.path.join(output_dir, f"{sanitized_name}_residuals.png")
        plot_residual_diagnostics(
            model, output_path=diagnostics_path, normality=model["normality"]
        )
        model["diagnostics_plot_path"] = diagnostics_path

        summary_path = os.path.join(output_dir, f"{sanitized_name}_summary.txt")
        with open(summary_path, "w", encoding="utf-8") as f:
            f.write(model["summary_text"])
            f.write("\n\n")
            f.write(model["interpretation_text"])
            f.write("\n")
        model["summary_path"] = summary_path

        self.logger.info(f"Plot saved to {plot_path}")
        self.logger.info(f"Summary saved to {summary_path}")

    def run_full_analysis(
        self,
        output_dir: str,
        explanatory_variables: Sequence[str] = DEFAULT_EXPLANATORY_VARIABLES,
        report_title: str = "First flowering date analysis",
    ) -> Dict:
        """
        Runs the modelling workflow and saves all outputs to a directory.

        For each explanatory variable an OLS model of day of year is fitted,
        its residuals are tested for normality, and a regression plot, a
        residual diagnostics plot and a text summary are saved. A Markdown
        report combining everything is written last.

        Args:
            output_dir (str): Path to the directory where outputs will be saved.
            explanatory_variables (Sequence[str], optional): Columns to regress
                day of year on. Defaults to spring maximum temperature and year.
            report_title (str, optional): Title of the Markdown report.

        Returns:
            dict: ``parameters``, ``row_counts``, ``preprocessing_diagnostics``,
            ``filter_diagnostics``, ``models`` (keyed by explanatory
            variable) and ``report_path``.
        """
        if not explanatory_variables:
            raise ValueError("At least one explanatory variable is required.")

        # Fit everything before writing anything, so a failure leaves no
        # partial report behind.
        models = {x_col: self._fit_model(x_col) for x_col in explanatory_variables}

        self.logger.info(f"Generating outputs in directory: {output_dir}")
        os.makedirs(output_dir, exist_ok=True)
        for x_col, model in models.items():
            self._generate_outputs(x_col, model, output_dir)

        self.results = {
            "parameters": self.parameters,
            "row_counts": self.row_counts,
            "preprocessing_diagnostics": self.preprocessing_diagnostics,
            "filter_diagnostics": self.filter_diagnostics,
            "models": models,
        }
        report_text = render_report(self.results, title=report_title)
        self.results["report_path"] = write_report(report_text, output_dir)

        self.logger.info(f"Analysis complete. Outputs saved to '{output_dir}'.")
        return self.results
