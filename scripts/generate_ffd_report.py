"""
Generates the first-flowering-date report.

By default the observations are downloaded from the USA-NPN service with
the report's standard query (network 72, 2011-2022, species 82,
phenophase 500). A previously saved CSV/JSON table can be used instead.

Usage:
    python scripts/generate_ffd_report.py --output-dir results
    python scripts/generate_ffd_report.py --input data/npn_status.csv
"""
import argparse
import logging
import sys

from phenoTrend import Analysis
from phenoTrend.data_loader import (
    DEFAULT_NETWORK_IDS,
    DEFAULT_PHENOPHASE_IDS,
    DEFAULT_REQUEST_SOURCE,
    DEFAULT_SPECIES_IDS,
)
from phenoTrend.preprocessor import DOY_CUTOFF
from phenoTrend.quality_filter import IQR_MULTIPLIER, MIN_YEARS

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def create_parser():
    parser = argparse.ArgumentParser(description="First flowering date analysis")
    parser.add_argument("--output-dir", default="results", help="Directory for the report")
    parser.add_argument("--input", default=None, help="Saved CSV/JSON table instead of a download")
    parser.add_argument("--save-raw", default=None, help="Save the downloaded table to this CSV")
    parser.add_argument("--network-ids", type=int, nargs="+", default=DEFAULT_NETWORK_IDS)
    parser.add_argument("--species-ids", type=int, nargs="+", default=DEFAULT_SPECIES_IDS)
    parser.add_argument("--phenophase-ids", type=int, nargs="+", default=DEFAULT_PHENOPHASE_IDS)
    parser.add_argument("--start-year", type=int, default=2011)
    parser.add_argument("--end-year", type=int, default=2022)
    parser.add_argument("--request-source", default=DEFAULT_REQUEST_SOURCE)
    parser.add_argument("--doy-cutoff", type=int, default=DOY_CUTOFF)
    parser.add_argument("--min-years", type=int, default=MIN_YEARS)
    parser.add_argument("--iqr-multiplier", type=float, default=IQR_MULTIPLIER)
    parser.add_argument("--tie-policy", choices=["all", "first"], default="all")
    return parser


def main(argv=None):
    args = create_parser().parse_args(argv)
    if args.end_year < args.start_year:
        logger.error("--end-year must not be before --start-year.")
        return 2

    analysis = Analysis(
        network_ids=args.network_ids,
        years=range(args.start_year, args.end_year + 1),
        species_ids=args.species_ids,
        phenophase_ids=args.phenophase_ids,
        request_source=args.request_source,
        file_path=args.input,
        raw_data_path=args.save_raw,
        doy_cutoff=args.doy_cutoff,
        min_years=args.min_years,
        iqr_multiplier=args.iqr_multiplier,
        tie_policy=args.tie_policy,
        verbose=True,
    )
    results = analysis.run_full_analysis(output_dir=args.output_dir)
    logger.info(f"Report written to {results['report_path']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
