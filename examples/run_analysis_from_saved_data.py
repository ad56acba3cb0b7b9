import os

from phenoTrend.analysis import Analysis

# This example demonstrates how to download the status data once, keep a
# copy on disk, and re-run the first flowering analysis from that copy.

raw_path = "example_output/npn_status_72_82_500.csv"
output_dir = "example_output/ffd_report"

# --- 1. Download (only if there is no saved copy yet) ---
# The default query is network 72, 2011-2022, species 82, phenophase 500.
# `raw_data_path` keeps the validated download (lower-cased columns, -9999
# already recoded to empty cells) so later runs work offline.
if not os.path.exists(raw_path):
    Analysis(request_source="phenoTrend-example", raw_data_path=raw_path, verbose=True)

# --- 2. Re-run from the saved table ---
# Thresholds can be changed without downloading again.
analyzer = Analysis(file_path=raw_path, min_years=4, iqr_multiplier=1.5, verbose=True)
print(f"Rows at each checkpoint: {analyzer.row_counts}")

# --- 3. Fit both models and write the report ---
results = analyzer.run_full_analysis(output_dir=output_dir)

# --- 4. Print a summary of the results ---
print("\n" + "=" * 50)
print("      ANALYSIS COMPLETE")
print("=" * 50)
print(f"Report saved to: {results['report_path']}")
for x_col, model in results["models"].items():
    print(model["interpretation_text"])
    print()
