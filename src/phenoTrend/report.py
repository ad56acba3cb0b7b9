"""
Markdown rendering of a first-flowering analysis.

`render_report` is a pure function of the results dictionary produced by
`Analysis.run_full_analysis`; `write_report` is the only part that touches
the filesystem.
"""

import logging
import os
from typing import Dict

logger = logging.getLogger(__name__)

REPORT_FILENAME = "report.md"

CHECKPOINT_LABELS = [
    ("fetched", "Records downloaded"),
    ("first_events", "First flower dates (after reduction)"),
    ("analysis_ready", "Analysis-ready rows (after quality filter)"),
]


def _render_parameters(parameters: Dict) -> str:
    lines = ["## Parameters", ""]
    for key, value in parameters.items():
        if isinstance(value, (list, tuple, range)):
            value = ", ".join(str(v) for v in value)
        lines.append(f"- **{key}**: {value}")
    return "\n".join(lines)


def _render_row_counts(row_counts: Dict) -> str:
    lines = ["## Row counts", "", "| Checkpoint | Rows |", "|---|---|"]
    for key, label in CHECKPOINT_LABELS:
        if key in row_counts:
            lines.append(f"| {label} | {row_counts[key]} |")
    return "\n".join(lines)


def _render_model(name: str, model: Dict) -> str:
    lines = [f"## {model.get('title', name)}", ""]

    if model.get("plot_path"):
        lines += [f"![{name} regression]({os.path.basename(model['plot_path'])})", ""]

    lines += ["### Model summary", "", "```", model["summary_text"].rstrip(), "```", ""]

    normality = model.get("normality")
    lines += ["### Shapiro-Wilk normality test on residuals", ""]
    if normality is not None:
        lines += [
            f"- W = {normality['statistic']:.4f}",
            f"- p-value = {normality['p_value']:.4g}",
            f"- n = {normality['n']}",
            "",
        ]
    if model.get("diagnostics_plot_path"):
        lines += [
            f"![{name} residuals]({os.path.basename(model['diagnostics_plot_path'])})",
            "",
        ]

    if model.get("interpretation"):
        lines += ["### Interpretation", "", model["interpretation"], ""]
        if model.get("normality_text"):
            lines += [model["normality_text"], ""]
    for warning in model.get("warnings", []):
        lines += [f"> {warning}", ""]
    return "\n".join(lines).rstrip()


def render_report(results: Dict, title: str = "First flowering date analysis") -> str:
    """
    Renders the analysis results as a Markdown document.

    Args:
        results (Dict): Output of `Analysis.run_full_analysis`, with
            ``parameters``, ``row_counts`` and ``models`` entries.
        title (str, optional): Document title.

    Returns:
        str: The Markdown text.
    """
    sections = [f"# {title}"]
    if results.get("parameters"):
        sections.append(_render_parameters(results["parameters"]))
    sections.append(_render_row_counts(results.get("row_counts", {})))
    for name, model in results.get("models", {}).items():
        sections.append(_render_model(name, model))
    return "\n\n".join(sections) + "\n"


def write_report(text: str, output_dir: str, filename: str = REPORT_FILENAME) -> str:
    """Writes the rendered report into `output_dir` and returns its path."""
    os.makedirs(output_dir, exist_ok=True)
    report_path = os.path.join(output_dir, filename)
    with open(report_path, "w", encoding="utf-8") as f:
        f.write(text)
    logger.info(f"Report saved to {report_path}")
    return report_path
