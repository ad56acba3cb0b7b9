from typing import Dict, Optional

import matplotlib.pyplot as plt
import numpy as np
from scipy import stats

from .interpreter import describe_variable


def _format_axis_label(col):
    label, unit = describe_variable(col)
    if unit in ("unit", label):
        return label.capitalize()
    return f"{label.capitalize()} ({unit})"


def _plot_single_regression(ax, fit_results, x_label=None, y_label=None, title=""):
    """
    Plots the observations, the fitted line and the correlation annotation
    on a given matplotlib Axes object.
    """
    x = np.asarray(fit_results["x"])
    y = np.asarray(fit_results["y"])
    ax.scatter(x, y, s=25, alpha=0.6, edgecolor="none", label="First flower dates")

    order = np.argsort(x)
    ax.plot(
        x[order],
        np.asarray(fit_results["fitted"])[order],
        "r-",
        linewidth=2,
        label=f"OLS fit (slope ≈ {fit_results['slope']:.2f})",
    )

    r = fit_results.get("pearson_r", np.nan)
    p = fit_results.get("pearson_p", np.nan)
    if np.isfinite(r):
        p_str = "p < 0.001" if p < 0.001 else f"p = {p:.3f}"
        annotation = f"R = {r:.2f}, {p_str}"
    else:
        annotation = "R undefined"
    ax.text(
        0.03,
        0.95,
        annotation,
        transform=ax.transAxes,
        ha="left",
        va="top",
        fontsize=11,
        bbox=dict(boxstyle="round", facecolor="white", alpha=0.8),
    )

    ax.set_title(title, fontsize=14)
    ax.set_xlabel(x_label or _format_axis_label(fit_results["x_col"]))
    ax.set_ylabel(y_label or _format_axis_label(fit_results.get("y_col", "day_of_year")))
    ax.grid(True, ls="--", alpha=0.5)
    ax.legend(loc="lower right")


def plot_regression(
    fit_results: Dict,
    output_path: Optional[str] = None,
    x_label: Optional[str] = None,
    y_label: Optional[str] = None,
    title: Optional[str] = None,
    show: bool = False,
):
    """
    Generates, saves, or shows a scatter plot of a regression and its fit line.

    Returns:
        matplotlib.figure.Figure: The figure object for the plot.
    """
    if title is None:
        title = (
            f"{_format_axis_label(fit_results.get('y_col', 'day_of_year'))} vs. "
            f"{describe_variable(fit_results['x_col'])[0]}"
        )
    fig, ax = plt.subplots(figsize=(10, 6))
    _plot_single_regression(ax, fit_results, x_label=x_label, y_label=y_label, title=title)
    plt.tight_layout()

    if output_path:
        fig.savefig(output_path, dpi=300)

    if show:
        plt.show()

    plt.close(fig)
    return fig


def plot_residual_diagnostics(
    fit_results: Dict,
    output_path: Optional[str] = None,
    normality: Optional[Dict] = None,
    show: bool = False,
):
    """
    Plots a histogram and a normal Q-Q plot of the model residuals.

    Returns:
        matplotlib.figure.Figure: The figure object for the plot.
    """
    residuals = np.asarray(fit_results["residuals"], dtype=float)
    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(12, 5))

    ax1.hist(residuals, bins="auto", color="steelblue", alpha=0.7, edgecolor="black")
    ax1.axvline(0, color="k", ls="--", alpha=0.8)
    ax1.set_title("Residual distribution")
    ax1.set_xlabel("Residual (days)")
    ax1.set_ylabel("Count")

    stats.probplot(residuals, dist="norm", plot=ax2)
    ax2.set_title("Normal Q-Q plot")
    if normality is not None:
        ax2.text(
            0.03,
            0.95,
            f"Shapiro-Wilk W = {normality['statistic']:.3f}\np = {normality['p_value']:.3f}",
            transform=ax2.transAxes,
            ha="left",
            va="top",
            bbox=dict(boxstyle="round", facecolor="white", alpha=0.8),
        )

    fig.suptitle(f"Residual diagnostics: {_format_axis_label(fit_results['x_col'])}")
    plt.tight_layout(rect=[0, 0, 1, 0.95])

    if output_path:
        fig.savefig(output_path, dpi=300)

    if show:
        plt.show()

    plt.close(fig)
    return fig
