import os

import matplotlib.pyplot as plt
import numpy as np
import pytest

from phenoTrend.fitter import check_residual_normality, fit_linear_model
from phenoTrend.plotting import plot_regression, plot_residual_diagnostics


@pytest.fixture
def fit_results(first_events_factory):
    df = first_events_factory(1, [120, 117, 118, 112, 110, 111, 105, 104])
    df["tmax_spring"] = np.linspace(12, 18, len(df))
    return fit_linear_model(df, x_col="tmax_spring")


def test_plot_regression_creates_file(tmp_path, fit_results):
    """Test that the regression plot is written to disk."""
    output_path = tmp_path / "regression.png"
    fig = plot_regression(fit_results, output_path=str(output_path))
    assert os.path.exists(output_path)
    assert fig is not None


def test_plot_regression_content(fit_results):
    fig = plot_regression(fit_results, title="Custom title")
    ax = fig.axes[0]
    assert ax.get_title() == "Custom title"
    assert ax.get_xlabel() == "Spring maximum temperature (°C)"
    assert ax.get_ylabel() == "First flower day of year (day)"
    # Observations plus one fit line.
    assert len(ax.collections) == 1
    assert len(ax.lines) == 1
    assert any(t.get_text().startswith("R = ") for t in ax.texts)
    plt.close(fig)


def test_plot_regression_default_title_and_labels(fit_results):
    fig = plot_regression(fit_results, x_label="Tmax", y_label="DOY")
    ax = fig.axes[0]
    assert "spring maximum temperature" in ax.get_title()
    assert ax.get_xlabel() == "Tmax"
    assert ax.get_ylabel() == "DOY"
    plt.close(fig)


def test_plot_regression_undefined_correlation(fit_results):
    fit_results = dict(fit_results, pearson_r=np.nan, pearson_p=np.nan)
    fig = plot_regression(fit_results)
    assert any(t.get_text() == "R undefined" for t in fig.axes[0].texts)
    plt.close(fig)


def test_plot_residual_diagnostics(tmp_path, fit_results):
    normality = check_residual_normality(fit_results["residuals"])
    output_path = tmp_path / "residuals.png"
    fig = plot_residual_diagnostics(
        fit_results, output_path=str(output_path), normality=normality
    )
    assert os.path.exists(output_path)
    assert len(fig.axes) == 2
    assert fig.axes[1].get_title() == "Normal Q-Q plot"
    assert any("Shapiro-Wilk" in t.get_text() for t in fig.axes[1].texts)
