import logging
import warnings
from typing import Dict

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import stats

from .exceptions import InsufficientDataError

logger = logging.getLogger(__name__)

# Three points are the least a Shapiro-Wilk test on the residuals accepts.
MIN_OBSERVATIONS = 3

# Explanatory variables with a smaller spread than this are treated as constant.
ZERO_VARIANCE_TOLERANCE = 1e-12

NORMALITY_ALPHA = 0.05


def fit_linear_model(
    df: pd.DataFrame,
    x_col: str,
    y_col: str = "day_of_year",
) -> Dict:
    """
    Fits an ordinary least squares model ``y = intercept + slope * x``.

    Only rows with non-missing values in both columns are used.

    Args:
        df (pd.DataFrame): Analysis-ready observation rows.
        x_col (str): The explanatory variable (e.g. ``"tmax_spring"``).
        y_col (str, optional): The response. Defaults to ``"day_of_year"``.

    Returns:
        Dict: Coefficients, standard errors, t values, p-values, R², the
        F statistic, the Pearson correlation, the residuals and fitted
        values, and the statsmodels summary as text.

    Raises:
        InsufficientDataError: Fewer than `MIN_OBSERVATIONS` usable rows, or
            no variation in `x_col`.
    """
    for col in (x_col, y_col):
        if col not in df.columns:
            raise ValueError(f"Column '{col}' not found in the data.")

    data = df[[x_col, y_col]].astype(float).dropna()
    n_dropped = len(df) - len(data)
    if n_dropped:
        warnings.warn(
            f"Excluded {n_dropped} row(s) with missing '{x_col}' or '{y_col}' "
            "from the model.",
            UserWarning,
        )

    n_obs = len(data)
    if n_obs < MIN_OBSERVATIONS:
        raise InsufficientDataError(
            f"Insufficient data for model {y_col} ~ {x_col}: {n_obs} usable "
            f"observation(s), at least {MIN_OBSERVATIONS} required."
        )

    x = data[x_col].to_numpy()
    y = data[y_col].to_numpy()
    if np.ptp(x) < ZERO_VARIANCE_TOLERANCE:
        raise InsufficientDataError(
            f"Insufficient data for model {y_col} ~ {x_col}: '{x_col}' has zero "
            "variance, so the slope is not identifiable."
        )

    X_with_const = sm.add_constant(data[[x_col]], has_constant="add")
    results = sm.OLS(data[y_col], X_with_const).fit()

    # The correlation is undefined when the response is constant.
    if np.ptp(y) > 0:
        pearson_r, pearson_p = stats.pearsonr(x, y)
    else:
        pearson_r, pearson_p = np.nan, np.nan

    return {
        "x_col": x_col,
        "y_col": y_col,
        "nobs": int(results.nobs),
        "intercept": results.params["const"],
        "slope": results.params[x_col],
        "intercept_stderr": results.bse["const"],
        "slope_stderr": results.bse[x_col],
        "intercept_tvalue": results.tvalues["const"],
        "slope_tvalue": results.tvalues[x_col],
        "intercept_pvalue": results.pvalues["const"],
        "slope_pvalue": results.pvalues[x_col],
        "rsquared": results.rsquared,
        "rsquared_adj": results.rsquared_adj,
        "fvalue": results.fvalue,
        "f_pvalue": results.f_pvalue,
        "pearson_r": float(pearson_r),
        "pearson_p": float(pearson_p),
        "x": x,
        "y": y,
        "fitted": results.fittedvalues.to_numpy(),
        "residuals": results.resid.to_numpy(),
        "summary_text": results.summary().as_text(),
    }


def check_residual_normality(residuals, alpha: float = NORMALITY_ALPHA) -> Dict:
    """
    Runs a Shapiro-Wilk test for normality on model residuals.

    Returns:
        Dict: ``statistic``, ``p_value``, ``n``, ``alpha`` and ``is_normal``
        (True when the null hypothesis of normality is not rejected).
    """
    residuals = np.asarray(residuals, dtype=float)
    residuals = residuals[np.isfinite(residuals)]
    if len(residuals) < MIN_OBSERVATIONS:
        raise InsufficientDataError(
            f"The Shapiro-Wilk test needs at least {MIN_OBSERVATIONS} residuals, "
            f"got {len(residuals)}."
        )

    statistic, p_value = stats.shapiro(residuals)
    is_normal = bool(p_value >= alpha)
    if not is_normal:
        logger.warning(
            f"Residuals may not be normally distributed (Shapiro-Wilk "
            f"p-value: {p_value:.3f}). Coefficient p-values may be unreliable."
        )
    return {
        "statistic": float(statistic),
        "p_value": float(p_value),
        "n": len(residuals),
        "alpha": alpha,
        "is_normal": is_normal,
    }

