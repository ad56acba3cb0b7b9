import numpy as np

# Significance level used when describing a slope in words.
SLOPE_SIGNIFICANCE_LEVEL = 0.05

# Human-readable names and units for the explanatory variables of the report.
VARIABLE_LABELS = {
    "tmax_spring": ("spring maximum temperature", "°C"),
    "tmax_winter": ("winter maximum temperature", "°C"),
    "year": ("year", "year"),
    "day_of_year": ("first flower day of year", "day"),
}


def describe_variable(col):
    """Returns a (label, unit) pair for a column name."""
    return VARIABLE_LABELS.get(col, (col.replace("_", " "), "unit"))


def _format_p_value(p_value):
    if not np.isfinite(p_value):
        return "n/a"
    if p_value < 0.001:
        return "< 0.001"
    return f"= {p_value:.3f}"


def get_slope_interpretation(slope, slope_pvalue, x_col, y_col="day_of_year"):
    """Describes the fitted slope as a shift in first-event timing."""
    x_label, x_unit = describe_variable(x_col)
    if not np.isfinite(slope):
        return "No interpretation available."

    if slope < 0:
        direction = "earlier"
    elif slope > 0:
        direction = "later"
    else:
        return f"No change in {describe_variable(y_col)[0]} with {x_label}."

    text = (
        f"Each additional {x_unit} of {x_label} is associated with first "
        f"flowering {abs(slope):.2f} days {direction}"
    )
    if slope_pvalue < SLOPE_SIGNIFICANCE_LEVEL:
        text += f" (significant, p {_format_p_value(slope_pvalue)})."
    else:
        text += (
            f" (not significant at the {SLOPE_SIGNIFICANCE_LEVEL} level, "
            f"p {_format_p_value(slope_pvalue)})."
        )
    return text


def get_normality_interpretation(normality):
    """Describes a Shapiro-Wilk result."""
    if normality is None:
        return "Normality of residuals was not tested."
    verdict = (
        "consistent with a normal distribution"
        if normality["is_normal"]
        else "not normally distributed"
    )
    return (
        f"Shapiro-Wilk W = {normality['statistic']:.4f}, "
        f"p {_format_p_value(normality['p_value'])}: residuals are {verdict}."
    )


def interpret_results(fit_results, normality=None, title=None):
    """
    Generates a human-readable interpretation of one regression.

    Returns:
        Dict: ``interpretation`` (slope sentence), ``normality_text``,
        ``warnings`` (list of strings) and ``summary_text`` (the full block).
    """
    x_col = fit_results["x_col"]
    y_col = fit_results.get("y_col", "day_of_year")
    if title is None:
        title = f"{describe_variable(y_col)[0].capitalize()} vs. {describe_variable(x_col)[0]}"

    interpretation = get_slope_interpretation(
        fit_results["slope"], fit_results["slope_pvalue"], x_col, y_col
    )
    normality_text = get_normality_interpretation(normality)

    warnings_list = []
    if normality is not None and not normality["is_normal"]:
        warnings_list.append(
            "Warning: residuals depart from normality; coefficient p-values "
            "and standard errors may be unreliable."
        )
    if fit_results["nobs"] < 10:
        warnings_list.append(
            f"Warning: the model is based on only {fit_results['nobs']} observations."
        )

    summary_lines = [
        f"{title}",
        "=" * len(title),
        f"  n = {fit_results['nobs']}",
        f"  Slope = {fit_results['slope']:.3f} ± {fit_results['slope_stderr']:.3f} "
        f"(p {_format_p_value(fit_results['slope_pvalue'])})",
        f"  Intercept = {fit_results['intercept']:.3f} ± {fit_results['intercept_stderr']:.3f}",
        f"  R² = {fit_results['rsquared']:.3f} (adjusted {fit_results['rsquared_adj']:.3f})",
        f"  Pearson R = {fit_results['pearson_r']:.3f} "
        f"(p {_format_p_value(fit_results['pearson_p'])})",
        f"  Interpretation: {interpretation}",
        f"  Normality: {normality_text}",
    ]
    summary_lines.extend(f"  {w}" for w in warnings_list)

    return {
        "interpretation": interpretation,
        "normality_text": normality_text,
        "warnings": warnings_list,
        "summary_text": "\n".join(summary_lines),
    }
