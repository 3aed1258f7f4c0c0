"""
Classification Module for RNA-bound Proteome Results

Calls proteins significant from a result table using one of three rules:

- 'pvalue'       adjusted p-value below the cutoff
- 'fold_change'  adjusted p-value below the cutoff and the observed
                 |fold_change| above the threshold (point-estimate rule)
- 'treat'        tests whether the true |fold_change| exceeds the threshold
                 (McCarthy & Smyth 2009) and applies the adjusted p-value
                 cutoff to that test

The point-estimate and TREAT rules differ for proteins whose observed change
clears the threshold while their confidence interval still crosses it.
"""

import pandas as pd
import numpy as np
from typing import Tuple

from scipy import stats

from .statistical_analysis import benjamini_hochberg


def _degrees_of_freedom(results_df: pd.DataFrame) -> np.ndarray:
    if "df_total" in results_df.columns:
        df = results_df["df_total"].to_numpy(dtype=float)
        fallback = results_df["df_residual"].to_numpy(dtype=float)
        return np.where(np.isfinite(df), df, fallback)
    return results_df["df_residual"].to_numpy(dtype=float)


def treat_test(
    fold_change,
    std_error,
    df,
    threshold: float,
    alternative: str = "two-sided",
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Test the fold change against a magnitude threshold.

    Parameters:
    -----------
    fold_change, std_error, df : array-like
        Estimate, its standard error and degrees of freedom per protein
    threshold : float
        Minimum absolute effect (log2 units) of interest
    alternative : str
        'two-sided': |true effect| > threshold
        'greater':   true effect > threshold
        'less':      true effect < -threshold

    Returns:
    --------
    (t_statistic, p_value) arrays
    """
    coef = np.asarray(fold_change, dtype=float)
    se = np.asarray(std_error, dtype=float)
    df = np.asarray(df, dtype=float)
    threshold = abs(float(threshold))

    with np.errstate(divide="ignore", invalid="ignore"):
        if alternative == "two-sided":
            abs_coef = np.abs(coef)
            t_right = (abs_coef - threshold) / se
            t_left = (abs_coef + threshold) / se
            p_value = stats.t.sf(t_right, df) + stats.t.sf(t_left, df)
            t_stat = np.sign(coef) * np.maximum(t_right, 0)
        elif alternative == "greater":
            t_stat = (coef - threshold) / se
            p_value = stats.t.sf(t_stat, df)
        elif alternative == "less":
            t_stat = (coef + threshold) / se
            p_value = stats.t.cdf(t_stat, df)
        else:
            raise ValueError(f"Unknown alternative: {alternative}")

    return t_stat, np.minimum(p_value, 1.0)


def _passes_fold_change(fold_change: np.ndarray, threshold: float, alternative: str) -> np.ndarray:
    if alternative == "greater":
        return fold_change > threshold
    if alternative == "less":
        return fold_change < -threshold
    return np.abs(fold_change) > threshold


def classify_proteins(
    results_df: pd.DataFrame,
    mode: str = "pvalue",
    p_threshold: float = 0.05,
    fc_threshold: float = 1.0,
    alternative: str = "two-sided",
    correction_method: str = "fdr_bh",
    verbose: bool = True,
) -> pd.DataFrame:
    """
    Add 'significant', 'direction' and 'classification_mode' columns.

    Parameters:
    -----------
    results_df : pd.DataFrame
        Result table with fold_change, std_error, adjusted_p_value and
        df_residual (or df_total) columns
    mode : str
        'pvalue', 'fold_change' or 'treat'
    p_threshold : float
        Cutoff applied to the adjusted p-value of the chosen test
    fc_threshold : float
        Fold change threshold (log2 units) for 'fold_change' and 'treat'
    alternative : str
        'two-sided', 'greater' or 'less'
    correction_method : str
        Multiple testing correction for the TREAT p-values
    verbose : bool
        Print the number of proteins called

    Returns:
    --------
    pd.DataFrame
        Copy of results_df; in 'treat' mode also treat_t, treat_p_value and
        treat_adjusted_p_value. With a one-sided alternative, 'pvalue' and
        'fold_change' modes apply the cutoff to one-sided p-values, adjusted
        across proteins and written to one_sided_p_value and
        one_sided_adjusted_p_value
    """
    df = results_df.copy()
    if df.empty:
        for col in ["significant", "direction", "classification_mode"]:
            df[col] = pd.Series(dtype=object)
        return df

    fold_change = df["fold_change"].to_numpy(dtype=float)
    adjusted = df["adjusted_p_value"].to_numpy(dtype=float)

    if mode in ("pvalue", "fold_change") and alternative != "two-sided":
        # one-sided t-test of the interaction, adjusted across proteins
        _, one_sided = treat_test(
            fold_change,
            df["std_error"].to_numpy(dtype=float),
            _degrees_of_freedom(df),
            0.0,
            alternative=alternative,
        )
        adjusted = benjamini_hochberg(one_sided, method=correction_method)
        df["one_sided_p_value"] = one_sided
        df["one_sided_adjusted_p_value"] = adjusted

    if mode == "pvalue":
        significant = adjusted < p_threshold
        if alternative == "greater":
            significant &= fold_change > 0
        elif alternative == "less":
            significant &= fold_change < 0
    elif mode == "fold_change":
        significant = (adjusted < p_threshold) & _passes_fold_change(
            fold_change, fc_threshold, alternative
        )
    elif mode == "treat":
        t_stat, p_value = treat_test(
            fold_change,
            df["std_error"].to_numpy(dtype=float),
            _degrees_of_freedom(df),
            fc_threshold,
            alternative=alternative,
        )
        treat_adjusted = benjamini_hochberg(p_value, method=correction_method)
        df["treat_t"] = t_stat
        df["treat_p_value"] = p_value
        df["treat_adjusted_p_value"] = treat_adjusted
        significant = treat_adjusted < p_threshold
    else:
        raise ValueError(f"Unknown classification mode: {mode}")

    significant = np.asarray(significant, dtype=bool)
    df["significant"] = significant
    df["direction"] = np.where(
        significant, np.where(fold_change > 0, "up", "down"), "not significant"
    )
    df["classification_mode"] = mode

    if verbose:
        n_up = int((df["direction"] == "up").sum())
        n_down = int((df["direction"] == "down").sum())
        rule = {
            "pvalue": f"adjusted p < {p_threshold}",
            "fold_change": f"adjusted p < {p_threshold} and |FC| > {fc_threshold}",
            "treat": f"TREAT adjusted p < {p_threshold} for |FC| > {fc_threshold}",
        }[mode]
        print(f"Classification ({rule}, {alternative}): {n_up} up, {n_down} down")

    return df


def compare_classification_modes(
    results_df: pd.DataFrame,
    p_threshold: float = 0.05,
    fc_threshold: float = 1.0,
    alternative: str = "two-sided",
) -> pd.DataFrame:
    """Side-by-side calls of the three rules, one row per protein."""
    calls = {"protein_id": results_df["protein_id"].to_numpy()}
    for mode in ("pvalue", "fold_change", "treat"):
        classified = classify_proteins(
            results_df,
            mode=mode,
            p_threshold=p_threshold,
            fc_threshold=fc_threshold,
            alternative=alternative,
            verbose=False,
        )
        calls[mode] = classified["significant"].to_numpy() if len(classified) else np.array([], dtype=bool)
    comparison = pd.DataFrame(calls)
    if len(comparison):
        comparison["modes_agree"] = comparison[["pvalue", "fold_change", "treat"]].nunique(axis=1) == 1
    else:
        comparison["modes_agree"] = pd.Series(dtype=bool)
    return comparison
