"""
Moderated Statistics Module for RNA-bound Proteome Data

Empirical-Bayes alternative to the independent per-protein fits. The same
interaction design is fitted to all proteins at once, each protein's residual
variance is shrunk toward a prior that follows the mean-variance trend, and
the interaction coefficient is tested with the moderated t-statistic on the
combined (residual + prior) degrees of freedom.

Stages
------
1. OLS fit per protein (vectorised over proteins that share a pattern of
   observed samples)
2. Fit a trend of log residual variance against mean log intensity
   (TrendStrategy: constant, lowess, or robust lowess)
3. Estimate the prior degrees of freedom d0 and prior variance s0^2 by
   matching moments of the log variances (Smyth 2004)
4. Posterior variance  s2_post = (d0 * s0^2 + d * s2) / (d0 + d)
5. Moderated t = coefficient / (stdev_unscaled * sqrt(s2_post)) on d0 + d
   degrees of freedom
"""

import pandas as pd
import numpy as np
import warnings
from typing import Dict, List, NamedTuple, Optional, Tuple

from scipy import stats
from scipy.special import digamma, polygamma
from statsmodels.nonparametric.smoothers_lowess import lowess

from .statistical_analysis import (
    AnalysisResult,
    DesignLevels,
    ProteinFitResult,
    StatisticalConfig,
    _apply_log_transformation_if_needed,
    correct_fit_results,
    resolve_design_levels,
    restrict_to_design,
    results_to_dataframe,
    zero_total_variance,
)
from .validation import (
    InputFormatError,
    InsufficientData,
    NumericInstability,
    ProteinFitError,
    SingularDesign,
    SkippedProtein,
    check_design,
    generate_skip_report,
)


INTERACTION_INDEX = 3

# residual degrees of freedom a trend must leave for the spread of the log variances
MIN_SPREAD_DF = 3


# =============================================================================
# VARIANCE TREND STRATEGIES
# =============================================================================

class TrendFit(NamedTuple):
    """Fitted trend values, per-point weights and parameters used by the fit."""

    fitted: np.ndarray
    weights: np.ndarray
    dof: float
    method: str = "constant"


class ConstantTrend:
    """No trend: a single prior variance for every protein."""

    name = "constant"

    def fit(self, covariate: np.ndarray, values: np.ndarray) -> TrendFit:
        values = np.asarray(values, dtype=float)
        return TrendFit(np.full_like(values, values.mean()), np.ones_like(values), 1.0)


class LowessTrend:
    """Lowess trend of log variance against mean intensity.

    With iterations > 0 the fit is robust: each pass downweights points with
    large residuals using bisquare weights, and the same weights enter the
    spread estimate so that outlying proteins do not inflate it. dof is the
    degrees of freedom charged to the trend, capped at the number of distinct
    covariate values.
    """

    def __init__(self, frac: float = 0.5, iterations: int = 0, dof: float = 4.0):
        self.frac = frac
        self.iterations = iterations
        self.dof = dof

    @property
    def name(self) -> str:
        return "robust_lowess" if self.iterations > 0 else "lowess"

    def fit(self, covariate: np.ndarray, values: np.ndarray) -> TrendFit:
        covariate = np.asarray(covariate, dtype=float)
        values = np.asarray(values, dtype=float)
        fitted = lowess(
            values, covariate, frac=self.frac, it=self.iterations, return_sorted=False
        )
        weights = np.ones_like(values)
        if self.iterations > 0:
            weights = bisquare_weights(values - fitted)
        dof = min(self.dof, len(np.unique(covariate)))
        return TrendFit(np.asarray(fitted, dtype=float), weights, float(dof), self.name)


def bisquare_weights(residuals: np.ndarray, c: float = 6.0) -> np.ndarray:
    """Tukey bisquare robustness weights, scaled by the median absolute residual."""
    residuals = np.asarray(residuals, dtype=float)
    scale = np.median(np.abs(residuals))
    if scale <= 0:
        return np.ones_like(residuals)
    u = residuals / (c * scale)
    return np.where(np.abs(u) < 1, (1 - u ** 2) ** 2, 0.0)


def get_trend_strategy(config: StatisticalConfig):
    """Trend strategy named by config.trend_method."""
    if config.trend_method == "constant":
        return ConstantTrend()
    if config.trend_method == "lowess":
        return LowessTrend(frac=config.lowess_frac, iterations=0)
    if config.trend_method == "robust_lowess":
        return LowessTrend(frac=config.lowess_frac, iterations=max(1, int(config.robust_iterations)))
    raise ValueError(f"Unknown trend method: {config.trend_method}")


# =============================================================================
# EMPIRICAL-BAYES HYPERPARAMETERS
# =============================================================================

def trigamma_inverse(x):
    """Solve trigamma(y) = x for y by Newton iteration (Smyth 2004)."""
    x = np.atleast_1d(np.asarray(x, dtype=float))
    y = np.empty_like(x)

    large = x > 1e7
    small = x < 1e-6
    mid = ~(large | small)
    y[large] = 1 / np.sqrt(x[large])
    y[small] = 1 / x[small]

    if mid.any():
        xm = x[mid]
        ym = 0.5 + 1 / xm
        for _ in range(50):
            tri = polygamma(1, ym)
            dif = tri * (1 - tri / xm) / polygamma(2, ym)
            ym = ym + dif
            if np.max(-dif / ym) < 1e-8:
                break
        else:
            warnings.warn("trigamma_inverse: iteration limit exceeded")
        y[mid] = ym

    return y if y.size > 1 else float(y[0])


def fit_f_dist(
    sigma2: np.ndarray,
    df: np.ndarray,
    covariate: Optional[np.ndarray] = None,
    strategy=None,
) -> Tuple[float, np.ndarray, TrendFit]:
    """
    Estimate the scaled inverse-chi-square prior of the residual variances.

    Parameters:
    -----------
    sigma2 : array
        Residual variances (positive, finite)
    df : array or float
        Residual degrees of freedom for each variance
    covariate : array, optional
        Mean intensity per protein; required for a trend strategy
    strategy : trend strategy, optional
        Object with fit(covariate, values) -> TrendFit; ConstantTrend if omitted

    Returns:
    --------
    (d0, s0_sq, trend) where d0 is the prior degrees of freedom (may be inf),
    s0_sq the prior variance for each input variance and trend the TrendFit
    of the log variances. A trend that would leave fewer than MIN_SPREAD_DF
    degrees of freedom for the spread is replaced by ConstantTrend with a
    warning; trend.method names the trend actually fitted.
    """
    sigma2 = np.asarray(sigma2, dtype=float)
    df = np.broadcast_to(np.asarray(df, dtype=float), sigma2.shape)
    if strategy is None:
        strategy = ConstantTrend()
    if covariate is None:
        covariate = np.zeros_like(sigma2)

    median = np.median(sigma2)
    floor = 1e-5 * median if median > 0 else 1e-12
    x = np.maximum(sigma2, floor)

    z = np.log(x)
    e = z - digamma(df / 2) + np.log(df / 2)

    covariate = np.asarray(covariate, dtype=float)
    trend_dof = min(getattr(strategy, "dof", 1.0), len(np.unique(covariate)))
    if not isinstance(strategy, ConstantTrend) and len(e) <= trend_dof + MIN_SPREAD_DF:
        warnings.warn(
            f"{len(e)} variances are too few for a {strategy.name} trend; using a constant prior"
        )
        strategy = ConstantTrend()

    trend = strategy.fit(covariate, e)
    residuals = e - trend.fitted
    weight_total = trend.weights.sum()
    denominator = max(weight_total - trend.dof, 1.0)
    evar = np.sum(trend.weights * residuals ** 2) / denominator
    evar = evar - np.mean(polygamma(1, df / 2))

    if evar > 0:
        d0 = 2 * trigamma_inverse(evar)
        s0_sq = np.exp(trend.fitted + digamma(d0 / 2) - np.log(d0 / 2))
    else:
        d0 = np.inf
        s0_sq = np.exp(trend.fitted)

    return float(d0), s0_sq, trend


def squeeze_var(sigma2, df, d0, s0_sq):
    """Posterior residual variances and total degrees of freedom."""
    sigma2 = np.asarray(sigma2, dtype=float)
    df = np.asarray(df, dtype=float)
    s0_sq = np.broadcast_to(np.asarray(s0_sq, dtype=float), sigma2.shape)
    if np.isinf(d0):
        return np.array(s0_sq, dtype=float), np.full_like(sigma2, np.inf)
    sigma2_post = (d0 * s0_sq + df * sigma2) / (d0 + df)
    return sigma2_post, df + d0


# =============================================================================
# LINEAR MODEL ACROSS ALL PROTEINS
# =============================================================================

class LinearModelFit(NamedTuple):
    """OLS fit of the interaction design for many proteins."""

    protein_ids: List[str]
    coefficients: np.ndarray      # proteins x 4
    stdev_unscaled: np.ndarray    # proteins x 4
    sigma2: np.ndarray
    df_residual: np.ndarray
    adjusted_r_squared: np.ndarray
    ave_intensity: np.ndarray
    n_obs: np.ndarray


def design_matrix(sample_design: pd.DataFrame, levels: DesignLevels) -> np.ndarray:
    """Treatment-coded interaction design, one row per sample."""
    t = (sample_design["timepoint"] == levels.comparison_timepoint).to_numpy(dtype=float)
    a = (sample_design["assay_type"] == levels.comparison_assay).to_numpy(dtype=float)
    return np.column_stack([np.ones_like(t), t, a, t * a])


def fit_linear_models(
    intensity_matrix: pd.DataFrame,
    sample_design: pd.DataFrame,
    levels: DesignLevels,
    require_balanced: bool = True,
) -> Tuple[LinearModelFit, List[SkippedProtein]]:
    """
    Fit the interaction design to every row of a proteins x samples matrix.

    Proteins with the same set of observed samples share one design and are
    fitted together. A set of observed samples that cannot support the
    design skips every protein that has it.
    """
    X_full = design_matrix(sample_design, levels)
    Y_full = intensity_matrix.to_numpy(dtype=float)
    observed = ~np.isnan(Y_full)

    n_proteins = Y_full.shape[0]
    n_coef = X_full.shape[1]
    coefficients = np.full((n_proteins, n_coef), np.nan)
    stdev_unscaled = np.full((n_proteins, n_coef), np.nan)
    sigma2 = np.full(n_proteins, np.nan)
    df_residual = np.full(n_proteins, np.nan)
    adj_r2 = np.full(n_proteins, np.nan)
    fitted_mask = np.zeros(n_proteins, dtype=bool)
    skipped = []

    protein_ids = [str(p) for p in intensity_matrix.index]
    patterns: Dict[bytes, List[int]] = {}
    for i, row in enumerate(observed):
        patterns.setdefault(row.tobytes(), []).append(i)

    for rows in patterns.values():
        rows = np.asarray(rows)
        mask = observed[rows[0]]
        samples_obs = sample_design.loc[mask]

        try:
            check_design(
                protein_ids[rows[0]],
                samples_obs,
                levels.reference_timepoint,
                levels.comparison_timepoint,
                levels.reference_assay,
                levels.comparison_assay,
                require_balanced=require_balanced,
            )
            X = X_full[mask]
            n = X.shape[0]
            if np.linalg.matrix_rank(X) < n_coef:
                raise SingularDesign(protein_ids[rows[0]], "rank-deficient design")
            if n - n_coef < 1:
                raise InsufficientData(
                    protein_ids[rows[0]], f"{n} observations leave no residual degrees of freedom"
                )
        except ProteinFitError as e:
            for r in rows:
                skipped.append(SkippedProtein(protein_ids[r], e.reason, e.message))
            continue

        Y = Y_full[np.ix_(rows, mask)]
        constant = zero_total_variance(Y)
        for r in rows[constant]:
            skipped.append(
                SkippedProtein(
                    protein_ids[r], NumericInstability.reason, "zero variance: all intensities are identical"
                )
            )
        rows = rows[~constant]
        if len(rows) == 0:
            continue
        Y = Y[~constant]

        XtX_inv = np.linalg.inv(X.T @ X)
        B = Y @ X @ XtX_inv
        resid = Y - B @ X.T
        rss = np.sum(resid ** 2, axis=1)
        dfr = n - n_coef
        tss = np.sum((Y - Y.mean(axis=1, keepdims=True)) ** 2, axis=1)
        with np.errstate(divide="ignore", invalid="ignore"):
            r2 = 1 - rss / tss
            adj = 1 - (1 - r2) * (n - 1) / dfr

        coefficients[rows] = B
        stdev_unscaled[rows] = np.sqrt(np.diag(XtX_inv))
        sigma2[rows] = rss / dfr
        df_residual[rows] = dfr
        adj_r2[rows] = adj
        fitted_mask[rows] = True

    keep = np.flatnonzero(fitted_mask)
    ave = np.nanmean(Y_full[keep], axis=1) if len(keep) else np.array([])
    fit = LinearModelFit(
        protein_ids=[protein_ids[i] for i in keep],
        coefficients=coefficients[keep],
        stdev_unscaled=stdev_unscaled[keep],
        sigma2=sigma2[keep],
        df_residual=df_residual[keep],
        adjusted_r_squared=adj_r2[keep],
        ave_intensity=ave,
        n_obs=observed[keep].sum(axis=1),
    )
    return fit, skipped


# =============================================================================
# MODERATED T-STATISTICS
# =============================================================================

def empirical_bayes(fit: LinearModelFit, strategy=None, use_trend: bool = True) -> Dict[str, np.ndarray]:
    """
    Shrink residual variances and compute moderated interaction statistics.

    Variances that are zero or not finite do not contribute to the prior
    estimate but are still moderated toward it.

    Returns:
    --------
    dict with df_prior, s2_prior, sigma2_post, df_total, t, p_value,
    std_error, n_prior (number of variances used for the prior) and
    trend_method (the trend actually fitted, "none" without moderation)
    """
    sigma2 = fit.sigma2
    df = fit.df_residual
    usable = np.isfinite(sigma2) & (sigma2 > 0)

    if usable.sum() < 3:
        warnings.warn("Fewer than 3 usable variances; empirical-Bayes moderation disabled")
        d0 = 0.0
        s2_prior = np.full_like(sigma2, np.nan)
        sigma2_post = sigma2.copy()
        df_total = df.copy()
        trend_method = "none"
    else:
        covariate = fit.ave_intensity if use_trend else None
        d0, s0_sq_usable, trend = fit_f_dist(
            sigma2[usable],
            df[usable],
            covariate=covariate[usable] if covariate is not None else None,
            strategy=strategy if use_trend else ConstantTrend(),
        )
        trend_method = trend.method
        if trend_method != "constant":
            order = np.argsort(fit.ave_intensity[usable], kind="mergesort")
            s2_prior = np.interp(
                fit.ave_intensity,
                fit.ave_intensity[usable][order],
                s0_sq_usable[order],
            )
        else:
            s2_prior = np.full_like(sigma2, float(np.mean(s0_sq_usable)))

        sigma2_post, df_total = squeeze_var(np.where(usable, sigma2, 0.0), df, d0, s2_prior)
        df_total = np.minimum(df_total, np.sum(df[usable]))

    std_error = fit.stdev_unscaled[:, INTERACTION_INDEX] * np.sqrt(sigma2_post)
    with np.errstate(divide="ignore", invalid="ignore"):
        t_stat = fit.coefficients[:, INTERACTION_INDEX] / std_error
    p_value = 2 * stats.t.sf(np.abs(t_stat), df_total)

    return {
        "df_prior": d0,
        "s2_prior": s2_prior,
        "sigma2_post": sigma2_post,
        "df_total": df_total,
        "t": t_stat,
        "p_value": p_value,
        "std_error": std_error,
        "n_prior": int(usable.sum()),
        "trend_method": trend_method,
    }


def run_moderated_analysis(long_df: pd.DataFrame, config: Optional[StatisticalConfig] = None) -> AnalysisResult:
    """
    Empirical-Bayes moderated interaction analysis across all proteins.

    Parameters:
    -----------
    long_df : pd.DataFrame
        Long-format measurements from data_import.reshape_to_long
    config : StatisticalConfig, optional
        Analysis configuration; trend_method selects the variance trend

    Returns:
    --------
    AnalysisResult with moderated statistics; details holds df_prior,
    trend_method and the number of variances used for the prior
    """
    if config is None:
        config = StatisticalConfig()
    config.validate()
    verbose = config.verbose

    long_df = _apply_log_transformation_if_needed(long_df, config)
    levels = resolve_design_levels(long_df.dropna(subset=["intensity"]), config)
    design_df = restrict_to_design(long_df, levels)

    intensity_matrix = design_df.pivot(index="protein_id", columns="sample", values="intensity")
    intensity_matrix = intensity_matrix.sort_index(kind="mergesort")
    sample_design = (
        design_df.drop_duplicates("sample")
        .set_index("sample")
        .loc[intensity_matrix.columns, ["timepoint", "replicate", "assay_type"]]
    )

    X = design_matrix(sample_design, levels)
    if np.linalg.matrix_rank(X) < X.shape[1]:
        raise InputFormatError("Sample design cannot estimate the timepoint x assay interaction")

    strategy = get_trend_strategy(config)
    use_trend = config.trend_method != "constant"

    if verbose:
        print("Running moderated (empirical-Bayes) interaction analysis...")
        print(f"  Proteins: {len(intensity_matrix)}, samples: {intensity_matrix.shape[1]}")
        print(f"  Variance trend: {strategy.name}")

    fit, skipped = fit_linear_models(
        intensity_matrix, sample_design, levels, require_balanced=config.require_balanced_design
    )
    if len(fit.protein_ids) == 0:
        if verbose:
            print("⚠️ No proteins could be fitted")
        return AnalysisResult(
            results=results_to_dataframe([]),
            skipped=sorted(skipped, key=lambda s: s.protein_id),
            design=levels,
            method="moderated",
            details={"df_prior": np.nan, "trend_method": strategy.name, "n_prior": 0},
        )

    eb = empirical_bayes(fit, strategy=strategy, use_trend=use_trend)

    alpha = 1 - config.confidence_level
    t_crit = stats.t.ppf(1 - alpha / 2, eb["df_total"])
    if eb["trend_method"] == "none":
        test_method = "Ordinary t (moderation disabled)"
    else:
        test_method = f"Moderated t ({eb['trend_method']} trend)"

    fits = []
    for i, protein_id in enumerate(fit.protein_ids):
        estimate = fit.coefficients[i, INTERACTION_INDEX]
        se = eb["std_error"][i]
        p = eb["p_value"][i]
        if not np.all(np.isfinite([estimate, se, p, fit.adjusted_r_squared[i]])):
            skipped.append(
                SkippedProtein(protein_id, NumericInstability.reason, f"non-finite moderated statistics (p={p})")
            )
            continue
        fits.append(
            ProteinFitResult(
                protein_id=protein_id,
                fold_change=float(estimate),
                std_error=float(se),
                t_value=float(eb["t"][i]),
                p_value=float(p),
                adjusted_r_squared=float(fit.adjusted_r_squared[i]),
                df_residual=float(fit.df_residual[i]),
                ci_lower=float(estimate - t_crit[i] * se),
                ci_upper=float(estimate + t_crit[i] * se),
                ave_intensity=float(fit.ave_intensity[i]),
                n_obs=int(fit.n_obs[i]),
                test_method=test_method,
                extra={
                    "df_total": float(eb["df_total"][i]),
                    "sigma2": float(fit.sigma2[i]),
                    "sigma2_post": float(eb["sigma2_post"][i]),
                    "s2_prior": float(eb["s2_prior"][i]),
                },
            )
        )

    corrected = correct_fit_results(fits, method=config.correction_method or "none")
    results_df = results_to_dataframe(corrected)
    skipped = sorted(skipped, key=lambda s: s.protein_id)

    if verbose:
        if np.isinf(eb["df_prior"]):
            print("  EB prior: d0=Inf (variances fully shrunk to trend)")
        else:
            print(f"  EB prior: d0={eb['df_prior']:.2f}")
        print(f"✓ Moderated analysis completed: {len(fits)} fitted, {len(skipped)} skipped")
        if skipped:
            generate_skip_report(skipped, n_total=len(intensity_matrix))

    return AnalysisResult(
        results=results_df,
        skipped=skipped,
        design=levels,
        method="moderated",
        details={"df_prior": eb["df_prior"], "trend_method": eb["trend_method"], "n_prior": eb["n_prior"]},
    )
