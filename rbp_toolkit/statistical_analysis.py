"""
Statistical Analysis Module for RNA-bound Proteome Data

This module provides a configuration-driven approach to per-protein
interaction analysis: for every protein an ordinary least squares model

    intensity ~ timepoint * assay_type

is fitted and the interaction coefficient (the assay-specific change between
timepoints) is tested. Raw p-values are then corrected across all proteins
with the Benjamini-Hochberg procedure.
"""

import pandas as pd
import numpy as np
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, asdict, replace
from typing import Any, Dict, List, NamedTuple, Optional, Union

import statsmodels.formula.api as smf
from statsmodels.stats.multitest import multipletests

from .data_import import list_timepoints
from .validation import (
    InputFormatError,
    InsufficientData,
    NumericInstability,
    ProteinFitError,
    SingularDesign,
    SkippedProtein,
    check_design,
    generate_skip_report,
    summarize_skipped_proteins,
)


INTERACTION_TERM = "timepoint_effect:assay_effect"
MODEL_FORMULA = "intensity ~ timepoint_effect * assay_effect"

RESULT_COLUMNS = [
    "protein_id",
    "fold_change",
    "std_error",
    "t_value",
    "p_value",
    "adjusted_p_value",
    "adjusted_r_squared",
    "df_residual",
    "ci_lower",
    "ci_upper",
    "ave_intensity",
    "n_obs",
    "test_method",
]


class StatisticalConfig:
    """Configuration class for interaction analysis parameters

    Supports two test methods:
    - 'ols': independent per-protein OLS fits followed by BH correction
    - 'moderated': one design fitted across all proteins with empirical-Bayes
      shrinkage of the residual variances toward a mean-variance trend

    and three classification modes:
    - 'pvalue': adjusted p-value below p_value_threshold
    - 'fold_change': adjusted p-value cutoff plus |fold_change| above
      fold_change_threshold (point-estimate comparison)
    - 'treat': tests |true fold change| > fold_change_threshold and applies
      the adjusted p-value cutoff to that test
    """

    TEST_METHODS = ("ols", "moderated")
    CLASSIFICATION_MODES = ("pvalue", "fold_change", "treat")
    ALTERNATIVES = ("two-sided", "greater", "less")
    TREND_METHODS = ("constant", "lowess", "robust_lowess")

    def __init__(self):
        # Analysis method
        self.statistical_test_method = "ols"

        # Input table layout
        self.protein_id_column = "Protein"
        self.annotation_columns = None  # None for the default annotation column list
        self.sample_delimiter = "_"

        # Design levels - None to auto-detect
        self.reference_timepoint = None
        self.comparison_timepoint = None
        self.reference_assay = "total"
        self.comparison_assay = None
        self.require_balanced_design = True

        # Log transformation parameters
        self.log_transform_before_stats = False  # "auto", True, False
        self.log_base = "log2"  # "log2", "log10", "ln"
        self.log_pseudocount = None  # None for auto, or specific value

        # Multiple testing correction
        self.correction_method = "fdr_bh"

        # Significance thresholds
        self.p_value_threshold = 0.05
        self.fold_change_threshold = 1.0  # log2 units
        self.classification_mode = "pvalue"
        self.alternative = "two-sided"
        self.confidence_level = 0.95

        # Empirical-Bayes variance trend
        self.trend_method = "lowess"
        self.lowess_frac = 0.5
        self.robust_iterations = 3

        # Execution
        self.n_jobs = 1
        self.verbose = True

    def validate(self):
        """Validate parameter values"""
        if self.statistical_test_method not in self.TEST_METHODS:
            raise ValueError(
                f"statistical_test_method must be one of {self.TEST_METHODS}, got {self.statistical_test_method!r}"
            )
        if self.classification_mode not in self.CLASSIFICATION_MODES:
            raise ValueError(
                f"classification_mode must be one of {self.CLASSIFICATION_MODES}, got {self.classification_mode!r}"
            )
        if self.alternative not in self.ALTERNATIVES:
            raise ValueError(f"alternative must be one of {self.ALTERNATIVES}, got {self.alternative!r}")
        if self.trend_method not in self.TREND_METHODS:
            raise ValueError(f"trend_method must be one of {self.TREND_METHODS}, got {self.trend_method!r}")
        if not 0 < self.p_value_threshold <= 1:
            raise ValueError("p_value_threshold must be in (0, 1]")
        if self.fold_change_threshold < 0:
            raise ValueError("fold_change_threshold must be non-negative")
        if not 0 < self.confidence_level < 1:
            raise ValueError("confidence_level must be in (0, 1)")
        if not 0 < self.lowess_frac <= 1:
            raise ValueError("lowess_frac must be in (0, 1]")
        if int(self.n_jobs) < 1:
            raise ValueError("n_jobs must be at least 1")
        if not self.sample_delimiter:
            raise ValueError("sample_delimiter must be a non-empty string")
        return True

    def to_dict(self) -> Dict[str, Any]:
        """All configuration parameters as a plain dictionary"""
        return {key: value for key, value in vars(self).items() if not key.startswith("_")}

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> "StatisticalConfig":
        """Build a configuration from a dictionary, ignoring unknown keys"""
        config = cls()
        for key, value in params.items():
            if hasattr(config, key):
                setattr(config, key, value)
        return config


class DesignLevels(NamedTuple):
    """The two levels of each factor, reference level first."""

    reference_timepoint: str
    comparison_timepoint: str
    reference_assay: str
    comparison_assay: str


@dataclass(frozen=True)
class ProteinFitResult:
    """Interaction-term statistics for one protein.

    Created by a single-protein fit with adjusted_p_value unset; the
    cohort-level correction step returns a copy with adjusted_p_value filled.
    """

    protein_id: str
    fold_change: float
    std_error: float
    t_value: float
    p_value: float
    adjusted_r_squared: float
    df_residual: float
    ci_lower: float = np.nan
    ci_upper: float = np.nan
    ave_intensity: float = np.nan
    n_obs: int = 0
    test_method: str = "OLS interaction"
    adjusted_p_value: float = np.nan
    extra: Dict[str, float] = field(default_factory=dict, compare=False)

    @property
    def is_corrected(self) -> bool:
        return not np.isnan(self.adjusted_p_value)

    def with_adjusted_p_value(self, adjusted_p_value: float) -> "ProteinFitResult":
        return replace(self, adjusted_p_value=float(adjusted_p_value))

    def to_record(self) -> Dict[str, Any]:
        record = asdict(self)
        extra = record.pop("extra")
        record.update(extra)
        return record


@dataclass
class AnalysisResult:
    """Corrected result table plus the proteins that could not be fitted."""

    results: pd.DataFrame
    skipped: List[SkippedProtein]
    design: DesignLevels
    method: str
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def diagnostics(self) -> pd.DataFrame:
        return summarize_skipped_proteins(self.skipped)

    @property
    def n_proteins(self) -> int:
        return len(self.results) + len(self.skipped)


def _apply_log_transformation_if_needed(long_df, config):
    """
    Apply log transformation to the intensity column if needed based on configuration.

    Parameters:
    -----------
    long_df : pd.DataFrame
        Long-format measurements with an 'intensity' column
    config : StatisticalConfig
        Configuration object containing log transformation settings

    Returns:
    --------
    pd.DataFrame
        Measurements with log transformation applied if needed
    """
    verbose = getattr(config, "verbose", True)
    intensities = long_df["intensity"]

    if config.log_transform_before_stats == "auto":
        # Values on a linear scale are far above typical log2 intensities
        mean_value = intensities.mean()
        apply_log_transform = bool(mean_value > 50)
        status = "needed" if apply_log_transform else "not needed"
        if verbose:
            print(f"Log transformation: AUTO-DETECTED ({status} - mean value {mean_value:.1f})")
    elif str(config.log_transform_before_stats).lower() in ["true", "1", "yes", "on"]:
        apply_log_transform = True
        if verbose:
            print("Log transformation: ENABLED (forced by configuration)")
    else:
        apply_log_transform = False

    if not apply_log_transform or intensities.notna().sum() == 0:
        return long_df

    transformed = long_df.copy()
    values = transformed["intensity"]

    # Shift so every value is positive before taking logs
    if (values < 0).any():
        shift_amount = abs(values.min()) + 1
        values = values + shift_amount
        if verbose:
            print(f"  -> Shifted all values by +{shift_amount:.2f}")

    if config.log_pseudocount is None:
        pseudocount = max(1e-6, values.min() / 100) if values.min() > 0 else 0.1
    else:
        pseudocount = config.log_pseudocount

    if config.log_base == "log2":
        transformed["intensity"] = np.log2(values + pseudocount)
    elif config.log_base == "log10":
        transformed["intensity"] = np.log10(values + pseudocount)
    elif config.log_base == "ln":
        transformed["intensity"] = np.log(values + pseudocount)
    else:
        raise ValueError(f"Unknown log base: {config.log_base}")

    if verbose:
        print(f"  -> Applied {config.log_base} transformation with pseudocount {pseudocount}")

    return transformed


def resolve_design_levels(long_df: pd.DataFrame, config: Optional[StatisticalConfig] = None) -> DesignLevels:
    """
    Determine the reference and comparison level of each factor.

    Unset timepoints are auto-detected when exactly two are present (the
    earlier one becomes the reference). The comparison assay defaults to the
    single assay type other than the reference assay.
    """
    if config is None:
        config = StatisticalConfig()

    timepoints = list_timepoints(long_df)
    ref_time = config.reference_timepoint
    cmp_time = config.comparison_timepoint

    if ref_time is None and cmp_time is None:
        if len(timepoints) != 2:
            raise InputFormatError(
                f"Found timepoints {timepoints}; set reference_timepoint and comparison_timepoint "
                f"to choose two of them"
            )
        ref_time, cmp_time = timepoints
    elif ref_time is None or cmp_time is None:
        given = ref_time if ref_time is not None else cmp_time
        others = [t for t in timepoints if t != given]
        if len(others) != 1:
            raise InputFormatError(f"Cannot infer the second timepoint from {timepoints}")
        if ref_time is None:
            ref_time = others[0]
        else:
            cmp_time = others[0]

    for label in (ref_time, cmp_time):
        if label not in timepoints:
            raise InputFormatError(f"Timepoint '{label}' not found in data (available: {timepoints})")
    if ref_time == cmp_time:
        raise InputFormatError("reference and comparison timepoints must differ")

    assays = sorted(long_df["assay_type"].unique())
    ref_assay = config.reference_assay
    if ref_assay not in assays:
        raise InputFormatError(f"Reference assay '{ref_assay}' not found in data (available: {assays})")

    cmp_assay = config.comparison_assay
    if cmp_assay is None:
        others = [a for a in assays if a != ref_assay]
        if len(others) != 1:
            raise InputFormatError(
                f"Found assay types {assays}; set comparison_assay to choose the one compared with '{ref_assay}'"
            )
        cmp_assay = others[0]
    elif cmp_assay not in assays or cmp_assay == ref_assay:
        raise InputFormatError(f"Comparison assay '{cmp_assay}' not valid (available: {assays})")

    return DesignLevels(ref_time, cmp_time, ref_assay, cmp_assay)


def restrict_to_design(long_df: pd.DataFrame, levels: DesignLevels) -> pd.DataFrame:
    """Keep only measurements at the two design timepoints and assay types."""
    mask = long_df["timepoint"].isin(
        [levels.reference_timepoint, levels.comparison_timepoint]
    ) & long_df["assay_type"].isin([levels.reference_assay, levels.comparison_assay])
    return long_df.loc[mask]


def zero_total_variance(values, rtol: float = 1e-12) -> np.ndarray:
    """
    True where a row of intensities has no spread around its mean.

    Accepts a 1-d array (one protein) or a proteins x samples array. The
    tolerance is relative to the squared intensities so that rounding in
    the mean of a constant row does not count as variance.
    """
    values = np.atleast_2d(np.asarray(values, dtype=float))
    centered = values - values.mean(axis=1, keepdims=True)
    tss = np.sum(centered ** 2, axis=1)
    scale = np.maximum(np.sum(values ** 2, axis=1), 1.0)
    return tss <= rtol * scale


def build_model_frame(protein_df: pd.DataFrame, levels: DesignLevels) -> pd.DataFrame:
    """Add 0/1 treatment-coded factor columns used by MODEL_FORMULA."""
    return protein_df.assign(
        timepoint_effect=(protein_df["timepoint"] == levels.comparison_timepoint).astype(float),
        assay_effect=(protein_df["assay_type"] == levels.comparison_assay).astype(float),
    )


def fit_protein_interaction_model(
    protein_df: pd.DataFrame,
    levels: Optional[DesignLevels] = None,
    protein_id: Optional[str] = None,
    require_balanced: bool = True,
    confidence_level: float = 0.95,
) -> ProteinFitResult:
    """
    Fit intensity ~ timepoint * assay_type for a single protein.

    Parameters:
    -----------
    protein_df : pd.DataFrame
        Long-format measurements of exactly one protein
    levels : DesignLevels, optional
        Factor levels; auto-detected from protein_df when omitted
    protein_id : str, optional
        Identifier reported in the result; taken from protein_df when omitted
    require_balanced : bool
        Reject designs with unequal replicates per cell
    confidence_level : float
        Coverage of the interval reported in ci_lower/ci_upper

    Returns:
    --------
    ProteinFitResult
        Interaction estimate, standard error, t-statistic and two-sided
        p-value (df = n - rank(design)), plus the model's adjusted R-squared

    Raises:
    -------
    InsufficientData, SingularDesign, UnbalancedDesign, NumericInstability
    """
    if protein_id is None:
        ids = protein_df["protein_id"].unique() if "protein_id" in protein_df.columns else []
        if len(ids) > 1:
            raise ValueError(f"Expected measurements for one protein, found {len(ids)}")
        protein_id = str(ids[0]) if len(ids) else "unknown"

    if levels is None:
        try:
            levels = resolve_design_levels(protein_df.dropna(subset=["intensity"]))
        except InputFormatError as e:
            raise InsufficientData(protein_id, str(e)) from e

    observed = restrict_to_design(protein_df, levels).dropna(subset=["intensity"])

    check_design(
        protein_id,
        observed,
        levels.reference_timepoint,
        levels.comparison_timepoint,
        levels.reference_assay,
        levels.comparison_assay,
        require_balanced=require_balanced,
    )

    model_df = build_model_frame(observed, levels)

    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=RuntimeWarning)
        warnings.filterwarnings("ignore", category=UserWarning)

        model = smf.ols(MODEL_FORMULA, data=model_df)
        exog = model.exog
        rank = np.linalg.matrix_rank(exog)
        if rank < exog.shape[1]:
            raise SingularDesign(protein_id, f"design matrix rank {rank} < {exog.shape[1]} parameters")

        df_residual = len(model_df) - rank
        if df_residual < 1:
            raise InsufficientData(
                protein_id, f"{len(model_df)} observations leave no residual degrees of freedom"
            )
        if zero_total_variance(model_df["intensity"].to_numpy())[0]:
            raise NumericInstability(protein_id, "zero variance: all intensities are identical")

        fitted = model.fit()
        estimate = float(fitted.params[INTERACTION_TERM])
        std_error = float(fitted.bse[INTERACTION_TERM])
        t_value = float(fitted.tvalues[INTERACTION_TERM])
        p_value = float(fitted.pvalues[INTERACTION_TERM])
        ci = fitted.conf_int(alpha=1 - confidence_level).loc[INTERACTION_TERM]
        adjusted_r_squared = float(fitted.rsquared_adj)

    if not np.all(np.isfinite([estimate, std_error, p_value, adjusted_r_squared])):
        raise NumericInstability(
            protein_id,
            f"non-finite statistics (estimate={estimate}, std_error={std_error}, "
            f"p_value={p_value}, adjusted_r_squared={adjusted_r_squared})",
        )

    return ProteinFitResult(
        protein_id=str(protein_id),
        fold_change=estimate,
        std_error=std_error,
        t_value=t_value,
        p_value=p_value,
        adjusted_r_squared=adjusted_r_squared,
        df_residual=float(fitted.df_resid),
        ci_lower=float(ci.iloc[0]),
        ci_upper=float(ci.iloc[1]),
        ave_intensity=float(model_df["intensity"].mean()),
        n_obs=int(fitted.nobs),
    )


def _fit_or_skip(protein_id, protein_df, levels, config) -> Union[ProteinFitResult, SkippedProtein]:
    try:
        return fit_protein_interaction_model(
            protein_df,
            levels=levels,
            protein_id=protein_id,
            require_balanced=config.require_balanced_design,
            confidence_level=config.confidence_level,
        )
    except ProteinFitError as e:
        return SkippedProtein.from_error(e)
    except (ValueError, np.linalg.LinAlgError) as e:
        return SkippedProtein(str(protein_id), NumericInstability.reason, f"Model failed: {e}")


def benjamini_hochberg(p_values, method: str = "fdr_bh") -> np.ndarray:
    """
    Adjust p-values for multiple testing.

    NaN entries are excluded from the correction denominator and stay NaN in
    the output; the remaining values keep their input order.
    """
    p_values = np.asarray(p_values, dtype=float)
    adjusted = np.full_like(p_values, np.nan)
    valid = np.isfinite(p_values)
    if not valid.any():
        return adjusted
    if method == "none":
        adjusted[valid] = p_values[valid]
        return adjusted
    _, adjusted[valid], _, _ = multipletests(p_values[valid], method=method)
    return adjusted


def correct_fit_results(
    fits: List[ProteinFitResult], method: str = "fdr_bh"
) -> List[ProteinFitResult]:
    """Second lifecycle stage: attach cohort-level adjusted p-values."""
    adjusted = benjamini_hochberg([fit.p_value for fit in fits], method=method)
    return [fit.with_adjusted_p_value(adj) for fit, adj in zip(fits, adjusted)]


def results_to_dataframe(fits: List[ProteinFitResult]) -> pd.DataFrame:
    """Result table sorted by protein id"""
    if not fits:
        return pd.DataFrame(columns=RESULT_COLUMNS)
    df = pd.DataFrame([fit.to_record() for fit in fits])
    ordered = RESULT_COLUMNS + [col for col in df.columns if col not in RESULT_COLUMNS]
    return df[ordered].sort_values("protein_id", kind="mergesort").reset_index(drop=True)


def apply_multiple_testing_correction(results_df, config):
    """Apply multiple testing correction to the 'p_value' column"""

    results_df = results_df.copy()
    if "p_value" not in results_df.columns:
        warnings.warn("No p_value column found for correction")
        return results_df

    method = getattr(config, "correction_method", "fdr_bh") or "none"
    results_df["adjusted_p_value"] = benjamini_hochberg(results_df["p_value"], method=method)

    if getattr(config, "verbose", True):
        n_valid = int(results_df["p_value"].notna().sum())
        n_sig = int((results_df["adjusted_p_value"] < config.p_value_threshold).sum())
        print("Multiple testing correction applied:")
        print(f"  Method: {method}")
        print(f"  Tests in correction: {n_valid}")
        print(f"  Significant proteins (adjusted p < {config.p_value_threshold}): {n_sig}")

    return results_df


def _map_protein_groups(func, groups, n_jobs, verbose):
    n_proteins = len(groups)
    if n_jobs > 1:
        with ThreadPoolExecutor(max_workers=n_jobs) as executor:
            return list(executor.map(lambda item: func(*item), groups))

    outcomes = []
    for i, item in enumerate(groups):
        if verbose and (i + 1) % 500 == 0:
            print(f"  Processed {i + 1}/{n_proteins} proteins...")
        outcomes.append(func(*item))
    return outcomes


def run_batch_analysis(long_df: pd.DataFrame, config: Optional[StatisticalConfig] = None) -> AnalysisResult:
    """
    Fit the interaction model to every protein and correct the p-values.

    Proteins are fitted independently (optionally on config.n_jobs worker
    threads). Proteins whose fit fails are reported in AnalysisResult.skipped
    and left out of the correction; the result table is sorted by protein id
    so it does not depend on input row order or execution order.

    Parameters:
    -----------
    long_df : pd.DataFrame
        Long-format measurements from data_import.reshape_to_long
    config : StatisticalConfig, optional
        Analysis configuration

    Returns:
    --------
    AnalysisResult
    """
    if config is None:
        config = StatisticalConfig()
    config.validate()
    verbose = config.verbose

    long_df = _apply_log_transformation_if_needed(long_df, config)
    levels = resolve_design_levels(long_df.dropna(subset=["intensity"]), config)

    if verbose:
        print("Running per-protein interaction analysis...")
        print(f"  Model: {MODEL_FORMULA}")
        print(
            f"  Interaction: ({levels.comparison_timepoint} vs {levels.reference_timepoint}) x "
            f"({levels.comparison_assay} vs {levels.reference_assay})"
        )

    design_df = restrict_to_design(long_df, levels)
    groups = [
        (protein_id, protein_df, levels, config)
        for protein_id, protein_df in design_df.groupby("protein_id", sort=True)
    ]

    outcomes = _map_protein_groups(_fit_or_skip, groups, int(config.n_jobs), verbose)

    fits = [o for o in outcomes if isinstance(o, ProteinFitResult)]
    skipped = sorted(
        (o for o in outcomes if isinstance(o, SkippedProtein)), key=lambda s: s.protein_id
    )

    corrected = correct_fit_results(fits, method=config.correction_method or "none")
    results_df = results_to_dataframe(corrected)

    if verbose:
        print(f"✓ Interaction analysis completed: {len(fits)} fitted, {len(skipped)} skipped")
        if skipped:
            generate_skip_report(skipped, n_total=len(groups))

    return AnalysisResult(
        results=results_df,
        skipped=skipped,
        design=levels,
        method="ols",
    )


def run_comprehensive_statistical_analysis(
    long_df: pd.DataFrame, config: Optional[StatisticalConfig] = None
) -> AnalysisResult:
    """
    Run the configured analysis path and classify the proteins.

    Dispatches to run_batch_analysis ('ols') or
    moderated_statistics.run_moderated_analysis ('moderated'), then adds the
    classification columns from classification.classify_proteins.
    """
    from .classification import classify_proteins
    from .moderated_statistics import run_moderated_analysis

    if config is None:
        config = StatisticalConfig()
    config.validate()

    if config.verbose:
        print("=" * 60)
        print("INTERACTION ANALYSIS")
        print("=" * 60)
        print(f"  Method: {config.statistical_test_method}")
        print(f"  Classification: {config.classification_mode}")

    if config.statistical_test_method == "moderated":
        analysis = run_moderated_analysis(long_df, config)
    else:
        analysis = run_batch_analysis(long_df, config)

    analysis.results = classify_proteins(
        analysis.results,
        mode=config.classification_mode,
        p_threshold=config.p_value_threshold,
        fc_threshold=config.fold_change_threshold,
        alternative=config.alternative,
        correction_method=config.correction_method or "none",
        verbose=config.verbose,
    )
    return analysis


def display_analysis_summary(analysis: AnalysisResult, config: StatisticalConfig, label_top_n: int = 10):
    """
    Display summary of interaction analysis results

    Parameters:
    -----------
    analysis : AnalysisResult
        Output of run_comprehensive_statistical_analysis
    config : StatisticalConfig
        Configuration object with analysis parameters
    label_top_n : int
        Number of top proteins to display

    Returns:
    --------
    dict
        Summary statistics for downstream use
    """
    results = analysis.results
    total = analysis.n_proteins
    if total == 0:
        print("⚠️ No interaction analysis results available")
        return {}

    n_fitted = len(results)
    n_sig = int((results["adjusted_p_value"] < config.p_value_threshold).sum()) if n_fitted else 0
    n_called = int(results["significant"].sum()) if "significant" in results.columns else n_sig

    print("=" * 60)
    print("INTERACTION ANALYSIS SUMMARY")
    print("=" * 60)
    print(f"  Method: {analysis.method.upper()}")
    print(f"  Total proteins: {total:,}")
    print(f"  Fitted: {n_fitted:,}")
    print(f"  Skipped: {len(analysis.skipped):,}")
    print(f"  Adjusted p < {config.p_value_threshold}: {n_sig:,}")
    print(f"  Called significant ({config.classification_mode}): {n_called:,}")

    if n_fitted:
        print(f"\n=== TOP {label_top_n} PROTEINS ===")
        top = results.nsmallest(label_top_n, "p_value")
        display_cols = [
            c for c in [
                "protein_id", "fold_change", "std_error", "ci_lower", "ci_upper",
                "p_value", "adjusted_p_value", "direction",
            ]
            if c in top.columns
        ]
        display_df = top[display_cols].copy()
        for col in ["p_value", "adjusted_p_value"]:
            display_df[col] = display_df[col].apply(
                lambda x: f"{x:.2e}" if pd.notna(x) and x < 0.01 else f"{x:.6f}" if pd.notna(x) else "N/A"
            )
        for col in ["fold_change", "std_error", "ci_lower", "ci_upper"]:
            display_df[col] = display_df[col].apply(lambda x: f"{x:.4f}" if pd.notna(x) else "N/A")
        print(display_df.to_string(index=False))

    if analysis.skipped:
        print("\nSkipped proteins by reason:")
        for reason, count in analysis.diagnostics["reason"].value_counts().items():
            print(f"  {reason}: {count}")

    summary = {
        "total_proteins": total,
        "fitted": n_fitted,
        "skipped": len(analysis.skipped),
        "significant_adjusted": n_sig,
        "called_significant": n_called,
        "analysis_method": analysis.method,
        "success_rate": n_fitted / total if total > 0 else 0,
    }

    print("\n✓ Analysis summary complete!")
    return summary
