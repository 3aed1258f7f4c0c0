"""
Visualization Module for RNA-bound Proteome Analysis

Functions for rendering result plots to image files. All appearance settings
come from an explicit PlotStyle passed to each function; matplotlib and
seaborn settings are applied inside a context for the duration of one plot
only.
"""

import os
import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .data_import import timepoint_sort_key


@dataclass
class PlotStyle:
    """Appearance settings shared by the result plots.

    Examples
    --------
    >>> style = PlotStyle(dpi=300, image_format="pdf")
    >>> plot_volcano(results, "volcano", style=style)
    """

    figsize: Tuple[float, float] = (10, 7)
    dpi: int = 150
    image_format: str = "png"
    seaborn_style: str = "ticks"
    font_scale: float = 1.0
    label_fontsize: int = 14
    tick_fontsize: int = 11
    point_size: float = 30
    point_alpha: float = 0.6
    colors: Dict[str, str] = field(default_factory=lambda: {
        "up": "#d62728",
        "down": "#1f77b4",
        "significant": "#ff7f0e",
        "not significant": "#9e9e9e",
        "trend": "#2ca02c",
    })
    assay_palette: str = "Set1"

    def rc_params(self) -> Dict[str, object]:
        return {
            "axes.labelsize": self.label_fontsize * self.font_scale,
            "xtick.labelsize": self.tick_fontsize * self.font_scale,
            "ytick.labelsize": self.tick_fontsize * self.font_scale,
            "axes.spines.top": False,
            "axes.spines.right": False,
            "savefig.dpi": self.dpi,
        }


def _resolve_output_path(output_file: str, style: PlotStyle) -> str:
    root, ext = os.path.splitext(str(output_file))
    if not ext:
        output_file = f"{root}.{style.image_format}"
    directory = os.path.dirname(str(output_file))
    if directory:
        os.makedirs(directory, exist_ok=True)
    return str(output_file)


def save_figure(fig, output_file: Optional[str], style: PlotStyle) -> Optional[str]:
    """Write the figure to disk (when a path is given) and close it."""
    path = None
    if output_file is not None:
        path = _resolve_output_path(output_file, style)
        fig.savefig(path, dpi=style.dpi, bbox_inches="tight")
    plt.close(fig)
    return path


def plot_volcano(
    results_df: pd.DataFrame,
    output_file: Optional[str] = None,
    style: Optional[PlotStyle] = None,
    fc_threshold: float = 1.0,
    p_threshold: float = 0.05,
    use_adjusted_pvalue: bool = True,
    label_top_n: int = 10,
    title: Optional[str] = None,
    verbose: bool = True,
) -> Optional[str]:
    """
    Create volcano plot of interaction fold change against significance.

    Parameters:
    -----------
    results_df : pd.DataFrame
        Result table (fold_change, p_value, adjusted_p_value; 'direction' is
        used for colouring when present)
    output_file : str, optional
        Image path; the style's image_format is appended when it has no extension
    style : PlotStyle, optional
        Appearance settings
    fc_threshold : float
        Fold change threshold drawn as vertical lines (log2)
    p_threshold : float
        P-value threshold drawn as a horizontal line
    use_adjusted_pvalue : bool
        Plot adjusted p-values (True) or raw p-values (False)
    label_top_n : int
        Number of top significant proteins to label
    title : str, optional
        Plot title

    Returns:
    --------
    str or None
        Path of the written image
    """
    if style is None:
        style = PlotStyle()

    if len(results_df) == 0:
        print("No data to plot")
        return None

    df = results_df.copy()
    p_col = "adjusted_p_value" if use_adjusted_pvalue else "p_value"
    p_label = "Adjusted p-value" if use_adjusted_pvalue else "P-value"
    df["neg_log10_p"] = -np.log10(df[p_col].clip(lower=np.finfo(float).tiny))

    if "direction" in df.columns:
        df["category"] = df["direction"]
        passed = (df[p_col] < p_threshold) & (df["direction"] == "not significant")
        df.loc[passed, "category"] = "significant"
    else:
        is_sig = df[p_col] < p_threshold
        df["category"] = "not significant"
        df.loc[is_sig, "category"] = "significant"
        df.loc[is_sig & (df["fold_change"] > fc_threshold), "category"] = "up"
        df.loc[is_sig & (df["fold_change"] < -fc_threshold), "category"] = "down"

    labels = {
        "not significant": "Not significant",
        "significant": "Significant",
        "down": "Decreased",
        "up": "Increased",
    }

    with plt.rc_context(style.rc_params()), sns.axes_style(style.seaborn_style):
        fig, ax = plt.subplots(figsize=style.figsize)

        for category in ["not significant", "significant", "down", "up"]:
            subset = df[df["category"] == category]
            if len(subset) > 0:
                ax.scatter(
                    subset["fold_change"],
                    subset["neg_log10_p"],
                    c=style.colors[category],
                    alpha=style.point_alpha,
                    s=style.point_size,
                    label=labels[category],
                )

        ax.axhline(y=-np.log10(p_threshold), color="black", linestyle="--", alpha=0.5)
        if fc_threshold > 0:
            ax.axvline(x=fc_threshold, color="black", linestyle="--", alpha=0.5)
            ax.axvline(x=-fc_threshold, color="black", linestyle="--", alpha=0.5)

        if label_top_n > 0:
            top = df[df["category"].isin(["up", "down"])].sort_values(p_col).head(label_top_n)
            for _, row in top.iterrows():
                ax.annotate(
                    row["protein_id"],
                    (row["fold_change"], row["neg_log10_p"]),
                    xytext=(5, 5),
                    textcoords="offset points",
                    fontsize=8,
                    alpha=0.7,
                )

        ax.set_xlabel("Interaction log2 fold change", fontweight="bold")
        ax.set_ylabel(f"-Log10 {p_label}", fontweight="bold")
        ax.set_title(title or f"Volcano plot (|FC| > {fc_threshold}, {p_label} < {p_threshold})")
        ax.grid(True, alpha=0.3)
        ax.legend(loc="upper right", frameon=True)
        fig.tight_layout()

    path = save_figure(fig, output_file, style)

    if verbose:
        counts = df["category"].value_counts()
        print("Volcano plot summary:")
        print(f"  Total proteins: {len(df)}")
        print(f"  Increased: {counts.get('up', 0)}")
        print(f"  Decreased: {counts.get('down', 0)}")
        if path:
            print(f"  Saved to: {path}")

    return path


def plot_pvalue_histogram(
    results_df: pd.DataFrame,
    output_file: Optional[str] = None,
    style: Optional[PlotStyle] = None,
    column: str = "p_value",
    bins: int = 40,
    title: Optional[str] = None,
) -> Optional[str]:
    """Histogram of p-values with the uniform (null) expectation drawn as a line."""
    if style is None:
        style = PlotStyle()

    values = results_df[column].dropna() if column in results_df.columns else pd.Series(dtype=float)
    if len(values) == 0:
        print("No p-values to plot")
        return None

    with plt.rc_context(style.rc_params()), sns.axes_style(style.seaborn_style):
        fig, ax = plt.subplots(figsize=style.figsize)
        sns.histplot(values, bins=bins, binrange=(0, 1), color=style.colors["down"], ax=ax)
        ax.axhline(len(values) / bins, color="black", linestyle="--", alpha=0.6, label="Uniform expectation")
        ax.set_xlim(0, 1)
        ax.set_xlabel(column.replace("_", " ").capitalize())
        ax.set_ylabel("Number of proteins")
        ax.set_title(title or f"Distribution of {column.replace('_', ' ')}s (n={len(values)})")
        ax.legend(loc="upper right")
        fig.tight_layout()

    return save_figure(fig, output_file, style)


def plot_mean_variance_trend(
    results_df: pd.DataFrame,
    output_file: Optional[str] = None,
    style: Optional[PlotStyle] = None,
    title: Optional[str] = None,
) -> Optional[str]:
    """
    Residual standard deviation against average intensity with the prior trend.

    Needs the sigma2 and s2_prior columns written by the moderated analysis;
    both are shown on the quarter-root variance scale.
    """
    if style is None:
        style = PlotStyle()

    required = {"ave_intensity", "sigma2", "s2_prior"}
    if not required.issubset(results_df.columns):
        print(f"Mean-variance plot needs columns {sorted(required)}")
        return None

    df = results_df.dropna(subset=list(required)).sort_values("ave_intensity")
    if len(df) == 0:
        print("No variance estimates to plot")
        return None

    with plt.rc_context(style.rc_params()), sns.axes_style(style.seaborn_style):
        fig, ax = plt.subplots(figsize=style.figsize)
        ax.scatter(
            df["ave_intensity"],
            np.sqrt(np.sqrt(df["sigma2"])),
            s=style.point_size / 2,
            alpha=style.point_alpha,
            color=style.colors["not significant"],
            label="Proteins",
        )
        ax.plot(
            df["ave_intensity"],
            np.sqrt(np.sqrt(df["s2_prior"])),
            color=style.colors["trend"],
            linewidth=2,
            label="Prior trend",
        )
        ax.set_xlabel("Average log intensity")
        ax.set_ylabel("sqrt(sigma)")
        ax.set_title(title or "Mean-variance trend")
        ax.legend(loc="upper right")
        fig.tight_layout()

    return save_figure(fig, output_file, style)


def plot_interaction_profile(
    long_df: pd.DataFrame,
    protein_id: str,
    output_file: Optional[str] = None,
    style: Optional[PlotStyle] = None,
    title: Optional[str] = None,
) -> Optional[str]:
    """Replicate intensities and cell means of one protein across timepoints, per assay type."""
    if style is None:
        style = PlotStyle()

    protein_df = long_df[long_df["protein_id"] == str(protein_id)].dropna(subset=["intensity"])
    if len(protein_df) == 0:
        print(f"No measurements for protein {protein_id}")
        return None

    order = sorted(protein_df["timepoint"].unique(), key=timepoint_sort_key)

    with plt.rc_context(style.rc_params()), sns.axes_style(style.seaborn_style):
        fig, ax = plt.subplots(figsize=style.figsize)
        sns.stripplot(
            data=protein_df, x="timepoint", y="intensity", hue="assay_type",
            order=order, dodge=True, palette=style.assay_palette, alpha=style.point_alpha, ax=ax,
        )
        sns.pointplot(
            data=protein_df, x="timepoint", y="intensity", hue="assay_type",
            order=order, dodge=0.4, palette=style.assay_palette, errorbar=None, ax=ax,
        )
        handles, labels = ax.get_legend_handles_labels()
        n_assays = protein_df["assay_type"].nunique()
        ax.legend(handles[:n_assays], labels[:n_assays], title="Assay", loc="best")
        ax.set_xlabel("Timepoint")
        ax.set_ylabel("Intensity")
        ax.set_title(title or f"{protein_id}")
        fig.tight_layout()

    return save_figure(fig, output_file, style)


def generate_report_plots(
    analysis,
    output_dir: str,
    style: Optional[PlotStyle] = None,
    fc_threshold: float = 1.0,
    p_threshold: float = 0.05,
    verbose: bool = True,
) -> Dict[str, str]:
    """
    Write the standard result plots for an AnalysisResult into output_dir.

    Returns:
    --------
    dict mapping plot name to image path
    """
    if style is None:
        style = PlotStyle()
    os.makedirs(output_dir, exist_ok=True)
    results = analysis.results

    written = {}
    path = plot_volcano(
        results, os.path.join(output_dir, "volcano"), style=style,
        fc_threshold=fc_threshold, p_threshold=p_threshold, verbose=verbose,
    )
    if path:
        written["volcano"] = path

    path = plot_pvalue_histogram(results, os.path.join(output_dir, "pvalue_histogram"), style=style)
    if path:
        written["pvalue_histogram"] = path

    if {"sigma2", "s2_prior"}.issubset(results.columns):
        path = plot_mean_variance_trend(results, os.path.join(output_dir, "mean_variance_trend"), style=style)
        if path:
            written["mean_variance_trend"] = path

    if verbose:
        print(f"✓ Wrote {len(written)} plots to {output_dir}")
    return written
