"""
Export Module for RNA-bound Proteome Analysis

This module writes the interaction result table, the diagnostics list of
skipped proteins and a timestamped record of the analysis configuration.
"""

import os
import pandas as pd
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .data_import import group_means
from .validation import SkippedProtein, summarize_skipped_proteins


EXPORT_COLUMNS = [
    "protein_id",
    "fold_change",
    "std_error",
    "p_value",
    "adjusted_p_value",
    "adjusted_r_squared",
]


def _delimiter_for(output_file: str) -> str:
    return "\t" if os.path.splitext(str(output_file))[1].lower() in (".tsv", ".txt", ".tab") else ","


def _ensure_parent(output_file: str) -> None:
    directory = os.path.dirname(str(output_file))
    if directory:
        os.makedirs(directory, exist_ok=True)


def export_results(
    results_df: pd.DataFrame,
    output_file: str,
    include_all: bool = True,
    all_columns: bool = True,
    verbose: bool = True,
) -> str:
    """
    Export the interaction result table as delimited text.

    Parameters:
    -----------
    results_df : pd.DataFrame
        Result table sorted by protein id
    output_file : str
        Output filename; .tsv/.txt/.tab are tab-delimited, anything else comma-delimited
    include_all : bool
        Whether to include all proteins or only those called significant
    all_columns : bool
        Write every column (True) or only protein_id, fold_change, std_error,
        p_value, adjusted_p_value and adjusted_r_squared (False)

    Returns:
    --------
    str
        Path of the written file
    """
    export_df = results_df.copy()
    if not include_all:
        if "significant" not in export_df.columns:
            raise ValueError("Result table has no 'significant' column; classify proteins first")
        export_df = export_df[export_df["significant"].astype(bool)]

    missing = [col for col in EXPORT_COLUMNS if col not in export_df.columns]
    if missing:
        raise ValueError(f"Result table is missing columns: {missing}")

    leading = EXPORT_COLUMNS
    trailing = [col for col in export_df.columns if col not in leading] if all_columns else []
    export_df = export_df[leading + trailing]

    _ensure_parent(output_file)
    export_df.to_csv(output_file, sep=_delimiter_for(output_file), index=False)

    if verbose:
        scope = "all" if include_all else "significant"
        print(f"Exported {len(export_df)} proteins ({scope}) to: {output_file}")

    return str(output_file)


def export_skipped_proteins(
    skipped: Union[List[SkippedProtein], pd.DataFrame],
    output_file: str,
    verbose: bool = True,
) -> str:
    """Write the diagnostics list of skipped proteins and their reasons."""
    if isinstance(skipped, pd.DataFrame):
        diagnostics = skipped
    else:
        diagnostics = summarize_skipped_proteins(list(skipped))

    _ensure_parent(output_file)
    diagnostics.to_csv(output_file, sep=_delimiter_for(output_file), index=False)

    if verbose:
        print(f"Skipped-protein diagnostics ({len(diagnostics)} proteins) exported to: {output_file}")

    return str(output_file)


def export_timestamped_config(
    config_dict: Dict[str, Any],
    output_prefix: str = "rbp_analysis",
    analysis_description: str = "Timepoint x assay interaction analysis",
    computed_values: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Export analysis configuration as a timestamped Python file.

    Parameters:
    -----------
    config_dict : dict
        Dictionary containing all configuration parameters
    output_prefix : str
        Prefix for the configuration filename
    analysis_description : str
        Description of the analysis
    computed_values : dict, optional
        Additional computed values to include as comments

    Returns:
    --------
    str
        Path to the exported configuration file
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    config_file = f"{output_prefix}_config_{timestamp}.py"
    _ensure_parent(config_file)

    print(f"Exporting analysis configuration to: {config_file}")

    section_configs = [
        (1, "INPUT FILES AND TABLE LAYOUT", ["input_file", "output_file", "protein_id_column",
                                             "annotation_columns", "sample_delimiter"]),
        (2, "EXPERIMENTAL DESIGN", ["reference_timepoint", "comparison_timepoint", "reference_assay",
                                    "comparison_assay", "require_balanced_design"]),
        (3, "LOG TRANSFORMATION", ["log_transform_before_stats", "log_base", "log_pseudocount"]),
        (4, "STATISTICAL ANALYSIS STRATEGY", ["statistical_test_method", "correction_method",
                                              "confidence_level"]),
        (5, "EMPIRICAL-BAYES VARIANCE TREND", ["trend_method", "lowess_frac", "robust_iterations"]),
        (6, "SIGNIFICANCE THRESHOLDS", ["p_value_threshold", "fold_change_threshold",
                                        "classification_mode", "alternative"]),
        (7, "EXECUTION", ["n_jobs", "verbose"]),
    ]

    with open(config_file, "w", encoding="utf-8") as f:
        f.write("# =============================================================================\n")
        f.write("# RNA-BOUND PROTEOME ANALYSIS CONFIGURATION\n")
        f.write(f"# Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write(f"# Analysis: {analysis_description}\n")
        f.write("# =============================================================================\n\n")

        written = set()
        for section_num, section_name, param_names in section_configs:
            _write_config_section(f, section_name, config_dict, param_names, section_num)
            written.update(param_names)

        remaining = [key for key in config_dict if key not in written]
        if remaining:
            _write_config_section(f, "OTHER PARAMETERS", config_dict, remaining, len(section_configs) + 1)

        if computed_values:
            f.write("# =============================================================================\n")
            f.write("# COMPUTED VALUES (for reference)\n")
            f.write("# =============================================================================\n")
            for key, value in computed_values.items():
                f.write(f"# {key}: {value}\n")

    return config_file


def _write_config_section(
    file_handle,
    section_name: str,
    config_dict: Dict[str, Any],
    param_names: List[str],
    section_number: int = 1,
) -> None:
    """Write a configuration section to file."""
    present = [param for param in param_names if param in config_dict]
    if not present:
        return

    file_handle.write("# =============================================================================\n")
    file_handle.write(f"# {section_number}. {section_name}\n")
    file_handle.write("# =============================================================================\n")
    for param in present:
        file_handle.write(f"{param} = {repr(config_dict[param])}\n")
    file_handle.write("\n")


def export_complete_analysis(
    analysis,
    config,
    output_file: str,
    input_file: Optional[str] = None,
    write_config: bool = True,
    long_df: Optional[pd.DataFrame] = None,
) -> Dict[str, str]:
    """
    Export the result table, skipped-protein diagnostics and configuration record.

    The diagnostics and configuration files are written next to output_file
    using its stem as prefix. When the long measurement table is given, the
    per-protein cell means are written as well.

    Returns:
    --------
    dict
        Mapping of export type to file path
    """
    verbose = getattr(config, "verbose", True)
    stem, ext = os.path.splitext(str(output_file))
    exported = {
        "results": export_results(analysis.results, output_file, verbose=verbose),
        "skipped": export_skipped_proteins(analysis.skipped, f"{stem}_skipped{ext or '.csv'}", verbose=verbose),
    }

    if long_df is not None:
        means_file = f"{stem}_group_means{ext or '.csv'}"
        _ensure_parent(means_file)
        group_means(long_df).to_csv(means_file, sep=_delimiter_for(means_file))
        exported["group_means"] = means_file

    if write_config:
        config_dict = config.to_dict()
        config_dict["input_file"] = input_file
        config_dict["output_file"] = str(output_file)
        computed = {
            "timepoints": f"{analysis.design.reference_timepoint} -> {analysis.design.comparison_timepoint}",
            "assays": f"{analysis.design.reference_assay} -> {analysis.design.comparison_assay}",
            "proteins_fitted": len(analysis.results),
            "proteins_skipped": len(analysis.skipped),
        }
        for key, value in analysis.details.items():
            computed[key] = value
        exported["config"] = export_timestamped_config(
            config_dict,
            output_prefix=stem,
            analysis_description=f"{analysis.method} interaction analysis",
            computed_values=computed,
        )

    if verbose:
        print("\nExport summary:")
        for kind, path in exported.items():
            print(f"  {kind}: {path}")

    return exported
