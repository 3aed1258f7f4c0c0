"""
RNA-bound Proteome Toolkit
==========================

A Python library for testing how the RNA-bound fraction of each protein
changes between two timepoints, relative to its total abundance. Every
protein is modelled with a timepoint x assay-type interaction; the
interaction coefficient is the assay-specific change across timepoints.

QUICK START EXAMPLE:
-------------------
    import rbp_toolkit as rbp

    # 1. Load the wide table (one column per sample, e.g. "6h_2_RNA-bound")
    measurements = rbp.load_measurements('proteins.xlsx')

    # 2. Configure and run the analysis
    config = rbp.StatisticalConfig()
    config.statistical_test_method = 'moderated'   # or 'ols'
    config.classification_mode = 'treat'            # or 'pvalue', 'fold_change'
    analysis = rbp.run_comprehensive_statistical_analysis(measurements, config)

    # 3. Visualization and export
    rbp.plot_volcano(analysis.results, 'volcano.png')
    rbp.export_complete_analysis(analysis, config, 'interaction_results.csv')

MODULE OVERVIEW:
===============

data_import
    Purpose: Load the wide abundance table and parse sample column names
    Key functions: load_measurements(), parse_sample_name(), reshape_to_long()
    Use when: Starting analysis, need measurements in long form

statistical_analysis
    Purpose: Per-protein OLS interaction fits and Benjamini-Hochberg correction
    Key functions: run_comprehensive_statistical_analysis(), fit_protein_interaction_model()
    Use when: Testing the interaction protein by protein

moderated_statistics
    Purpose: Empirical-Bayes moderated t-statistics with a mean-variance trend
    Key functions: run_moderated_analysis(), fit_f_dist(), squeeze_var()
    Use when: Few replicates per cell and variance estimates need stabilizing

classification
    Purpose: Significance calls by adjusted p-value, fold change or TREAT
    Key functions: classify_proteins(), treat_test()
    Use when: Turning a result table into up/down/not significant calls

validation
    Purpose: Input and design checks, per-protein failure types, diagnostics
    Key functions: check_design(), summarize_skipped_proteins()
    Use when: Need to know why a protein was left out of the results

visualization
    Purpose: Volcano, p-value histogram, mean-variance and profile plots
    Key functions: plot_volcano(), generate_report_plots()
    Use when: Need figures of the results

export
    Purpose: Write result tables, diagnostics and configuration records
    Key functions: export_complete_analysis(), export_timestamped_config()
    Use when: Saving results, creating configuration backups

ERROR HANDLING:
==============
- InputFormatError / MalformedSampleName: the input table cannot be used; the
  run stops
- InsufficientData, SingularDesign, UnbalancedDesign, NumericInstability: a
  single protein cannot be fitted; it is listed in AnalysisResult.skipped and
  the run continues
"""

# =============================================================================
# MODULE IMPORTS - Core functionality organized by analysis stage
# =============================================================================

from . import data_import           # Data loading and parsing
from . import validation            # Input checks and error types
from . import statistical_analysis  # OLS interaction fits and correction
from . import moderated_statistics  # Empirical-Bayes moderated statistics
from . import classification        # Significance calls
from . import visualization         # Plotting
from . import export                # Results export and configuration records

__version__ = "1.0.0"

# =============================================================================
# CONVENIENCE IMPORTS - Most commonly used functions available at top level
# =============================================================================

from .data_import import (
    load_measurements,        # Main function: load wide table and reshape to long form
    load_abundance_table,     # Load the wide table only
    parse_sample_name,        # Parse "<timepoint>_<replicate>_<assay_type>"
    reshape_to_long,          # Wide table -> one row per measurement
    group_means,              # Mean intensity per protein and design cell
)

from .statistical_analysis import (
    run_comprehensive_statistical_analysis,  # Main function: fit, correct and classify
    run_batch_analysis,                      # OLS fits for every protein + BH correction
    fit_protein_interaction_model,           # Single-protein OLS fit
    benjamini_hochberg,                      # FDR adjustment
    display_analysis_summary,                # Print results summary
    StatisticalConfig,                       # Configuration class for analysis parameters
    ProteinFitResult,                        # Per-protein statistics
    AnalysisResult,                          # Result table + skipped proteins
)

from .moderated_statistics import (
    run_moderated_analysis,   # Empirical-Bayes moderated analysis
    ConstantTrend,            # Prior variance without trend
    LowessTrend,              # Lowess (optionally robust) mean-variance trend
)

from .classification import (
    classify_proteins,            # Add significant/direction columns
    treat_test,                   # Test |effect| > threshold
    compare_classification_modes, # Calls of all rules side by side
)

from .validation import (
    InputFormatError,     # Exception: input table cannot be used
    MalformedSampleName,  # Exception: sample column name does not parse
    ProteinFitError,      # Base exception for per-protein failures
    InsufficientData,
    SingularDesign,
    UnbalancedDesign,
    NumericInstability,
    SkippedProtein,       # Diagnostics entry for a protein left out
)

from .export import (
    export_complete_analysis,   # Main function: results + diagnostics + config
    export_results,             # Result table only
    export_timestamped_config,  # Configuration record with timestamp
)

from .visualization import (
    PlotStyle,                 # Plot appearance settings
    plot_volcano,              # Main results plot
    plot_pvalue_histogram,
    plot_mean_variance_trend,
    plot_interaction_profile,
    generate_report_plots,
)

# =============================================================================
# PUBLIC API - All functions available for import
# =============================================================================

__all__ = [
    # MODULES
    "data_import",
    "validation",
    "statistical_analysis",
    "moderated_statistics",
    "classification",
    "visualization",
    "export",

    # DATA LOADING
    "load_measurements",
    "load_abundance_table",
    "parse_sample_name",
    "reshape_to_long",
    "group_means",

    # STATISTICAL ANALYSIS
    "run_comprehensive_statistical_analysis",
    "run_batch_analysis",
    "fit_protein_interaction_model",
    "benjamini_hochberg",
    "display_analysis_summary",
    "StatisticalConfig",
    "ProteinFitResult",
    "AnalysisResult",
    "run_moderated_analysis",
    "ConstantTrend",
    "LowessTrend",

    # CLASSIFICATION
    "classify_proteins",
    "treat_test",
    "compare_classification_modes",

    # VALIDATION
    "InputFormatError",
    "MalformedSampleName",
    "ProteinFitError",
    "InsufficientData",
    "SingularDesign",
    "UnbalancedDesign",
    "NumericInstability",
    "SkippedProtein",

    # EXPORT
    "export_complete_analysis",
    "export_results",
    "export_timestamped_config",

    # VISUALIZATION
    "PlotStyle",
    "plot_volcano",
    "plot_pvalue_histogram",
    "plot_mean_variance_trend",
    "plot_interaction_profile",
    "generate_report_plots",
]
