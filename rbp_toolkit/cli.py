"""
Command-line entry point: run the interaction analysis on an input table and
write the result table (plus diagnostics, configuration record and optional
plots) to an output path.

    rbp-toolkit proteins.xlsx results.csv --method moderated --plots figures/
"""

import argparse
import sys
from typing import List, Optional

from .data_import import load_measurements
from .export import export_complete_analysis
from .statistical_analysis import (
    StatisticalConfig,
    display_analysis_summary,
    run_comprehensive_statistical_analysis,
)
from .validation import InputFormatError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rbp-toolkit",
        description="Per-protein timepoint x assay interaction analysis of RNA-bound proteome data.",
    )
    parser.add_argument("input", help="Wide protein table (.xlsx, .xls, .csv, .tsv, .txt)")
    parser.add_argument("output", help="Result table path (.csv or .tsv)")
    parser.add_argument("--method", choices=StatisticalConfig.TEST_METHODS, default="ols",
                        help="Independent OLS fits or empirical-Bayes moderated statistics")
    parser.add_argument("--classification", choices=StatisticalConfig.CLASSIFICATION_MODES,
                        default="pvalue", help="Rule for calling proteins significant")
    parser.add_argument("--alternative", choices=StatisticalConfig.ALTERNATIVES, default="two-sided")
    parser.add_argument("--threshold", type=float, default=1.0,
                        help="Fold change threshold in log2 units")
    parser.add_argument("--fdr", type=float, default=0.05, help="Adjusted p-value cutoff")
    parser.add_argument("--trend", choices=StatisticalConfig.TREND_METHODS, default="lowess",
                        help="Mean-variance trend for the moderated method")
    parser.add_argument("--protein-column", default="Protein")
    parser.add_argument("--delimiter", default="_", help="Sample-name token delimiter")
    parser.add_argument("--reference-timepoint", default=None)
    parser.add_argument("--comparison-timepoint", default=None)
    parser.add_argument("--reference-assay", default="total")
    parser.add_argument("--comparison-assay", default=None)
    parser.add_argument("--allow-unbalanced", action="store_true",
                        help="Fit proteins with unequal replicates per design cell")
    parser.add_argument("--log-transform", choices=["auto", "true", "false"], default="false")
    parser.add_argument("--sheet", default=0, help="Worksheet name or index for spreadsheet input")
    parser.add_argument("--jobs", type=int, default=1, help="Worker threads for per-protein fits")
    parser.add_argument("--plots", default=None, metavar="DIR", help="Write result plots to DIR")
    parser.add_argument("--no-config", action="store_true", help="Do not write the configuration record")
    parser.add_argument("--quiet", action="store_true")
    return parser


def config_from_args(args: argparse.Namespace) -> StatisticalConfig:
    config = StatisticalConfig()
    config.statistical_test_method = args.method
    config.classification_mode = args.classification
    config.alternative = args.alternative
    config.fold_change_threshold = args.threshold
    config.p_value_threshold = args.fdr
    config.trend_method = args.trend
    config.protein_id_column = args.protein_column
    config.sample_delimiter = args.delimiter
    config.reference_timepoint = args.reference_timepoint
    config.comparison_timepoint = args.comparison_timepoint
    config.reference_assay = args.reference_assay
    config.comparison_assay = args.comparison_assay
    config.require_balanced_design = not args.allow_unbalanced
    config.log_transform_before_stats = {"auto": "auto", "true": True, "false": False}[args.log_transform]
    config.n_jobs = args.jobs
    config.verbose = not args.quiet
    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = config_from_args(args)
    sheet = int(args.sheet) if str(args.sheet).isdigit() else args.sheet

    try:
        config.validate()
        long_df = load_measurements(
            args.input,
            protein_id_column=config.protein_id_column,
            annotation_columns=config.annotation_columns,
            delimiter=config.sample_delimiter,
            sheet_name=sheet,
            verbose=config.verbose,
        )
        analysis = run_comprehensive_statistical_analysis(long_df, config)
    except (InputFormatError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    export_complete_analysis(
        analysis,
        config,
        args.output,
        input_file=args.input,
        write_config=not args.no_config,
        long_df=long_df,
    )

    if args.plots:
        import matplotlib

        matplotlib.use("Agg")
        from .visualization import generate_report_plots

        generate_report_plots(
            analysis,
            args.plots,
            fc_threshold=config.fold_change_threshold,
            p_threshold=config.p_value_threshold,
            verbose=config.verbose,
        )

    if config.verbose:
        display_analysis_summary(analysis, config)

    return 0


if __name__ == "__main__":
    sys.exit(main())
