"""
Data Validation Module for RNA-bound Proteome Analysis

Exception types for input and per-protein fitting failures, balanced-design
checks, and diagnostics for proteins that were skipped during analysis.
"""

import pandas as pd
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Tuple


SAMPLE_NAME_GRAMMAR = "<timepoint>{delim}<replicate>{delim}<assay_type>  (e.g. 0h{delim}1{delim}total)"


class InputFormatError(Exception):
    """Malformed input table. Fatal for the whole run."""
    def __init__(self, message):
        super().__init__(message)


class MalformedSampleName(InputFormatError):
    """Sample column name that does not follow the sample naming grammar."""
    def __init__(self, column, delimiter="_", detail=None):
        self.column = column
        self.delimiter = delimiter
        grammar = SAMPLE_NAME_GRAMMAR.format(delim=delimiter)
        message = f"Sample column '{column}' does not match {grammar}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class ProteinFitError(Exception):
    """Per-protein model failure. Recovered at the batch level."""

    reason = "fit_failed"

    def __init__(self, protein_id, message):
        self.protein_id = protein_id
        self.message = message
        super().__init__(f"{protein_id}: {message}")


class InsufficientData(ProteinFitError):
    """Not enough observations or factor levels to identify the model."""

    reason = "insufficient_data"


class SingularDesign(ProteinFitError):
    """Design matrix is rank-deficient; the interaction term is not estimable."""

    reason = "singular_design"


class UnbalancedDesign(ProteinFitError):
    """Duplicate or unequally replicated design cells."""

    reason = "unbalanced_design"


class NumericInstability(ProteinFitError):
    """Fit produced a non-finite estimate, standard error or p-value."""

    reason = "numeric_instability"


@dataclass(frozen=True)
class SkippedProtein:
    """A protein excluded from the corrected result table, with its reason."""

    protein_id: str
    reason: str
    message: str

    @classmethod
    def from_error(cls, error: ProteinFitError) -> "SkippedProtein":
        return cls(protein_id=str(error.protein_id), reason=error.reason, message=error.message)


def count_design_cells(protein_df: pd.DataFrame) -> pd.Series:
    """Number of measurements in each (timepoint, assay_type) cell."""
    return protein_df.groupby(["timepoint", "assay_type"], observed=True).size()


def check_design(
    protein_id: str,
    protein_df: pd.DataFrame,
    reference_timepoint: str,
    comparison_timepoint: str,
    reference_assay: str,
    comparison_assay: str,
    require_balanced: bool = True,
) -> None:
    """
    Validate the two-by-two design for a single protein before fitting.

    Parameters:
    -----------
    protein_id : str
        Protein being checked (used in error messages)
    protein_df : pd.DataFrame
        Long-format measurements for one protein, missing intensities removed
    reference_timepoint, comparison_timepoint : str
        The two timepoint levels of the design
    reference_assay, comparison_assay : str
        The two assay-type levels of the design
    require_balanced : bool
        If True, every design cell must hold the same number of replicates

    Raises:
    -------
    UnbalancedDesign
        Duplicate (timepoint, replicate, assay_type) measurements, or unequal
        replicate counts when require_balanced is set
    InsufficientData
        A timepoint or assay level is absent from this protein altogether
    SingularDesign
        Both levels of each factor are present but a cell is empty
    """
    duplicated = protein_df.duplicated(subset=["timepoint", "replicate", "assay_type"])
    if duplicated.any():
        first = protein_df.loc[duplicated].iloc[0]
        raise UnbalancedDesign(
            protein_id,
            f"duplicate measurement for {first['timepoint']}/{first['replicate']}/{first['assay_type']}",
        )

    timepoints_present = set(protein_df["timepoint"])
    assays_present = set(protein_df["assay_type"])

    missing_levels = [
        level
        for level in (reference_timepoint, comparison_timepoint)
        if level not in timepoints_present
    ] + [
        level
        for level in (reference_assay, comparison_assay)
        if level not in assays_present
    ]
    if missing_levels:
        raise InsufficientData(protein_id, f"no measurements for level(s) {missing_levels}")

    cells = count_design_cells(protein_df)
    expected_cells = [
        (t, a)
        for t in (reference_timepoint, comparison_timepoint)
        for a in (reference_assay, comparison_assay)
    ]
    empty_cells = [cell for cell in expected_cells if cells.get(cell, 0) == 0]
    if empty_cells:
        raise SingularDesign(
            protein_id,
            f"{len(expected_cells) - len(empty_cells)} of {len(expected_cells)} design cells observed; "
            f"empty: {empty_cells}",
        )

    if require_balanced and cells.loc[expected_cells].nunique() > 1:
        counts = {f"{t}/{a}": int(cells[(t, a)]) for t, a in expected_cells}
        raise UnbalancedDesign(protein_id, f"unequal replicates per cell {counts}")


def summarize_skipped_proteins(skipped: List[SkippedProtein]) -> pd.DataFrame:
    """Diagnostics table with one row per skipped protein, sorted by protein id."""
    columns = ["protein_id", "reason", "message"]
    if not skipped:
        return pd.DataFrame(columns=columns)
    return (
        pd.DataFrame([asdict(s) for s in skipped], columns=columns)
        .sort_values("protein_id", kind="mergesort")
        .reset_index(drop=True)
    )


def generate_skip_report(
    skipped: List[SkippedProtein],
    n_total: Optional[int] = None,
    verbose: bool = True,
) -> Dict[str, int]:
    """
    Count skipped proteins by reason and optionally print a short report.

    Returns:
    --------
    Dict[str, int] mapping reason code to number of proteins
    """
    counts: Dict[str, int] = {}
    for entry in skipped:
        counts[entry.reason] = counts.get(entry.reason, 0) + 1

    if verbose:
        print("SKIPPED PROTEIN DIAGNOSTICS")
        print("=" * 50)
        if n_total is not None:
            print(f"  Skipped {len(skipped)} of {n_total} proteins")
        else:
            print(f"  Skipped {len(skipped)} proteins")
        for reason, count in sorted(counts.items(), key=lambda item: (-item[1], item[0])):
            print(f"  {reason}: {count}")
        for entry in skipped[:5]:
            print(f"    - {entry.protein_id}: {entry.message}")
        if len(skipped) > 5:
            print(f"    ... and {len(skipped) - 5} more")

    return counts


def validate_wide_table(
    data: pd.DataFrame, protein_id_column: str
) -> Tuple[int, int]:
    """
    Check the wide protein table before sample names are parsed.

    Returns:
    --------
    (n_proteins, n_columns)

    Raises:
    -------
    InputFormatError
        Empty table, missing or duplicated protein identifiers
    """
    if data is None or data.empty:
        raise InputFormatError("Input table is empty")

    if protein_id_column not in data.columns:
        raise InputFormatError(
            f"Protein identifier column '{protein_id_column}' not found. "
            f"Available columns: {list(data.columns)[:10]}"
        )

    ids = data[protein_id_column]
    if ids.isna().any():
        raise InputFormatError(
            f"{int(ids.isna().sum())} rows have no value in '{protein_id_column}'"
        )

    duplicated = ids[ids.duplicated()].astype(str).unique().tolist()
    if duplicated:
        raise InputFormatError(
            f"Duplicate protein identifiers: {duplicated[:5]}{'...' if len(duplicated) > 5 else ''}"
        )

    return len(data), len(data.columns)
