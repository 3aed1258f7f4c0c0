"""
Data Import Module for RNA-bound Proteome Analysis

Functions for loading the wide protein abundance table (one row per protein,
one column per sample), parsing sample column names and reshaping the table
into long form with one row per measurement.

Sample column grammar
---------------------
Every sample column name has exactly three tokens joined by a fixed delimiter
(default "_"), in this order:

    <timepoint> <delim> <replicate> <delim> <assay_type>

    timepoint   number of hours followed by "h"       e.g. 0h, 6h, 0.5h
    replicate   positive integer                       e.g. 1, 2, 3
    assay_type  letter followed by letters, digits     e.g. total, RNA-bound
                or hyphens

so "0h_1_total" and "6h_3_RNA-bound" are valid sample columns.
"""

import pandas as pd
import numpy as np
import re
import os
from typing import Dict, List, NamedTuple, Optional, Sequence

from .validation import InputFormatError, MalformedSampleName, validate_wide_table


DEFAULT_ANNOTATION_COLUMNS = [
    "Description",
    "Gene",
    "Protein Gene",
    "UniProt_Accession",
    "UniProt_Entry_Name",
]

LONG_COLUMNS = [
    "protein_id",
    "sample",
    "timepoint",
    "hours",
    "replicate",
    "assay_type",
    "intensity",
]

_TIMEPOINT_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)h$")
_REPLICATE_PATTERN = re.compile(r"^[1-9]\d*$")
_ASSAY_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9-]*$")


class SampleName(NamedTuple):
    """Parsed sample column name."""

    timepoint: str
    hours: float
    replicate: int
    assay_type: str


def parse_sample_name(name: str, delimiter: str = "_") -> SampleName:
    """
    Parse a sample column name such as '0h_1_total'.

    Parameters:
    -----------
    name : str
        Sample column name
    delimiter : str
        Token delimiter

    Returns:
    --------
    SampleName

    Raises:
    -------
    MalformedSampleName
        If the name does not have exactly three valid tokens
    """
    text = str(name).strip()
    tokens = text.split(delimiter)
    if len(tokens) != 3:
        raise MalformedSampleName(name, delimiter, f"expected 3 tokens, found {len(tokens)}")

    timepoint, replicate, assay_type = tokens

    time_match = _TIMEPOINT_PATTERN.match(timepoint)
    if not time_match:
        raise MalformedSampleName(name, delimiter, f"invalid timepoint '{timepoint}'")
    if not _REPLICATE_PATTERN.match(replicate):
        raise MalformedSampleName(name, delimiter, f"invalid replicate '{replicate}'")
    if not _ASSAY_PATTERN.match(assay_type):
        raise MalformedSampleName(name, delimiter, f"invalid assay type '{assay_type}'")

    return SampleName(
        timepoint=timepoint,
        hours=float(time_match.group(1)),
        replicate=int(replicate),
        assay_type=assay_type,
    )


def load_abundance_table(
    input_file: str, sheet_name=0, verbose: bool = True
) -> pd.DataFrame:
    """
    Load the wide protein abundance table.

    Spreadsheets (.xlsx, .xls) are read with pandas.read_excel, tab-delimited
    files (.tsv, .txt, .tab) and comma-delimited files (.csv) with
    pandas.read_csv.

    Parameters:
    -----------
    input_file : str
        Path to the table
    sheet_name : str or int
        Worksheet to read for spreadsheet input
    verbose : bool
        Print loading progress

    Returns:
    --------
    pd.DataFrame
        Raw wide table as read from disk
    """
    if verbose:
        print("=== LOADING PROTEIN ABUNDANCE TABLE ===\n")

    if not os.path.exists(input_file):
        raise FileNotFoundError(f"Protein abundance file not found: {input_file}")

    extension = os.path.splitext(str(input_file))[1].lower()

    try:
        if extension in (".xlsx", ".xlsm", ".xls"):
            data = pd.read_excel(input_file, sheet_name=sheet_name)
        elif extension in (".tsv", ".txt", ".tab"):
            data = pd.read_csv(input_file, sep="\t")
        elif extension == ".csv":
            data = pd.read_csv(input_file)
        else:
            raise InputFormatError(
                f"Unsupported file type '{extension}' (expected .xlsx, .xls, .csv, .tsv or .txt)"
            )
    except InputFormatError:
        raise
    except (ValueError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise InputFormatError(f"Error loading protein file {input_file}: {e}") from e

    data.columns = [str(col).strip() for col in data.columns]

    if verbose:
        print(f"✓ Loaded protein data: {data.shape}")

    return data


def identify_sample_columns(
    data: pd.DataFrame,
    protein_id_column: str = "Protein",
    annotation_columns: Optional[Sequence[str]] = None,
    delimiter: str = "_",
) -> Dict[str, SampleName]:
    """
    Parse every non-annotation column of the wide table as a sample column.

    Parameters:
    -----------
    data : pd.DataFrame
        Wide protein table
    protein_id_column : str
        Column holding protein identifiers
    annotation_columns : list, optional
        Descriptive columns to ignore; defaults to DEFAULT_ANNOTATION_COLUMNS
    delimiter : str
        Sample-name token delimiter

    Returns:
    --------
    Dict[str, SampleName] in column order

    Raises:
    -------
    MalformedSampleName
        For the first column that is neither an annotation nor a valid sample
    InputFormatError
        If no sample columns are present
    """
    if annotation_columns is None:
        annotation_columns = DEFAULT_ANNOTATION_COLUMNS
    skip = set(annotation_columns) | {protein_id_column}

    samples = {}
    for col in data.columns:
        if col in skip:
            continue
        samples[col] = parse_sample_name(col, delimiter)

    if not samples:
        raise InputFormatError("No sample columns found in protein table")

    return samples


def reshape_to_long(
    data: pd.DataFrame,
    protein_id_column: str = "Protein",
    annotation_columns: Optional[Sequence[str]] = None,
    delimiter: str = "_",
    verbose: bool = True,
) -> pd.DataFrame:
    """
    Pivot the wide table into long form, one row per (protein, sample) cell.

    Parameters:
    -----------
    data : pd.DataFrame
        Wide protein table
    protein_id_column : str
        Column holding protein identifiers
    annotation_columns : list, optional
        Descriptive columns to ignore
    delimiter : str
        Sample-name token delimiter
    verbose : bool
        Print reshaping summary

    Returns:
    --------
    pd.DataFrame with columns protein_id, sample, timepoint, hours,
    replicate, assay_type, intensity. Missing intensities are kept as NaN.
    """
    validate_wide_table(data, protein_id_column)
    samples = identify_sample_columns(data, protein_id_column, annotation_columns, delimiter)
    sample_columns = list(samples)

    values = data[sample_columns].apply(pd.to_numeric, errors="coerce")
    bad_cells = values.isna() & data[sample_columns].notna()
    if bad_cells.any().any():
        bad_column = bad_cells.any().idxmax()
        bad_row = bad_cells[bad_column].idxmax()
        raise InputFormatError(
            f"Non-numeric intensity {data.loc[bad_row, bad_column]!r} in column '{bad_column}' "
            f"for protein {data.loc[bad_row, protein_id_column]}"
        )

    wide = values.copy()
    wide.insert(0, "protein_id", data[protein_id_column].astype(str).values)

    long_df = wide.melt(id_vars="protein_id", var_name="sample", value_name="intensity")

    design = pd.DataFrame.from_dict(
        {col: parsed._asdict() for col, parsed in samples.items()}, orient="index"
    )
    design.index.name = "sample"
    long_df = long_df.merge(design.reset_index(), on="sample", how="left")

    long_df["intensity"] = long_df["intensity"].astype(float)
    long_df["replicate"] = long_df["replicate"].astype(int)
    long_df = long_df[LONG_COLUMNS]

    if verbose:
        n_missing = int(long_df["intensity"].isna().sum())
        timepoints = sorted(design["timepoint"].unique(), key=timepoint_sort_key)
        print(f"✓ Reshaped {len(data)} proteins x {len(sample_columns)} samples to {len(long_df)} measurements")
        print(f"  Timepoints: {timepoints}")
        print(f"  Assay types: {sorted(design['assay_type'].unique())}")
        print(f"  Replicates: {sorted(design['replicate'].unique())}")
        if n_missing:
            print(f"  Missing intensities: {n_missing}")

    return long_df


def timepoint_sort_key(label: str) -> float:
    """Sort key ordering timepoint labels by hours."""
    match = _TIMEPOINT_PATTERN.match(str(label))
    return float(match.group(1)) if match else np.inf


def load_measurements(
    input_file: str,
    protein_id_column: str = "Protein",
    annotation_columns: Optional[Sequence[str]] = None,
    delimiter: str = "_",
    sheet_name=0,
    verbose: bool = True,
) -> pd.DataFrame:
    """Load a wide abundance file and return the long measurement table."""
    data = load_abundance_table(input_file, sheet_name=sheet_name, verbose=verbose)
    return reshape_to_long(
        data,
        protein_id_column=protein_id_column,
        annotation_columns=annotation_columns,
        delimiter=delimiter,
        verbose=verbose,
    )


def design_summary(long_df: pd.DataFrame) -> pd.DataFrame:
    """Number of samples per (timepoint, assay_type) cell of the design."""
    samples = long_df.drop_duplicates("sample")
    return (
        samples.groupby(["timepoint", "assay_type"])["replicate"]
        .nunique()
        .rename("n_replicates")
        .reset_index()
    )


def list_timepoints(long_df: pd.DataFrame) -> List[str]:
    """Timepoint labels present in the measurement table, earliest first."""
    return sorted(long_df["timepoint"].unique(), key=timepoint_sort_key)


def group_means(long_df: pd.DataFrame) -> pd.DataFrame:
    """
    Mean intensity of each protein in every (timepoint, assay_type) cell.

    Returns:
    --------
    pd.DataFrame indexed by protein_id with one "<timepoint>/<assay_type>"
    column per cell, timepoints earliest first. Missing intensities are
    ignored; cells with no observations are NaN.
    """
    means = (
        long_df.groupby(["protein_id", "timepoint", "assay_type"])["intensity"]
        .mean()
        .unstack(["timepoint", "assay_type"])
    )
    ordered = sorted(means.columns, key=lambda cell: (timepoint_sort_key(cell[0]), cell[1]))
    means = means[ordered]
    means.columns = [f"{t}/{a}" for t, a in ordered]
    return means.sort_index()
