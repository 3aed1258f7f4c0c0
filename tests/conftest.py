"""
Pytest configuration and fixtures for rbp_toolkit tests
"""

import matplotlib

matplotlib.use("Agg")

import pytest
import pandas as pd
import numpy as np

from rbp_toolkit.data_import import reshape_to_long
from rbp_toolkit.statistical_analysis import StatisticalConfig


TIMEPOINTS = ["0h", "6h"]
ASSAYS = ["total", "RNA-bound"]
REPLICATES = [1, 2, 3]


def sample_columns(timepoints=TIMEPOINTS, replicates=REPLICATES, assays=ASSAYS):
    return [f"{t}_{r}_{a}" for t in timepoints for r in replicates for a in assays]


def make_wide_table(n_proteins=40, n_changed=6, effect=4.0, noise=0.25, seed=42):
    """Wide table with a known interaction effect for the first n_changed proteins.

    Changed proteins alternate between +effect and -effect.
    """
    rng = np.random.default_rng(seed)
    columns = sample_columns()
    protein_ids = [f"P{i:05d}" for i in range(n_proteins)]

    rows = []
    for i, protein_id in enumerate(protein_ids):
        baseline = rng.uniform(18, 26)
        time_shift = rng.normal(0, 0.5)
        assay_shift = rng.normal(-1, 0.5)
        interaction = 0.0
        if i < n_changed:
            interaction = effect if i % 2 == 0 else -effect
        sd = noise * rng.uniform(0.5, 2.0)

        row = {"Protein": protein_id, "Description": f"Protein {i}"}
        for col in columns:
            timepoint, _, assay = col.split("_")
            t = float(timepoint == "6h")
            a = float(assay == "RNA-bound")
            mean = baseline + time_shift * t + assay_shift * a + interaction * t * a
            row[col] = mean + rng.normal(0, sd)
        rows.append(row)

    return pd.DataFrame(rows)


def exact_protein_measurements(protein_id="EXACT", interaction=2.0):
    """Noise-free measurements of one protein with a known interaction effect."""
    records = []
    for timepoint in TIMEPOINTS:
        for replicate in REPLICATES:
            for assay in ASSAYS:
                t = 1.0 if timepoint == "6h" else 0.0
                a = 1.0 if assay == "RNA-bound" else 0.0
                records.append(
                    {
                        "protein_id": protein_id,
                        "sample": f"{timepoint}_{replicate}_{assay}",
                        "timepoint": timepoint,
                        "hours": float(timepoint[:-1]),
                        "replicate": replicate,
                        "assay_type": assay,
                        "intensity": 10.0 + 1.0 * t + 0.5 * a + interaction * t * a,
                    }
                )
    return pd.DataFrame(records)


@pytest.fixture
def wide_table():
    """40 proteins x 12 samples (2 timepoints x 3 replicates x 2 assays)"""
    return make_wide_table()


@pytest.fixture
def long_measurements(wide_table):
    return reshape_to_long(wide_table, verbose=False)


@pytest.fixture
def exact_protein():
    return exact_protein_measurements()


@pytest.fixture
def statistical_config():
    config = StatisticalConfig()
    config.verbose = False
    return config


@pytest.fixture
def wide_table_csv(tmp_path, wide_table):
    path = tmp_path / "proteins.csv"
    wide_table.to_csv(path, index=False)
    return str(path)
