"""
Basic tests to verify pytest setup and basic functionality
"""

import pandas as pd
import numpy as np


def test_basic_functionality():
    """Test basic functionality to verify test setup works"""
    df = pd.DataFrame({"A": [1, 2, 3], "B": [4, 5, 6]})

    assert len(df) == 3
    assert list(df.columns) == ["A", "B"]
    assert df["A"].sum() == 6


def test_rbp_toolkit_import():
    """Test that we can import the toolkit and its public API"""
    import rbp_toolkit

    assert hasattr(rbp_toolkit, "__version__")
    for name in rbp_toolkit.__all__:
        assert hasattr(rbp_toolkit, name), f"{name} listed in __all__ but not importable"


def test_fixtures_shape(wide_table, long_measurements):
    """Synthetic data has the expected layout"""
    assert wide_table.shape == (40, 14)
    assert len(long_measurements) == 40 * 12
    assert not np.isnan(long_measurements["intensity"]).any()
