"""
Tests for plotting functions; figures are rendered with the Agg backend
"""

import os

import matplotlib
import matplotlib.pyplot as plt
import pandas as pd
import pytest

from rbp_toolkit.statistical_analysis import StatisticalConfig, run_comprehensive_statistical_analysis
from rbp_toolkit.visualization import (
    PlotStyle,
    generate_report_plots,
    plot_interaction_profile,
    plot_mean_variance_trend,
    plot_pvalue_histogram,
    plot_volcano,
)


@pytest.fixture
def moderated_analysis(long_measurements, statistical_config):
    statistical_config.statistical_test_method = "moderated"
    return run_comprehensive_statistical_analysis(long_measurements, statistical_config)


class TestPlots:
    """Test that each plot writes an image and leaves no open figures"""

    def test_volcano(self, tmp_path, moderated_analysis):
        path = plot_volcano(moderated_analysis.results, str(tmp_path / "volcano"), verbose=False)
        assert path.endswith(".png")
        assert os.path.getsize(path) > 0
        assert plt.get_fignums() == []

    def test_volcano_without_direction(self, tmp_path, moderated_analysis):
        results = moderated_analysis.results.drop(columns=["direction"])
        path = plot_volcano(results, str(tmp_path / "volcano.png"), use_adjusted_pvalue=False, verbose=False)
        assert os.path.exists(path)

    def test_volcano_empty(self, tmp_path):
        assert plot_volcano(pd.DataFrame(), str(tmp_path / "empty.png"), verbose=False) is None

    def test_pvalue_histogram(self, tmp_path, moderated_analysis):
        style = PlotStyle(image_format="svg", dpi=72)
        path = plot_pvalue_histogram(moderated_analysis.results, str(tmp_path / "hist"), style=style)
        assert path.endswith(".svg")
        assert os.path.exists(path)

    def test_mean_variance_trend(self, tmp_path, moderated_analysis):
        path = plot_mean_variance_trend(moderated_analysis.results, str(tmp_path / "sa.png"))
        assert os.path.exists(path)

    def test_mean_variance_trend_needs_moderated_columns(self, tmp_path, long_measurements):
        config = StatisticalConfig()
        config.verbose = False
        ols = run_comprehensive_statistical_analysis(long_measurements, config)
        assert plot_mean_variance_trend(ols.results, str(tmp_path / "sa.png")) is None

    def test_interaction_profile(self, tmp_path, long_measurements):
        path = plot_interaction_profile(long_measurements, "P00000", str(tmp_path / "profile.png"))
        assert os.path.exists(path)
        assert plot_interaction_profile(long_measurements, "unknown", str(tmp_path / "none.png")) is None

    def test_style_does_not_leak(self, tmp_path, moderated_analysis):
        before = matplotlib.rcParams["axes.labelsize"]
        plot_volcano(
            moderated_analysis.results, str(tmp_path / "v.png"), style=PlotStyle(label_fontsize=30), verbose=False
        )
        assert matplotlib.rcParams["axes.labelsize"] == before

    def test_report_plots(self, tmp_path, moderated_analysis):
        written = generate_report_plots(moderated_analysis, str(tmp_path / "figures"), verbose=False)
        assert set(written) == {"volcano", "pvalue_histogram", "mean_variance_trend"}
        for path in written.values():
            assert os.path.exists(path)
