"""
Tests for rbp_toolkit.statistical_analysis module
"""

import pandas as pd
import numpy as np
import pytest

from rbp_toolkit.statistical_analysis import (
    INTERACTION_TERM,
    RESULT_COLUMNS,
    AnalysisResult,
    DesignLevels,
    ProteinFitResult,
    StatisticalConfig,
    apply_multiple_testing_correction,
    benjamini_hochberg,
    correct_fit_results,
    display_analysis_summary,
    fit_protein_interaction_model,
    resolve_design_levels,
    run_batch_analysis,
    run_comprehensive_statistical_analysis,
    _apply_log_transformation_if_needed,
)
from rbp_toolkit.validation import (
    InputFormatError,
    InsufficientData,
    NumericInstability,
    SingularDesign,
    UnbalancedDesign,
)

from conftest import exact_protein_measurements

LEVELS = DesignLevels("0h", "6h", "total", "RNA-bound")


class TestStatisticalConfig:
    """Test the StatisticalConfig class"""

    def test_config_initialization(self):
        config = StatisticalConfig()

        assert config.statistical_test_method == "ols"
        assert config.reference_assay == "total"
        assert config.correction_method == "fdr_bh"
        assert config.p_value_threshold == 0.05
        assert config.fold_change_threshold == 1.0
        assert config.classification_mode == "pvalue"
        assert config.validate()

    @pytest.mark.parametrize(
        "attribute, value",
        [
            ("statistical_test_method", "anova"),
            ("classification_mode", "score"),
            ("alternative", "both"),
            ("trend_method", "spline"),
            ("p_value_threshold", 0),
            ("fold_change_threshold", -1),
            ("n_jobs", 0),
        ],
    )
    def test_invalid_values(self, attribute, value):
        config = StatisticalConfig()
        setattr(config, attribute, value)
        with pytest.raises(ValueError):
            config.validate()

    def test_dict_round_trip(self):
        config = StatisticalConfig()
        config.statistical_test_method = "moderated"
        config.n_jobs = 4
        params = config.to_dict()
        params["unknown_key"] = 1

        restored = StatisticalConfig.from_dict(params)
        assert restored.statistical_test_method == "moderated"
        assert restored.n_jobs == 4
        assert not hasattr(restored, "unknown_key")


class TestResolveDesignLevels:
    """Test choice of reference and comparison levels"""

    def test_auto_detect(self, long_measurements, statistical_config):
        levels = resolve_design_levels(long_measurements, statistical_config)
        assert levels == LEVELS

    def test_three_timepoints_need_explicit_choice(self, long_measurements, statistical_config):
        extra = long_measurements[long_measurements["timepoint"] == "6h"].assign(
            timepoint="24h", hours=24.0, sample=lambda d: d["sample"].str.replace("6h", "24h")
        )
        data = pd.concat([long_measurements, extra])
        with pytest.raises(InputFormatError):
            resolve_design_levels(data, statistical_config)

        statistical_config.reference_timepoint = "6h"
        statistical_config.comparison_timepoint = "24h"
        levels = resolve_design_levels(data, statistical_config)
        assert levels.reference_timepoint == "6h"
        assert levels.comparison_timepoint == "24h"

    def test_unknown_reference_assay(self, long_measurements, statistical_config):
        statistical_config.reference_assay = "input"
        with pytest.raises(InputFormatError, match="Reference assay"):
            resolve_design_levels(long_measurements, statistical_config)


class TestFitProteinInteractionModel:
    """Test the single-protein OLS fit"""

    def test_exact_linear_design(self, exact_protein):
        result = fit_protein_interaction_model(exact_protein, LEVELS)

        assert isinstance(result, ProteinFitResult)
        assert result.protein_id == "EXACT"
        assert result.fold_change == pytest.approx(2.0, abs=1e-9)
        assert result.adjusted_r_squared == pytest.approx(1.0, abs=1e-9)
        assert result.std_error == pytest.approx(0.0, abs=1e-6)
        assert result.df_residual == 8
        assert result.n_obs == 12
        assert not result.is_corrected

    def test_levels_auto_detected(self, exact_protein):
        result = fit_protein_interaction_model(exact_protein)
        assert result.fold_change == pytest.approx(2.0, abs=1e-9)

    def test_matches_cell_means(self, long_measurements):
        protein_df = long_measurements[long_measurements["protein_id"] == "P00000"]
        result = fit_protein_interaction_model(protein_df, LEVELS)

        means = protein_df.groupby(["timepoint", "assay_type"])["intensity"].mean()
        expected = (means[("6h", "RNA-bound")] - means[("6h", "total")]) - (
            means[("0h", "RNA-bound")] - means[("0h", "total")]
        )
        assert result.fold_change == pytest.approx(expected)
        assert result.fold_change > 0
        assert 0 <= result.p_value <= 1
        assert result.ci_lower < result.fold_change < result.ci_upper
        assert result.t_value == pytest.approx(result.fold_change / result.std_error)

    def test_three_of_four_cells_is_singular(self, exact_protein):
        keep = ~((exact_protein["timepoint"] == "6h") & (exact_protein["assay_type"] == "RNA-bound"))
        with pytest.raises(SingularDesign):
            fit_protein_interaction_model(exact_protein[keep], LEVELS)

    def test_missing_values_are_dropped_before_checks(self, exact_protein):
        exact_protein.loc[exact_protein["timepoint"] == "6h", "intensity"] = np.nan
        with pytest.raises(InsufficientData):
            fit_protein_interaction_model(exact_protein, LEVELS)

    def test_single_replicate_has_no_residual_df(self):
        single = exact_protein_measurements()
        single = single[single["replicate"] == 1]
        with pytest.raises(InsufficientData, match="residual degrees of freedom"):
            fit_protein_interaction_model(single, LEVELS)

    def test_unbalanced_design(self, exact_protein):
        with pytest.raises(UnbalancedDesign):
            fit_protein_interaction_model(exact_protein.iloc[1:], LEVELS)

        result = fit_protein_interaction_model(exact_protein.iloc[1:], LEVELS, require_balanced=False)
        assert result.fold_change == pytest.approx(2.0, abs=1e-9)

    def test_constant_intensities_are_numeric_instability(self, exact_protein):
        flat = exact_protein.assign(intensity=20.0)
        with pytest.raises(NumericInstability, match="zero variance"):
            fit_protein_interaction_model(flat, LEVELS)

    def test_exact_fit_is_not_zero_variance(self, exact_protein):
        result = fit_protein_interaction_model(exact_protein, LEVELS)
        assert np.isfinite(result.adjusted_r_squared)
        assert result.std_error < 1e-8

    def test_interaction_term_name(self):
        assert INTERACTION_TERM == "timepoint_effect:assay_effect"


class TestBenjaminiHochberg:
    """Test multiple testing correction"""

    def test_known_values(self):
        adjusted = benjamini_hochberg([0.01, 0.04, 0.03, 0.005])
        np.testing.assert_allclose(adjusted, [0.02, 0.04, 0.04, 0.02])

    def test_textbook_example(self):
        adjusted = benjamini_hochberg([0.001, 0.01, 0.02, 0.04])
        np.testing.assert_allclose(adjusted, [0.004, 0.02, 0.02666667, 0.04], rtol=1e-6)

    def test_monotone_and_bounded(self):
        rng = np.random.default_rng(0)
        p_values = rng.uniform(0, 1, 200) ** 3
        adjusted = benjamini_hochberg(p_values)

        order = np.argsort(p_values)
        assert np.all(np.diff(adjusted[order]) >= -1e-12)
        assert np.all(adjusted >= p_values)
        assert np.all(adjusted <= 1.0)

    def test_nan_excluded_from_denominator(self):
        adjusted = benjamini_hochberg([0.01, np.nan, 0.02])
        assert np.isnan(adjusted[1])
        np.testing.assert_allclose(adjusted[[0, 2]], [0.02, 0.02])

    def test_no_correction(self):
        adjusted = benjamini_hochberg([0.01, 0.5], method="none")
        np.testing.assert_allclose(adjusted, [0.01, 0.5])

    def test_correct_fit_results(self, exact_protein):
        fit = fit_protein_interaction_model(exact_protein, LEVELS)
        other = ProteinFitResult("P2", 0.1, 0.2, 0.5, 0.6, 0.1, 8)
        corrected = correct_fit_results([fit, other])
        assert all(r.is_corrected for r in corrected)
        assert corrected[1].adjusted_p_value == pytest.approx(0.6)

    def test_apply_correction_to_table(self, statistical_config):
        table = pd.DataFrame({"protein_id": ["A", "B", "C", "D"], "p_value": [0.001, 0.01, 0.02, 0.04]})
        corrected = apply_multiple_testing_correction(table, statistical_config)
        assert "adjusted_p_value" not in table.columns
        np.testing.assert_allclose(corrected["adjusted_p_value"], [0.004, 0.02, 0.02666667, 0.04], rtol=1e-6)


class TestRunBatchAnalysis:
    """Test fitting and correcting every protein"""

    def test_result_table(self, long_measurements, statistical_config):
        analysis = run_batch_analysis(long_measurements, statistical_config)

        assert isinstance(analysis, AnalysisResult)
        assert analysis.method == "ols"
        assert list(analysis.results.columns) == RESULT_COLUMNS
        assert len(analysis.results) == 40
        assert analysis.skipped == []
        assert list(analysis.results["protein_id"]) == sorted(analysis.results["protein_id"])
        assert (analysis.results["adjusted_p_value"] >= analysis.results["p_value"]).all()

    def test_changed_proteins_found(self, long_measurements, statistical_config):
        results = run_batch_analysis(long_measurements, statistical_config).results.set_index("protein_id")
        for i in range(6):
            assert results.loc[f"P{i:05d}", "adjusted_p_value"] < 0.05
        assert results.loc["P00000", "fold_change"] > 0
        assert results.loc["P00001", "fold_change"] < 0

    def test_order_independent(self, long_measurements, statistical_config):
        first = run_batch_analysis(long_measurements, statistical_config).results
        shuffled = long_measurements.sample(frac=1.0, random_state=7).reset_index(drop=True)
        second = run_batch_analysis(shuffled, statistical_config).results
        pd.testing.assert_frame_equal(first, second)

    def test_rerun_is_identical(self, long_measurements, statistical_config):
        first = run_batch_analysis(long_measurements, statistical_config).results
        second = run_batch_analysis(long_measurements, statistical_config).results
        pd.testing.assert_frame_equal(first, second)

    def test_worker_threads_give_same_result(self, long_measurements, statistical_config):
        serial = run_batch_analysis(long_measurements, statistical_config).results
        statistical_config.n_jobs = 4
        threaded = run_batch_analysis(long_measurements, statistical_config).results
        pd.testing.assert_frame_equal(serial, threaded)

    def test_failed_proteins_reported_not_fatal(self, long_measurements, statistical_config):
        broken = long_measurements.copy()
        empty_cell = (
            (broken["protein_id"] == "P00010")
            & (broken["timepoint"] == "6h")
            & (broken["assay_type"] == "RNA-bound")
        )
        broken.loc[empty_cell, "intensity"] = np.nan
        broken.loc[(broken["protein_id"] == "P00011") & (broken["timepoint"] == "0h"), "intensity"] = np.nan

        analysis = run_batch_analysis(broken, statistical_config)

        assert len(analysis.results) == 38
        assert "P00010" not in set(analysis.results["protein_id"])
        reasons = {s.protein_id: s.reason for s in analysis.skipped}
        assert reasons == {"P00010": "singular_design", "P00011": "insufficient_data"}
        assert analysis.n_proteins == 40
        assert list(analysis.diagnostics["protein_id"]) == ["P00010", "P00011"]

    def test_skipped_proteins_excluded_from_correction(self, long_measurements, statistical_config):
        full = run_batch_analysis(long_measurements, statistical_config).results
        dropped = long_measurements.copy()
        dropped.loc[dropped["protein_id"] == "P00039", "intensity"] = np.nan
        partial = run_batch_analysis(dropped, statistical_config).results

        expected = benjamini_hochberg(full.loc[full["protein_id"] != "P00039", "p_value"])
        np.testing.assert_allclose(partial["adjusted_p_value"], expected)

    def test_constant_protein_skipped(self, long_measurements, statistical_config):
        flat = long_measurements.copy()
        flat.loc[flat["protein_id"] == "P00039", "intensity"] = 20.0

        analysis = run_batch_analysis(flat, statistical_config)

        assert [(s.protein_id, s.reason) for s in analysis.skipped] == [("P00039", "numeric_instability")]
        assert "P00039" not in set(analysis.results["protein_id"])
        assert np.isfinite(analysis.results["adjusted_r_squared"]).all()

        full = run_batch_analysis(long_measurements, statistical_config).results
        expected = benjamini_hochberg(full.loc[full["protein_id"] != "P00039", "p_value"])
        np.testing.assert_allclose(analysis.results["adjusted_p_value"], expected)

    def test_log_transformation(self, long_measurements, statistical_config):
        linear = long_measurements.assign(intensity=2 ** long_measurements["intensity"])
        statistical_config.log_transform_before_stats = True
        statistical_config.log_pseudocount = 0.0
        logged = run_batch_analysis(linear, statistical_config).results

        statistical_config.log_transform_before_stats = False
        direct = run_batch_analysis(long_measurements, statistical_config).results
        np.testing.assert_allclose(logged["fold_change"], direct["fold_change"], rtol=1e-8)

    def test_auto_log_detection(self, long_measurements, statistical_config):
        statistical_config.log_transform_before_stats = "auto"
        unchanged = _apply_log_transformation_if_needed(long_measurements, statistical_config)
        assert unchanged is long_measurements

        linear = long_measurements.assign(intensity=2 ** long_measurements["intensity"])
        transformed = _apply_log_transformation_if_needed(linear, statistical_config)
        assert transformed["intensity"].max() < 50


class TestComprehensiveAnalysis:
    """Test the configured end-to-end analysis"""

    def test_ols_path_classified(self, long_measurements, statistical_config):
        analysis = run_comprehensive_statistical_analysis(long_measurements, statistical_config)
        assert {"significant", "direction", "classification_mode"}.issubset(analysis.results.columns)
        assert analysis.results["significant"].sum() >= 6

    def test_moderated_path(self, long_measurements, statistical_config):
        statistical_config.statistical_test_method = "moderated"
        analysis = run_comprehensive_statistical_analysis(long_measurements, statistical_config)
        assert analysis.method == "moderated"
        assert "df_total" in analysis.results.columns

    def test_display_summary(self, long_measurements, statistical_config, capsys):
        analysis = run_comprehensive_statistical_analysis(long_measurements, statistical_config)
        summary = display_analysis_summary(analysis, statistical_config, label_top_n=5)
        assert summary["total_proteins"] == 40
        assert summary["fitted"] == 40
        assert "INTERACTION ANALYSIS SUMMARY" in capsys.readouterr().out
