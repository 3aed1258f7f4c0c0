"""
Tests for the command-line entry point
"""

import os

import pandas as pd
import pytest

from rbp_toolkit.cli import build_parser, config_from_args, main


class TestArguments:
    """Test argument parsing into a configuration"""

    def test_defaults(self):
        config = config_from_args(build_parser().parse_args(["in.csv", "out.csv"]))
        assert config.statistical_test_method == "ols"
        assert config.classification_mode == "pvalue"
        assert config.require_balanced_design is True
        assert config.log_transform_before_stats is False
        assert config.validate()

    def test_options(self):
        args = build_parser().parse_args(
            [
                "in.xlsx", "out.tsv",
                "--method", "moderated",
                "--classification", "treat",
                "--threshold", "0.5",
                "--fdr", "0.1",
                "--trend", "robust_lowess",
                "--jobs", "2",
                "--log-transform", "auto",
                "--allow-unbalanced",
                "--quiet",
            ]
        )
        config = config_from_args(args)
        assert config.statistical_test_method == "moderated"
        assert config.classification_mode == "treat"
        assert config.fold_change_threshold == 0.5
        assert config.p_value_threshold == 0.1
        assert config.trend_method == "robust_lowess"
        assert config.n_jobs == 2
        assert config.log_transform_before_stats == "auto"
        assert config.require_balanced_design is False
        assert config.verbose is False

    def test_invalid_choice(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["in.csv", "out.csv", "--method", "anova"])


class TestMain:
    """Test full runs from file to file"""

    def test_run_writes_outputs(self, tmp_path, wide_table_csv):
        output = tmp_path / "results.csv"
        figures = tmp_path / "figures"
        code = main(
            [wide_table_csv, str(output), "--method", "moderated", "--plots", str(figures), "--no-config", "--quiet"]
        )

        assert code == 0
        results = pd.read_csv(output)
        assert len(results) == 40
        assert "significant" in results.columns
        assert (tmp_path / "results_skipped.csv").exists()
        assert (tmp_path / "results_group_means.csv").exists()
        assert os.path.exists(figures / "volcano.png")
        assert not any(name.startswith("results_config_") for name in os.listdir(tmp_path))

    def test_run_writes_config(self, tmp_path, wide_table_csv):
        output = tmp_path / "results.csv"
        assert main([wide_table_csv, str(output), "--quiet"]) == 0
        assert any(name.startswith("results_config_") for name in os.listdir(tmp_path))

    def test_missing_input(self, tmp_path, capsys):
        code = main([str(tmp_path / "missing.csv"), str(tmp_path / "out.csv"), "--quiet"])
        assert code == 2
        assert "not found" in capsys.readouterr().err

    def test_malformed_sample_name(self, tmp_path, wide_table, capsys):
        path = tmp_path / "bad.csv"
        wide_table.rename(columns={"0h_1_total": "Sample_A_1"}).to_csv(path, index=False)
        code = main([str(path), str(tmp_path / "out.csv"), "--quiet"])
        assert code == 2
        assert "Sample_A_1" in capsys.readouterr().err
        assert not (tmp_path / "out.csv").exists()
