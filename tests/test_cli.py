"""Tests for cli.py - the command line runner."""

import os

from credit_loss import EngineConfig
from credit_loss.cli import build_parser, main, run_pipeline

from conftest import write_tables


class TestRunPipeline:
    """Tests for run_pipeline."""

    def test_host_pipeline(self, input_dir, config):
        result, summary, histogram = run_pipeline(input_dir, config)

        assert result.num_trials == 500
        assert result.seed == 2024
        assert summary.num_trials == 500
        assert 0 <= summary.var_95 <= summary.es_95 <= 130
        assert histogram.counts.sum() + histogram.overflow == 500
        assert list(result.losses) == sorted(result.losses)

    def test_writes_histogram(self, input_dir, config, tmp_path):
        output = tmp_path / "out" / "histogram.png"
        run_pipeline(input_dir, config, output)
        assert output.exists()

    def test_reproducible(self, input_dir, config):
        a, _, _ = run_pipeline(input_dir, config)
        b, _, _ = run_pipeline(input_dir, config)
        assert list(a.losses) == list(b.losses)


class TestMain:
    """Tests for the command line entry point."""

    def test_defaults(self):
        args = build_parser().parse_args([])
        assert args.trials == EngineConfig().num_trials
        assert args.backend == "cuda"
        assert args.seed is None

    def test_success(self, input_dir, capsys):
        code = main(["--input-dir", input_dir, "--backend", "host",
                     "--trials", "200", "--seed", "7", "--no-plot"])
        assert code == 0
        out = capsys.readouterr().out
        assert "Trials: 200 (seed 7)" in out
        assert "VaR 99%" in out
        assert "Device identifier: Host CPU (numpy)" in out

    def test_writes_output(self, input_dir, tmp_path):
        output = tmp_path / "chart.png"
        code = main(["--input-dir", input_dir, "--backend", "host",
                     "--trials", "100", "--seed", "7", "--output", str(output)])
        assert code == 0
        assert output.exists()

    def test_missing_input(self, tmp_path):
        code = main(["--input-dir", str(tmp_path / "missing"), "--backend", "host", "--no-plot"])
        assert code == 1

    def test_singular_correlation(self, tmp_path):
        write_tables(str(tmp_path), correlation=[[1, 1, 0], [1, 1, 0], [0, 0, 1]])
        code = main(["--input-dir", str(tmp_path), "--backend", "host", "--no-plot"])
        assert code == 1

    def test_default_pd_option(self, tmp_path):
        write_tables(str(tmp_path), pd_table={"A": 0.02})
        args = ["--input-dir", str(tmp_path), "--backend", "host",
                "--trials", "50", "--seed", "1", "--no-plot"]
        assert main(args) == 1
        assert main(args + ["--default-pd", "0.05"]) == 0

    def test_invalid_trials(self, input_dir):
        assert main(["--input-dir", input_dir, "--backend", "host", "--trials", "0"]) == 1
