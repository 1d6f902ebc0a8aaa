"""
test_cli.py - Tests for the var-lab Command Line Interface
"""

import json

import pytest
import numpy as np
from typer.testing import CliRunner

from var_lab import ModelFormat, SimulationCoordinator, load_model, save_model
from var_lab.cli import app


runner = CliRunner()


@pytest.fixture
def model_file(tmp_path, risk_model):
    path = tmp_path / "model.npz"
    save_model(risk_model, path, format=ModelFormat.NPZ)
    return path


@pytest.fixture
def run_config(tmp_path):
    """Small run over the synthetic data directory."""
    path = tmp_path / "run.json"
    path.write_text(json.dumps({
        "start": "2013-06-03",
        "end": "2014-10-23",
        "min_observations": 100,
        "n_trials": 2000,
        "parallelism": 4,
    }))
    return path


class TestInfo:
    """Tests for `var-lab info`."""

    def test_shows_summary(self, model_file):
        result = runner.invoke(app, ["info", str(model_file)])
        assert result.exit_code == 0
        assert "Instruments" in result.output
        assert "Intercept Sum" in result.output

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["info", str(tmp_path / "absent.npz")])
        assert result.exit_code == 1
        assert "Error" in result.output


class TestSimulate:
    """Tests for `var-lab simulate`."""

    def test_reports_var(self, model_file):
        result = runner.invoke(
            app, ["simulate", str(model_file), "-n", "1000", "-p", "4", "-s", "7"]
        )
        assert result.exit_code == 0, result.output
        assert "VaR 5%" in result.output
        assert "1,000" in result.output

    def test_saves_trials(self, model_file, tmp_path, risk_model):
        out = tmp_path / "trials.npy"
        result = runner.invoke(
            app,
            ["simulate", str(model_file), "-n", "500", "-p", "5", "-s", "3", "-o", str(out)],
        )
        assert result.exit_code == 0, result.output

        expected = SimulationCoordinator(risk_model, parallelism=5, base_seed=3).run(500)
        np.testing.assert_array_equal(np.load(out), expected.trial_returns)

    def test_saves_csv(self, model_file, tmp_path):
        out = tmp_path / "trials.csv"
        result = runner.invoke(
            app, ["simulate", str(model_file), "-n", "100", "-p", "2", "-o", str(out)]
        )
        assert result.exit_code == 0, result.output
        assert np.loadtxt(out, delimiter=",").size == 100

    def test_thread_executor(self, model_file):
        result = runner.invoke(
            app, ["simulate", str(model_file), "-n", "400", "-p", "4", "-e", "thread", "-w", "2"]
        )
        assert result.exit_code == 0, result.output

    def test_invalid_alpha(self, model_file):
        result = runner.invoke(app, ["simulate", str(model_file), "-n", "100", "-a", "1.5"])
        assert result.exit_code == 1
        assert "alpha" in result.output

    def test_zero_trials(self, model_file):
        result = runner.invoke(app, ["simulate", str(model_file), "-n", "0"])
        assert result.exit_code == 1
        assert "n_trials" in result.output

    def test_plot(self, model_file, tmp_path):
        pytest.importorskip("matplotlib")
        out = tmp_path / "density.png"
        result = runner.invoke(
            app, ["simulate", str(model_file), "-n", "500", "-p", "2", "--plot", str(out)]
        )
        assert result.exit_code == 0, result.output
        assert out.stat().st_size > 0


class TestFitAndRun:
    """Tests for `var-lab fit` and `var-lab run` on a data directory."""

    def test_fit_saves_model(self, data_dir, run_config, tmp_path):
        out = tmp_path / "fitted.json"
        result = runner.invoke(
            app, ["fit", str(data_dir), "-c", str(run_config), "-o", str(out)]
        )
        assert result.exit_code == 0, result.output

        model = load_model(out)
        # NEWCO is too short and dropped
        assert model.weights.names == ("ACME", "GLOBEX")
        assert model.distribution.names == (
            "crudeoil", "us30yeartreasurybonds", "SNP", "NDX"
        )

    def test_run_reports_var(self, data_dir, run_config, tmp_path):
        saved = tmp_path / "model.npz"
        result = runner.invoke(
            app,
            ["run", str(data_dir), "-c", str(run_config), "--save-model", str(saved)],
        )
        assert result.exit_code == 0, result.output
        assert "VaR 5%" in result.output
        assert load_model(saved).n_instruments == 2

    def test_cli_overrides_config(self, data_dir, run_config, tmp_path):
        out = tmp_path / "trials.npy"
        result = runner.invoke(
            app,
            ["run", str(data_dir), "-c", str(run_config), "-n", "300", "-o", str(out)],
        )
        assert result.exit_code == 0, result.output
        assert np.load(out).size == 300

    def test_missing_data_dir(self, tmp_path, run_config):
        result = runner.invoke(app, ["run", str(tmp_path / "nope"), "-c", str(run_config)])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_no_usable_stocks(self, data_dir, tmp_path):
        config = tmp_path / "strict.json"
        config.write_text(json.dumps({
            "start": "2013-06-03", "end": "2014-10-23", "min_observations": 100_000,
        }))
        result = runner.invoke(app, ["fit", str(data_dir), "-c", str(config)])
        assert result.exit_code == 1
        assert "observations" in result.output

    @pytest.mark.parametrize("command", ["fit", "run"])
    def test_malformed_factor_file(self, data_dir, run_config, command):
        (data_dir / "factors" / "crudeoil.tsv").write_text("not a date\t1.0\n")
        result = runner.invoke(app, [command, str(data_dir), "-c", str(run_config)])
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "crudeoil.tsv" in result.output
        assert not isinstance(result.exception, ValueError)

    def test_missing_factor_file(self, data_dir, run_config):
        (data_dir / "factors" / "NDX.csv").unlink()
        result = runner.invoke(app, ["fit", str(data_dir), "-c", str(run_config)])
        assert result.exit_code == 1
        assert "NDX.csv" in result.output
