"""
test_config.py - Tests for SimulationConfig
"""

import dataclasses
import json

import pytest
import numpy as np

from var_lab import SimulationConfig


class TestDefaults:
    """The defaults reproduce the reference run."""

    def test_reference_values(self):
        config = SimulationConfig()
        assert config.start_date == np.datetime64("2009-10-23")
        assert config.end_date == np.datetime64("2014-10-23")
        assert config.n_trials == 10_000_000
        assert config.parallelism == 1000
        assert config.base_seed == 1001
        assert config.alpha == 0.05
        assert config.window == 10
        assert config.min_observations == 260 * 5 + 10
        assert config.executor == "serial"

    def test_frozen(self):
        config = SimulationConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.n_trials = 5


class TestValidation:
    """Out-of-range parameters are rejected."""

    @pytest.mark.parametrize("kwargs, match", [
        ({"start": "2014-01-02", "end": "2014-01-01"}, "before start"),
        ({"alpha": 0.0}, "alpha"),
        ({"alpha": 1.0}, "alpha"),
        ({"window": 1}, "window"),
        ({"max_retries": -1}, "max_retries"),
        ({"batch_size": 0}, "batch_size"),
        ({"executor": "gpu"}, "gpu"),
    ])
    def test_rejected(self, kwargs, match):
        with pytest.raises(ValueError, match=match):
            SimulationConfig(**kwargs)


class TestSerialization:
    """Tests for from_dict / from_json / to_dict."""

    def test_from_dict(self):
        config = SimulationConfig.from_dict({"n_trials": 1000, "executor": "thread"})
        assert config.n_trials == 1000
        assert config.executor == "thread"
        assert config.base_seed == 1001

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError, match="trails"):
            SimulationConfig.from_dict({"trails": 1000})

    def test_from_json(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text(json.dumps({"parallelism": 8, "alpha": 0.01}))
        config = SimulationConfig.from_json(path)
        assert config.parallelism == 8
        assert config.alpha == 0.01

    def test_missing_json(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            SimulationConfig.from_json(tmp_path / "absent.json")

    def test_dict_round_trip(self):
        config = SimulationConfig(n_trials=77, base_seed=-3)
        assert SimulationConfig.from_dict(config.to_dict()) == config
