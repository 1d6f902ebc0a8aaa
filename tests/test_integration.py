"""
test_integration.py - End-to-End Tests

Tests cover:
- Histories -> returns -> model -> simulation -> VaR
- Deterministic runs with a zero-variance factor distribution
- Recovery of a planted factor model
- Persisted models reproduce the same trials
"""

import pytest
import numpy as np

from var_lab import (
    FactorDistribution,
    RiskModel,
    SimulationCoordinator,
    SimulationConfig,
    featurize,
    prepare_returns,
    build_risk_model,
    compute_trial_returns,
    read_histories,
    read_investing_history,
    read_yahoo_history,
    save_model,
    load_model,
    value_at_risk,
    AlignmentMismatch,
)
from conftest import random_walk_history


class TestZeroVariance:
    """With zero factor variance every trial is the same number."""

    def test_every_trial_equal(self, zero_variance_model):
        weights = zero_variance_model.weights
        features = featurize(zero_variance_model.distribution.means)
        expected = weights.intercepts.sum() + (weights.feature_weights @ features).sum()

        result = SimulationCoordinator(
            zero_variance_model, parallelism=6, base_seed=1001
        ).run(600)

        np.testing.assert_allclose(result.trial_returns, expected)
        assert result.value_at_risk(0.05) == pytest.approx(expected)
        assert result.expected_shortfall(0.05) == pytest.approx(expected)

    def test_independent_of_seed(self, zero_variance_model):
        a = SimulationCoordinator(zero_variance_model, parallelism=2, base_seed=1).run(50)
        b = SimulationCoordinator(zero_variance_model, parallelism=5, base_seed=99).run(50)
        np.testing.assert_allclose(a.trial_returns, b.trial_returns)


class TestPlantedModel:
    """A portfolio generated from known sensitivities is recovered."""

    def test_recovery_and_var(self, rng):
        T = 1500
        factors = [rng.normal(0.0, 1.0, T), rng.normal(0.0, 2.0, T)]
        stocks = [
            2.0 + 0.5 * factors[0],
            -1.0 + 1.5 * factors[1],
        ]

        model = build_risk_model(
            stocks, factors, stock_names=["S1", "S2"], factor_names=["F1", "F2"]
        )
        np.testing.assert_allclose(model.weights.intercepts, [2.0, -1.0], atol=1e-8)

        # Portfolio return is 1 + 0.5 F1 + 1.5 F2 with F ~ N(mean, cov)
        dist = model.distribution
        mu = 1.0 + 0.5 * dist.means[0] + 1.5 * dist.means[1]
        b = np.array([0.5, 1.5])
        sigma = np.sqrt(b @ dist.covariance @ b)

        result = SimulationCoordinator(model, parallelism=10, base_seed=1001).run(200_000)
        # 5% quantile of a normal is mu - 1.645 sigma
        assert result.value_at_risk(0.05) == pytest.approx(mu - 1.6449 * sigma, abs=0.05)
        assert np.mean(result.trial_returns) == pytest.approx(mu, abs=0.05)

    def test_misaligned_instrument(self, rng):
        factors = [rng.normal(size=100)]
        with pytest.raises(AlignmentMismatch, match="LATE"):
            build_risk_model(
                [rng.normal(size=100), rng.normal(size=90)],
                factors,
                stock_names=["EARLY", "LATE"],
            )


class TestFromHistories:
    """Full pipeline from raw histories."""

    def test_prepare_returns_aligns_everything(self, rng):
        histories = [
            random_walk_history(rng, "2012-01-02", "2014-12-31", name="A", drop_every=5),
            random_walk_history(rng, "2013-03-01", "2014-10-01", name="B", drop_every=10),
            random_walk_history(rng, "2014-06-01", "2014-12-31", name="TOO_SHORT"),
        ]
        returns, names = prepare_returns(
            histories, "2013-01-01", "2014-06-30", min_observations=300
        )

        assert names == ["A", "B"]
        n_days = np.busday_count(np.datetime64("2013-01-01"), np.datetime64("2014-07-01"))
        assert all(r.size == n_days - 9 for r in returns)

    def test_compute_trial_returns(self, rng):
        start, end = "2013-01-01", "2014-10-23"
        factor_histories = [
            random_walk_history(rng, start, end, name=f"F{i}") for i in range(3)
        ]
        stock_histories = [
            random_walk_history(rng, start, end, name=f"S{i}", drop_every=4) for i in range(4)
        ]
        factor_returns, factor_names = prepare_returns(factor_histories, start, end)
        stock_returns, stock_names = prepare_returns(stock_histories, start, end)

        result = compute_trial_returns(
            stock_returns, factor_returns,
            n_trials=5000, parallelism=10, base_seed=1001,
            stock_names=stock_names, factor_names=factor_names,
        )
        again = compute_trial_returns(
            stock_returns, factor_returns,
            n_trials=5000, parallelism=10, base_seed=1001, executor="thread",
        )

        assert result.n_trials == 5000
        np.testing.assert_array_equal(result.trial_returns, again.trial_returns)
        assert value_at_risk(result.trial_returns, 0.05) == result.value_at_risk(0.05)

    def test_files_to_var(self, data_dir, tmp_path):
        config = SimulationConfig(
            start="2013-06-03", end="2014-10-23",
            min_observations=100, n_trials=3000, parallelism=3,
        )
        stocks = read_histories(data_dir / "stocks")
        factors = [
            read_investing_history(data_dir / "factors" / "crudeoil.tsv"),
            read_investing_history(data_dir / "factors" / "us30yeartreasurybonds.tsv"),
            read_yahoo_history(data_dir / "factors" / "SNP.csv"),
            read_yahoo_history(data_dir / "factors" / "NDX.csv"),
        ]

        stock_returns, stock_names = prepare_returns(
            stocks, config.start, config.end, min_observations=config.min_observations
        )
        factor_returns, factor_names = prepare_returns(factors, config.start, config.end)
        model = build_risk_model(
            stock_returns, factor_returns,
            stock_names=stock_names, factor_names=factor_names,
        )
        assert model.k == 4
        assert model.weights.coefficients.shape == (2, 13)

        result = SimulationCoordinator(
            model, parallelism=config.parallelism, base_seed=config.base_seed
        ).run(config.n_trials)

        path = tmp_path / "model.npz"
        save_model(model, path)
        replay = SimulationCoordinator(
            load_model(path), parallelism=config.parallelism, base_seed=config.base_seed
        ).run(config.n_trials)

        np.testing.assert_array_equal(result.trial_returns, replay.trial_returns)
        assert np.isfinite(result.value_at_risk(config.alpha))


class TestDegenerateFactor:
    """A factor that never moves still yields a usable model."""

    def test_constant_factor(self, rng):
        T = 400
        moving = rng.normal(size=T)
        flat = np.zeros(T)
        stocks = [1.0 + moving]

        model = build_risk_model(stocks, [moving, flat], factor_names=["MOVING", "FLAT"])
        assert model.distribution.covariance[1, 1] == 0.0

        result = SimulationCoordinator(model, parallelism=2).run(1000)
        assert np.all(np.isfinite(result.trial_returns))

    def test_model_with_zero_distribution_built_directly(self, two_instrument_weights):
        dist = FactorDistribution(means=np.zeros(2), covariance=np.zeros((2, 2)))
        model = RiskModel(weights=two_instrument_weights, distribution=dist)
        result = SimulationCoordinator(model, parallelism=3).run(30)
        np.testing.assert_allclose(result.trial_returns, two_instrument_weights.intercepts.sum())
