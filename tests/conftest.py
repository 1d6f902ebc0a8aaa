"""
conftest.py - Pytest Configuration and Shared Fixtures

This file contains fixtures used across all test modules. Fixtures are
organized by category:
- Random number generators (for reproducibility)
- Histories and return series
- Factor distributions and risk models
"""

import pytest
import numpy as np

from var_lab import (
    TimeSeries,
    FactorWeights,
    FactorDistribution,
    RiskModel,
    business_days,
)


# =============================================================================
# RANDOM NUMBER GENERATORS
# =============================================================================

@pytest.fixture
def rng():
    """
    Provide a seeded random number generator for reproducible tests.

    All tests should use this fixture (or derive from it) to ensure
    reproducibility across runs.
    """
    return np.random.default_rng(seed=42)


# =============================================================================
# HISTORIES
# =============================================================================

def random_walk_history(rng, start, end, name="", drop_every=0, start_price=100.0):
    """
    Business-day random walk between start and end.

    If `drop_every` > 0, every drop_every-th day is removed to create gaps.
    """
    dates = business_days(start, end)
    values = start_price + np.cumsum(rng.normal(0.0, 1.0, dates.size))
    if drop_every:
        keep = np.ones(dates.size, dtype=bool)
        keep[::drop_every] = False
        dates, values = dates[keep], values[keep]
    return TimeSeries(dates=dates, values=values, name=name)


def write_yahoo_csv(path, history):
    """Write a history newest-first in the Yahoo CSV layout."""
    lines = ["Date,Open,High,Low,Close,Volume,Adj Close"]
    for d, v in zip(history.dates[::-1].tolist(), history.values[::-1].tolist()):
        lines.append(f"{d.isoformat()},{v:.4f},{v:.4f},{v:.4f},{v:.4f},1000,{v:.4f}")
    path.write_text("\n".join(lines) + "\n")


def write_investing_tsv(path, history):
    """Write a history newest-first in the investing.com TSV layout."""
    lines = []
    for d, v in zip(history.dates[::-1].tolist(), history.values[::-1].tolist()):
        lines.append(f"{d.strftime('%b %d, %Y')}\t{v:,.2f}\t{v:,.2f}\t0.1K\t0.00%")
    path.write_text("\n".join(lines) + "\n")


@pytest.fixture
def data_dir(tmp_path, rng):
    """
    A stocks/ + factors/ directory with synthetic histories.

    Three stocks (one too short to keep) and the four default factor files,
    covering 2013-01-01..2014-10-23.
    """
    root = tmp_path / "data"
    stocks = root / "stocks"
    factors = root / "factors"
    stocks.mkdir(parents=True)
    factors.mkdir()

    for name in ("ACME", "GLOBEX"):
        history = random_walk_history(rng, "2013-01-01", "2014-10-23", drop_every=11)
        write_yahoo_csv(stocks / f"{name}.csv", history)
    write_yahoo_csv(stocks / "NEWCO.csv", random_walk_history(rng, "2014-09-01", "2014-10-23"))

    for name in ("crudeoil", "us30yeartreasurybonds"):
        history = random_walk_history(rng, "2013-01-01", "2014-10-23", start_price=1000.0)
        write_investing_tsv(factors / f"{name}.tsv", history)
    for name in ("SNP", "NDX"):
        history = random_walk_history(rng, "2013-01-01", "2014-10-23", start_price=1500.0)
        write_yahoo_csv(factors / f"{name}.csv", history)

    return root


@pytest.fixture
def gappy_history(rng):
    """Six months of prices with every 7th business day missing."""
    return random_walk_history(
        rng, "2014-01-01", "2014-06-30", name="GAPPY", drop_every=7
    )


@pytest.fixture
def short_history():
    """Three observations in one week."""
    return TimeSeries.from_pairs(
        [("2014-03-04", 10.0), ("2014-03-05", 11.0), ("2014-03-07", 12.0)],
        name="SHORT",
    )


# =============================================================================
# FACTOR DISTRIBUTIONS
# =============================================================================

@pytest.fixture
def diagonal_distribution():
    """Two independent factors with vols 0.2 and 0.3."""
    return FactorDistribution(
        means=np.array([0.01, -0.02]),
        covariance=np.diag([0.04, 0.09]),
    )


@pytest.fixture
def correlated_distribution():
    """Two correlated factors (dense covariance path)."""
    return FactorDistribution(
        means=np.array([0.5, -1.0]),
        covariance=np.array([
            [0.04, 0.01],
            [0.01, 0.02]
        ]),
    )


@pytest.fixture
def zero_distribution():
    """Two factors with zero variance: every scenario is the mean."""
    return FactorDistribution(
        means=np.array([0.3, -0.2]),
        covariance=np.zeros((2, 2)),
    )


# =============================================================================
# RISK MODELS
# =============================================================================

@pytest.fixture
def two_instrument_weights():
    """
    Two instruments on two factors.

    Layout per row: intercept, [sq f1, sq f2], [sqrt f1, sqrt f2], [f1, f2].
    """
    return FactorWeights(
        coefficients=np.array([
            [0.5, 0.1, 0.0, 0.0, 0.2, 1.5, -0.5],
            [-0.2, 0.0, 0.3, 0.1, 0.0, 0.8, 1.0],
        ]),
        names=("ACME", "GLOBEX"),
    )


@pytest.fixture
def risk_model(two_instrument_weights, correlated_distribution):
    """A small dense-covariance model for simulation tests."""
    return RiskModel(weights=two_instrument_weights, distribution=correlated_distribution)


@pytest.fixture
def zero_variance_model(two_instrument_weights, zero_distribution):
    """Model whose every trial return is identical."""
    return RiskModel(weights=two_instrument_weights, distribution=zero_distribution)


# =============================================================================
# HELPER FIXTURES
# =============================================================================

@pytest.fixture
def tolerance():
    """Standard numerical tolerance for float comparisons."""
    return {"rtol": 1e-5, "atol": 1e-8}
