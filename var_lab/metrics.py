"""
metrics.py - Tail Statistics and Density of Simulated Returns

Reductions over the collected trial returns:
- value_at_risk: empirical loss quantile
- expected_shortfall: mean of the tail beyond the quantile
- density_estimate: Gaussian kernel density on an even grid, for display
"""

from __future__ import annotations

import math
from typing import Tuple

import numpy as np
from scipy.stats import gaussian_kde

from .exceptions import EmptyTrialSet


def _tail_size(n: int, alpha: float) -> int:
    """Number of trials in the alpha tail: max(ceil(n * alpha), 1)."""
    if not 0.0 < alpha < 1.0:
        raise ValueError(f"alpha must be in (0, 1), got {alpha}")
    # round first: 100 * 0.07 == 7.000000000000001
    return max(int(math.ceil(round(n * alpha, 9))), 1)


def _as_trials(trial_returns) -> np.ndarray:
    returns = np.asarray(trial_returns, dtype=float).ravel()
    if returns.size == 0:
        raise EmptyTrialSet("No trial returns to reduce")
    return returns


def value_at_risk(trial_returns, alpha: float = 0.05) -> float:
    """
    Empirical Value-at-Risk at tail probability `alpha`.

    The ``ceil(n * alpha)`` lowest returns form the tail; the VaR is the
    highest of them, i.e. the value at ascending rank ``ceil(n * alpha)``.

    Parameters
    ----------
    trial_returns : array-like
        Simulated portfolio returns.
    alpha : float, default=0.05
        Tail probability, strictly between 0 and 1.

    Returns
    -------
    float
        The return at the tail boundary (negative for a loss).

    Raises
    ------
    EmptyTrialSet
        If there are no trial returns.
    ValueError
        If `alpha` is outside (0, 1).

    Examples
    --------
    >>> value_at_risk(np.arange(1, 101, dtype=float), alpha=0.05)
    5.0
    """
    returns = _as_trials(trial_returns)
    rank = _tail_size(returns.size, alpha)
    return float(np.partition(returns, rank - 1)[rank - 1])


def expected_shortfall(trial_returns, alpha: float = 0.05) -> float:
    """Mean of the ``ceil(n * alpha)`` lowest trial returns."""
    returns = _as_trials(trial_returns)
    rank = _tail_size(returns.size, alpha)
    return float(np.partition(returns, rank - 1)[:rank].mean())


def density_estimate(
    samples,
    n_points: int = 100
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Gaussian kernel density of the samples on an even grid.

    Parameters
    ----------
    samples : array-like
        Trial returns.
    n_points : int, default=100
        Grid size, from ``min(samples)`` to ``max(samples)``.

    Returns
    -------
    domain : np.ndarray
        Evaluation points.
    densities : np.ndarray
        Estimated density at each point (Silverman bandwidth).

    Notes
    -----
    Constant samples have no spread to smooth; a single point with
    infinite density is returned.
    """
    values = _as_trials(samples)
    lo, hi = values.min(), values.max()

    if lo == hi:
        return np.array([lo]), np.array([np.inf])

    domain = np.linspace(lo, hi, n_points)
    kde = gaussian_kde(values, bw_method="silverman")
    return domain, kde(domain)
