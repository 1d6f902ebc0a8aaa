"""
estimation.py - Factor Return Distribution Estimation

Summarises historical factor returns by their sample mean vector and
unbiased sample covariance. Scenarios are later drawn from
N(means, covariance).
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

import numpy as np
from loguru import logger

from .exceptions import InsufficientHistory
from .regression import factor_matrix
from .types import FactorDistribution


def estimate_factor_distribution(
    factor_returns: Union[np.ndarray, Sequence[np.ndarray]],
    names: Optional[Sequence[str]] = None
) -> FactorDistribution:
    """
    Estimate factor means and covariance from aligned historical returns.

    Parameters
    ----------
    factor_returns : np.ndarray or Sequence[np.ndarray]
        Either a (T, k) factor matrix, a single (T,) return series or k
        return series of equal length.
    names : Sequence[str], optional
        Factor names.

    Returns
    -------
    FactorDistribution
        Arithmetic means (k,) and covariance (k, k) with ``ddof=1``.

    Raises
    ------
    AlignmentMismatch
        If the series have different lengths.
    InsufficientHistory
        If there are fewer than 2 observations.

    Examples
    --------
    >>> dist = estimate_factor_distribution([oil_returns, bond_returns])
    >>> dist.covariance.shape
    (2, 2)
    """
    if isinstance(factor_returns, np.ndarray) and factor_returns.ndim == 2:
        M = np.asarray(factor_returns, dtype=float)
    elif isinstance(factor_returns, np.ndarray) and factor_returns.ndim == 1:
        M = np.asarray(factor_returns, dtype=float)[:, None]
    else:
        M = factor_matrix(factor_returns, names=names)

    T, k = M.shape
    if T < 2:
        raise InsufficientHistory(
            f"need at least 2 observations for a covariance, got {T}"
        )

    means = M.mean(axis=0)
    covariance = np.atleast_2d(np.cov(M, rowvar=False, ddof=1))
    # Exact symmetry for the sampler
    covariance = 0.5 * (covariance + covariance.T)

    logger.debug(
        f"Estimated factor distribution from {T} observations of {k} factors"
    )
    return FactorDistribution(
        means=means,
        covariance=covariance,
        names=tuple(names) if names is not None else (),
    )
