"""
samplers.py - Seeded Multivariate Normal Scenario Generation

This module draws factor-return scenarios from N(means, covariance):
- covariance_transform: Square root of the factor covariance (computed once)
- ScenarioSampler: A seeded, reproducible, infinite stream of scenarios

Design Principles:
-----------------
1. Explicit seeding: every sampler owns its own generator, built from the
   integer seed it is given. No global random state.
2. PCG64 bit generator: 128-bit state, period 2^128, identical output on
   every platform for a given seed.
3. PSD policy: eigenvalues that are negative only by numerical noise are
   clipped to zero (with a warning); anything worse is an error.

Example Usage:
-------------
    >>> from var_lab.samplers import ScenarioSampler
    >>>
    >>> sampler = ScenarioSampler(seed=1001, distribution=dist)
    >>> block = sampler.sample(10_000)      # (10000, k)
    >>> first = next(iter(sampler))         # (k,)
"""

from __future__ import annotations

from typing import Iterator, Optional

import numpy as np
import scipy.linalg
from loguru import logger

from .exceptions import NumericalDegeneracy
from .types import CovarianceTransform, FactorDistribution, TransformType

# Scenarios drawn per block when iterating.
DEFAULT_BLOCK_SIZE = 10_000

# Eigenvalues down to -PSD_TOLERANCE * max|eigenvalue| count as zero.
PSD_TOLERANCE = 1e-8

_SEED_MODULUS = 2 ** 64


# =============================================================================
# COVARIANCE SQUARE ROOT
# =============================================================================

def _is_diagonal(M: np.ndarray) -> bool:
    """Check if a matrix is diagonal (off-diagonals are zero)."""
    return np.allclose(M, np.diag(np.diag(M)))


def _clip_eigenvalues(eigenvalues: np.ndarray, tol: float) -> np.ndarray:
    """Zero out noise-level negative eigenvalues, reject real negatives."""
    scale = np.max(np.abs(eigenvalues)) if eigenvalues.size else 0.0
    if scale == 0.0:
        return np.zeros_like(eigenvalues)

    smallest = eigenvalues.min()
    if smallest < -tol * scale:
        raise NumericalDegeneracy(
            f"factor covariance is not positive semi-definite "
            f"(min eigenvalue {smallest:.3e}, max |eigenvalue| {scale:.3e})"
        )
    if smallest < 0:
        logger.warning(
            f"Clipping {np.sum(eigenvalues < 0)} negative eigenvalue(s) "
            f"(min {smallest:.3e}) of the factor covariance to zero"
        )
    return np.clip(eigenvalues, 0.0, None)


def covariance_transform(
    covariance: np.ndarray,
    tol: float = PSD_TOLERANCE
) -> CovarianceTransform:
    """
    Compute a square root of a factor covariance matrix.

    Parameters
    ----------
    covariance : np.ndarray
        Symmetric (k, k) covariance.
    tol : float, default=PSD_TOLERANCE
        Relative tolerance for negative eigenvalues.

    Returns
    -------
    CovarianceTransform
        DIAGONAL (standard deviations) when the covariance is diagonal,
        otherwise DENSE with ``L = V @ diag(sqrt(lambda))``.

    Raises
    ------
    NumericalDegeneracy
        If the covariance has an eigenvalue below ``-tol * max|lambda|``.

    Notes
    -----
    The eigendecomposition is used instead of Cholesky so that singular
    (e.g. all-zero) covariances are accepted.
    """
    cov = np.asarray(covariance, dtype=float)

    if _is_diagonal(cov):
        variances = _clip_eigenvalues(np.diag(cov).copy(), tol)
        return CovarianceTransform(
            matrix=np.sqrt(variances),
            transform_type=TransformType.DIAGONAL
        )

    eigenvalues, eigenvectors = scipy.linalg.eigh(cov)
    eigenvalues = _clip_eigenvalues(eigenvalues, tol)
    return CovarianceTransform(
        matrix=eigenvectors * np.sqrt(eigenvalues),
        transform_type=TransformType.DENSE
    )


# =============================================================================
# SCENARIO SAMPLER
# =============================================================================

class ScenarioSampler:
    """
    Reproducible stream of factor-return scenarios for one seed.

    Parameters
    ----------
    seed : int
        Any 64-bit integer. Negative seeds are mapped onto the unsigned
        range (``seed mod 2**64``), so distinct 64-bit seeds stay distinct.
    distribution : FactorDistribution
        Means and covariance of the factor returns.
    block_size : int, default=DEFAULT_BLOCK_SIZE
        Scenarios drawn at a time when iterating.
    transform : CovarianceTransform, optional
        Precomputed square root of the covariance. Computed when omitted.

    Examples
    --------
    >>> a = ScenarioSampler(42, dist).sample(1000)
    >>> b = ScenarioSampler(42, dist).sample(1000)
    >>> np.array_equal(a, b)
    True

    Notes
    -----
    Iteration and `sample` consume the same underlying normal stream, so
    iterating n scenarios matches ``sample(n)`` from a fresh sampler.
    """

    def __init__(
        self,
        seed: int,
        distribution: FactorDistribution,
        block_size: int = DEFAULT_BLOCK_SIZE,
        transform: Optional[CovarianceTransform] = None
    ):
        if block_size <= 0:
            raise ValueError(f"block_size must be positive, got {block_size}")

        self.seed = int(seed)
        self.distribution = distribution
        self.block_size = block_size
        self._rng = np.random.Generator(np.random.PCG64(self.seed % _SEED_MODULUS))
        self._transform = (
            transform if transform is not None
            else covariance_transform(distribution.covariance)
        )

    @property
    def k(self) -> int:
        """Number of factors per scenario."""
        return self.distribution.k

    @property
    def transform(self) -> CovarianceTransform:
        """The covariance square root used for sampling."""
        return self._transform

    def sample(self, n: int) -> np.ndarray:
        """
        Draw the next `n` scenarios.

        Parameters
        ----------
        n : int
            Number of scenarios.

        Returns
        -------
        np.ndarray
            Factor returns with shape (n, k).
        """
        if n < 0:
            raise ValueError(f"n must be non-negative, got {n}")
        z = self._rng.standard_normal((n, self.k))
        return self.distribution.means + self._transform.apply(z)

    def __iter__(self) -> Iterator[np.ndarray]:
        while True:
            yield from self.sample(self.block_size)

    def __repr__(self) -> str:
        return f"ScenarioSampler(seed={self.seed}, k={self.k})"
