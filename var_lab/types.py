"""
types.py - Core Data Structures and Type Definitions for var_lab

This module defines the value objects passed between the stages of a
factor-model Monte Carlo VaR run:
- TimeSeries: A dated price history for one instrument or factor
- FactorWeights: Per-instrument regression coefficients on featurized factors
- FactorDistribution: Mean vector and covariance matrix of factor returns
- RiskModel: Weights and distribution bundled for broadcast to trial workers
- CovarianceTransform: Discriminated union for the covariance square root
- TrialChunk / SimulationResult: The trial plan and its aggregated output

Design Principles:
-----------------
1. Immutability: frozen dataclasses, arrays copied and marked read-only so
   they can be shared by every worker without synchronization
2. Validation at construction time (fail-fast)
3. Numpy-style docstrings throughout

Example Usage:
-------------
    >>> import numpy as np
    >>> from var_lab.types import FactorWeights, FactorDistribution, RiskModel
    >>>
    >>> # Two instruments, one factor: 1 intercept + 3 features each
    >>> weights = FactorWeights(np.array([[0.1, 0.0, 0.0, 1.2],
    ...                                   [0.0, 0.0, 0.0, 0.8]]))
    >>> dist = FactorDistribution(means=np.array([0.0]),
    ...                           covariance=np.array([[0.04]]))
    >>> model = RiskModel(weights=weights, distribution=dist)
    >>> print(f"Model: {model.k} factors, {model.n_instruments} instruments")
    Model: 1 factors, 2 instruments
"""

from __future__ import annotations

import numpy as np
from dataclasses import dataclass
from datetime import date
from enum import Enum, auto
from typing import Iterable, Tuple, Union

# Number of features produced per factor by the featurization.
FEATURES_PER_FACTOR = 3

DateLike = Union[str, date, np.datetime64]


def _frozen_array(values, dtype=float) -> np.ndarray:
    """Copy into a read-only array."""
    arr = np.array(values, dtype=dtype)
    arr.flags.writeable = False
    return arr


def to_day(value: DateLike) -> np.datetime64:
    """Coerce a date-like value to a day-resolution ``numpy.datetime64``."""
    return np.datetime64(value, "D")


# =============================================================================
# TIME SERIES
# =============================================================================

@dataclass(frozen=True)
class TimeSeries:
    """
    An ordered history of (date, value) observations.

    Parameters
    ----------
    dates : np.ndarray
        Observation dates, coerced to ``datetime64[D]``. Must be strictly
        increasing (no duplicates).
    values : np.ndarray
        Observed values (prices), one per date.
    name : str, optional
        Identifier of the instrument or factor, used in error messages.

    Raises
    ------
    ValueError
        If the arrays are not 1-D, differ in length, or dates are not
        strictly increasing.

    Examples
    --------
    >>> ts = TimeSeries.from_pairs(
    ...     [("2014-01-02", 10.0), ("2014-01-03", 10.5)], name="ACME"
    ... )
    >>> len(ts)
    2
    """
    dates: np.ndarray
    values: np.ndarray
    name: str = ""

    def __post_init__(self):
        dates = _frozen_array(self.dates, dtype="datetime64[D]")
        values = _frozen_array(self.values, dtype=float)

        if dates.ndim != 1 or values.ndim != 1:
            raise ValueError(
                f"TimeSeries '{self.name}' must be 1-D, got dates {dates.shape} "
                f"and values {values.shape}"
            )
        if dates.shape != values.shape:
            raise ValueError(
                f"TimeSeries '{self.name}' has {dates.size} dates but "
                f"{values.size} values"
            )
        if dates.size > 1 and not np.all(dates[1:] > dates[:-1]):
            raise ValueError(
                f"TimeSeries '{self.name}' dates must be strictly increasing"
            )

        object.__setattr__(self, "dates", dates)
        object.__setattr__(self, "values", values)

    @classmethod
    def from_pairs(
        cls,
        pairs: Iterable[Tuple[DateLike, float]],
        name: str = ""
    ) -> "TimeSeries":
        """Build a series from an iterable of ``(date, value)`` pairs."""
        pairs = list(pairs)
        dates = [to_day(d) for d, _ in pairs]
        values = [v for _, v in pairs]
        return cls(
            dates=np.array(dates, dtype="datetime64[D]"),
            values=np.array(values, dtype=float),
            name=name,
        )

    def __len__(self) -> int:
        return int(self.dates.size)

    @property
    def start(self) -> np.datetime64:
        """First observation date."""
        return self.dates[0]

    @property
    def end(self) -> np.datetime64:
        """Last observation date."""
        return self.dates[-1]

    def __repr__(self) -> str:
        if len(self) == 0:
            return f"TimeSeries(name='{self.name}', empty)"
        return (
            f"TimeSeries(name='{self.name}', n={len(self)}, "
            f"{self.start}..{self.end})"
        )


# =============================================================================
# COVARIANCE TRANSFORM TYPES
# =============================================================================

class TransformType(Enum):
    """
    Discriminator for covariance matrix square root representations.

    DIAGONAL: The covariance is diagonal; sqrt is stored as a 1D vector of
              standard deviations. Enables O(n) sampling.
    DENSE: The covariance has off-diagonal elements; sqrt is stored as a full
           matrix L with L @ L.T equal to the covariance.
    """
    DIAGONAL = auto()
    DENSE = auto()


@dataclass(frozen=True)
class CovarianceTransform:
    """
    Represents the square root of a covariance matrix for efficient sampling.

    Parameters
    ----------
    matrix : np.ndarray
        Either a 1D array of standard deviations (DIAGONAL) or a 2D matrix L
        with ``L @ L.T == covariance`` (DENSE).
    transform_type : TransformType
        Indicates how `matrix` should be interpreted and applied.
    """
    matrix: np.ndarray
    transform_type: TransformType

    @property
    def is_diagonal(self) -> bool:
        """Check if this is a diagonal (O(n)) transform."""
        return self.transform_type == TransformType.DIAGONAL

    def apply(self, z: np.ndarray) -> np.ndarray:
        """
        Apply this covariance transform to standard normal draws.

        Parameters
        ----------
        z : np.ndarray
            Standard normal samples with shape (n_samples, dim).

        Returns
        -------
        np.ndarray
            Samples with the target covariance structure (zero mean).
        """
        if self.is_diagonal:
            return z * self.matrix  # Broadcasting: (n, d) * (d,)
        else:
            return z @ self.matrix.T  # (n, d) @ (d, d).T


# =============================================================================
# FACTOR MODEL TYPES
# =============================================================================

@dataclass(frozen=True)
class FactorWeights:
    """
    Regression coefficients of every instrument on the featurized factors.

    Row ``i`` holds instrument ``i``'s coefficients: the intercept first,
    then one weight per feature column in featurization order (signed
    squares of all factors, signed square roots of all factors, raw factor
    returns).

    Parameters
    ----------
    coefficients : np.ndarray
        Array of shape (n_instruments, 1 + 3 * k).
    names : tuple of str, optional
        Instrument identifiers, one per row.

    Raises
    ------
    ValueError
        If the shape is not (n, 1 + 3k) with n > 0 and k > 0, or if names
        do not match the number of rows.
    """
    coefficients: np.ndarray
    names: Tuple[str, ...] = ()

    def __post_init__(self):
        coefficients = _frozen_array(self.coefficients)
        if coefficients.ndim != 2:
            raise ValueError(
                f"coefficients must be 2D, got shape {coefficients.shape}"
            )
        n, width = coefficients.shape
        if n == 0 or width < 1 + FEATURES_PER_FACTOR:
            raise ValueError(
                f"coefficients must have positive dimensions, got {coefficients.shape}"
            )
        if (width - 1) % FEATURES_PER_FACTOR != 0:
            raise ValueError(
                f"coefficients width must be 1 + {FEATURES_PER_FACTOR}k, got {width}"
            )
        names = tuple(self.names)
        if names and len(names) != n:
            raise ValueError(
                f"Got {len(names)} names for {n} instruments"
            )
        object.__setattr__(self, "coefficients", coefficients)
        object.__setattr__(self, "names", names)

    @property
    def n_instruments(self) -> int:
        """Number of instruments."""
        return self.coefficients.shape[0]

    @property
    def n_factors(self) -> int:
        """Number of raw factors (before featurization)."""
        return (self.coefficients.shape[1] - 1) // FEATURES_PER_FACTOR

    @property
    def intercepts(self) -> np.ndarray:
        """Intercept per instrument, shape (n_instruments,)."""
        return self.coefficients[:, 0]

    @property
    def feature_weights(self) -> np.ndarray:
        """Feature coefficients, shape (n_instruments, 3k)."""
        return self.coefficients[:, 1:]


@dataclass(frozen=True)
class FactorDistribution:
    """
    Sample mean and covariance of historical factor returns.

    Parameters
    ----------
    means : np.ndarray
        Mean return per factor, shape (k,).
    covariance : np.ndarray
        Factor covariance, shape (k, k), symmetric.
    names : tuple of str, optional
        Factor identifiers.
    """
    means: np.ndarray
    covariance: np.ndarray
    names: Tuple[str, ...] = ()

    def __post_init__(self):
        means = _frozen_array(self.means)
        covariance = _frozen_array(self.covariance)

        if means.ndim != 1 or means.size == 0:
            raise ValueError(f"means must be a non-empty 1D array, got {means.shape}")
        k = means.size
        if covariance.shape != (k, k):
            raise ValueError(
                f"covariance shape mismatch: expected ({k}, {k}), got {covariance.shape}"
            )
        if not np.allclose(covariance, covariance.T):
            raise ValueError("covariance must be symmetric")
        names = tuple(self.names)
        if names and len(names) != k:
            raise ValueError(f"Got {len(names)} names for {k} factors")

        object.__setattr__(self, "means", means)
        object.__setattr__(self, "covariance", covariance)
        object.__setattr__(self, "names", names)

    @property
    def k(self) -> int:
        """Number of factors."""
        return self.means.size


@dataclass(frozen=True)
class RiskModel:
    """
    Everything a trial worker needs: factor weights and factor distribution.

    Constructed once per run and shared read-only with all chunks.

    Parameters
    ----------
    weights : FactorWeights
        Per-instrument factor sensitivities.
    distribution : FactorDistribution
        Distribution scenarios are drawn from.
    """
    weights: FactorWeights
    distribution: FactorDistribution

    def __post_init__(self):
        if self.weights.n_factors != self.distribution.k:
            raise ValueError(
                f"Weights are fit on {self.weights.n_factors} factors but the "
                f"distribution has {self.distribution.k}"
            )

    @property
    def k(self) -> int:
        """Number of factors."""
        return self.distribution.k

    @property
    def n_instruments(self) -> int:
        """Number of instruments."""
        return self.weights.n_instruments


# =============================================================================
# SIMULATION TYPES
# =============================================================================

@dataclass(frozen=True)
class TrialChunk:
    """
    One independently seeded unit of trials.

    Parameters
    ----------
    index : int
        Position of the chunk in the partition.
    seed : int
        Seed of the chunk's random generator.
    n_trials : int
        Number of trials to run.
    attempt : int, default=0
        0 for the first run, incremented for each retry.
    """
    index: int
    seed: int
    n_trials: int
    attempt: int = 0


@dataclass(frozen=True)
class SimulationResult:
    """
    Aggregated output of a Monte Carlo run.

    Parameters
    ----------
    trial_returns : np.ndarray
        Portfolio return of every trial, concatenated in chunk order.
    chunks : tuple of TrialChunk
        The chunks whose output makes up `trial_returns` (after retries).
    base_seed : int
        Seed the partition was derived from.

    Examples
    --------
    >>> result = coordinator.run(n_trials=100_000)
    >>> print(f"VaR 5%: {result.value_at_risk(0.05):.4f}")
    """
    trial_returns: np.ndarray
    chunks: Tuple[TrialChunk, ...] = ()
    base_seed: int = 0

    def __post_init__(self):
        object.__setattr__(self, "trial_returns", _frozen_array(self.trial_returns))
        object.__setattr__(self, "chunks", tuple(self.chunks))

    @property
    def n_trials(self) -> int:
        """Total number of trial returns."""
        return int(self.trial_returns.size)

    @property
    def n_retries(self) -> int:
        """Number of chunks that only succeeded on a retry."""
        return sum(1 for c in self.chunks if c.attempt > 0)

    def value_at_risk(self, alpha: float = 0.05) -> float:
        """Empirical VaR at tail probability `alpha`."""
        from .metrics import value_at_risk
        return value_at_risk(self.trial_returns, alpha)

    def expected_shortfall(self, alpha: float = 0.05) -> float:
        """Mean of the trial returns in the `alpha` tail."""
        from .metrics import expected_shortfall
        return expected_shortfall(self.trial_returns, alpha)
