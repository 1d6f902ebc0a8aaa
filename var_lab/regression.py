"""
regression.py - Factor Featurization and Per-Instrument OLS
===========================================================

Each instrument's windowed return is modelled as a linear function of the
featurized factor returns:

    r_i = c_i0 + sum_j c_ij * phi_j(f)

where phi expands the k factor returns into 3k features (signed squares,
signed square roots, raw returns). One ordinary least squares fit is run
per instrument against the shared design matrix.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import scipy.linalg
from loguru import logger

from .exceptions import AlignmentMismatch, NumericalDegeneracy
from .types import FactorWeights

# =============================================================================
# FEATURES
# =============================================================================

def featurize(factor_returns: np.ndarray) -> np.ndarray:
    """
    Expand factor returns into the fixed 3x feature basis.

    Parameters
    ----------
    factor_returns : array-like
        Either one scenario with shape (k,) or a matrix with shape (T, k).

    Returns
    -------
    np.ndarray
        Shape (3k,) or (T, 3k): ``[sign(x) x^2 | sign(x) sqrt|x| | x]``,
        each block ordered by factor.

    Examples
    --------
    >>> featurize(np.array([4.0, -1.0]))
    array([16., -1.,  2., -1.,  4., -1.])
    """
    x = np.asarray(factor_returns, dtype=float)
    squared = np.sign(x) * x * x
    square_rooted = np.sign(x) * np.sqrt(np.abs(x))
    return np.concatenate([squared, square_rooted, x], axis=-1)


def factor_matrix(
    factor_returns: Sequence[np.ndarray],
    names: Optional[Sequence[str]] = None
) -> np.ndarray:
    """
    Stack k factor return series into a (T, k) matrix.

    Parameters
    ----------
    factor_returns : Sequence[np.ndarray]
        One 1-D return series per factor, all of length T.
    names : Sequence[str], optional
        Factor names, used in error messages.

    Raises
    ------
    ValueError
        If no factors are given or a series is not 1-D.
    AlignmentMismatch
        If the series differ in length.
    """
    if len(factor_returns) == 0:
        raise ValueError("Need at least one factor return series")

    columns = [np.asarray(r, dtype=float) for r in factor_returns]
    expected = columns[0].size

    for i, column in enumerate(columns):
        label = names[i] if names is not None else f"factor[{i}]"
        if column.ndim != 1:
            raise ValueError(f"{label}: returns must be 1D, got shape {column.shape}")
        if column.size != expected:
            raise AlignmentMismatch(
                f"has {column.size} returns but the first factor has {expected}",
                series=label,
            )

    return np.column_stack(columns)


# =============================================================================
# REGRESSION
# =============================================================================

def fit_instrument(
    instrument_returns: np.ndarray,
    features: np.ndarray,
    name: Optional[str] = None,
    strict: bool = False
) -> np.ndarray:
    """
    Ordinary least squares of one instrument on the featurized factors.

    Parameters
    ----------
    instrument_returns : np.ndarray
        Instrument returns with shape (T,).
    features : np.ndarray
        Featurized factor matrix with shape (T, 3k).
    name : str, optional
        Instrument name, used in log and error messages.
    strict : bool, default=False
        Raise on a rank-deficient design instead of logging a warning.

    Returns
    -------
    np.ndarray
        Coefficients with shape (1 + 3k,), intercept first.

    Raises
    ------
    AlignmentMismatch
        If the instrument and the design have different lengths.
    NumericalDegeneracy
        If the solver fails, or the design is rank-deficient and `strict`.

    Notes
    -----
    For a rank-deficient design ``scipy.linalg.lstsq`` returns the
    minimum-norm solution.
    """
    label = name or "instrument"
    y = np.asarray(instrument_returns, dtype=float)
    X = np.asarray(features, dtype=float)

    if X.ndim != 2:
        raise ValueError(f"features must be 2D, got shape {X.shape}")

    T = X.shape[0]
    if y.ndim != 1 or y.size != T:
        raise AlignmentMismatch(
            f"has {y.size} returns but the factor design has {T} rows",
            series=label,
        )

    design = np.column_stack([np.ones(T), X])

    try:
        coefficients, _, rank, _ = scipy.linalg.lstsq(design, y)
    except (scipy.linalg.LinAlgError, ValueError) as e:
        logger.exception(f"OLS failed for '{label}'. Check for NaNs or infinite returns.")
        raise NumericalDegeneracy(f"OLS failed: {e}", series=label) from e

    if rank < design.shape[1]:
        message = f"design matrix is rank-deficient (rank {rank} < {design.shape[1]})"
        if strict:
            raise NumericalDegeneracy(message, series=label)
        logger.warning(f"'{label}': {message}; using minimum-norm solution")

    return coefficients


def compute_factor_weights(
    instrument_returns: Sequence[np.ndarray],
    features: np.ndarray,
    names: Optional[Sequence[str]] = None,
    strict: bool = False
) -> FactorWeights:
    """
    Fit every instrument against the shared featurized factor matrix.

    Fits are independent; any failure aborts the whole estimation since a
    bad model would contaminate every trial.

    Parameters
    ----------
    instrument_returns : Sequence[np.ndarray]
        One return series per instrument, each of length T.
    features : np.ndarray
        Featurized factor matrix with shape (T, 3k).
    names : Sequence[str], optional
        Instrument names.
    strict : bool, default=False
        Passed to `fit_instrument`.

    Returns
    -------
    FactorWeights
        Coefficients with shape (n_instruments, 1 + 3k).
    """
    if len(instrument_returns) == 0:
        raise ValueError("Need at least one instrument to fit")
    if names is not None and len(names) != len(instrument_returns):
        raise ValueError(
            f"Got {len(names)} names for {len(instrument_returns)} instruments"
        )

    logger.info(
        f"Fitting factor model: {len(instrument_returns)} instruments, "
        f"{features.shape[1]} features, {features.shape[0]} observations"
    )

    rows = [
        fit_instrument(
            returns,
            features,
            name=names[i] if names is not None else f"instrument[{i}]",
            strict=strict,
        )
        for i, returns in enumerate(instrument_returns)
    ]

    weights = FactorWeights(
        coefficients=np.vstack(rows),
        names=tuple(names) if names is not None else (),
    )
    logger.success(f"Fitted {weights.n_instruments} factor models.")
    return weights
