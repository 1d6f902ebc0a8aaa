"""
pipeline.py - From Raw Histories to a RiskModel
===============================================

Glue between the stages that run once per simulation:

    histories -> filter -> align -> window returns      (prepare_returns)
    returns   -> factor matrix -> distribution + OLS    (build_risk_model)

Every failure here aborts the run before any trial work is dispatched.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from .alignment import RETURN_WINDOW, align_history, filter_histories, window_returns
from .estimation import estimate_factor_distribution
from .exceptions import AlignmentMismatch
from .regression import compute_factor_weights, factor_matrix, featurize
from .types import DateLike, RiskModel, TimeSeries


def prepare_returns(
    histories: Sequence[TimeSeries],
    start: DateLike,
    end: DateLike,
    min_observations: Optional[int] = None,
    window: int = RETURN_WINDOW
) -> Tuple[List[np.ndarray], List[str]]:
    """
    Align histories to [start, end] and compute their windowed returns.

    Parameters
    ----------
    histories : Sequence[TimeSeries]
        Raw histories.
    start, end : date-like
        Alignment window.
    min_observations : int, optional
        If given, histories with fewer points are dropped first.
    window : int, default=10
        Return window length in business days.

    Returns
    -------
    returns : List[np.ndarray]
        One return series per kept history, all the same length.
    names : List[str]
        Names of the kept histories.
    """
    if min_observations is not None:
        histories = filter_histories(histories, min_observations)

    returns = []
    names = []
    for history in histories:
        aligned = align_history(history, start, end)
        returns.append(window_returns(aligned, window=window))
        names.append(history.name)

    logger.info(
        f"Prepared {len(returns)} return series over {start}..{end} "
        f"({window}-day windows)"
    )
    return returns, names


def build_risk_model(
    stock_returns: Sequence[np.ndarray],
    factor_returns: Sequence[np.ndarray],
    stock_names: Optional[Sequence[str]] = None,
    factor_names: Optional[Sequence[str]] = None,
    strict: bool = False
) -> RiskModel:
    """
    Estimate the factor distribution and fit every instrument.

    Parameters
    ----------
    stock_returns : Sequence[np.ndarray]
        One windowed return series per instrument.
    factor_returns : Sequence[np.ndarray]
        One windowed return series per factor, same length as the stocks.
    stock_names, factor_names : Sequence[str], optional
        Labels used in errors and persisted with the model.
    strict : bool, default=False
        Raise NumericalDegeneracy on rank-deficient regressions.

    Returns
    -------
    RiskModel

    Raises
    ------
    AlignmentMismatch
        If factor series differ in length, or an instrument does not line
        up with the factors.
    """
    M = factor_matrix(factor_returns, names=factor_names)
    T = M.shape[0]

    for i, returns in enumerate(stock_returns):
        if np.asarray(returns).size != T:
            label = stock_names[i] if stock_names is not None else f"instrument[{i}]"
            raise AlignmentMismatch(
                f"has {np.asarray(returns).size} returns but factors have {T}",
                series=label,
            )

    distribution = estimate_factor_distribution(M, names=factor_names)
    weights = compute_factor_weights(
        stock_returns, featurize(M), names=stock_names, strict=strict
    )
    return RiskModel(weights=weights, distribution=distribution)
