"""
alignment.py - Calendar Alignment and Windowed Returns
======================================================

Brings raw instrument and factor histories onto one business-day calendar
and turns the aligned prices into overlapping two-week returns.

Alignment is done in two steps:
1. trim_to_region: cut the history to [start, end] and pin both boundaries
2. fill_in_history: one value per business day, last observation carried
   forward, weekends dropped
"""

from __future__ import annotations

from typing import List, Sequence, Union

import numpy as np
from loguru import logger

from .exceptions import InsufficientHistory
from .types import DateLike, TimeSeries, to_day

# Five years of trading days plus one return window.
MIN_OBSERVATIONS = 260 * 5 + 10

# Ten business days: a two calendar week return.
RETURN_WINDOW = 10

_ONE_DAY = np.timedelta64(1, "D")


def business_days(start: DateLike, end: DateLike) -> np.ndarray:
    """
    Every Monday-Friday in [start, end], both ends included.

    Returns
    -------
    np.ndarray
        ``datetime64[D]`` array, empty if ``end < start``.
    """
    start, end = to_day(start), to_day(end)
    if end < start:
        return np.array([], dtype="datetime64[D]")
    days = np.arange(start, end + _ONE_DAY, dtype="datetime64[D]")
    return days[np.is_busday(days)]


def filter_histories(
    histories: Sequence[TimeSeries],
    min_observations: int = MIN_OBSERVATIONS
) -> List[TimeSeries]:
    """
    Drop histories too short to cover the simulation window.

    Parameters
    ----------
    histories : Sequence[TimeSeries]
        Raw histories as read from disk.
    min_observations : int, default=MIN_OBSERVATIONS
        Minimum number of points a history must have to be kept.

    Returns
    -------
    List[TimeSeries]
        The kept histories, in input order.
    """
    kept = []
    for history in histories:
        if len(history) >= min_observations:
            kept.append(history)
        else:
            logger.warning(
                f"Dropping '{history.name}': {len(history)} observations "
                f"< {min_observations}"
            )
    logger.info(f"Kept {len(kept)}/{len(histories)} histories")
    return kept


def trim_to_region(
    series: TimeSeries,
    start: DateLike,
    end: DateLike
) -> TimeSeries:
    """
    Restrict a history to [start, end] and pin both boundaries.

    Points outside the window are dropped. If the first remaining point is
    not on `start`, a point at `start` carrying the first value is
    prepended; if the last is not on `end`, a point at `end` carrying the
    last value is appended. When nothing falls inside the window, the last
    value before `start` is carried in instead.

    Parameters
    ----------
    series : TimeSeries
        Source history, ascending.
    start, end : date-like
        Inclusive window boundaries.

    Returns
    -------
    TimeSeries
        History whose first date is `start` and last date is `end`.

    Raises
    ------
    ValueError
        If ``end < start``.
    InsufficientHistory
        If the series has no observation on or before `end`.
    """
    start, end = to_day(start), to_day(end)
    if end < start:
        raise ValueError(f"end {end} is before start {start}")

    if len(series) == 0:
        raise InsufficientHistory("history is empty", series=series.name)

    inside = (series.dates >= start) & (series.dates <= end)
    dates = series.dates[inside]
    values = series.values[inside]

    if dates.size == 0:
        before = series.dates < start
        if not before.any():
            raise InsufficientHistory(
                f"no observations on or before {end} (history starts {series.start})",
                series=series.name,
            )
        dates = np.array([start], dtype="datetime64[D]")
        values = series.values[before][-1:]

    if dates[0] != start:
        dates = np.concatenate([np.array([start], dtype="datetime64[D]"), dates])
        values = np.concatenate([values[:1], values])

    if dates[-1] != end:
        dates = np.concatenate([dates, np.array([end], dtype="datetime64[D]")])
        values = np.concatenate([values, values[-1:]])

    return TimeSeries(dates=dates, values=values, name=series.name)


def fill_in_history(
    series: TimeSeries,
    start: DateLike,
    end: DateLike
) -> TimeSeries:
    """
    Impute a value for every business day between `start` and `end`.

    Each business day takes the most recent value observed on or before
    it. Observations dated on weekends are ignored. Days preceding the
    first observation take the first observed value.

    Parameters
    ----------
    series : TimeSeries
        Source history, ascending. Usually the output of `trim_to_region`.
    start, end : date-like
        Inclusive calendar boundaries.

    Returns
    -------
    TimeSeries
        Exactly one point per business day in [start, end].

    Raises
    ------
    InsufficientHistory
        If the series has no observation on a business day.
    """
    calendar = business_days(start, end)

    usable = np.is_busday(series.dates)
    dates = series.dates[usable]
    values = series.values[usable]

    if dates.size == 0:
        raise InsufficientHistory(
            "no business-day observations to fill from", series=series.name
        )

    # Index of the last observation on or before each calendar day
    idx = np.searchsorted(dates, calendar, side="right") - 1
    idx = np.clip(idx, 0, None)

    return TimeSeries(dates=calendar, values=values[idx], name=series.name)


def align_history(
    series: TimeSeries,
    start: DateLike,
    end: DateLike
) -> TimeSeries:
    """Trim a history to [start, end] and fill it onto the business-day calendar."""
    aligned = fill_in_history(trim_to_region(series, start, end), start, end)
    logger.debug(
        f"Aligned '{series.name}': {len(series)} -> {len(aligned)} points"
    )
    return aligned


def window_returns(
    series: Union[TimeSeries, np.ndarray, Sequence[float]],
    window: int = RETURN_WINDOW
) -> np.ndarray:
    """
    Sliding-window returns of an aligned price history.

    Output ``i`` is ``values[i + window - 1] - values[i]``, for every
    window of `window` consecutive points (stride 1). Consecutive returns
    overlap and are therefore autocorrelated.

    Parameters
    ----------
    series : TimeSeries or array-like
        Aligned prices.
    window : int, default=10
        Number of points per window.

    Returns
    -------
    np.ndarray
        Array of length ``len(series) - window + 1``.

    Raises
    ------
    ValueError
        If `window` is less than 2.
    InsufficientHistory
        If the series has fewer than `window` points.
    """
    if window < 2:
        raise ValueError(f"window must be at least 2, got {window}")

    if isinstance(series, TimeSeries):
        values, name = series.values, series.name
    else:
        values, name = np.asarray(series, dtype=float), None

    if values.size < window:
        raise InsufficientHistory(
            f"{values.size} points is shorter than the {window}-point return window",
            series=name,
        )

    return values[window - 1:] - values[:values.size - window + 1]


def two_week_returns(series: Union[TimeSeries, np.ndarray, Sequence[float]]) -> np.ndarray:
    """Ten business day returns; see `window_returns`."""
    return window_returns(series, window=RETURN_WINDOW)
