"""
exceptions.py - Error Taxonomy for var_lab

All errors raised for invalid inputs or degenerate numerics derive from
VaRError. VaRError itself subclasses ValueError so callers that already catch
validation errors keep working.

Hierarchy:
---------
    VaRError
    ├── InsufficientHistory   series too short to trim, pad or window
    ├── AlignmentMismatch     factor/instrument series of differing lengths
    ├── MalformedHistory      history file that cannot be parsed
    ├── EmptyTrialSet         zero trials or zero parallelism requested
    ├── NumericalDegeneracy   rank-deficient design or non-PSD covariance
    └── ChunkFailure          a trial chunk failed after all retries
"""

from __future__ import annotations

from typing import Optional


class VaRError(ValueError):
    """Base class for all var_lab errors."""


class InsufficientHistory(VaRError):
    """
    A history does not cover the requested date range or window.

    Parameters
    ----------
    message : str
        What was violated.
    series : str, optional
        Name of the offending instrument or factor.
    """

    def __init__(self, message: str, series: Optional[str] = None):
        self.series = series
        if series:
            message = f"{series}: {message}"
        super().__init__(message)


class AlignmentMismatch(VaRError):
    """Series that must be time-aligned have different lengths."""

    def __init__(self, message: str, series: Optional[str] = None):
        self.series = series
        if series:
            message = f"{series}: {message}"
        super().__init__(message)


class MalformedHistory(VaRError):
    """A history file could not be parsed into a TimeSeries."""

    def __init__(self, message: str, series: Optional[str] = None):
        self.series = series
        if series:
            message = f"{series}: {message}"
        super().__init__(message)


class EmptyTrialSet(VaRError):
    """No trials to run or no trial returns to reduce."""


class NumericalDegeneracy(VaRError):
    """Rank-deficient regression design or a covariance that is not PSD."""

    def __init__(self, message: str, series: Optional[str] = None):
        self.series = series
        if series:
            message = f"{series}: {message}"
        super().__init__(message)


class ChunkFailure(VaRError):
    """
    A trial chunk kept failing after every retry.

    Attributes
    ----------
    index : int
        Index of the chunk in the partition.
    attempts : int
        Number of attempts made (first run plus retries).
    """

    def __init__(self, index: int, attempts: int, cause: BaseException):
        self.index = index
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"Chunk {index} failed after {attempts} attempt(s): {cause!r}"
        )
