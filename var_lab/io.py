"""
io.py - History Readers and Model Serialization

This module handles data going in and out of var_lab:
- History readers for the two vendor formats:
    * Yahoo-style CSV: header row, ``yyyy-mm-dd,price,...``
    * investing.com-style TSV: no header, ``MMM d, yyyy<TAB>price<TAB>...``
- Saving and loading a fitted RiskModel:
    * NPZ: NumPy's archive format (default)
    * JSON: Human-readable format

Example Usage:
-------------
    >>> from var_lab.io import read_histories, save_model, load_model
    >>>
    >>> stocks = read_histories("data/stocks")
    >>> save_model(model, "risk_model.npz")
    >>> loaded = load_model("risk_model.npz")
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Callable, List, Union

import numpy as np
import pandas as pd
from loguru import logger

from .exceptions import MalformedHistory
from .types import FactorDistribution, FactorWeights, RiskModel, TimeSeries

PathLike = Union[str, Path]
HistoryReader = Callable[[PathLike], TimeSeries]

YAHOO_DATE_FORMAT = "%Y-%m-%d"
INVESTING_DATE_FORMAT = "%b %d, %Y"


# =============================================================================
# HISTORY READERS
# =============================================================================

def _to_series(frame: pd.DataFrame, date_format: str, name: str) -> TimeSeries:
    """Parse the (date, price) columns, sort ascending and build a TimeSeries."""
    if frame.empty:
        raise ValueError("no observations")

    frame = pd.DataFrame({
        "date": pd.to_datetime(frame.iloc[:, 0].astype(str).str.strip(), format=date_format),
        "price": pd.to_numeric(frame.iloc[:, 1]),
    })
    if frame["price"].isna().any():
        raise ValueError(f"{int(frame['price'].isna().sum())} row(s) without a price")

    frame = frame.sort_values("date", kind="stable")
    return TimeSeries(
        dates=frame["date"].to_numpy().astype("datetime64[D]"),
        values=frame["price"].to_numpy(dtype=float),
        name=name,
    )


def _read_history(path: PathLike, date_format: str, **read_csv_kwargs) -> TimeSeries:
    path = Path(path)
    try:
        frame = pd.read_csv(path, usecols=[0, 1], **read_csv_kwargs)
        return _to_series(frame, date_format, name=path.stem)
    except (ValueError, IndexError) as e:
        raise MalformedHistory(str(e), series=path.name) from e


def read_yahoo_history(path: PathLike) -> TimeSeries:
    """
    Read a Yahoo-style CSV history.

    The first row is a header. Column 0 is the date (``yyyy-mm-dd``),
    column 1 the price. Files list the newest row first; the result is
    ascending.

    Raises
    ------
    MalformedHistory
        If a row cannot be parsed, a price is missing or dates repeat.
    FileNotFoundError
        If the file does not exist.
    """
    return _read_history(path, YAHOO_DATE_FORMAT)


def read_investing_history(path: PathLike) -> TimeSeries:
    """
    Read an investing.com-style TSV history.

    No header. Column 0 is the date (``MMM d, yyyy``), column 1 the price,
    which may contain thousands separators. Newest row first in the file.
    """
    return _read_history(
        path, INVESTING_DATE_FORMAT, sep="\t", header=None, thousands=","
    )


def read_histories(
    directory: PathLike,
    reader: HistoryReader = read_yahoo_history
) -> List[TimeSeries]:
    """
    Read every file in a directory, skipping those that fail to parse.

    Parameters
    ----------
    directory : str or Path
        Directory of history files.
    reader : callable, default=read_yahoo_history
        Parser applied to each file.

    Returns
    -------
    List[TimeSeries]
        One series per readable file, in file name order.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"History directory not found: {directory}")

    histories = []
    for path in sorted(p for p in directory.iterdir() if p.is_file()):
        try:
            histories.append(reader(path))
        except (ValueError, OSError) as e:
            logger.warning(f"Skipping unreadable history {path.name}: {e}")

    logger.info(f"Read {len(histories)} histories from {directory}")
    return histories


# =============================================================================
# MODEL SERIALIZATION
# =============================================================================

class ModelFormat(str, Enum):
    """Supported model file formats."""
    NPZ = "npz"
    JSON = "json"


def save_model(
    model: RiskModel,
    path: PathLike,
    format: ModelFormat = ModelFormat.NPZ
) -> None:
    """
    Save a risk model to disk.

    Parameters
    ----------
    model : RiskModel
        The fitted model.
    path : str or Path
        Destination file path.
    format : ModelFormat, default=ModelFormat.NPZ
        Output format.

    Examples
    --------
    >>> save_model(model, "model.npz")
    >>> save_model(model, "model.json", format=ModelFormat.JSON)
    """
    path = Path(path)

    if format == ModelFormat.NPZ:
        _save_npz(model, path)
    elif format == ModelFormat.JSON:
        _save_json(model, path)
    else:
        raise ValueError(f"Unsupported format: {format}")


def load_model(path: PathLike) -> RiskModel:
    """
    Load a risk model from disk.

    Parameters
    ----------
    path : str or Path
        Source file path. Format is inferred from extension.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the file format is not recognized.
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Model file not found: {path}")

    if path.suffix == ".npz":
        return _load_npz(path)
    elif path.suffix == ".json":
        return _load_json(path)
    else:
        raise ValueError(f"Unknown model format: {path.suffix}")


def _save_npz(model: RiskModel, path: Path) -> None:
    np.savez(
        path,
        coefficients=model.weights.coefficients,
        instrument_names=np.array(model.weights.names, dtype=str),
        means=model.distribution.means,
        covariance=model.distribution.covariance,
        factor_names=np.array(model.distribution.names, dtype=str),
    )


def _load_npz(path: Path) -> RiskModel:
    with np.load(path) as data:
        weights = FactorWeights(
            coefficients=data["coefficients"],
            names=tuple(str(n) for n in data["instrument_names"]),
        )
        distribution = FactorDistribution(
            means=data["means"],
            covariance=data["covariance"],
            names=tuple(str(n) for n in data["factor_names"]),
        )
    return RiskModel(weights=weights, distribution=distribution)


def _save_json(model: RiskModel, path: Path) -> None:
    data = {
        "coefficients": model.weights.coefficients.tolist(),
        "instrument_names": list(model.weights.names),
        "means": model.distribution.means.tolist(),
        "covariance": model.distribution.covariance.tolist(),
        "factor_names": list(model.distribution.names),
    }

    with open(path, 'w') as f:
        json.dump(data, f, indent=2)


def _load_json(path: Path) -> RiskModel:
    with open(path, 'r') as f:
        data = json.load(f)

    return RiskModel(
        weights=FactorWeights(
            coefficients=np.array(data["coefficients"]),
            names=tuple(data.get("instrument_names", ())),
        ),
        distribution=FactorDistribution(
            means=np.array(data["means"]),
            covariance=np.array(data["covariance"]),
            names=tuple(data.get("factor_names", ())),
        ),
    )
