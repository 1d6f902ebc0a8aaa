"""
config.py - Run Configuration

SimulationConfig gathers every parameter of a VaR run. Defaults reproduce
the reference setup: five years of history ending 2014-10-23, ten million
trials in a thousand chunks, base seed 1001, 5% tail.

Example Usage:
-------------
    >>> from var_lab.config import SimulationConfig
    >>>
    >>> config = SimulationConfig(n_trials=100_000, parallelism=8)
    >>> config = SimulationConfig.from_json("run.json")
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np

from .alignment import MIN_OBSERVATIONS, RETURN_WINDOW
from .simulation import DEFAULT_BATCH_SIZE, DEFAULT_MAX_RETRIES, ExecutorKind
from .types import to_day


@dataclass(frozen=True)
class SimulationConfig:
    """
    Parameters of a factor-model Monte Carlo VaR run.

    Parameters
    ----------
    start, end : str
        Alignment window (ISO dates, inclusive).
    n_trials : int
        Total number of trials.
    parallelism : int
        Number of seeded chunks.
    base_seed : int
        Seed of chunk 0.
    alpha : float
        Tail probability for VaR and expected shortfall.
    window : int
        Return window in business days.
    min_observations : int
        Histories shorter than this are dropped before alignment.
    executor : str
        "serial", "thread" or "process".
    max_workers : int, optional
        Pool size for thread/process executors.
    max_retries : int
        Retries per failed chunk.
    batch_size : int
        Scenarios per matrix product.

    Raises
    ------
    ValueError
        If a parameter is out of range.
    """
    start: str = "2009-10-23"
    end: str = "2014-10-23"
    n_trials: int = 10_000_000
    parallelism: int = 1000
    base_seed: int = 1001
    alpha: float = 0.05
    window: int = RETURN_WINDOW
    min_observations: int = MIN_OBSERVATIONS
    executor: str = ExecutorKind.SERIAL.value
    max_workers: Optional[int] = None
    max_retries: int = DEFAULT_MAX_RETRIES
    batch_size: int = DEFAULT_BATCH_SIZE

    def __post_init__(self):
        if to_day(self.end) < to_day(self.start):
            raise ValueError(f"end {self.end} is before start {self.start}")
        if not 0.0 < self.alpha < 1.0:
            raise ValueError(f"alpha must be in (0, 1), got {self.alpha}")
        if self.window < 2:
            raise ValueError(f"window must be at least 2, got {self.window}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {self.max_retries}")
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        # Raises ValueError on an unknown executor
        ExecutorKind(self.executor)

    @property
    def start_date(self) -> np.datetime64:
        return to_day(self.start)

    @property
    def end_date(self) -> np.datetime64:
        return to_day(self.end)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimulationConfig":
        """Build from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")
        return cls(**data)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "SimulationConfig":
        """Load from a JSON object file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path, "r") as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
