"""
simulation.py - Monte Carlo Trials and their Parallel Coordination

This module turns a fitted RiskModel into a distribution of portfolio
returns:
- TrialEngine functions: featurize scenarios and map them through the
  factor weights to one portfolio return per trial
- SimulationCoordinator: split the trial count into independently seeded
  chunks, run them on a serial, thread or process executor, retry failed
  chunks, and collect every trial return

Mathematical Background:
-----------------------
For scenario f ~ N(mu, Sigma), instrument i returns

    r_i(f) = c_i0 + c_i . phi(f)

and the portfolio trial return is sum_i r_i(f). Since the sum is linear
in the coefficients, a batch of scenarios is reduced with one product:

    R = phi(F) @ (sum_i c_i) + sum_i c_i0

Reproducibility:
---------------
Chunk i of a partition is seeded with ``base_seed + i``. Chunks share
nothing but the read-only RiskModel, and their outputs are concatenated in
chunk order, so a run is fully determined by (base_seed, n_trials,
parallelism) whatever the executor or worker count.

Example Usage:
-------------
    >>> from var_lab.simulation import SimulationCoordinator
    >>>
    >>> coordinator = SimulationCoordinator(model, parallelism=8, base_seed=1001)
    >>> result = coordinator.run(n_trials=1_000_000)
    >>> print(f"VaR 5%: {result.value_at_risk(0.05):.4f}")
"""

from __future__ import annotations

from concurrent.futures import (
    FIRST_COMPLETED,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    wait,
)
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
from loguru import logger

from .exceptions import ChunkFailure, EmptyTrialSet
from .regression import featurize
from .samplers import ScenarioSampler, covariance_transform
from .types import (
    CovarianceTransform,
    FactorWeights,
    RiskModel,
    SimulationResult,
    TrialChunk,
)

# Scenarios featurized and reduced per matrix product.
DEFAULT_BATCH_SIZE = 100_000

DEFAULT_MAX_RETRIES = 2

ChunkRunner = Callable[[TrialChunk, RiskModel, CovarianceTransform, int], np.ndarray]


class ExecutorKind(str, Enum):
    """Where chunks run."""
    SERIAL = "serial"
    THREAD = "thread"
    PROCESS = "process"


# =============================================================================
# TRIAL ENGINE
# =============================================================================

def instrument_trial_return(coefficients: np.ndarray, features: np.ndarray) -> float:
    """
    Return of one instrument under one featurized scenario.

    Parameters
    ----------
    coefficients : np.ndarray
        The instrument's (1 + 3k,) coefficients, intercept first.
    features : np.ndarray
        Featurized scenario, shape (3k,).
    """
    return float(coefficients[0] + np.dot(coefficients[1:], features))


def trial_return(scenario: np.ndarray, weights: FactorWeights) -> float:
    """Total portfolio return under one raw factor scenario of length k."""
    features = featurize(scenario)
    return float(np.sum(weights.intercepts + weights.feature_weights @ features))


def trial_returns(
    seed: int,
    n_trials: int,
    model: RiskModel,
    batch_size: int = DEFAULT_BATCH_SIZE,
    transform: Optional[CovarianceTransform] = None
) -> np.ndarray:
    """
    Simulate `n_trials` portfolio returns from one seeded scenario stream.

    Parameters
    ----------
    seed : int
        Seed of the scenario sampler.
    n_trials : int
        Number of trials.
    model : RiskModel
        Factor weights and factor distribution.
    batch_size : int, default=DEFAULT_BATCH_SIZE
        Scenarios reduced per matrix product; bounds peak memory.
    transform : CovarianceTransform, optional
        Precomputed covariance square root.

    Returns
    -------
    np.ndarray
        Trial returns with shape (n_trials,).
    """
    if n_trials < 0:
        raise ValueError(f"n_trials must be non-negative, got {n_trials}")
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    sampler = ScenarioSampler(seed, model.distribution, transform=transform)

    weights = model.weights
    intercept = weights.intercepts.sum()
    loadings = weights.feature_weights.sum(axis=0)  # (3k,)

    out = np.empty(n_trials)
    for start in range(0, n_trials, batch_size):
        stop = min(start + batch_size, n_trials)
        scenarios = sampler.sample(stop - start)
        out[start:stop] = featurize(scenarios) @ loadings + intercept
    return out


def run_chunk(
    chunk: TrialChunk,
    model: RiskModel,
    transform: CovarianceTransform,
    batch_size: int = DEFAULT_BATCH_SIZE
) -> np.ndarray:
    """Execute one chunk. Module-level so process pools can pickle it."""
    return trial_returns(
        chunk.seed, chunk.n_trials, model,
        batch_size=batch_size, transform=transform
    )


# =============================================================================
# COORDINATION
# =============================================================================

def partition_trials(
    n_trials: int,
    parallelism: int,
    base_seed: int
) -> List[TrialChunk]:
    """
    Split `n_trials` into `parallelism` seeded chunks.

    Chunk sizes differ by at most one and sum to exactly `n_trials`; chunk
    ``i`` is seeded with ``base_seed + i``.

    Raises
    ------
    EmptyTrialSet
        If `n_trials` or `parallelism` is not positive.

    Examples
    --------
    >>> [c.n_trials for c in partition_trials(10, 3, base_seed=7)]
    [4, 3, 3]
    """
    if n_trials <= 0:
        raise EmptyTrialSet(f"n_trials must be positive, got {n_trials}")
    if parallelism <= 0:
        raise EmptyTrialSet(f"parallelism must be positive, got {parallelism}")

    size, remainder = divmod(n_trials, parallelism)
    return [
        TrialChunk(
            index=i,
            seed=base_seed + i,
            n_trials=size + (1 if i < remainder else 0),
        )
        for i in range(parallelism)
    ]


class SimulationCoordinator:
    """
    Runs a partitioned Monte Carlo simulation of portfolio returns.

    Parameters
    ----------
    model : RiskModel
        Shared read-only factor weights and distribution.
    parallelism : int, default=1
        Number of chunks the trials are split into.
    base_seed : int, default=1001
        Seed of chunk 0; chunk i uses ``base_seed + i``.
    executor : ExecutorKind or str, default="serial"
        "serial", "thread" or "process".
    max_workers : int, optional
        Pool size for thread/process executors.
    max_retries : int, default=DEFAULT_MAX_RETRIES
        Retries per chunk before the run is aborted.
    batch_size : int, default=DEFAULT_BATCH_SIZE
        Scenarios per matrix product inside a chunk.
    chunk_runner : callable, default=run_chunk
        ``f(chunk, model, transform, batch_size) -> ndarray``. Must be
        picklable for the process executor.

    Notes
    -----
    **Retries:** a failed chunk is rerun as a fresh unit of the same size,
    seeded ``base_seed + parallelism * attempt + index``. Retry seeds never
    collide with first-attempt seeds and are deterministic, so the trial
    count is never truncated and a rerun reproduces the same output.
    """

    def __init__(
        self,
        model: RiskModel,
        parallelism: int = 1,
        base_seed: int = 1001,
        executor="serial",
        max_workers: Optional[int] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        batch_size: int = DEFAULT_BATCH_SIZE,
        chunk_runner: ChunkRunner = run_chunk
    ):
        if max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {max_retries}")

        self.model = model
        self.parallelism = parallelism
        self.base_seed = base_seed
        self.executor = ExecutorKind(executor)
        self.max_workers = max_workers
        self.max_retries = max_retries
        self.batch_size = batch_size
        self.chunk_runner = chunk_runner

    def run(self, n_trials: int) -> SimulationResult:
        """
        Simulate `n_trials` portfolio returns.

        Returns
        -------
        SimulationResult
            All trial returns, concatenated in chunk order.

        Raises
        ------
        EmptyTrialSet
            If `n_trials` or `parallelism` is not positive.
        NumericalDegeneracy
            If the factor covariance is not PSD (before any chunk runs).
        ChunkFailure
            If a chunk still fails after `max_retries` retries.
        """
        chunks = partition_trials(n_trials, self.parallelism, self.base_seed)
        transform = covariance_transform(self.model.distribution.covariance)

        logger.info(
            f"Starting simulation: {n_trials} trials in {len(chunks)} chunks "
            f"({self.executor.value} executor, base seed {self.base_seed})"
        )

        if self.executor == ExecutorKind.SERIAL:
            outputs, executed = self._run_serial(chunks, transform)
        else:
            outputs, executed = self._run_pooled(chunks, transform)

        trial_values = np.concatenate([outputs[c.index] for c in chunks])
        if trial_values.size != n_trials:
            raise RuntimeError(
                f"Collected {trial_values.size} trial returns, expected {n_trials}"
            )

        result = SimulationResult(
            trial_returns=trial_values,
            chunks=tuple(executed[c.index] for c in chunks),
            base_seed=self.base_seed,
        )
        logger.success(
            f"Simulation complete: {result.n_trials} trials, "
            f"{result.n_retries} chunk(s) retried"
        )
        return result

    def _run_serial(self, chunks: Sequence[TrialChunk], transform: CovarianceTransform):
        outputs: Dict[int, np.ndarray] = {}
        executed: Dict[int, TrialChunk] = {}

        for chunk in chunks:
            current = chunk
            while True:
                try:
                    outputs[chunk.index] = self.chunk_runner(
                        current, self.model, transform, self.batch_size
                    )
                except Exception as e:
                    current = self._retry(current, e)
                else:
                    executed[chunk.index] = current
                    break

        return outputs, executed

    def _run_pooled(self, chunks: Sequence[TrialChunk], transform: CovarianceTransform):
        outputs: Dict[int, np.ndarray] = {}
        executed: Dict[int, TrialChunk] = {}

        executor_class = (
            ThreadPoolExecutor if self.executor == ExecutorKind.THREAD
            else ProcessPoolExecutor
        )
        pool = executor_class(max_workers=self.max_workers)

        def submit(chunk: TrialChunk):
            return pool.submit(
                self.chunk_runner, chunk, self.model, transform, self.batch_size
            )

        try:
            pending = {submit(chunk): chunk for chunk in chunks}
            while pending:
                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    chunk = pending.pop(future)
                    try:
                        outputs[chunk.index] = future.result()
                    except Exception as e:
                        retry = self._retry(chunk, e)
                        pending[submit(retry)] = retry
                    else:
                        executed[chunk.index] = chunk
        except BaseException:
            # All-or-nothing: in-flight chunks are discarded
            pool.shutdown(wait=False, cancel_futures=True)
            raise
        else:
            pool.shutdown(wait=True)

        return outputs, executed

    def _retry(self, chunk: TrialChunk, error: Exception) -> TrialChunk:
        """Plan a fresh, reseeded rerun of a failed chunk."""
        attempt = chunk.attempt + 1
        if attempt > self.max_retries:
            logger.error(
                f"Chunk {chunk.index} failed {attempt} time(s); aborting simulation"
            )
            raise ChunkFailure(chunk.index, attempt, error) from error

        seed = self.base_seed + self.parallelism * attempt + chunk.index
        logger.warning(
            f"Chunk {chunk.index} (seed {chunk.seed}) failed: {error!r}. "
            f"Retrying with seed {seed} (attempt {attempt}/{self.max_retries})"
        )
        return TrialChunk(
            index=chunk.index,
            seed=seed,
            n_trials=chunk.n_trials,
            attempt=attempt,
        )


def compute_trial_returns(
    stock_returns: Sequence[np.ndarray],
    factor_returns: Sequence[np.ndarray],
    n_trials: int,
    parallelism: int,
    base_seed: int,
    executor="serial",
    max_workers: Optional[int] = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
    batch_size: int = DEFAULT_BATCH_SIZE,
    stock_names: Optional[Sequence[str]] = None,
    factor_names: Optional[Sequence[str]] = None
) -> SimulationResult:
    """
    Fit the factor model on historical returns and simulate trials.

    Convenience wrapper around `build_risk_model` and
    `SimulationCoordinator`. All model errors are raised before any trial
    is dispatched.

    Parameters
    ----------
    stock_returns : Sequence[np.ndarray]
        Windowed returns per instrument, aligned with the factors.
    factor_returns : Sequence[np.ndarray]
        Windowed returns per factor, equal lengths.
    n_trials, parallelism, base_seed
        See `SimulationCoordinator`.

    Returns
    -------
    SimulationResult
    """
    from .pipeline import build_risk_model

    model = build_risk_model(
        stock_returns,
        factor_returns,
        stock_names=stock_names,
        factor_names=factor_names,
    )
    coordinator = SimulationCoordinator(
        model,
        parallelism=parallelism,
        base_seed=base_seed,
        executor=executor,
        max_workers=max_workers,
        max_retries=max_retries,
        batch_size=batch_size,
    )
    return coordinator.run(n_trials)
