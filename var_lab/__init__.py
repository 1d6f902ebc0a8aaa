"""
var_lab - Factor-Model Monte Carlo Value-at-Risk
"""

__version__ = "1.0.0"

# =============================================================================
# CORE TYPES
# =============================================================================
from .types import (
    TimeSeries,
    FactorWeights,
    FactorDistribution,
    RiskModel,
    CovarianceTransform,
    TransformType,
    TrialChunk,
    SimulationResult,
)

# =============================================================================
# ERRORS
# =============================================================================
from .exceptions import (
    VaRError,
    InsufficientHistory,
    AlignmentMismatch,
    EmptyTrialSet,
    MalformedHistory,
    NumericalDegeneracy,
    ChunkFailure,
)

# =============================================================================
# ALIGNMENT & RETURNS
# =============================================================================
from .alignment import (
    business_days,
    filter_histories,
    trim_to_region,
    fill_in_history,
    align_history,
    window_returns,
    two_week_returns,
)

# =============================================================================
# ESTIMATION
# =============================================================================
from .regression import (
    featurize,
    factor_matrix,
    fit_instrument,
    compute_factor_weights,
)
from .estimation import estimate_factor_distribution
from .pipeline import prepare_returns, build_risk_model

# =============================================================================
# SIMULATION
# =============================================================================
from .samplers import ScenarioSampler, covariance_transform
from .simulation import (
    ExecutorKind,
    SimulationCoordinator,
    partition_trials,
    run_chunk,
    instrument_trial_return,
    trial_return,
    trial_returns,
    compute_trial_returns,
)
from .metrics import value_at_risk, expected_shortfall, density_estimate

# =============================================================================
# CONFIG & I/O
# =============================================================================
from .config import SimulationConfig
from .io import (
    read_yahoo_history,
    read_investing_history,
    read_histories,
    save_model,
    load_model,
    ModelFormat,
)

# PUBLIC API
# =============================================================================
__all__ = [
    "__version__",
    "TimeSeries",
    "FactorWeights",
    "FactorDistribution",
    "RiskModel",
    "CovarianceTransform",
    "TransformType",
    "TrialChunk",
    "SimulationResult",
    "VaRError",
    "InsufficientHistory",
    "AlignmentMismatch",
    "EmptyTrialSet",
    "MalformedHistory",
    "NumericalDegeneracy",
    "ChunkFailure",
    "business_days",
    "filter_histories",
    "trim_to_region",
    "fill_in_history",
    "align_history",
    "window_returns",
    "two_week_returns",
    "featurize",
    "factor_matrix",
    "fit_instrument",
    "compute_factor_weights",
    "estimate_factor_distribution",
    "prepare_returns",
    "build_risk_model",
    "ScenarioSampler",
    "covariance_transform",
    "ExecutorKind",
    "SimulationCoordinator",
    "partition_trials",
    "run_chunk",
    "instrument_trial_return",
    "trial_return",
    "trial_returns",
    "compute_trial_returns",
    "value_at_risk",
    "expected_shortfall",
    "density_estimate",
    "SimulationConfig",
    "read_yahoo_history",
    "read_investing_history",
    "read_histories",
    "save_model",
    "load_model",
    "ModelFormat",
]
