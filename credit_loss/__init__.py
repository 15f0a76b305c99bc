"""Monte Carlo credit loss engine.

Estimates the loss distribution of a loan portfolio under a Gaussian
copula with one correlated systematic factor per region.

Main components:
- calibration: Loading of the portfolio and calibration tables
- model: Regional correlation and its Cholesky factor
- simulation: Dispatch of the simulation kernel to a compute driver
- risk_metrics: Expected loss, VaR, ES and the loss histogram
"""

from .errors import (
    CreditLossError,
    InputSourceError,
    CalibrationError,
    SingularMatrixError,
    ComputeEnvironmentError,
    KernelBuildError,
    DeviceError,
    InvalidArgumentError,
)
from .config import EngineConfig
from .portfolio import LoanRecord, Portfolio
from .model import RegionFactorModel, cholesky_lower
from .calibration import (
    Calibration,
    load_calibration,
    load_correlation_matrix,
    load_pd_table,
    load_portfolio,
    map_region,
)
from .devices import ComputeDriver, CudaDriver, HostDriver, get_driver
from .simulation import SimulationDispatcher, SimulationResult
from .risk_metrics import (
    RiskSummary,
    Histogram,
    stable_mean,
    value_at_risk,
    expected_shortfall,
    find_suitable_max_bound,
    build_histogram,
    summarize_losses,
    create_summary_report,
)

__version__ = "1.0.0"

__all__ = [
    # Errors
    "CreditLossError",
    "InputSourceError",
    "CalibrationError",
    "SingularMatrixError",
    "ComputeEnvironmentError",
    "KernelBuildError",
    "DeviceError",
    "InvalidArgumentError",
    # Configuration
    "EngineConfig",
    # Portfolio
    "LoanRecord",
    "Portfolio",
    # Model
    "RegionFactorModel",
    "cholesky_lower",
    # Calibration
    "Calibration",
    "load_calibration",
    "load_correlation_matrix",
    "load_pd_table",
    "load_portfolio",
    "map_region",
    # Simulation
    "ComputeDriver",
    "CudaDriver",
    "HostDriver",
    "get_driver",
    "SimulationDispatcher",
    "SimulationResult",
    # Risk metrics
    "RiskSummary",
    "Histogram",
    "stable_mean",
    "value_at_risk",
    "expected_shortfall",
    "find_suitable_max_bound",
    "build_histogram",
    "summarize_losses",
    "create_summary_report",
]
