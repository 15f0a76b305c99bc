"""Risk metrics and loss histogram from a simulated loss sample."""

from typing import Iterable, Tuple
from dataclasses import dataclass
import numpy as np
import pandas as pd

from .errors import InvalidArgumentError

BIN_WIDTH = 10_000_000
NUM_BINS = 30

# Mantissas of the "nice" axis bounds, scaled by 10, 100, 1000, ...
BOUND_LADDER = (1, 1.5, 2, 2.5, 3, 3.5, 4.5, 5, 6, 8)


@dataclass
class RiskSummary:
    """Risk metrics of a loss sample.

    Attributes:
        expected_loss: Mean loss over all trials
        var_95: 95% Value at Risk
        var_99: 99% Value at Risk
        es_95: 95% Expected Shortfall
        es_99: 99% Expected Shortfall
        num_trials: Size of the loss sample
    """
    expected_loss: float
    var_95: float
    var_99: float
    es_95: float
    es_99: float
    num_trials: int


@dataclass
class Histogram:
    """Fixed-width loss histogram.

    Attributes:
        counts: Number of losses per bin
        bin_width: Width of each bin, in loss units
        overflow: Number of losses at or beyond the last bin's upper edge
        max_bound: Display upper bound for the bin counts
    """
    counts: np.ndarray
    bin_width: float
    overflow: int
    max_bound: int

    @property
    def num_bins(self) -> int:
        return len(self.counts)

    @property
    def upper_edge(self) -> float:
        """Upper edge of the last bin."""
        return self.bin_width * self.num_bins

    @property
    def edges(self) -> np.ndarray:
        return np.arange(self.num_bins + 1) * self.bin_width


def stable_mean(values: Iterable[float]) -> float:
    """Mean by incremental update, μ ← μ + (x − μ) / (i + 1).

    Avoids the growth of a running sum over long samples whose values
    span several orders of magnitude.
    """
    if isinstance(values, np.ndarray):
        values = values.tolist()
    mu = 0.0
    for i, x in enumerate(values):
        mu += (x - mu) / (i + 1)
    return mu


def quantile_index(n: int, confidence: float) -> int:
    """Index of the empirical quantile in an ascending sample of size n."""
    if n <= 0:
        raise InvalidArgumentError("Empty loss sample")
    if not 0 <= confidence < 1:
        raise InvalidArgumentError(f"Confidence must be in [0, 1), got {confidence}")
    return min(int(n * confidence), n - 1)


def value_at_risk(sorted_losses: np.ndarray, confidence: float) -> float:
    """Empirical VaR of an ascending loss sample."""
    return float(sorted_losses[quantile_index(len(sorted_losses), confidence)])


def expected_shortfall(sorted_losses: np.ndarray, confidence: float) -> float:
    """Mean of the losses at and beyond the VaR rank of an ascending sample."""
    return stable_mean(sorted_losses[quantile_index(len(sorted_losses), confidence):])


def find_suitable_max_bound(n: int) -> int:
    """Smallest readable axis bound not below ``n``.

    Candidates are the ladder mantissas times 10, 100, 1000, ... in
    increasing order, e.g. 10, 15, 20, 25, 30, 35, 45, 50, 60, 80, 100, 150.
    """
    scale = 1
    while True:
        for s in BOUND_LADDER:
            bound = int(s * scale * 10)
            if bound >= n:
                return bound
        scale *= 10


def build_histogram(losses: np.ndarray, bin_width: float = BIN_WIDTH,
                    num_bins: int = NUM_BINS) -> Histogram:
    """Count losses into ``num_bins`` bins of ``bin_width``.

    Losses at or beyond ``num_bins * bin_width`` are only counted as
    overflow.
    """
    if bin_width <= 0 or num_bins <= 0:
        raise InvalidArgumentError("Histogram bin width and count must be positive")
    losses = np.asarray(losses, dtype=np.float64)
    if np.any(losses < 0):
        raise InvalidArgumentError("Losses must be non-negative")

    in_range = losses < bin_width * num_bins
    bins = np.floor(losses[in_range] / bin_width).astype(np.intp)
    counts = np.bincount(np.minimum(bins, num_bins - 1), minlength=num_bins)

    return Histogram(
        counts=counts,
        bin_width=bin_width,
        overflow=int(np.count_nonzero(~in_range)),
        max_bound=find_suitable_max_bound(int(counts.max())),
    )


def summarize_losses(losses: np.ndarray, bin_width: float = BIN_WIDTH,
                     num_bins: int = NUM_BINS) -> Tuple[RiskSummary, Histogram]:
    """Risk metrics and histogram of a loss sample.

    Sorts ``losses`` in place; copy first if the trial order is needed.

    Args:
        losses: Simulated portfolio losses, one per trial
        bin_width: Histogram bin width
        num_bins: Number of histogram bins

    Returns:
        Tuple of (RiskSummary, Histogram)
    """
    if len(losses) == 0:
        raise InvalidArgumentError("Cannot summarize an empty loss sample")
    if np.any(np.isnan(losses)):
        raise InvalidArgumentError("Loss sample contains NaN")

    losses.sort()

    summary = RiskSummary(
        expected_loss=stable_mean(losses),
        var_95=value_at_risk(losses, 0.95),
        var_99=value_at_risk(losses, 0.99),
        es_95=expected_shortfall(losses, 0.95),
        es_99=expected_shortfall(losses, 0.99),
        num_trials=len(losses),
    )
    return summary, build_histogram(losses, bin_width, num_bins)


def create_summary_report(summary: RiskSummary, histogram: Histogram) -> pd.DataFrame:
    """Create a DataFrame report of the risk metrics.

    Args:
        summary: Risk metrics of the loss sample
        histogram: Loss histogram of the same sample

    Returns:
        DataFrame with one row per metric
    """
    data = [
        {'Metric': 'Expected loss', 'Value': summary.expected_loss},
        {'Metric': 'VaR 95%', 'Value': summary.var_95},
        {'Metric': 'VaR 99%', 'Value': summary.var_99},
        {'Metric': 'ES 95%', 'Value': summary.es_95},
        {'Metric': 'ES 99%', 'Value': summary.es_99},
    ]

    df = pd.DataFrame(data)
    df['Value_m'] = df['Value'] / 1e6
    df.attrs['num_trials'] = summary.num_trials
    df.attrs['overflow'] = histogram.overflow
    return df
