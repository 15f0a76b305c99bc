"""Loss distribution chart."""

from pathlib import Path
from typing import Union
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np

from .risk_metrics import Histogram, RiskSummary

BAR_COLOR = "#1f3fbf"
FRAME_COLOR = "gray"


def format_iterations(n: int) -> str:
    """Compact trial count for the chart title: 9500, 100k, 2.50M."""
    if n < 10_000:
        return str(n)
    elif n < 1_000_000:
        return f"{n // 1_000}k"
    return f"{n / 1_000_000:.2f}M"


def render_histogram(summary: RiskSummary, histogram: Histogram, caption: str,
                     path: Union[str, Path], currency: str = "CHF") -> Path:
    """Draw the loss histogram with its risk metrics and save it as an image.

    Args:
        summary: Risk metrics of the loss sample
        histogram: Bin counts and display bound
        caption: Free text printed under the chart
        path: Output image path; parent directories are created
        currency: Currency label of the loss axis

    Returns:
        The path written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(figsize=(6.5, 5.5))
    edges_m = histogram.edges / 1e6
    ax.bar(edges_m[:-1], histogram.counts, width=histogram.bin_width / 1e6,
           align="edge", color=BAR_COLOR)

    ax.set_xlim(0, edges_m[-1])
    ax.set_ylim(0, histogram.max_bound)
    ax.set_xticks(edges_m[::2])
    ax.set_yticks(np.linspace(0, histogram.max_bound, 11))
    for spine in ax.spines.values():
        spine.set_color(FRAME_COLOR)

    ax.set_title(f"Loss distribution ({format_iterations(summary.num_trials)} iterations)",
                 fontweight="bold")
    ax.set_xlabel(f"Loss in {currency}m")
    ax.set_ylabel("Frequency")

    labels = "\n".join(["Expected loss", "VaR 95%", "VaR 99%", "ES 95%", "ES 99%"])
    values = "\n".join(f"{v / 1e6:.2f}" for v in (
        summary.expected_loss, summary.var_95, summary.var_99,
        summary.es_95, summary.es_99))
    ax.text(0.62, 0.96, labels, transform=ax.transAxes, va="top", ha="left", fontsize=8)
    ax.text(0.97, 0.96, values, transform=ax.transAxes, va="top", ha="right", fontsize=8)

    fig.text(0.02, 0.01, caption, fontsize=7, va="bottom", ha="left")
    fig.subplots_adjust(bottom=0.2)
    fig.savefig(path)
    plt.close(fig)
    return path
