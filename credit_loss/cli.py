"""Command line runner: load, simulate, summarize, render."""

from pathlib import Path
from typing import List, Optional, Tuple
import argparse
import logging
import sys

from .calibration import load_calibration
from .config import EngineConfig
from .devices import get_driver
from .errors import CreditLossError
from .model import RegionFactorModel
from .risk_metrics import Histogram, RiskSummary, create_summary_report, summarize_losses
from .simulation import SimulationDispatcher, SimulationResult

logger = logging.getLogger(__name__)


def run_pipeline(input_dir, config: EngineConfig,
                 output_path: Optional[Path] = None
                 ) -> Tuple[SimulationResult, RiskSummary, Histogram]:
    """Run one full simulation from the input tables.

    Args:
        input_dir: Directory holding the four input tables
        config: Run configuration
        output_path: Where to write the histogram image, or None to skip

    Returns:
        Tuple of (SimulationResult, RiskSummary, Histogram). The result's
        losses are sorted ascending.
    """
    calibration = load_calibration(input_dir, config)

    model = RegionFactorModel(calibration.regions)
    model.set_correlation(calibration.correlation)

    dispatcher = SimulationDispatcher(get_driver(config.backend, config))
    result = dispatcher.run(calibration.portfolio, model.cholesky,
                            config.num_trials, seed=config.seed)

    summary, histogram = summarize_losses(result.losses, config.bin_width, config.num_bins)

    if output_path is not None:
        from .render import render_histogram
        written = render_histogram(summary, histogram, result.caption, output_path)
        logger.info("Histogram written to %s", written)

    return result, summary, histogram


def build_parser() -> argparse.ArgumentParser:
    defaults = EngineConfig()
    parser = argparse.ArgumentParser(
        prog="credit_loss",
        description="Monte Carlo loss distribution of a loan portfolio",
    )
    parser.add_argument("--input-dir", default="in",
                        help="directory with the input tables (default: %(default)s)")
    parser.add_argument("--output", default=defaults.output_path,
                        help="histogram image path (default: %(default)s)")
    parser.add_argument("--trials", type=int, default=defaults.num_trials,
                        help="number of simulated trials (default: %(default)s)")
    parser.add_argument("--seed", type=int, default=None,
                        help="32-bit kernel seed (default: random)")
    parser.add_argument("--backend", choices=["cuda", "host"], default=defaults.backend,
                        help="compute backend (default: %(default)s)")
    parser.add_argument("--default-pd", type=float, default=None,
                        help="PD for ratings missing from the PD table (default: error)")
    parser.add_argument("--no-plot", action="store_true",
                        help="skip writing the histogram image")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        config = EngineConfig(
            num_trials=args.trials,
            seed=args.seed,
            backend=args.backend,
            default_pd=args.default_pd,
            output_path=args.output,
        )
        output_path = None if args.no_plot else Path(config.output_path)
        result, summary, histogram = run_pipeline(args.input_dir, config, output_path)
    except CreditLossError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1

    report = create_summary_report(summary, histogram)
    print(f"Trials: {result.num_trials:,} (seed {result.seed})")
    print(report.to_string(index=False, float_format=lambda v: f"{v:,.2f}"))
    print(f"Losses beyond histogram range: {histogram.overflow}")
    print(result.caption)
    return 0


if __name__ == "__main__":
    sys.exit(main())
