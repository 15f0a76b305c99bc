#!/usr/bin/env python
"""
Example usage of the credit loss engine.

This script demonstrates:
1. Writing a synthetic set of input tables
2. Loading the portfolio and calibration
3. Decomposing the regional correlation matrix
4. Running the Monte Carlo simulation on the host backend
5. Extracting expected loss, VaR and ES, and rendering the histogram
"""

import logging
import os
import tempfile
import numpy as np
import pandas as pd

from credit_loss import (
    EngineConfig,
    RegionFactorModel,
    SimulationDispatcher,
    create_summary_report,
    get_driver,
    load_calibration,
    summarize_losses,
)
from credit_loss.render import render_histogram


def write_sample_inputs(input_dir: str, num_loans: int = 2_000, seed: int = 7) -> None:
    """Write a synthetic portfolio and calibration to ``input_dir``."""
    rng = np.random.default_rng(seed)

    pd.DataFrame({
        "Region": ["CH", "EU", "Other"],
        "CH": [1.0, 0.6, 0.4],
        "EU": [0.6, 1.0, 0.5],
        "Other": [0.4, 0.5, 1.0],
    }).to_csv(os.path.join(input_dir, "Correlation.csv"), index=False)

    ratings = ["AAA", "AA", "A", "BBB", "BB", "B", "CCC"]
    pd.DataFrame({
        "Rating": ratings,
        "PD": [0.0003, 0.0007, 0.0015, 0.004, 0.012, 0.035, 0.15],
    }).to_csv(os.path.join(input_dir, "PD_Table.csv"), index=False)

    loan_ids = [f"L{i:05d}" for i in range(num_loans)]
    pd.DataFrame({
        "LoanId": loan_ids,
        "Region": rng.choice(["CH", "EU", "US", "SG"], size=num_loans, p=[0.5, 0.3, 0.1, 0.1]),
        "Rating": rng.choice(ratings, size=num_loans),
        "EAD": np.round(rng.lognormal(mean=14.5, sigma=1.0, size=num_loans), 0),
        "LGD": np.round(rng.uniform(0.2, 0.7, size=num_loans), 2),
    }).to_csv(os.path.join(input_dir, "Portfolio.csv"), index=False)

    pd.DataFrame({
        "LoanId": loan_ids,
        "CH": np.round(rng.uniform(0.3, 0.6, size=num_loans), 3),
        "EU": np.round(rng.uniform(0.3, 0.6, size=num_loans), 3),
        "Other": np.round(rng.uniform(0.2, 0.5, size=num_loans), 3),
    }).to_csv(os.path.join(input_dir, "Factor_Loadings.csv"), index=False)


def main():
    """Run the example."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 70)
    print("MONTE CARLO CREDIT LOSS ENGINE - EXAMPLE")
    print("=" * 70)

    config = EngineConfig(num_trials=20_000, seed=12345, backend="host")

    with tempfile.TemporaryDirectory() as input_dir:
        print("\n1. Writing sample input tables...")
        write_sample_inputs(input_dir)

        print("\n2. Loading portfolio and calibration...")
        calibration = load_calibration(input_dir, config)
        portfolio = calibration.portfolio
        print(f"   Number of loans: {len(portfolio)}")
        print(f"   Total EAD: {portfolio.total_ead:,.0f}")
        print(f"   Total Expected Loss: {portfolio.total_expected_loss:,.0f}")
        counts = {calibration.regions[r]: n for r, n in sorted(portfolio.region_counts().items())}
        print(f"   Loans per region: {counts}")

    print("\n3. Decomposing the regional correlation...")
    model = RegionFactorModel(calibration.regions)
    model.set_correlation(calibration.correlation)
    print(f"   Cholesky factor:\n{np.array2string(model.cholesky, precision=4)}")

    print("\n4. Running Monte Carlo simulation...")
    dispatcher = SimulationDispatcher(get_driver(config.backend, config))
    result = dispatcher.run(portfolio, model.cholesky, config.num_trials, seed=config.seed)
    print(f"   Trials simulated: {result.num_trials:,}")
    for line in result.caption.splitlines():
        print(f"   {line}")

    print("\n5. Risk metrics...")
    summary, histogram = summarize_losses(result.losses, bin_width=1_000_000)
    report = create_summary_report(summary, histogram)
    print(report.to_string(index=False, float_format=lambda v: f"{v:,.2f}"))
    print(f"   Losses beyond histogram range: {histogram.overflow}")

    path = render_histogram(summary, histogram, result.caption, "out/example_histogram.png")
    print(f"\n   Histogram written to {path}")

    print("\n" + "=" * 70)
    print("Example completed successfully!")
    print("=" * 70)


if __name__ == "__main__":
    main()
