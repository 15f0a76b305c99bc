"""Pytest fixtures for credit loss engine tests."""

import os
import sys

# CUDA tests run on the numba simulator unless told otherwise; numba reads
# this when it is first imported.
os.environ.setdefault("NUMBA_ENABLE_CUDASIM", "1")

import pytest
import numpy as np
import pandas as pd

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from credit_loss import EngineConfig, HostDriver, LoanRecord, Portfolio


def write_tables(directory, correlation=None, pd_table=None, loans=None, loadings=None):
    """Write the four input tables to ``directory`` as CSV."""
    if correlation is None:
        correlation = np.eye(3)
    if pd_table is None:
        pd_table = {"A": 0.02, "BBB": 0.05}
    if loans is None:
        loans = [("L1", "CH", "BBB", 100.0, 0.5), ("L2", "EU", "A", 200.0, 0.4)]
    if loadings is None:
        loadings = [("L1", 0.3, 0.2, 0.1), ("L2", 0.1, 0.4, 0.2)]

    regions = ["CH", "EU", "Other"]
    corr = pd.DataFrame(correlation, columns=regions)
    corr.insert(0, "Region", regions[:len(corr)])
    corr.to_csv(os.path.join(directory, "Correlation.csv"), index=False)

    pd.DataFrame(list(pd_table.items()), columns=["Rating", "PD"]).to_csv(
        os.path.join(directory, "PD_Table.csv"), index=False)
    pd.DataFrame(loans, columns=["LoanId", "Region", "Rating", "EAD", "LGD"]).to_csv(
        os.path.join(directory, "Portfolio.csv"), index=False)
    pd.DataFrame(loadings, columns=["LoanId", "CH", "EU", "Other"]).to_csv(
        os.path.join(directory, "Factor_Loadings.csv"), index=False)
    return directory


@pytest.fixture
def sample_loan():
    """Create a simple domestic loan."""
    return LoanRecord(
        loan_id="L1",
        region=0,
        ead=100.0,
        lgd=0.5,
        pd=0.05,
        alpha=0.3,
        rating="BBB",
    )


@pytest.fixture
def two_loan_portfolio(sample_loan):
    """One domestic and one regional loan."""
    portfolio = Portfolio(name="TwoLoans")
    portfolio.add_loan(sample_loan)
    portfolio.add_loan(LoanRecord(
        loan_id="L2",
        region=1,
        ead=200.0,
        lgd=0.4,
        pd=0.02,
        alpha=0.4,
        rating="A",
    ))
    return portfolio


@pytest.fixture
def risky_portfolio():
    """Loans with high default probabilities across all regions."""
    portfolio = Portfolio(name="Risky")
    for i in range(12):
        portfolio.add_loan(LoanRecord(
            loan_id=f"R{i}",
            region=i % 3,
            ead=1_000_000.0 * (i + 1),
            lgd=0.45,
            pd=0.2,
            alpha=0.5,
        ))
    return portfolio


@pytest.fixture
def sample_correlation():
    """A positive definite regional correlation matrix."""
    return np.array([
        [1.0, 0.5, 0.3],
        [0.5, 1.0, 0.4],
        [0.3, 0.4, 1.0],
    ])


@pytest.fixture
def host_driver():
    return HostDriver(batch_elements=10_000)


@pytest.fixture
def input_dir(tmp_path):
    """Directory holding a valid two-loan set of input tables."""
    return write_tables(str(tmp_path))


@pytest.fixture
def config():
    return EngineConfig(num_trials=500, seed=2024, backend="host")
