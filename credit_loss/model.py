"""Regional factor model: correlation structure and its Cholesky factor."""

from typing import List, Optional, Sequence
import math
import numpy as np

from .errors import CalibrationError, SingularMatrixError
from .portfolio import LoanRecord, default_threshold


def cholesky_lower(matrix: np.ndarray) -> np.ndarray:
    """Lower triangular Cholesky factor of a square matrix.

    Cholesky-Banachiewicz: the factor is filled row by row, each entry
    using only entries of L already computed. Only the lower triangle of
    ``matrix`` is read.

    Args:
        matrix: Symmetric positive definite matrix of shape (n, n)

    Returns:
        Lower triangular L of shape (n, n) with L @ L.T == matrix

    Raises:
        SingularMatrixError: If a diagonal pivot is not positive
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise CalibrationError(f"Matrix must be square, got shape {matrix.shape}")

    n = matrix.shape[0]
    eps = np.finfo(np.float64).eps
    result = np.zeros((n, n), dtype=np.float64)

    for i in range(n):
        for j in range(i + 1):
            s = matrix[i, j]
            for k in range(j):
                s -= result[i, k] * result[j, k]
            if i == j:
                # s <= 0 also catches the non-PSD case, where sqrt is undefined
                if not s > 0 or math.sqrt(s) < eps:
                    raise SingularMatrixError(
                        f"Matrix is too singular: pivot {s!r} at row {i}"
                    )
                result[j, j] = math.sqrt(s)
            else:
                result[i, j] = s / result[j, j]

    return result


class RegionFactorModel:
    """One systematic factor per region, correlated across regions.

    Implements the asset variable of loan i in region r:
        X_i = α_i × Y_r + √(1 - α_i²) × ε_i,   Y = L × Z

    Where:
        - Z: Independent standard normal factors, one per region
        - L: Cholesky factor of the regional correlation matrix
        - ε_i: Idiosyncratic shock (standard normal)

    Default occurs when X_i < Φ⁻¹(PD_i)
    """

    def __init__(self, regions: Sequence[str] = ("Domestic", "Regional", "Other")):
        self.regions: List[str] = list(regions)
        self._correlation: Optional[np.ndarray] = None
        self._cholesky: Optional[np.ndarray] = None

    @property
    def num_regions(self) -> int:
        return len(self.regions)

    def set_correlation(self, correlation_matrix: np.ndarray) -> None:
        """Validate and store the regional correlation matrix.

        Args:
            correlation_matrix: Symmetric matrix of shape
                                (num_regions, num_regions) with unit diagonal
        """
        correlation_matrix = np.asarray(correlation_matrix, dtype=np.float64)
        n = self.num_regions
        if correlation_matrix.shape != (n, n):
            raise CalibrationError(
                f"Correlation matrix must be {n}x{n}, got {correlation_matrix.shape}"
            )

        if not np.all(np.isfinite(correlation_matrix)):
            raise CalibrationError("Correlation matrix must be finite")

        if not np.allclose(correlation_matrix, correlation_matrix.T):
            raise CalibrationError("Correlation matrix must be symmetric")

        if not np.allclose(np.diag(correlation_matrix), 1.0):
            raise CalibrationError("Diagonal elements must be 1")

        if np.any(correlation_matrix < -1) or np.any(correlation_matrix > 1):
            raise CalibrationError("Correlations must be between -1 and 1")

        cholesky = cholesky_lower(correlation_matrix)
        cholesky.setflags(write=False)
        correlation_matrix = correlation_matrix.copy()
        correlation_matrix.setflags(write=False)

        self._correlation = correlation_matrix
        self._cholesky = cholesky

    @property
    def correlation(self) -> np.ndarray:
        if self._correlation is None:
            raise ValueError("Correlation matrix not set. Call set_correlation first.")
        return self._correlation

    @property
    def cholesky(self) -> np.ndarray:
        """Read-only Cholesky factor of the correlation matrix."""
        if self._cholesky is None:
            raise ValueError("Correlation matrix not set. Call set_correlation first.")
        return self._cholesky

    def calculate_default_threshold(self, loan: LoanRecord) -> float:
        return default_threshold(loan.pd)

    def asset_correlation(self, loan_a: LoanRecord, loan_b: LoanRecord) -> float:
        """Asset correlation between two loans.

            ρ_ab = α_a × α_b × Σ[r_a, r_b]
        """
        rho = self.correlation[loan_a.region, loan_b.region]
        return float(loan_a.alpha * loan_b.alpha * rho)
