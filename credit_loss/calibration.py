"""Loading of the portfolio and its calibration tables.

All tables are CSV files with one header row. Columns are taken by
position; the header text is ignored.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Union
import logging
import numpy as np
import pandas as pd

from .config import EngineConfig, CONFIG
from .errors import CalibrationError, InputSourceError
from .portfolio import LoanRecord, Portfolio

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class Calibration:
    """Everything a run needs from its input tables.

    Attributes:
        portfolio: The loans, in portfolio table order
        correlation: Regional factor correlation matrix
        pd_table: Rating to probability of default lookup
        regions: Region names, in factor column order
    """
    portfolio: Portfolio
    correlation: np.ndarray
    pd_table: Dict[str, float]
    regions: List[str]


def _read_table(path: PathLike, min_columns: int) -> pd.DataFrame:
    """Read a CSV table, mapping I/O failures to InputSourceError."""
    path = Path(path)
    try:
        table = pd.read_csv(path, header=0, dtype=str, keep_default_na=False,
                            skipinitialspace=True)
    except FileNotFoundError as exc:
        raise InputSourceError(f"Input table not found: {path}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise InputSourceError(f"Cannot read input table {path}: {exc}") from exc
    except pd.errors.EmptyDataError as exc:
        raise CalibrationError(f"Input table {path} is empty") from exc
    except pd.errors.ParserError as exc:
        raise CalibrationError(f"Malformed input table {path}: {exc}") from exc

    if table.shape[1] < min_columns:
        raise CalibrationError(
            f"{path.name} must have at least {min_columns} columns, got {table.shape[1]}"
        )
    return table


def _numeric(table: pd.DataFrame, columns, source: str) -> np.ndarray:
    """Numeric values of the given positional columns."""
    block = table.iloc[:, columns]
    values = block.apply(pd.to_numeric, errors="coerce")
    if values.isna().to_numpy().any():
        bad = block[values.isna().any(axis=1)]
        raise CalibrationError(
            f"Non-numeric values in {source}, rows {list(bad.index)}"
        )
    result = values.to_numpy(dtype=np.float64)
    infinite = ~np.isfinite(result).all(axis=1)
    if infinite.any():
        raise CalibrationError(
            f"Non-finite values in {source}, rows {list(block.index[infinite])}"
        )
    return result


def load_correlation_matrix(path: PathLike, num_regions: int = 3) -> np.ndarray:
    """Load the regional correlation matrix.

    Args:
        path: CSV with a row label followed by ``num_regions`` values per row
        num_regions: Expected matrix dimension

    Returns:
        Array of shape (num_regions, num_regions)
    """
    table = _read_table(path, min_columns=num_regions + 1)
    if table.shape != (num_regions, num_regions + 1):
        raise CalibrationError(
            f"Correlation table must have {num_regions} rows of {num_regions} values, "
            f"got {table.shape[0]} rows of {table.shape[1] - 1}"
        )
    matrix = _numeric(table, slice(1, num_regions + 1), "correlation table")

    if not np.allclose(matrix, matrix.T):
        raise CalibrationError("Correlation matrix must be symmetric")
    if not np.allclose(np.diag(matrix), 1.0):
        raise CalibrationError("Diagonal elements must be 1")
    if np.any(matrix < -1) or np.any(matrix > 1):
        raise CalibrationError("Correlations must be between -1 and 1")
    return matrix


def load_pd_table(path: PathLike) -> Dict[str, float]:
    """Load the rating to PD lookup.

    Later rows win when a rating appears twice.
    """
    table = _read_table(path, min_columns=2)
    ratings = table.iloc[:, 0].astype(str).str.strip()
    probabilities = _numeric(table, [1], "PD table")[:, 0]

    if np.any(probabilities < 0) or np.any(probabilities > 1):
        raise CalibrationError("PD table probabilities must be between 0 and 1")

    pd_table: Dict[str, float] = {}
    for rating, probability in zip(ratings, probabilities):
        pd_table[rating] = float(probability)
    return pd_table


def map_region(code: str, config: EngineConfig = CONFIG) -> int:
    """Region index of a portfolio region code.

    Codes not listed in ``config.region_codes`` map to the fallback region.
    """
    name = config.region_codes.get(str(code).strip(), config.fallback_region)
    return config.region_index(name)


def _check_ids(ids: pd.Series, source: str) -> None:
    duplicated = ids[ids.duplicated()].unique()
    if len(duplicated):
        raise CalibrationError(f"Duplicate loan ids in {source}: {list(duplicated)[:10]}")


def load_portfolio(portfolio_path: PathLike, loadings_path: PathLike,
                   pd_table: Dict[str, float],
                   config: EngineConfig = CONFIG) -> Portfolio:
    """Load the loans, joining each to its factor loadings by loan id.

    Args:
        portfolio_path: CSV of (id, region code, rating, EAD, LGD)
        loadings_path: CSV of (id, one loading per region)
        pd_table: Rating to PD lookup
        config: Region mapping and default PD

    Returns:
        Portfolio in portfolio table order
    """
    num_regions = config.num_regions
    loans = _read_table(portfolio_path, min_columns=5)
    loadings = _read_table(loadings_path, min_columns=num_regions + 1)

    loan_ids = loans.iloc[:, 0].astype(str).str.strip()
    loading_ids = loadings.iloc[:, 0].astype(str).str.strip()
    _check_ids(loan_ids, "portfolio table")
    _check_ids(loading_ids, "factor loading table")

    missing = sorted(set(loan_ids) - set(loading_ids))
    if missing:
        raise CalibrationError(f"Loans without factor loadings: {missing[:10]}")
    orphaned = sorted(set(loading_ids) - set(loan_ids))
    if orphaned:
        raise CalibrationError(f"Factor loadings for unknown loans: {orphaned[:10]}")

    exposures = _numeric(loans, [3, 4], "portfolio table")
    alphas = pd.DataFrame(
        _numeric(loadings, slice(1, num_regions + 1), "factor loading table"),
        index=loading_ids,
    )

    missing_ratings = set()
    portfolio = Portfolio(name=Path(portfolio_path).stem)
    for row, loan_id in enumerate(loan_ids):
        region = map_region(loans.iat[row, 1], config)
        rating = str(loans.iat[row, 2]).strip()

        if rating in pd_table:
            pd_value = pd_table[rating]
        elif config.default_pd is not None:
            missing_ratings.add(rating)
            pd_value = config.default_pd
        else:
            raise CalibrationError(f"Loan '{loan_id}' has unknown rating '{rating}'")

        try:
            loan = LoanRecord(
                loan_id=loan_id,
                region=region,
                ead=float(exposures[row, 0]),
                lgd=float(exposures[row, 1]),
                pd=pd_value,
                alpha=float(alphas.at[loan_id, region]),
                rating=rating,
            )
        except ValueError as exc:
            raise CalibrationError(f"Invalid loan '{loan_id}': {exc}") from exc
        portfolio.add_loan(loan)

    if missing_ratings:
        logger.warning("Ratings %s not in PD table, using default PD %s",
                       sorted(missing_ratings), config.default_pd)
    return portfolio


def load_calibration(input_dir: PathLike, config: EngineConfig = CONFIG) -> Calibration:
    """Load all input tables from a directory."""
    input_dir = Path(input_dir)
    correlation = load_correlation_matrix(
        input_dir / config.correlation_file, config.num_regions
    )
    pd_table = load_pd_table(input_dir / config.pd_table_file)
    portfolio = load_portfolio(
        input_dir / config.portfolio_file,
        input_dir / config.factor_loadings_file,
        pd_table,
        config,
    )
    logger.info("Loaded %d loans (total EAD %.0f) from %s",
                len(portfolio), portfolio.total_ead, input_dir)
    return Calibration(
        portfolio=portfolio,
        correlation=correlation,
        pd_table=pd_table,
        regions=list(config.regions),
    )
