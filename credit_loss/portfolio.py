"""Loan and portfolio data structures for credit loss simulation."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging
import numpy as np
from scipy.stats import norm

logger = logging.getLogger(__name__)

# Column layout of the packed loan records handed to the simulation kernel.
RECORD_FIELDS = ("region", "ead", "lgd", "pd", "alpha", "threshold", "gamma")
REGION, EAD, LGD, PD, ALPHA, THRESHOLD, GAMMA = range(len(RECORD_FIELDS))


def default_threshold(pd: float) -> float:
    """Default threshold Φ⁻¹(PD) of the standard normal asset variable."""
    if pd <= 0:
        return -np.inf
    elif pd >= 1:
        return np.inf
    return float(norm.ppf(pd))


@dataclass(frozen=True)
class LoanRecord:
    """A single loan in the portfolio.

    Attributes:
        loan_id: Unique identifier of the loan
        region: Index of the loan's region (systematic factor)
        ead: Exposure at default
        lgd: Loss given default
        pd: Probability of default
        alpha: Loading on the regional systematic factor
        rating: Credit rating the PD was looked up from
        gamma: Weight of the idiosyncratic factor, sqrt(1 - alpha²)
        threshold: Default threshold, Φ⁻¹(pd)
    """
    loan_id: str
    region: int
    ead: float
    lgd: float
    pd: float
    alpha: float
    rating: Optional[str] = None
    gamma: float = field(init=False)
    threshold: float = field(init=False)

    def __post_init__(self):
        if not 0 <= self.pd <= 1:
            raise ValueError(f"PD must be between 0 and 1, got {self.pd}")
        if not np.isfinite(self.ead) or self.ead < 0:
            raise ValueError(f"EAD must be finite and non-negative, got {self.ead}")
        if not np.isfinite(self.lgd) or self.lgd < 0:
            raise ValueError(f"LGD must be finite and non-negative, got {self.lgd}")
        if self.region < 0:
            raise ValueError(f"Region index must be non-negative, got {self.region}")
        if self.lgd > 1:
            logger.warning("Loan %s has LGD %s above 1", self.loan_id, self.lgd)

        if abs(self.alpha) > 1:
            logger.warning("Loan %s has factor loading %s > 1", self.loan_id, self.alpha)
            gamma = float("nan")
        else:
            gamma = float(np.sqrt(1 - self.alpha**2))

        object.__setattr__(self, "gamma", gamma)
        object.__setattr__(self, "threshold", default_threshold(self.pd))

    @property
    def expected_loss(self) -> float:
        """Expected loss of this loan."""
        return self.pd * self.lgd * self.ead

    @property
    def max_loss(self) -> float:
        """Loss if the loan defaults."""
        return self.ead * self.lgd


class Portfolio:
    """Ordered collection of loans.

    Insertion order is kept: it fixes the layout of the packed device
    records and so the order in which the kernel draws idiosyncratic factors.
    """

    def __init__(self, name: str = "Portfolio"):
        self.name = name
        self._loans: Dict[str, LoanRecord] = {}

    def add_loan(self, loan: LoanRecord) -> None:
        """Append a loan to the portfolio."""
        if loan.loan_id in self._loans:
            raise ValueError(f"Loan '{loan.loan_id}' already exists in portfolio")
        self._loans[loan.loan_id] = loan

    def get_loan(self, loan_id: str) -> LoanRecord:
        """Get a loan by id."""
        if loan_id not in self._loans:
            raise KeyError(f"Loan '{loan_id}' not found in portfolio")
        return self._loans[loan_id]

    @property
    def loans(self) -> List[LoanRecord]:
        """Return list of all loans, in insertion order."""
        return list(self._loans.values())

    @property
    def loan_ids(self) -> List[str]:
        return list(self._loans.keys())

    def __len__(self) -> int:
        return len(self._loans)

    def __iter__(self):
        return iter(self._loans.values())

    def __contains__(self, loan_id: str) -> bool:
        return loan_id in self._loans

    @property
    def total_ead(self) -> float:
        """Total exposure at default across all loans."""
        return sum(loan.ead for loan in self._loans.values())

    @property
    def total_expected_loss(self) -> float:
        """Total expected loss across all loans."""
        return sum(loan.expected_loss for loan in self._loans.values())

    @property
    def max_loss(self) -> float:
        """Portfolio loss if every loan defaults."""
        return sum(loan.max_loss for loan in self._loans.values())

    def region_counts(self) -> Dict[int, int]:
        """Number of loans per region index."""
        counts: Dict[int, int] = {}
        for loan in self._loans.values():
            counts[loan.region] = counts.get(loan.region, 0) + 1
        return counts

    def to_records(self) -> np.ndarray:
        """Pack the loans into the kernel's record layout.

        Returns:
            C-contiguous float64 array of shape (num_loans, len(RECORD_FIELDS))
        """
        records = np.zeros((len(self._loans), len(RECORD_FIELDS)), dtype=np.float64)
        for i, loan in enumerate(self._loans.values()):
            records[i, REGION] = loan.region
            records[i, EAD] = loan.ead
            records[i, LGD] = loan.lgd
            records[i, PD] = loan.pd
            records[i, ALPHA] = loan.alpha
            records[i, THRESHOLD] = loan.threshold
            records[i, GAMMA] = loan.gamma
        return records
