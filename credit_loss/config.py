"""Run configuration for the credit loss engine."""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .errors import InvalidArgumentError

# Upper limit on the number of regional systematic factors the device
# kernel can hold in local memory.
MAX_REGIONS = 8


@dataclass
class EngineConfig:
    """Configuration for a single simulation run.

    Attributes:
        num_trials: Number of Monte Carlo trials
        seed: 32-bit kernel seed, drawn at random when None
        regions: Region names, in the column order of the factor tables
        region_codes: Maps portfolio region codes to region names
        fallback_region: Region for any code not in ``region_codes``
        default_pd: PD used for ratings missing from the PD table; unknown
            ratings are an error when None
        bin_width: Width of one histogram bin, in currency units
        num_bins: Number of histogram bins
        backend: Compute driver name ("cuda" or "host")
        threads_per_block: CUDA block size
        host_batch_elements: Trials x loans evaluated per host batch
    """

    num_trials: int = 100_000
    seed: Optional[int] = None

    regions: Tuple[str, ...] = ("Domestic", "Regional", "Other")
    region_codes: Dict[str, str] = field(
        default_factory=lambda: {"CH": "Domestic", "EU": "Regional"}
    )
    fallback_region: str = "Other"
    default_pd: Optional[float] = None

    bin_width: float = 10_000_000
    num_bins: int = 30

    backend: str = "cuda"
    threads_per_block: int = 256
    host_batch_elements: int = 1_000_000

    correlation_file: str = "Correlation.csv"
    pd_table_file: str = "PD_Table.csv"
    portfolio_file: str = "Portfolio.csv"
    factor_loadings_file: str = "Factor_Loadings.csv"
    output_path: str = "out/histogram.png"

    def __post_init__(self):
        self.regions = tuple(self.regions)
        if not 1 <= len(self.regions) <= MAX_REGIONS:
            raise InvalidArgumentError(
                f"Region count must be between 1 and {MAX_REGIONS}, got {len(self.regions)}"
            )
        if len(set(self.regions)) != len(self.regions):
            raise InvalidArgumentError(f"Duplicate region names in {self.regions}")
        if self.fallback_region not in self.regions:
            raise InvalidArgumentError(
                f"Fallback region '{self.fallback_region}' is not one of {self.regions}"
            )
        for code, name in self.region_codes.items():
            if name not in self.regions:
                raise InvalidArgumentError(
                    f"Region code '{code}' maps to unknown region '{name}'"
                )
        if self.num_trials <= 0:
            raise InvalidArgumentError(f"num_trials must be positive, got {self.num_trials}")
        if self.seed is not None and not 0 <= self.seed < 2**32:
            raise InvalidArgumentError(f"seed must fit in 32 bits, got {self.seed}")
        if self.default_pd is not None and not 0 <= self.default_pd <= 1:
            raise InvalidArgumentError(f"default_pd must be between 0 and 1, got {self.default_pd}")
        if self.bin_width <= 0 or self.num_bins <= 0:
            raise InvalidArgumentError("Histogram bin width and count must be positive")
        if self.threads_per_block <= 0 or self.host_batch_elements <= 0:
            raise InvalidArgumentError("Launch sizes must be positive")

    @property
    def num_regions(self) -> int:
        return len(self.regions)

    def region_index(self, name: str) -> int:
        """Column index of a region name."""
        return self.regions.index(name)


CONFIG = EngineConfig()
