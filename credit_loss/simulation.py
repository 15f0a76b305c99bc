"""Monte Carlo simulation dispatch for credit portfolio losses."""

from contextlib import ExitStack
from dataclasses import dataclass
from typing import Optional
import logging
import time
import numpy as np

from .config import MAX_REGIONS
from .counter_rng import KERNEL_INTERFACE_VERSION
from .devices import ComputeDriver
from .errors import DeviceError, InvalidArgumentError
from .portfolio import REGION, Portfolio

logger = logging.getLogger(__name__)


@dataclass
class SimulationResult:
    """Output of one simulation run.

    Attributes:
        losses: Portfolio loss per trial, in trial order
        num_trials: Number of trials simulated
        seed: Kernel seed the trials were derived from
        device_name: Identifier of the device the kernel ran on
        elapsed_seconds: Wall time from kernel launch to completion
        kernel_version: Kernel interface version
    """
    losses: np.ndarray
    num_trials: int
    seed: int
    device_name: str
    elapsed_seconds: float
    kernel_version: int = KERNEL_INTERFACE_VERSION

    @property
    def caption(self) -> str:
        """Free-text caption for the rendered histogram."""
        return (f"Simulation time: {self.elapsed_seconds * 1000:.0f} ms\n"
                f"Device identifier: {self.device_name}")


def draw_seed(random_state: Optional[int] = None) -> int:
    """Draw a 32-bit kernel seed."""
    rng = np.random.default_rng(random_state)
    return int(rng.integers(0, 2**32, dtype=np.uint64))


class SimulationDispatcher:
    """Runs the simulation kernel for a portfolio on a compute driver.

    Every device handle the run acquires is released before ``run``
    returns, on success and on failure alike. The dispatcher itself holds
    no device state between runs.
    """

    def __init__(self, driver: ComputeDriver):
        self.driver = driver

    def run(self, portfolio: Portfolio, cholesky: np.ndarray, num_trials: int,
            seed: Optional[int] = None) -> SimulationResult:
        """Simulate ``num_trials`` portfolio losses.

        Args:
            portfolio: The loans to simulate
            cholesky: Lower triangular factor of the regional correlation
            num_trials: Number of independent trials
            seed: 32-bit kernel seed, drawn at random when None

        Returns:
            SimulationResult holding one loss per trial
        """
        if num_trials <= 0:
            raise InvalidArgumentError(f"num_trials must be positive, got {num_trials}")
        if seed is None:
            seed = draw_seed()
            logger.info("Using random kernel seed %d", seed)
        if not 0 <= seed < 2**32:
            raise InvalidArgumentError(f"seed must fit in 32 bits, got {seed}")

        lower = np.asarray(cholesky, dtype=np.float64)
        if lower.ndim != 2 or lower.shape[0] != lower.shape[1]:
            raise InvalidArgumentError(f"Cholesky factor must be square, got {lower.shape}")
        if not 1 <= lower.shape[0] <= MAX_REGIONS:
            raise InvalidArgumentError(
                f"Kernel supports 1 to {MAX_REGIONS} regions, got {lower.shape[0]}"
            )
        records = portfolio.to_records()
        if len(records) == 0:
            raise InvalidArgumentError("Portfolio is empty")
        if records[:, REGION].max() >= lower.shape[0]:
            raise InvalidArgumentError("Portfolio uses a region outside the Cholesky factor")

        driver = self.driver
        with ExitStack() as handles:
            def acquire(kind, handle):
                handles.callback(self._release, kind, handle)
                return handle

            device = acquire("device", driver.open_device())
            device_name = driver.device_name(device)
            logger.debug("Opened device %s on %s driver", device_name, driver.name)

            queue = acquire("queue", driver.create_queue(device))
            program = acquire("program", driver.build_program(device))

            loans_buffer = acquire("buffer", driver.to_device(queue, records))
            lower_buffer = acquire("buffer", driver.to_device(queue, lower.ravel()))
            losses_buffer = acquire("buffer", driver.allocate(queue, num_trials))
            logger.debug("Transferred %d loan records", len(records))

            args = (loans_buffer, losses_buffer, lower_buffer,
                    np.uint32(len(records)), np.uint32(seed))

            start_time = time.perf_counter()
            driver.launch(queue, program, num_trials, args)
            driver.finish(queue)
            elapsed = time.perf_counter() - start_time

            losses = np.asarray(driver.read(queue, losses_buffer), dtype=np.float64)

        if losses.shape != (num_trials,):
            raise DeviceError("read losses", detail=f"expected {num_trials} values, got {losses.shape}")

        logger.info("Simulated %d trials over %d loans on %s in %.0f ms",
                    num_trials, len(records), device_name, elapsed * 1000)

        return SimulationResult(
            losses=losses,
            num_trials=num_trials,
            seed=seed,
            device_name=device_name,
            elapsed_seconds=elapsed,
        )

    def _release(self, kind: str, handle) -> None:
        logger.debug("Releasing %s", kind)
        self.driver.release(kind, handle)
