"""Compute drivers that run the simulation kernel.

A driver exposes the handful of backend operations the dispatcher needs:
open a device, create a queue, build the kernel, move buffers, launch,
wait, read back, release. Two drivers implement the same kernel contract:

- CudaDriver: the numba CUDA kernel in ``kernel.py``, on the first CUDA
  device or on the numba CUDA simulator (NUMBA_ENABLE_CUDASIM=1)
- HostDriver: a vectorized numpy evaluation on the host, in trial batches
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Tuple
import math
import numpy as np

from .config import EngineConfig, CONFIG
from .counter_rng import standard_normal, trial_key
from .errors import (
    ComputeEnvironmentError,
    CreditLossError,
    DeviceError,
    InvalidArgumentError,
    KernelBuildError,
)
from .portfolio import REGION, EAD, LGD, ALPHA, THRESHOLD, GAMMA


@contextmanager
def _device_call(operation: str):
    """Report any backend failure as a DeviceError naming the operation."""
    try:
        yield
    except CreditLossError:
        raise
    except Exception as exc:
        raise DeviceError(operation, getattr(exc, "code", None), str(exc)) from exc


class ComputeDriver(ABC):
    """Backend operations used by the simulation dispatcher."""

    name: str = "abstract"

    @abstractmethod
    def open_device(self) -> Any:
        """Open the first available device.

        Raises:
            ComputeEnvironmentError: If no device is available
        """

    @abstractmethod
    def device_name(self, device: Any) -> str:
        """Human readable device identifier."""

    @abstractmethod
    def create_queue(self, device: Any) -> Any:
        """Create the command queue launches and transfers are ordered on."""

    @abstractmethod
    def build_program(self, device: Any) -> Any:
        """Compile the simulation kernel.

        Raises:
            KernelBuildError: With the backend's diagnostic output
        """

    @abstractmethod
    def to_device(self, queue: Any, array: np.ndarray) -> Any:
        """Copy a read-only host array to device memory."""

    @abstractmethod
    def allocate(self, queue: Any, size: int) -> Any:
        """Allocate a float64 output buffer of ``size`` slots."""

    @abstractmethod
    def launch(self, queue: Any, kernel: Any, global_size: int, args: Tuple) -> None:
        """Enqueue the kernel over a 1-D range of ``global_size`` work items."""

    @abstractmethod
    def finish(self, queue: Any) -> None:
        """Block until everything enqueued on ``queue`` has completed."""

    @abstractmethod
    def read(self, queue: Any, buffer: Any) -> np.ndarray:
        """Copy a whole device buffer back to host memory."""

    def release(self, kind: str, handle: Any) -> None:
        """Release a handle returned by this driver.

        Args:
            kind: One of "device", "queue", "program", "buffer"
            handle: The handle to release
        """


def host_simulation(global_size: int, loans: np.ndarray, losses: np.ndarray,
                    lower: np.ndarray, num_loans: int, seed: int,
                    batch_elements: int = 1_000_000) -> None:
    """Host evaluation of the simulation kernel contract.

    Same inputs as the device kernel, plus the number of trials x loans
    evaluated per batch. Writes ``losses`` in place.
    """
    n_loans = int(num_loans)
    n_factors = int(round(math.sqrt(lower.shape[0])))
    lower = lower.reshape(n_factors, n_factors)
    loans = loans[:n_loans]

    region = loans[:, REGION].astype(np.intp)
    alpha = loans[:, ALPHA]
    gamma = loans[:, GAMMA]
    threshold = loans[:, THRESHOLD]
    severity = loans[:, EAD] * loans[:, LGD]

    factor_counters = np.arange(n_factors, dtype=np.int64)
    idio_counters = n_factors + np.arange(n_loans, dtype=np.int64)

    num_trials = min(global_size, losses.shape[0])
    batch = max(1, batch_elements // max(n_loans, 1))

    for start in range(0, num_trials, batch):
        stop = min(start + batch, num_trials)
        key = trial_key(seed, np.arange(start, stop, dtype=np.int64))[:, None]

        factors = standard_normal(key, factor_counters) @ lower.T
        asset_values = (alpha * factors[:, region]
                        + gamma * standard_normal(key, idio_counters))

        default_indicators = asset_values < threshold
        losses[start:stop] = np.sum(default_indicators * severity, axis=1)


class HostDriver(ComputeDriver):
    """Runs the kernel contract on the host with numpy."""

    name = "host"

    def __init__(self, batch_elements: int = 1_000_000):
        self.batch_elements = batch_elements

    def open_device(self) -> str:
        return "host"

    def device_name(self, device: Any) -> str:
        return "Host CPU (numpy)"

    def create_queue(self, device: Any) -> str:
        return "host-queue"

    def build_program(self, device: Any) -> Callable:
        batch_elements = self.batch_elements

        def kernel(global_size, *args):
            host_simulation(global_size, *args, batch_elements=batch_elements)

        return kernel

    def to_device(self, queue: Any, array: np.ndarray) -> np.ndarray:
        buffer = np.array(array, dtype=np.float64, order="C")
        buffer.setflags(write=False)
        return buffer

    def allocate(self, queue: Any, size: int) -> np.ndarray:
        return np.zeros(size, dtype=np.float64)

    def launch(self, queue: Any, kernel: Callable, global_size: int, args: Tuple) -> None:
        with _device_call("host kernel launch"):
            kernel(global_size, *args)

    def finish(self, queue: Any) -> None:
        pass

    def read(self, queue: Any, buffer: np.ndarray) -> np.ndarray:
        return buffer.copy()


class CudaDriver(ComputeDriver):
    """Runs the numba CUDA kernel on the first CUDA device.

    Device buffers, streams and kernels are reference counted by numba;
    releasing the device flushes pending deallocations and closes the
    context.
    """

    name = "cuda"

    def __init__(self, threads_per_block: int = 256):
        self.threads_per_block = threads_per_block

    @property
    def simulator(self) -> bool:
        from numba import config
        return bool(config.ENABLE_CUDASIM)

    def open_device(self) -> Any:
        from numba import cuda

        with _device_call("cuda.is_available"):
            available = cuda.is_available()
        if not available:
            raise ComputeEnvironmentError("No CUDA devices available")

        if not self.simulator:
            with _device_call("cuda.select_device"):
                cuda.select_device(0)
        with _device_call("cuda.current_context"):
            return cuda.current_context().device

    def device_name(self, device: Any) -> str:
        name = getattr(device, "name", "CUDA simulator")
        if isinstance(name, bytes):
            name = name.decode()
        return str(name)

    def create_queue(self, device: Any) -> Any:
        from numba import cuda

        with _device_call("cuda.stream"):
            return cuda.stream()

    def build_program(self, device: Any) -> Any:
        try:
            from . import kernel
            if not self.simulator:
                kernel.simulation.compile(kernel.KERNEL_SIGNATURE)
        except Exception as exc:
            raise KernelBuildError(str(exc)) from exc
        return kernel.simulation

    def to_device(self, queue: Any, array: np.ndarray) -> Any:
        from numba import cuda

        with _device_call("cuda.to_device"):
            return cuda.to_device(np.ascontiguousarray(array, dtype=np.float64), stream=queue)

    def allocate(self, queue: Any, size: int) -> Any:
        from numba import cuda

        with _device_call("cuda.device_array"):
            return cuda.device_array(size, dtype=np.float64, stream=queue)

    def launch(self, queue: Any, kernel: Any, global_size: int, args: Tuple) -> None:
        from numba.core.errors import NumbaError

        blocks = (global_size + self.threads_per_block - 1) // self.threads_per_block
        try:
            kernel[blocks, self.threads_per_block, queue](*args)
        except NumbaError as exc:
            # first launch of a lazily compiled kernel
            raise KernelBuildError(str(exc)) from exc
        except Exception as exc:
            raise DeviceError("simulation launch", getattr(exc, "code", None), str(exc)) from exc

    def finish(self, queue: Any) -> None:
        with _device_call("stream.synchronize"):
            queue.synchronize()

    def read(self, queue: Any, buffer: Any) -> np.ndarray:
        with _device_call("copy_to_host"):
            host = buffer.copy_to_host(stream=queue)
            queue.synchronize()
        return host

    def release(self, kind: str, handle: Any) -> None:
        from numba import cuda

        if kind != "device" or self.simulator:
            return
        with _device_call("cuda.close"):
            cuda.current_context().deallocations.clear()
            cuda.close()


def get_driver(name: str, config: EngineConfig = CONFIG) -> ComputeDriver:
    """Create the compute driver for a backend name."""
    if name == "cuda":
        return CudaDriver(threads_per_block=config.threads_per_block)
    elif name == "host":
        return HostDriver(batch_elements=config.host_batch_elements)
    raise InvalidArgumentError(f"Unknown compute backend '{name}', expected 'cuda' or 'host'")
