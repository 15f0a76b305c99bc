"""Exception hierarchy for the credit loss engine.

Every failure is fatal to a run: nothing in the engine retries or recovers
locally, so callers only need to catch ``CreditLossError``.
"""

from typing import Optional


class CreditLossError(Exception):
    """Base class for all engine errors."""


class InputSourceError(CreditLossError, OSError):
    """An input table is missing or cannot be read."""


class CalibrationError(CreditLossError, ValueError):
    """Calibration data is malformed or inconsistent."""


class SingularMatrixError(CalibrationError):
    """The correlation matrix is not positive definite."""


class ComputeEnvironmentError(CreditLossError, EnvironmentError):
    """No compute platform or device is available."""


class KernelBuildError(CreditLossError):
    """The simulation kernel failed to compile.

    Attributes:
        build_log: Diagnostic text reported by the backend compiler
    """

    def __init__(self, build_log: str):
        super().__init__(f"Kernel build failed:\n{build_log}")
        self.build_log = build_log


class DeviceError(CreditLossError):
    """A compute backend call did not succeed.

    Attributes:
        operation: Name of the failing backend operation
        code: Backend status code, if the backend reported one
    """

    def __init__(self, operation: str, code: Optional[int] = None, detail: str = ""):
        message = f"{operation} failed"
        if code is not None:
            message += f" [code: {code}]"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.operation = operation
        self.code = code


class InvalidArgumentError(CreditLossError, ValueError):
    """An argument is outside the domain of an operation."""
