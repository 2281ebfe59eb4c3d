"""
mpclib Exception Classes
========================

Custom exceptions for mpclib error handling.
"""

from typing import Optional


class MPCError(Exception):
    """Base exception for all mpclib errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class DimensionError(MPCError):
    """
    Raised when matrix/vector dimensions are incompatible.
    """

    def __init__(self, message: str) -> None:
        super().__init__(f"Dimension mismatch: {message}")


class InvalidInputError(MPCError):
    """
    Raised when input data is invalid.

    Examples: NaN values, control horizon longer than the prediction
    horizon, solver parameters of the wrong controller mode.
    """

    def __init__(self, message: str) -> None:
        super().__init__(f"Invalid input: {message}")


class NotInitializedError(MPCError):
    """
    Raised when an operation is called before ``initialize``.
    """

    def __init__(self, component: str = "component") -> None:
        self.component = component
        super().__init__(f"{component} used before initialization")


class UnsupportedOperationError(MPCError):
    """
    Raised when a controller mode does not support an operation.

    The linear controller only accepts pre-discretized, pre-scaled
    models, so continuous-time and scaling setters are rejected.
    """

    def __init__(self, message: str) -> None:
        super().__init__(f"Unsupported operation: {message}")


class OptimizationError(MPCError):
    """
    Raised when the solver does not return a usable solution.

    The nonlinear optimizer catches it and holds the previous command.
    """

    def __init__(
        self,
        message: str = "No optimal solution found",
        status: Optional[int] = None,
    ) -> None:
        self.status = status
        super().__init__(message)
