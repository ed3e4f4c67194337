"""
Exception types raised by the finite volume flux library.
"""


class FVFluxError(Exception):
    """Base class for all library errors."""


class IllPosedProblemError(FVFluxError, ValueError):
    """Boundary data leaves the test function problem singular or inconsistent."""


class ShapeMismatchError(FVFluxError, ValueError):
    """Solution or test function array does not match the system."""


class LinearSolveError(FVFluxError, RuntimeError):
    """Factorization or solve of a linear system failed."""


class ConvergenceError(FVFluxError, RuntimeError):
    """Newton iteration did not reach the requested tolerance."""
