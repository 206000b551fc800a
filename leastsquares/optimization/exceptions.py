"""Exceptions raised by the least-squares optimizers.

Every fatal condition of an optimization run maps to one class of this
module. Nothing is retried inside the package: errors propagate to the
caller immediately, carrying enough context (iteration count, last point,
cost, threshold) to diagnose the failure.

Exception Hierarchy:
    LeastSquaresError (base)
    ├── ConfigurationError (invalid problem or optimizer settings)
    │   └── DimensionMismatchError (inconsistent vector/matrix sizes)
    ├── ConvergenceError (the algorithm stalled)
    │   └── SingularProblemError (normal equations cannot be solved)
    ├── SingularMatrixError (matrix not invertible at the given threshold)
    └── MaxCountExceededError (budget exhausted)
        ├── TooManyEvaluationsError
        └── TooManyIterationsError

Examples
--------
Telling "ran out of budget" apart from "algorithm stalled":

>>> try:
...     optimum = optimizer.optimize(problem)
... except MaxCountExceededError as e:
...     logger.warning(f"Budget of {e.max_count} exhausted")
... except ConvergenceError as e:
...     logger.error(f"Stalled after {e.iteration_count} iterations")

The optimum point can be valid while its uncertainty is not:

>>> optimum = optimizer.optimize(problem)
>>> try:
...     sigma = optimum.get_sigma(1e-14)
... except SingularMatrixError:
...     sigma = None
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import numpy as np


class LeastSquaresError(Exception):
    """Base exception for all least-squares errors.

    Attributes
    ----------
    error_context : dict
        Additional context about the error (sizes, counts, thresholds).
    """

    def __init__(self, message: str, error_context: dict | None = None):
        super().__init__(message)
        self.error_context = error_context or {}

    def __str__(self) -> str:
        """Return formatted error message with context."""
        base_msg = super().__str__()
        if self.error_context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.error_context.items())
            return f"{base_msg} (context: {context_str})"
        return base_msg


class ConfigurationError(LeastSquaresError, ValueError):
    """Raised when a problem or an optimizer is configured inconsistently.

    Configuration errors are detected eagerly, when the problem or the
    optimizer is built, and are never retryable.
    """


class DimensionMismatchError(ConfigurationError):
    """Raised when two sizes that must agree do not.

    Attributes
    ----------
    actual : int
        Size that was found.
    expected : int
        Size that was required.
    what : str
        Name of the offending quantity (``"target"``, ``"jacobian rows"``...).
    """

    def __init__(
        self,
        actual: int,
        expected: int,
        what: str = "dimension",
        error_context: dict | None = None,
    ):
        context = error_context or {}
        context["actual"] = actual
        context["expected"] = expected
        super().__init__(f"Dimension mismatch for {what}: {actual} != {expected}", context)
        self.actual = actual
        self.expected = expected
        self.what = what


class ConvergenceError(LeastSquaresError):
    """Raised when an optimizer cannot make further progress.

    This is distinct from budget exhaustion: the algorithm itself stalled,
    for instance because a tolerance is too small to ever be satisfied in
    double precision or because the linearized problem is singular.

    Attributes
    ----------
    iteration_count : int
        Number of iterations completed before failure.
    final_cost : float
        Cost at the last accepted point.
    parameters : np.ndarray
        Last accepted point.
    """

    def __init__(
        self,
        message: str,
        iteration_count: int | None = None,
        final_cost: float | None = None,
        parameters: np.ndarray | None = None,
        error_context: dict | None = None,
    ):
        context = error_context or {}
        if iteration_count is not None:
            context["iteration_count"] = iteration_count
        if final_cost is not None:
            context["final_cost"] = final_cost
        if parameters is not None:
            context["n_params"] = len(parameters)

        super().__init__(message, error_context=context)
        self.iteration_count = iteration_count
        self.final_cost = final_cost
        self.parameters = parameters


class SingularMatrixError(LeastSquaresError):
    """Raised when a matrix is singular at the requested threshold.

    Covariance computation raises this when the final Jacobian is rank
    deficient, independently of whether the optimization succeeded.

    Attributes
    ----------
    threshold : float
        Singularity threshold that was applied.
    """

    def __init__(
        self,
        message: str = "Matrix is singular",
        threshold: float | None = None,
        error_context: dict | None = None,
    ):
        context = error_context or {}
        if threshold is not None:
            context["threshold"] = threshold
        super().__init__(message, error_context=context)
        self.threshold = threshold


class SingularProblemError(ConvergenceError, SingularMatrixError):
    """Raised by Gauss-Newton when the linearized problem is singular.

    It is both a convergence failure (the run stops) and a singular-matrix
    condition (the cause), so callers may catch either.
    """

    def __init__(
        self,
        message: str = "Unable to solve singular problem",
        iteration_count: int | None = None,
        final_cost: float | None = None,
        parameters: np.ndarray | None = None,
        threshold: float | None = None,
    ):
        context = {}
        if threshold is not None:
            context["threshold"] = threshold
        super().__init__(
            message,
            iteration_count=iteration_count,
            final_cost=final_cost,
            parameters=parameters,
            error_context=context,
        )
        self.threshold = threshold


class MaxCountExceededError(LeastSquaresError):
    """Raised when a counter goes past its allowed maximum.

    Attributes
    ----------
    max_count : int
        The exhausted budget.
    iteration_count : int or None
        Iterations completed when the budget ran out, if known.
    parameters : np.ndarray or None
        Last accepted point, if known.
    """

    label = "count"

    def __init__(
        self,
        max_count: int,
        error_context: dict | None = None,
        iteration_count: int | None = None,
        parameters: np.ndarray | None = None,
    ):
        context = error_context or {}
        if iteration_count is not None:
            context["iteration_count"] = iteration_count
        if parameters is not None:
            context["n_params"] = len(parameters)

        super().__init__(f"Maximal {self.label} ({max_count}) exceeded", context)
        self.max_count = max_count
        self.iteration_count = iteration_count
        self.parameters = parameters


class TooManyEvaluationsError(MaxCountExceededError):
    """Raised when the evaluation budget is exhausted."""

    label = "number of evaluations"


class TooManyIterationsError(MaxCountExceededError):
    """Raised when the iteration budget is exhausted."""

    label = "number of iterations"
