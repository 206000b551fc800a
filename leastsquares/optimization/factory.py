"""
Problem Factory Functions
=========================

Functional shortcuts around :class:`LeastSquaresProblem` for callers who
prefer plain function calls to the fluent builder:

- :func:`create`: build a problem from its elements
- :func:`model`: combine value and Jacobian callables
- :func:`weight_matrix` / :func:`weight_diagonal`: derive a weighted problem
- :func:`count_evaluations`: derive a problem that counts its evaluations
- :func:`evaluation_checker`: adapt a checker over ``(point, residuals)``
  pairs to one over evaluations
"""

from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np

from leastsquares.linalg.decomposition import weight_square_root
from leastsquares.optimization.convergence import FunctionChecker
from leastsquares.optimization.evaluation import Evaluation
from leastsquares.optimization.incrementor import Incrementor
from leastsquares.optimization.model import ValueAndJacobianFunction, as_vector
from leastsquares.optimization.problem import (
    DEFAULT_MAX_EVALUATIONS,
    DEFAULT_MAX_ITERATIONS,
    LeastSquaresProblem,
)

PointValuePair = Tuple[np.ndarray, np.ndarray]


def create(
    model,
    target,
    start,
    weight=None,
    checker=None,
    max_evaluations: int = DEFAULT_MAX_EVALUATIONS,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    jacobian: Optional[Callable] = None,
    lazy: bool = False,
    validator=None,
) -> LeastSquaresProblem:
    """Create a least-squares problem.

    Parameters
    ----------
    model : callable
        Either returns ``(value, jacobian)``, or returns the value only
        when ``jacobian`` is also given.
    target, start : array_like
        Observed values and initial guess.
    weight : array_like, optional
        Weight matrix, or its diagonal as a 1-D array.
    checker : ConvergenceChecker or callable, optional
        Convergence predicate.
    max_evaluations, max_iterations : int
        Budgets.
    jacobian : callable, optional
        Jacobian function, paired with ``model``.
    lazy : bool
        Defer model calls (requires ``jacobian``).
    validator : callable, optional
        Parameter validator.
    """
    if jacobian is not None:
        model = ValueAndJacobianFunction(model, jacobian)
    problem = LeastSquaresProblem(
        model=model,
        target=target,
        start=start,
        checker=checker,
        max_evaluations=max_evaluations,
        max_iterations=max_iterations,
        lazy=lazy,
        validator=validator,
    )
    if weight is not None:
        problem = weight_matrix(problem, weight)
    return problem


def model(value: Callable, jacobian: Callable) -> ValueAndJacobianFunction:
    """Combine a value callable and a Jacobian callable into one model."""
    return ValueAndJacobianFunction(value, jacobian)


def weight_matrix(problem: LeastSquaresProblem, weights) -> LeastSquaresProblem:
    """Return a copy of ``problem`` weighted by the matrix ``weights``.

    Any weight already applied to ``problem`` is replaced.
    """
    return problem.replace(weight_sqrt=weight_square_root(np.asarray(weights, dtype=float)))


def weight_diagonal(problem: LeastSquaresProblem, weights) -> LeastSquaresProblem:
    """Return a copy of ``problem`` weighted by a diagonal weight matrix."""
    return weight_matrix(problem, as_vector(weights, "weights"))


@dataclass(frozen=True, eq=False)
class _CountingProblem(LeastSquaresProblem):
    counter: Optional[Incrementor] = None

    def evaluate(self, point) -> Evaluation:
        self.counter.increment()
        return super().evaluate(point)


def count_evaluations(problem: LeastSquaresProblem, counter: Incrementor) -> LeastSquaresProblem:
    """Return a problem that increments ``counter`` on every evaluation.

    The original ``problem`` is not modified.
    """
    fields = {
        name: getattr(problem, name)
        for name in LeastSquaresProblem.__dataclass_fields__
    }
    return _CountingProblem(counter=counter, **fields)


def evaluation_checker(
    checker: Callable[[int, PointValuePair, PointValuePair], bool],
) -> FunctionChecker:
    """View a checker over ``(point, residuals)`` pairs as an evaluation checker."""

    def converged(iteration: int, previous: Evaluation, current: Evaluation) -> bool:
        if previous is None:
            return False
        return checker(
            iteration,
            (previous.point, previous.residuals),
            (current.point, current.residuals),
        )

    return FunctionChecker(converged)
