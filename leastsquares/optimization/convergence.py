"""
Convergence Checkers
====================

A convergence checker is a pure predicate over two successive
evaluations, ``converged(iteration, previous, current) -> bool``, used by
the optimizers to decide when to stop.

Available checkers:

- :class:`EvaluationVectorChecker`: component-wise comparison of the
  weighted residuals or of the parameter points
- :class:`EvaluationRmsChecker`: comparison of the RMS values
- :class:`FunctionChecker`: adapter for plain callables

Every checker reports "not converged" on the first iteration
(``iteration == 0`` or no previous evaluation).
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

import numpy as np

from leastsquares.optimization.evaluation import Evaluation
from leastsquares.optimization.exceptions import ConfigurationError

COMPARE_RESIDUALS = "residuals"
COMPARE_POINT = "point"


def _validate_tolerances(relative_tolerance: float, absolute_tolerance: float) -> None:
    if relative_tolerance <= 0 and absolute_tolerance <= 0:
        raise ConfigurationError(
            "At least one of the relative and absolute tolerances must be positive",
            {"relative_tolerance": relative_tolerance, "absolute_tolerance": absolute_tolerance},
        )


def _within(previous, current, relative_tolerance: float, absolute_tolerance: float):
    difference = np.abs(previous - current)
    size = np.maximum(np.abs(previous), np.abs(current))
    return (difference <= size * relative_tolerance) | (difference <= absolute_tolerance)


class ConvergenceChecker(ABC):
    """Base class of all convergence checkers.

    Parameters
    ----------
    max_iterations : int, optional
        If set, convergence is declared once the iteration count reaches
        this value, whatever the evaluations look like.
    """

    def __init__(self, max_iterations: Optional[int] = None):
        if max_iterations is not None and max_iterations <= 0:
            raise ConfigurationError(
                f"Checker max_iterations must be positive, got {max_iterations}"
            )
        self.max_iterations = max_iterations

    def converged(
        self,
        iteration: int,
        previous: Optional[Evaluation],
        current: Evaluation,
    ) -> bool:
        if previous is None or iteration <= 0:
            return False
        if self.max_iterations is not None and iteration >= self.max_iterations:
            return True
        return self._converged(iteration, previous, current)

    @abstractmethod
    def _converged(self, iteration: int, previous: Evaluation, current: Evaluation) -> bool:
        """Compare two evaluations; the first iteration is already excluded."""

    def __call__(self, iteration, previous, current) -> bool:
        return self.converged(iteration, previous, current)


class EvaluationVectorChecker(ConvergenceChecker):
    """Component-wise comparison of successive evaluations.

    Converged when every compared component has changed by no more than
    ``relative_tolerance`` times its magnitude, or by no more than
    ``absolute_tolerance``. Either criterion alone unblocks a component.

    Parameters
    ----------
    relative_tolerance : float
        Relative threshold, ignored if non-positive.
    absolute_tolerance : float
        Absolute threshold, ignored if non-positive.
    compare : str
        ``"residuals"`` to compare weighted residual vectors, ``"point"``
        to compare parameter vectors.
    max_iterations : int, optional
        Forced convergence after this many iterations.
    """

    def __init__(
        self,
        relative_tolerance: float,
        absolute_tolerance: float,
        compare: str = COMPARE_RESIDUALS,
        max_iterations: Optional[int] = None,
    ):
        super().__init__(max_iterations)
        _validate_tolerances(relative_tolerance, absolute_tolerance)
        if compare not in (COMPARE_RESIDUALS, COMPARE_POINT):
            raise ConfigurationError(
                f"Unknown comparison '{compare}', expected "
                f"'{COMPARE_RESIDUALS}' or '{COMPARE_POINT}'"
            )
        self.relative_tolerance = relative_tolerance
        self.absolute_tolerance = absolute_tolerance
        self.compare = compare

    def _vector(self, evaluation: Evaluation) -> np.ndarray:
        if self.compare == COMPARE_POINT:
            return evaluation.point
        return evaluation.residuals

    def _converged(self, iteration, previous, current) -> bool:
        p = self._vector(previous)
        c = self._vector(current)
        return bool(np.all(_within(p, c, self.relative_tolerance, self.absolute_tolerance)))

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(relative_tolerance={self.relative_tolerance}, "
            f"absolute_tolerance={self.absolute_tolerance}, compare={self.compare!r})"
        )


class SimpleVectorValueChecker(EvaluationVectorChecker):
    """Vector checker on the weighted residuals."""

    def __init__(self, relative_tolerance, absolute_tolerance, max_iterations=None):
        super().__init__(relative_tolerance, absolute_tolerance, COMPARE_RESIDUALS, max_iterations)


class SimplePointChecker(EvaluationVectorChecker):
    """Vector checker on the parameter points."""

    def __init__(self, relative_tolerance, absolute_tolerance, max_iterations=None):
        super().__init__(relative_tolerance, absolute_tolerance, COMPARE_POINT, max_iterations)


class EvaluationRmsChecker(ConvergenceChecker):
    """Converged when the RMS of successive evaluations agree.

    The same relative-or-absolute rule as :class:`EvaluationVectorChecker`
    is applied to the single RMS value.
    """

    def __init__(
        self,
        relative_tolerance: float,
        absolute_tolerance: float = 0.0,
        max_iterations: Optional[int] = None,
    ):
        super().__init__(max_iterations)
        _validate_tolerances(relative_tolerance, absolute_tolerance)
        self.relative_tolerance = relative_tolerance
        self.absolute_tolerance = absolute_tolerance

    def _converged(self, iteration, previous, current) -> bool:
        return bool(
            _within(
                np.float64(previous.rms),
                np.float64(current.rms),
                self.relative_tolerance,
                self.absolute_tolerance,
            )
        )


class FunctionChecker(ConvergenceChecker):
    """Wraps a plain ``callable(iteration, previous, current) -> bool``."""

    def __init__(self, function: Callable[[int, Evaluation, Evaluation], bool]):
        super().__init__()
        self.function = function

    def converged(self, iteration, previous, current) -> bool:
        # The wrapped function sees every call, first iteration included
        return bool(self.function(iteration, previous, current))

    def _converged(self, iteration, previous, current) -> bool:
        return bool(self.function(iteration, previous, current))


def as_checker(checker) -> Optional[ConvergenceChecker]:
    """Return ``checker`` as a :class:`ConvergenceChecker` (None passes through)."""
    if checker is None or isinstance(checker, ConvergenceChecker):
        return checker
    if callable(checker):
        return FunctionChecker(checker)
    raise ConfigurationError(f"Not a convergence checker: {checker!r}")
