"""
Optimizer Contract
==================

Both optimizers implement :class:`LeastSquaresOptimizer`: an immutable
value object whose single operation, ``optimize(problem)``, runs one
complete optimization and returns an :class:`Optimum`.

Optimizers hold no per-run state. Evaluation and iteration counters are
created inside each ``optimize()`` call, so one optimizer instance can be
shared between threads.

:func:`create_optimizer` selects an implementation by name, for use from
configuration files.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

import numpy as np

from leastsquares.optimization.evaluation import Evaluation
from leastsquares.optimization.exceptions import ConfigurationError
from leastsquares.optimization.incrementor import Incrementor
from leastsquares.optimization.optimum import Optimum
from leastsquares.optimization.problem import LeastSquaresProblem


class OptimizerKind(Enum):
    """Available optimization algorithms.

    Attributes
    ----------
    GAUSS_NEWTON : str
        Classical Gauss-Newton on the normal equations.
    LEVENBERG_MARQUARDT : str
        Trust-region Levenberg-Marquardt (MINPACK).
    """

    GAUSS_NEWTON = "gauss_newton"
    LEVENBERG_MARQUARDT = "levenberg_marquardt"

    @classmethod
    def from_name(cls, name: str | OptimizerKind) -> OptimizerKind:
        """Parse a kind, accepting case and ``-``/``_`` variations."""
        if isinstance(name, cls):
            return name
        normalized = str(name).strip().lower().replace("-", "_").replace(" ", "_")
        aliases = {"gn": cls.GAUSS_NEWTON, "lm": cls.LEVENBERG_MARQUARDT}
        if normalized in aliases:
            return aliases[normalized]
        for kind in cls:
            if kind.value == normalized:
                return kind
        raise ConfigurationError(
            f"Unknown optimizer '{name}'",
            {"available": [kind.value for kind in cls]},
        )


class LeastSquaresOptimizer(ABC):
    """Base class of the least-squares optimizers."""

    @abstractmethod
    def optimize(self, problem: LeastSquaresProblem) -> Optimum:
        """Solve ``problem``.

        Raises
        ------
        TooManyEvaluationsError, TooManyIterationsError
            If a budget is exhausted.
        ConvergenceError
            If the algorithm cannot make further progress.
        """

    @staticmethod
    def _evaluate(
        problem: LeastSquaresProblem,
        counter: Incrementor,
        point: np.ndarray,
        iterations: Incrementor,
        last_point: np.ndarray,
    ) -> Evaluation:
        # budget errors report the run position, not the rejected trial point
        counter.increment(iterations.count, last_point)
        return problem.evaluate(point)

    @staticmethod
    def _next_iteration(iterations: Incrementor, last_point: np.ndarray) -> int:
        return iterations.increment(iterations.count, last_point)

    @staticmethod
    def _optimum(evaluation: Evaluation, evaluations: Incrementor, iterations: Incrementor) -> Optimum:
        return Optimum.of(evaluation, evaluations.count, iterations.count)


def create_optimizer(kind: str | OptimizerKind, **settings: Any) -> LeastSquaresOptimizer:
    """Create an optimizer of the given kind.

    Parameters
    ----------
    kind : str or OptimizerKind
        ``"gauss_newton"`` (``"gn"``) or ``"levenberg_marquardt"`` (``"lm"``).
    **settings
        Keyword arguments forwarded to the optimizer constructor.

    Examples
    --------
    >>> optimizer = create_optimizer("lm", cost_relative_tolerance=1e-12)
    >>> optimizer = create_optimizer("gauss_newton", decomposition="lu")
    """
    from leastsquares.optimization.gauss_newton import GaussNewtonOptimizer
    from leastsquares.optimization.levenberg_marquardt import LevenbergMarquardtOptimizer

    selected = OptimizerKind.from_name(kind)
    factory = {
        OptimizerKind.GAUSS_NEWTON: GaussNewtonOptimizer,
        OptimizerKind.LEVENBERG_MARQUARDT: LevenbergMarquardtOptimizer,
    }[selected]
    try:
        return factory(**settings)
    except TypeError as e:
        raise ConfigurationError(
            f"Invalid settings for {selected.value}: {e}", {"settings": sorted(settings)}
        ) from e
