"""
Least-Squares Problem Definition
================================

A :class:`LeastSquaresProblem` bundles everything an optimizer needs:

- the model (value and Jacobian at a point)
- the observed target vector ``y``
- the square root ``L`` of the weight matrix (identity when absent)
- the start point
- the convergence checker and optional parameter validator
- the evaluation and iteration budgets

Problems are immutable. Variants are derived with
:meth:`LeastSquaresProblem.replace`, which re-runs all validation, and
the :class:`LeastSquaresBuilder` offers a fluent way to assemble one.

Examples
--------
>>> problem = (
...     LeastSquaresBuilder()
...     .with_model(value_function, jacobian_function)
...     .with_target(y)
...     .with_start([1.0, 1.0])
...     .with_checker(SimpleVectorValueChecker(1e-10, 1e-10))
...     .with_max_evaluations(100)
...     .with_max_iterations(100)
...     .build()
... )
>>> evaluation = problem.evaluate(problem.start)
"""

import dataclasses
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

import numpy as np

from leastsquares.linalg.decomposition import weight_square_root
from leastsquares.optimization.convergence import ConvergenceChecker, as_checker
from leastsquares.optimization.evaluation import DenseEvaluation, Evaluation, LazyEvaluation
from leastsquares.optimization.exceptions import (
    ConfigurationError,
    DimensionMismatchError,
)
from leastsquares.optimization.incrementor import Incrementor
from leastsquares.optimization.model import (
    MultivariateJacobianFunction,
    ValueAndJacobianFunction,
    as_matrix,
    as_vector,
)
from leastsquares.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_EVALUATIONS = 1000
DEFAULT_MAX_ITERATIONS = 1000


class ParameterValidator(ABC):
    """Maps a proposed parameter point to an acceptable one.

    Typical uses are clamping to bounds or projecting onto a constraint
    set. The returned point must have the same size as the input.
    """

    @abstractmethod
    def validate(self, point: np.ndarray) -> np.ndarray:
        """Return the point that will actually be evaluated."""

    def __call__(self, point: np.ndarray) -> np.ndarray:
        return self.validate(point)


class BoundsValidator(ParameterValidator):
    """Clamp every parameter into ``[lower, upper]``."""

    def __init__(self, lower=None, upper=None):
        self.lower = None if lower is None else as_vector(lower, "lower bounds")
        self.upper = None if upper is None else as_vector(upper, "upper bounds")
        if self.lower is not None and self.upper is not None:
            if self.lower.shape != self.upper.shape:
                raise DimensionMismatchError(
                    self.upper.shape[0], self.lower.shape[0], what="upper bounds"
                )
            if np.any(self.lower > self.upper):
                raise ConfigurationError("Lower bounds must not exceed upper bounds")

    def validate(self, point: np.ndarray) -> np.ndarray:
        if self.lower is None and self.upper is None:
            return point
        return np.clip(point, self.lower, self.upper)


@dataclass(frozen=True, eq=False)
class LeastSquaresProblem:
    """Immutable description of a weighted least-squares problem.

    Attributes
    ----------
    model : MultivariateJacobianFunction
        Model returning the value and Jacobian at a point.
    target : np.ndarray
        Observed values ``y`` (length m).
    start : np.ndarray
        Initial guess (length n).
    weight_sqrt : np.ndarray, optional
        Square root ``L`` of the weight matrix (m x m); identity if None.
    checker : ConvergenceChecker, optional
        Convergence predicate. Gauss-Newton requires one.
    max_evaluations : int
        Evaluation budget.
    max_iterations : int
        Iteration budget.
    lazy : bool
        Defer the model calls until residuals or Jacobian are requested.
    validator : callable, optional
        Parameter validator applied to every evaluated point.
    """

    model: MultivariateJacobianFunction
    target: np.ndarray
    start: np.ndarray
    weight_sqrt: Optional[np.ndarray] = None
    checker: Optional[ConvergenceChecker] = None
    max_evaluations: int = DEFAULT_MAX_EVALUATIONS
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    lazy: bool = False
    validator: Optional[Callable[[np.ndarray], np.ndarray]] = None

    def __post_init__(self):
        model = self.model
        if not isinstance(model, MultivariateJacobianFunction):
            if not callable(model):
                raise ConfigurationError(f"Model must be callable, got {type(model).__name__}")
            model = MultivariateJacobianFunction(model)
        object.__setattr__(self, "model", model)

        target = np.array(as_vector(self.target, "target"), copy=True)
        start = np.array(as_vector(self.start, "start point"), copy=True)
        if target.shape[0] == 0:
            raise ConfigurationError("Target must contain at least one observation")
        if start.shape[0] == 0:
            raise ConfigurationError("Start point must contain at least one parameter")
        target.setflags(write=False)
        start.setflags(write=False)
        object.__setattr__(self, "target", target)
        object.__setattr__(self, "start", start)

        if self.weight_sqrt is not None:
            weight_sqrt = np.array(as_matrix(self.weight_sqrt, "weight"), copy=True)
            m = target.shape[0]
            if weight_sqrt.shape[0] != m:
                raise DimensionMismatchError(weight_sqrt.shape[0], m, what="weight rows")
            if weight_sqrt.shape[1] != m:
                raise DimensionMismatchError(weight_sqrt.shape[1], m, what="weight columns")
            weight_sqrt.setflags(write=False)
            object.__setattr__(self, "weight_sqrt", weight_sqrt)

        object.__setattr__(self, "checker", as_checker(self.checker))

        if self.max_evaluations <= 0:
            raise ConfigurationError(
                f"max_evaluations must be positive, got {self.max_evaluations}"
            )
        if self.max_iterations <= 0:
            raise ConfigurationError(
                f"max_iterations must be positive, got {self.max_iterations}"
            )
        if self.lazy and not isinstance(self.model, ValueAndJacobianFunction):
            raise ConfigurationError(
                "Lazy evaluation requires a model built from separate value "
                "and jacobian functions"
            )
        if self.validator is not None and not callable(self.validator):
            raise ConfigurationError("Parameter validator must be callable")

    @property
    def observation_size(self) -> int:
        return self.target.shape[0]

    @property
    def parameter_size(self) -> int:
        return self.start.shape[0]

    def evaluation_counter(self) -> Incrementor:
        """Fresh evaluation counter bounded by :attr:`max_evaluations`."""
        return Incrementor.for_evaluations(self.max_evaluations)

    def iteration_counter(self) -> Incrementor:
        """Fresh iteration counter bounded by :attr:`max_iterations`."""
        return Incrementor.for_iterations(self.max_iterations)

    def validate(self, point) -> np.ndarray:
        """Apply the parameter validator (if any) to a copy of ``point``."""
        candidate = np.array(as_vector(point, "point"), dtype=float, copy=True)
        if candidate.shape[0] != self.parameter_size:
            raise DimensionMismatchError(candidate.shape[0], self.parameter_size, what="point")
        if self.validator is None:
            return candidate
        validated = as_vector(self.validator(candidate), "validated point")
        if validated.shape[0] != self.parameter_size:
            raise DimensionMismatchError(
                validated.shape[0], self.parameter_size, what="validated point"
            )
        return validated

    def evaluate(self, point) -> Evaluation:
        """Evaluate the model at ``point``.

        The validator is applied first; the returned evaluation refers to
        the validated point.

        Raises
        ------
        DimensionMismatchError
            If the model output does not match the problem dimensions.
        """
        p = self.validate(point)
        if self.lazy:
            return LazyEvaluation(self.model, self.target, p, self.weight_sqrt)
        values, jacobian = self.model.value(p)
        return DenseEvaluation(values, jacobian, self.target, p, self.weight_sqrt)

    def replace(self, **overrides: Any) -> "LeastSquaresProblem":
        """Return a copy with some fields replaced; validation runs again."""
        return dataclasses.replace(self, **overrides)

    def __repr__(self) -> str:
        return (
            f"LeastSquaresProblem(observations={self.observation_size}, "
            f"parameters={self.parameter_size}, weighted={self.weight_sqrt is not None}, "
            f"lazy={self.lazy}, max_evaluations={self.max_evaluations}, "
            f"max_iterations={self.max_iterations})"
        )


@dataclass(frozen=True)
class LeastSquaresBuilder:
    """Fluent, immutable builder for :class:`LeastSquaresProblem`.

    Each ``with_*`` method returns a new builder; the original is left
    unchanged, so a partially configured builder can be shared as a
    template. Validation happens in :meth:`build`.
    """

    model: Optional[MultivariateJacobianFunction] = None
    target: Optional[np.ndarray] = None
    start: Optional[np.ndarray] = None
    weight: Optional[np.ndarray] = None
    weight_sqrt: Optional[np.ndarray] = None
    checker: Optional[Union[ConvergenceChecker, Callable]] = None
    max_evaluations: int = DEFAULT_MAX_EVALUATIONS
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    lazy: bool = False
    validator: Optional[Callable[[np.ndarray], np.ndarray]] = None

    def with_model(self, model, jacobian: Optional[Callable] = None) -> "LeastSquaresBuilder":
        """Set the model.

        Either a single callable returning ``(value, jacobian)``, or a value
        callable plus a separate ``jacobian`` callable.
        """
        if jacobian is not None:
            model = ValueAndJacobianFunction(model, jacobian)
        elif not isinstance(model, MultivariateJacobianFunction):
            model = MultivariateJacobianFunction(model)
        return dataclasses.replace(self, model=model)

    def with_target(self, target) -> "LeastSquaresBuilder":
        return dataclasses.replace(self, target=target)

    def with_start(self, start) -> "LeastSquaresBuilder":
        return dataclasses.replace(self, start=start)

    def with_weight(self, weight) -> "LeastSquaresBuilder":
        """Set the weight matrix ``W`` (or its diagonal as a 1-D array)."""
        return dataclasses.replace(self, weight=weight, weight_sqrt=None)

    def with_weight_sqrt(self, weight_sqrt) -> "LeastSquaresBuilder":
        """Set ``L`` directly, with ``LᵗL = W``."""
        return dataclasses.replace(self, weight=None, weight_sqrt=weight_sqrt)

    def with_checker(self, checker) -> "LeastSquaresBuilder":
        return dataclasses.replace(self, checker=checker)

    def with_max_evaluations(self, max_evaluations: int) -> "LeastSquaresBuilder":
        return dataclasses.replace(self, max_evaluations=max_evaluations)

    def with_max_iterations(self, max_iterations: int) -> "LeastSquaresBuilder":
        return dataclasses.replace(self, max_iterations=max_iterations)

    def with_lazy_evaluation(self, lazy: bool = True) -> "LeastSquaresBuilder":
        return dataclasses.replace(self, lazy=lazy)

    def with_validator(self, validator) -> "LeastSquaresBuilder":
        return dataclasses.replace(self, validator=validator)

    def build(self) -> LeastSquaresProblem:
        """Build and validate the problem.

        Raises
        ------
        ConfigurationError
            If the model, target or start point is missing, or any setting
            is inconsistent.
        """
        missing = [
            name for name in ("model", "target", "start") if getattr(self, name) is None
        ]
        if missing:
            raise ConfigurationError(
                f"Missing problem settings: {', '.join(missing)}", {"missing": missing}
            )

        weight_sqrt = self.weight_sqrt
        if self.weight is not None:
            weight_sqrt = weight_square_root(self.weight)

        problem = LeastSquaresProblem(
            model=self.model,
            target=self.target,
            start=self.start,
            weight_sqrt=weight_sqrt,
            checker=self.checker,
            max_evaluations=self.max_evaluations,
            max_iterations=self.max_iterations,
            lazy=self.lazy,
            validator=self.validator,
        )
        logger.debug(f"Built {problem!r}")
        return problem
