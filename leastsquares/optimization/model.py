"""
Model Function Adapters
=======================

An optimizer only needs the model value ``f(x)`` and its Jacobian
``J(x)`` at a point. Callers provide them either as two callables or as
a single callable returning both; the adapters below give every variant
the same interface and check output shapes.
"""

from typing import Callable, Tuple

import numpy as np

from leastsquares.optimization.exceptions import DimensionMismatchError

ArrayFunction = Callable[[np.ndarray], np.ndarray]


class MultivariateJacobianFunction:
    """Model that returns ``(f(x), J(x))`` in a single call."""

    def __init__(self, function: Callable[[np.ndarray], Tuple[np.ndarray, np.ndarray]]):
        self.function = function

    def value(self, point: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        values, jacobian = self.function(np.array(point, dtype=float))
        return as_vector(values, "model value"), as_matrix(jacobian, "jacobian")

    def __call__(self, point):
        return self.value(point)


class ValueAndJacobianFunction(MultivariateJacobianFunction):
    """Model built from separate value and Jacobian callables.

    Keeping the two callables apart allows lazy evaluations to defer the
    Jacobian until it is actually requested.
    """

    def __init__(self, value_function: ArrayFunction, jacobian_function: ArrayFunction):
        self.value_function = value_function
        self.jacobian_function = jacobian_function
        super().__init__(self._both)

    def _both(self, point):
        return self.value_function(point), self.jacobian_function(point)

    def compute_value(self, point: np.ndarray) -> np.ndarray:
        return as_vector(self.value_function(np.array(point, dtype=float)), "model value")

    def compute_jacobian(self, point: np.ndarray) -> np.ndarray:
        return as_matrix(self.jacobian_function(np.array(point, dtype=float)), "jacobian")


def as_vector(values, what: str = "vector") -> np.ndarray:
    """Convert to a 1-D float array."""
    array = np.asarray(values, dtype=float)
    if array.ndim == 0:
        array = array.reshape(1)
    if array.ndim != 1:
        raise DimensionMismatchError(array.ndim, 1, what=f"{what} rank")
    return array


def as_matrix(values, what: str = "matrix") -> np.ndarray:
    """Convert to a 2-D float array."""
    array = np.asarray(values, dtype=float)
    if array.ndim != 2:
        raise DimensionMismatchError(array.ndim, 2, what=f"{what} rank")
    return array
