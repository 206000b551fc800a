"""
Evaluations of a Least-Squares Problem
======================================

An :class:`Evaluation` is an immutable snapshot of the model at one
parameter point. It stores the weighted residuals ``L·(f(x) − y)`` and the
weighted Jacobian ``L·J(x)``, where ``L`` is a square root of the weight
matrix (``LᵗL = W``), and derives everything else from them:

- cost: ``||residuals||₂`` (not squared)
- rms: ``cost / sqrt(m)``
- chi-square: ``cost²``
- covariances: ``(JᵗJ)⁻¹`` of the weighted Jacobian
- sigma: ``sqrt(diag(covariances))``, unscaled

Derived quantities are computed on first access and memoized. Nothing
ever invalidates them, since an evaluation never changes once built.
All arrays handed out are read-only.
"""

from abc import ABC, abstractmethod
from functools import cached_property
from typing import Dict, Optional, Tuple

import numpy as np

from leastsquares.linalg import decomposition
from leastsquares.optimization.exceptions import (
    ConfigurationError,
    DimensionMismatchError,
)
from leastsquares.optimization.model import ValueAndJacobianFunction


def _frozen(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


class Evaluation(ABC):
    """Model evaluation at a single point.

    Subclasses provide :attr:`point`, :attr:`residuals` and
    :attr:`jacobian`; everything else is derived here.
    """

    def __init__(self, observation_size: int):
        self.observation_size = observation_size
        self._covariance_cache: Dict[Tuple[float, bool], np.ndarray] = {}

    @property
    @abstractmethod
    def point(self) -> np.ndarray:
        """Parameter point of the evaluation."""

    @property
    @abstractmethod
    def residuals(self) -> np.ndarray:
        """Weighted residuals ``L·(f(x) − y)``."""

    @property
    @abstractmethod
    def jacobian(self) -> np.ndarray:
        """Weighted Jacobian ``L·J(x)``."""

    @property
    def parameter_size(self) -> int:
        return self.point.shape[0]

    @cached_property
    def cost(self) -> float:
        r = self.residuals
        return float(np.sqrt(r @ r))

    @property
    def rms(self) -> float:
        return self.cost / np.sqrt(self.observation_size)

    @property
    def chi_square(self) -> float:
        cost = self.cost
        return cost * cost

    def get_reduced_chi_square(self, number_of_fitted_parameters: int) -> float:
        """Chi-square divided by ``m − n + 1``.

        Raises
        ------
        ConfigurationError
            If there are more fitted parameters than observations.
        """
        dof = self.observation_size - number_of_fitted_parameters + 1
        if dof <= 0:
            raise ConfigurationError(
                f"No degrees of freedom left ({self.observation_size} observations, "
                f"{number_of_fitted_parameters} parameters)"
            )
        return self.chi_square / dof

    def get_covariances(self, threshold: float, pseudo_inverse: bool = False) -> np.ndarray:
        """Covariance matrix ``(JᵗJ)⁻¹`` of the optimized parameters.

        Parameters
        ----------
        threshold : float
            Relative singularity threshold.
        pseudo_inverse : bool
            If True, near-singular directions are zeroed instead of
            raising.

        Raises
        ------
        SingularMatrixError
            If ``JᵗJ`` is singular at ``threshold`` and ``pseudo_inverse``
            is False.
        """
        key = (float(threshold), bool(pseudo_inverse))
        cached = self._covariance_cache.get(key)
        if cached is None:
            j = self.jacobian
            normal = j.T @ j
            if pseudo_inverse:
                cached = _frozen(decomposition.pseudo_inverse(normal, threshold))
            else:
                cached = _frozen(decomposition.inverse(normal, threshold))
            self._covariance_cache[key] = cached
        return cached

    def get_sigma(self, covariance_singularity_threshold: float) -> np.ndarray:
        """Square roots of the covariance diagonal.

        The values are not scaled by the residual variance: multiply by
        ``sqrt(cost² / (m − n))`` to obtain parameter standard errors.
        """
        covariances = self.get_covariances(covariance_singularity_threshold)
        return _frozen(np.sqrt(np.diag(covariances)))


class DenseEvaluation(Evaluation):
    """Evaluation computed eagerly from model values and Jacobian."""

    def __init__(
        self,
        values: np.ndarray,
        jacobian: np.ndarray,
        target: np.ndarray,
        point: np.ndarray,
        weight_sqrt: Optional[np.ndarray] = None,
    ):
        super().__init__(target.shape[0])
        _check_values(values, target)
        _check_jacobian(jacobian, target, point)

        residuals = values - target
        if weight_sqrt is not None:
            residuals = weight_sqrt @ residuals
            jacobian = weight_sqrt @ jacobian
        else:
            jacobian = np.array(jacobian, dtype=float, copy=True)

        self._point = _frozen(np.array(point, dtype=float, copy=True))
        self._residuals = _frozen(np.asarray(residuals, dtype=float))
        self._jacobian = _frozen(np.asarray(jacobian, dtype=float))

    @property
    def point(self) -> np.ndarray:
        return self._point

    @property
    def residuals(self) -> np.ndarray:
        return self._residuals

    @property
    def jacobian(self) -> np.ndarray:
        return self._jacobian


class LazyEvaluation(Evaluation):
    """Evaluation that calls the model only when a value is requested.

    The model value and the Jacobian are computed independently, each at
    most once. Optimizers that reject a trial point before looking at its
    Jacobian save the Jacobian computation.
    """

    def __init__(
        self,
        model: ValueAndJacobianFunction,
        target: np.ndarray,
        point: np.ndarray,
        weight_sqrt: Optional[np.ndarray] = None,
    ):
        super().__init__(target.shape[0])
        self._model = model
        self._target = target
        self._weight_sqrt = weight_sqrt
        self._point = _frozen(np.array(point, dtype=float, copy=True))

    @property
    def point(self) -> np.ndarray:
        return self._point

    @cached_property
    def residuals(self) -> np.ndarray:
        values = self._model.compute_value(self._point)
        _check_values(values, self._target)
        residuals = values - self._target
        if self._weight_sqrt is not None:
            residuals = self._weight_sqrt @ residuals
        return _frozen(np.asarray(residuals, dtype=float))

    @cached_property
    def jacobian(self) -> np.ndarray:
        jacobian = self._model.compute_jacobian(self._point)
        _check_jacobian(jacobian, self._target, self._point)
        if self._weight_sqrt is not None:
            jacobian = self._weight_sqrt @ jacobian
        else:
            jacobian = np.array(jacobian, dtype=float, copy=True)
        return _frozen(np.asarray(jacobian, dtype=float))


def _check_values(values: np.ndarray, target: np.ndarray) -> None:
    if values.shape[0] != target.shape[0]:
        raise DimensionMismatchError(values.shape[0], target.shape[0], what="model value")


def _check_jacobian(jacobian: np.ndarray, target: np.ndarray, point: np.ndarray) -> None:
    if jacobian.shape[0] != target.shape[0]:
        raise DimensionMismatchError(jacobian.shape[0], target.shape[0], what="jacobian rows")
    if jacobian.shape[1] != point.shape[0]:
        raise DimensionMismatchError(jacobian.shape[1], point.shape[0], what="jacobian columns")
