"""
Gauss-Newton Optimizer
======================

Classical Gauss-Newton iteration. At each step the linearized problem
``J·Δ ≈ r`` is solved, with ``r = L·(f(x) − y)`` and ``J`` the weighted
Jacobian, and the point is moved to ``x − Δ``.

The linear solve uses one of four decompositions:

- ``LU``: LU factorization of the normal matrix ``JᵗJ``
- ``CHOLESKY``: Cholesky factorization of ``JᵗJ``
- ``QR``: QR factorization of ``J`` itself (default, best conditioned)
- ``SVD``: singular value decomposition of ``J``

There is no step control: the iteration only converges when started close
enough to the solution. Use :class:`LevenbergMarquardtOptimizer` for
robustness. A singular linear system stops the run with
:class:`SingularProblemError`.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum

import numpy as np

from leastsquares.linalg.decomposition import (
    DEFAULT_SINGULARITY_THRESHOLD,
    solve_cholesky,
    solve_lu,
    solve_qr,
    solve_svd,
)
from leastsquares.optimization.exceptions import (
    ConfigurationError,
    SingularMatrixError,
    SingularProblemError,
)
from leastsquares.optimization.optimizer import LeastSquaresOptimizer
from leastsquares.optimization.optimum import Optimum
from leastsquares.optimization.problem import LeastSquaresProblem
from leastsquares.utils.logging import get_logger, log_performance

logger = get_logger(__name__)


class Decomposition(Enum):
    """Linear solver used for the Gauss-Newton step."""

    LU = "lu"
    CHOLESKY = "cholesky"
    QR = "qr"
    SVD = "svd"

    def solve(self, jacobian: np.ndarray, residuals: np.ndarray, threshold: float) -> np.ndarray:
        """Least-squares solution of ``jacobian·Δ ≈ residuals``.

        Raises
        ------
        SingularMatrixError
            If the system is singular at ``threshold``.
        """
        if self is Decomposition.QR:
            return solve_qr(jacobian, residuals, threshold)
        if self is Decomposition.SVD:
            return solve_svd(jacobian, residuals, threshold)

        normal = jacobian.T @ jacobian
        rhs = jacobian.T @ residuals
        if self is Decomposition.LU:
            return solve_lu(normal, rhs, threshold)
        return solve_cholesky(normal, rhs, threshold)


@dataclass(frozen=True)
class GaussNewtonOptimizer(LeastSquaresOptimizer):
    """Gauss-Newton optimizer.

    The problem must carry a convergence checker: Gauss-Newton has no
    intrinsic stopping criterion.

    Parameters
    ----------
    decomposition : Decomposition or str
        Linear solver for the step (default QR).
    singularity_threshold : float
        Threshold below which the linear system is considered singular.

    Examples
    --------
    >>> optimizer = GaussNewtonOptimizer().with_decomposition(Decomposition.LU)
    >>> optimum = optimizer.optimize(problem)
    """

    decomposition: Decomposition = Decomposition.QR
    singularity_threshold: float = DEFAULT_SINGULARITY_THRESHOLD

    def __post_init__(self):
        if not isinstance(self.decomposition, Decomposition):
            try:
                decomposition = Decomposition(str(self.decomposition).lower())
            except ValueError as e:
                raise ConfigurationError(
                    f"Unknown decomposition '{self.decomposition}'",
                    {"available": [d.value for d in Decomposition]},
                ) from e
            object.__setattr__(self, "decomposition", decomposition)
        if self.singularity_threshold < 0:
            raise ConfigurationError(
                f"Singularity threshold must be non-negative, got {self.singularity_threshold}"
            )

    def with_decomposition(self, decomposition: Decomposition | str) -> GaussNewtonOptimizer:
        return dataclasses.replace(self, decomposition=decomposition)

    def with_singularity_threshold(self, threshold: float) -> GaussNewtonOptimizer:
        return dataclasses.replace(self, singularity_threshold=threshold)

    @log_performance(threshold=1.0)
    def optimize(self, problem: LeastSquaresProblem) -> Optimum:
        checker = problem.checker
        if checker is None:
            raise ConfigurationError("Gauss-Newton requires a convergence checker")

        evaluations = problem.evaluation_counter()
        iterations = problem.iteration_counter()
        logger.info(
            f"Gauss-Newton ({self.decomposition.value}) on {problem.observation_size} "
            f"observations, {problem.parameter_size} parameters"
        )

        current = self._evaluate(
            problem, evaluations, problem.start, iterations, problem.start
        )
        while True:
            self._next_iteration(iterations, current.point)
            previous = current

            try:
                step = self.decomposition.solve(
                    current.jacobian, current.residuals, self.singularity_threshold
                )
            except SingularMatrixError as e:
                logger.warning(
                    f"Singular linear system at iteration {iterations.count}: {e}"
                )
                raise SingularProblemError(
                    iteration_count=iterations.count,
                    final_cost=current.cost,
                    parameters=current.point,
                    threshold=self.singularity_threshold,
                ) from e

            current = self._evaluate(
                problem, evaluations, current.point - step, iterations, previous.point
            )
            logger.debug(f"Iteration {iterations.count}: cost={current.cost:.6e}")

            if checker.converged(iterations.count, previous, current):
                logger.info(
                    f"Gauss-Newton converged after {iterations.count} iterations, "
                    f"cost={current.cost:.6e}"
                )
                return self._optimum(current, evaluations, iterations)
