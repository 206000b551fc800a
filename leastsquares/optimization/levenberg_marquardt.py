"""
Levenberg-Marquardt Optimizer
=============================

Trust-region Levenberg-Marquardt following the MINPACK ``lmder``
routine (Moré, Garbow, Hillstrom, Argonne National Laboratory, 1980):

1. Rank-revealing Householder QR of the weighted Jacobian, with columns
   pivoted by decreasing remaining norm.
2. Variables scaled by the column norms of the Jacobian, grown
   monotonically over the iterations.
3. ``lmpar``: the Levenberg-Marquardt parameter is found by a safeguarded
   Newton iteration so that the scaled step length matches the trust-region
   bound ``Δ`` within 10 percent.
4. The step is accepted when the actual cost reduction is at least
   ``1e-4`` times the reduction predicted by the linear model; ``Δ`` and the
   parameter are updated from that ratio.

The run converges on any of:

- small relative cost reduction (``cost_relative_tolerance``)
- small relative step (``parameter_relative_tolerance``)
- residuals orthogonal to the Jacobian columns (``ortho_tolerance``)
- the problem's checker, when one is set, on accepted steps

If a tolerance is so small that it can never be met in double precision,
:class:`ConvergenceError` is raised instead of looping forever.

References
----------
J. J. Moré, "The Levenberg-Marquardt algorithm: implementation and
theory", Numerical Analysis, Lecture Notes in Mathematics 630, 1977.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass

import numpy as np
import scipy.linalg

from leastsquares.linalg.decomposition import PivotedQR, pivoted_qr
from leastsquares.optimization.exceptions import ConfigurationError, ConvergenceError
from leastsquares.optimization.optimizer import LeastSquaresOptimizer
from leastsquares.optimization.optimum import Optimum
from leastsquares.optimization.problem import LeastSquaresProblem
from leastsquares.utils.logging import get_logger, log_performance

logger = get_logger(__name__)

# twice the machine epsilon
TWO_EPS = 2 * np.finfo(float).eps
# smallest positive normal double
SAFE_MIN = np.finfo(float).tiny

# lmpar stops once the scaled step is within this fraction of the bound
_STEP_BOUND_ACCURACY = 0.1
_MAX_LMPAR_ITERATIONS = 10
_MIN_ACCEPTED_RATIO = 1.0e-4


@dataclass(frozen=True)
class LevenbergMarquardtOptimizer(LeastSquaresOptimizer):
    """Levenberg-Marquardt optimizer.

    Parameters
    ----------
    initial_step_bound_factor : float
        Initial trust-region bound is this factor times the scaled norm of
        the start point (or the factor itself when that norm is zero).
        Values in ``[0.1, 100]`` are typical.
    cost_relative_tolerance : float
        Stop when both actual and predicted relative cost reductions fall
        below this value.
    parameter_relative_tolerance : float
        Stop when the trust-region bound falls below this fraction of the
        scaled point norm.
    ortho_tolerance : float
        Stop when the cosine between the residuals and every Jacobian
        column falls below this value.
    ranking_threshold : float
        Squared column norm at or below which the QR decomposition declares
        the Jacobian rank deficient.

    Examples
    --------
    >>> optimizer = (
    ...     LevenbergMarquardtOptimizer()
    ...     .with_cost_relative_tolerance(1e-12)
    ...     .with_parameter_relative_tolerance(1e-12)
    ... )
    >>> optimum = optimizer.optimize(problem)
    >>> optimum.point, optimum.rms
    """

    initial_step_bound_factor: float = 100.0
    cost_relative_tolerance: float = 1e-10
    parameter_relative_tolerance: float = 1e-10
    ortho_tolerance: float = 1e-10
    ranking_threshold: float = SAFE_MIN

    def __post_init__(self):
        if not self.initial_step_bound_factor > 0:
            raise ConfigurationError(
                f"Initial step bound factor must be positive, got {self.initial_step_bound_factor}"
            )
        for name in (
            "cost_relative_tolerance",
            "parameter_relative_tolerance",
            "ortho_tolerance",
            "ranking_threshold",
        ):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {getattr(self, name)}")

    def with_initial_step_bound_factor(self, factor: float) -> LevenbergMarquardtOptimizer:
        return dataclasses.replace(self, initial_step_bound_factor=factor)

    def with_cost_relative_tolerance(self, tolerance: float) -> LevenbergMarquardtOptimizer:
        return dataclasses.replace(self, cost_relative_tolerance=tolerance)

    def with_parameter_relative_tolerance(self, tolerance: float) -> LevenbergMarquardtOptimizer:
        return dataclasses.replace(self, parameter_relative_tolerance=tolerance)

    def with_ortho_tolerance(self, tolerance: float) -> LevenbergMarquardtOptimizer:
        return dataclasses.replace(self, ortho_tolerance=tolerance)

    def with_ranking_threshold(self, threshold: float) -> LevenbergMarquardtOptimizer:
        return dataclasses.replace(self, ranking_threshold=threshold)

    @log_performance(threshold=1.0)
    def optimize(self, problem: LeastSquaresProblem) -> Optimum:
        n = problem.parameter_size
        m = problem.observation_size
        solved_cols = min(m, n)
        checker = problem.checker

        evaluations = problem.evaluation_counter()
        iterations = problem.iteration_counter()
        logger.info(
            f"Levenberg-Marquardt on {m} observations, {n} parameters"
        )

        current = self._evaluate(
            problem, evaluations, problem.start, iterations, problem.start
        )
        current_cost = current.cost
        point = np.array(current.point, copy=True)

        diag = np.ones(n)
        lm_par = 0.0
        delta = 0.0
        x_norm = 0.0
        first_iteration = True

        while True:
            self._next_iteration(iterations, current.point)
            previous = current

            qr = pivoted_qr(current.jacobian, self.ranking_threshold)
            qtf = qr.qt_dot(current.residuals)
            r = qr.r_matrix(solved_cols)[:, :solved_cols]
            jac_norm = qr.column_norms
            permutation = qr.permutation

            if first_iteration:
                # scale by the norms of the columns of the initial jacobian
                diag = np.where(jac_norm == 0, 1.0, jac_norm)
                x_norm = float(np.linalg.norm(diag * point))
                delta = self.initial_step_bound_factor * x_norm if x_norm != 0 else self.initial_step_bound_factor

            # norm of the scaled gradient
            max_cosine = 0.0
            if current_cost != 0:
                gradient = r.T @ qtf[:solved_cols]
                norms = jac_norm[permutation[:solved_cols]]
                nonzero = norms != 0
                if np.any(nonzero):
                    max_cosine = float(
                        np.max(np.abs(gradient[nonzero]) / (norms[nonzero] * current_cost))
                    )
            if max_cosine <= self.ortho_tolerance:
                logger.info(
                    f"Levenberg-Marquardt converged (orthogonality) after "
                    f"{iterations.count} iterations, cost={current_cost:.6e}"
                )
                return self._optimum(current, evaluations, iterations)

            diag = np.maximum(diag, jac_norm)

            ratio = 0.0
            while ratio < _MIN_ACCEPTED_RATIO:
                old_point = point
                previous_cost = current_cost

                lm_par, direction = self._determine_lm_parameter(
                    qr, r, qtf, diag, delta, lm_par, solved_cols
                )

                lm_dir = np.zeros(n)
                lm_dir[permutation[:solved_cols]] = -direction
                point = old_point + lm_dir
                lm_norm = float(np.linalg.norm(diag * lm_dir))

                # on the first iteration, adjust the initial step bound
                if first_iteration:
                    delta = min(delta, lm_norm)

                current = self._evaluate(
                    problem, evaluations, point, iterations, old_point
                )
                current_cost = current.cost
                point = np.array(current.point, copy=True)

                actual_reduction = -1.0
                if 0.1 * current_cost < previous_cost:
                    r1 = current_cost / previous_cost
                    actual_reduction = 1.0 - r1 * r1

                # scaled predicted reduction and scaled directional derivative
                work = r @ lm_dir[permutation[:solved_cols]]
                pc2 = previous_cost * previous_cost
                coeff1 = float(work @ work) / pc2
                lm_norm_pc = lm_norm * lm_norm / pc2
                coeff2 = lm_par * lm_norm_pc
                predicted_reduction = coeff1 + 2 * coeff2
                directional_derivative = -(coeff1 + coeff2)

                ratio = 0.0 if predicted_reduction == 0 else actual_reduction / predicted_reduction

                # update the step bound
                if ratio <= 0.25:
                    if actual_reduction < 0:
                        tmp = 0.5 * directional_derivative / (
                            directional_derivative + 0.5 * actual_reduction
                        )
                    else:
                        tmp = 0.5
                    if 0.1 * current_cost >= previous_cost or tmp < 0.1:
                        tmp = 0.1
                    delta = tmp * min(delta, 10.0 * lm_norm)
                    lm_par /= tmp
                elif lm_par == 0 or ratio >= 0.75:
                    delta = 2 * lm_norm
                    lm_par *= 0.5

                if ratio >= _MIN_ACCEPTED_RATIO:
                    first_iteration = False
                    x_norm = float(np.linalg.norm(diag * point))
                    logger.debug(
                        f"Iteration {iterations.count}: cost={current_cost:.6e}, "
                        f"ratio={ratio:.3g}, delta={delta:.3e}"
                    )
                    if checker is not None and checker.converged(iterations.count, previous, current):
                        logger.info(
                            f"Levenberg-Marquardt converged (checker) after "
                            f"{iterations.count} iterations, cost={current_cost:.6e}"
                        )
                        return self._optimum(current, evaluations, iterations)
                else:
                    logger.debug(
                        f"Iteration {iterations.count}: step rejected, ratio={ratio:.3g}, "
                        f"delta={delta:.3e}"
                    )
                    current_cost = previous_cost
                    point = old_point
                    current = previous

                if (
                    abs(actual_reduction) <= self.cost_relative_tolerance
                    and predicted_reduction <= self.cost_relative_tolerance
                    and ratio <= 2.0
                ) or delta <= self.parameter_relative_tolerance * x_norm:
                    logger.info(
                        f"Levenberg-Marquardt converged after {iterations.count} iterations, "
                        f"cost={current_cost:.6e}"
                    )
                    return self._optimum(current, evaluations, iterations)

                if (
                    abs(actual_reduction) <= TWO_EPS
                    and predicted_reduction <= TWO_EPS
                    and ratio <= 2.0
                ):
                    self._stalled(
                        f"Cost relative tolerance {self.cost_relative_tolerance} is too small, "
                        f"no further reduction in the sum of squares is possible",
                        "cost_relative_tolerance",
                        self.cost_relative_tolerance,
                        iterations.count,
                        current,
                    )
                elif delta <= TWO_EPS * x_norm:
                    self._stalled(
                        f"Parameter relative tolerance {self.parameter_relative_tolerance} is "
                        f"too small, no further improvement in the approximate solution is possible",
                        "parameter_relative_tolerance",
                        self.parameter_relative_tolerance,
                        iterations.count,
                        current,
                    )
                elif max_cosine <= TWO_EPS:
                    self._stalled(
                        f"Orthogonality tolerance {self.ortho_tolerance} is too small, "
                        f"the solution is orthogonal to the jacobian",
                        "ortho_tolerance",
                        self.ortho_tolerance,
                        iterations.count,
                        current,
                    )

    @staticmethod
    def _stalled(message, name, tolerance, iteration, evaluation):
        logger.warning(message)
        raise ConvergenceError(
            message,
            iteration_count=iteration,
            final_cost=evaluation.cost,
            parameters=evaluation.point,
            error_context={name: tolerance},
        )

    @staticmethod
    def _determine_lm_parameter(
        qr: PivotedQR,
        r: np.ndarray,
        qtf: np.ndarray,
        diag: np.ndarray,
        delta: float,
        lm_par: float,
        solved_cols: int,
    ):
        """Determine the Levenberg-Marquardt parameter (MINPACK ``lmpar``).

        Finds ``par`` such that the solution ``p`` of ``J·p ≈ r`` regularized
        by ``sqrt(par)·D`` has ``||D·p||`` within 10 percent of ``delta``, or
        ``par = 0`` when the Gauss-Newton step already lies inside the
        trust region.

        Works in pivoted coordinates: ``r`` is the leading square block of
        ``R``, and the returned direction is indexed like the pivoted
        columns.

        Returns
        -------
        tuple
            ``(par, direction)``.
        """
        rank = qr.rank
        s = solved_cols
        d = diag[qr.permutation[:s]]

        # Gauss-Newton direction, zero in rank-deficient columns
        direction = np.zeros(s)
        if rank > 0:
            direction[:rank] = scipy.linalg.solve_triangular(
                r[:rank, :rank], qtf[:rank], check_finite=False
            )

        dx = d * direction
        dx_norm = float(np.linalg.norm(dx))
        fp = dx_norm - delta
        if fp <= _STEP_BOUND_ACCURACY * delta:
            return 0.0, direction

        # lower bound from the Newton step, when the jacobian has full rank
        par_l = 0.0
        if rank == s:
            w = d * dx / dx_norm
            y = scipy.linalg.solve_triangular(r, w, trans="T", check_finite=False)
            par_l = fp / (delta * float(y @ y))

        # upper bound from the scaled gradient
        gradient = (r.T @ qtf[:s]) / d
        g_norm = float(np.linalg.norm(gradient))
        par_u = g_norm / delta
        if par_u == 0:
            par_u = SAFE_MIN / min(delta, 0.1)

        lm_par = min(par_u, max(lm_par, par_l))
        if lm_par == 0:
            lm_par = g_norm / dx_norm

        for _ in range(_MAX_LMPAR_ITERATIONS, -1, -1):
            if lm_par == 0:
                lm_par = max(SAFE_MIN, 0.001 * par_u)

            direction, s_diag, s_lower = _qr_solve(r, qtf[:s], np.sqrt(lm_par) * d)
            dx = d * direction
            dx_norm = float(np.linalg.norm(dx))
            previous_fp = fp
            fp = dx_norm - delta

            # accept when within tolerance, or when the lower bound is zero
            # and this is the second consecutive negative fp
            if abs(fp) <= _STEP_BOUND_ACCURACY * delta or (
                par_l == 0 and fp <= previous_fp and previous_fp < 0
            ):
                return lm_par, direction

            # Newton correction
            w = d * dx / dx_norm
            lower = np.tril(s_lower, -1) + np.diag(s_diag)
            y = scipy.linalg.solve_triangular(lower, w, lower=True, check_finite=False)
            correction = fp / (delta * float(y @ y))

            if fp > 0:
                par_l = max(par_l, lm_par)
            elif fp < 0:
                par_u = min(par_u, lm_par)

            lm_par = max(par_l, lm_par + correction)

        return lm_par, direction


def _qr_solve(r: np.ndarray, qtb: np.ndarray, diag: np.ndarray):
    """Solve ``[R; diag(D)]·x ≈ [Qᵗb; 0]`` in the least-squares sense.

    Port of MINPACK ``qrsolv``: Givens rotations eliminate the diagonal
    matrix ``D``, producing an upper-triangular ``S`` with
    ``SᵗS = RᵗR + D²``. Singular ``S`` yields a least-squares solution
    with the trailing components set to zero.

    Returns
    -------
    tuple
        ``(x, s_diag, s_lower)``: the solution, the diagonal of ``S`` and
        a matrix whose strict lower triangle holds the strict upper
        triangle of ``S`` transposed.
    """
    s = r.shape[0]
    # the lower triangle starts as R transposed; its diagonal is R's
    lower = np.array(np.triu(r).T, copy=True)
    r_diag = np.diag(r).copy()
    work = np.array(qtb, dtype=float, copy=True)
    s_diag = np.zeros(s)

    for j in range(s):
        if diag[j] != 0:
            s_diag[j:] = 0.0
            s_diag[j] = diag[j]

            # eliminate row j of D with rotations in the planes (k, j)
            qtbpj = 0.0
            for k in range(j, s):
                if s_diag[k] == 0:
                    continue
                rkk = lower[k, k]
                if abs(rkk) < abs(s_diag[k]):
                    cotan = rkk / s_diag[k]
                    sin = 1.0 / np.sqrt(1.0 + cotan * cotan)
                    cos = sin * cotan
                else:
                    tan = s_diag[k] / rkk
                    cos = 1.0 / np.sqrt(1.0 + tan * tan)
                    sin = cos * tan

                lower[k, k] = cos * rkk + sin * s_diag[k]
                temp = cos * work[k] + sin * qtbpj
                qtbpj = -sin * work[k] + cos * qtbpj
                work[k] = temp

                if k + 1 < s:
                    rik = lower[k + 1:, k].copy()
                    sdk = s_diag[k + 1:].copy()
                    lower[k + 1:, k] = cos * rik + sin * sdk
                    s_diag[k + 1:] = -sin * rik + cos * sdk

        s_diag[j] = lower[j, j]
        lower[j, j] = r_diag[j]

    # singular S: least-squares solution with trailing zeros
    singular = np.flatnonzero(s_diag == 0)
    n_sing = int(singular[0]) if singular.size else s
    work[n_sing:] = 0.0
    for j in range(n_sing - 1, -1, -1):
        total = lower[j + 1:n_sing, j] @ work[j + 1:n_sing]
        work[j] = (work[j] - total) / s_diag[j]

    return work, s_diag, lower
