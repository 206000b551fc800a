"""
Linear Decompositions for Least-Squares Solvers
===============================================

Thin layer over ``scipy.linalg`` exposing the operations the optimizers
need, with singular systems reported as :class:`SingularMatrixError`
instead of NaN or garbage:

- ``solve_lu`` / ``solve_cholesky``: normal-equation solvers
- ``solve_qr`` / ``solve_svd``: direct least-squares solvers on ``J``
- ``inverse``: QR-based inverse used for covariance matrices
- ``pseudo_inverse``: SVD pseudo-inverse zeroing near-singular directions
- ``weight_square_root``: ``L`` such that ``LᵗL = W``
- ``pivoted_qr``: Householder QR with column pivoting and rank detection,
  kept in factored form for the Levenberg-Marquardt step computation

All functions allocate their own scratch storage and are reentrant.
"""

import warnings
from dataclasses import dataclass

import numpy as np
import scipy.linalg
from scipy.linalg import LinAlgError, LinAlgWarning

from leastsquares.optimization.exceptions import (
    ConvergenceError,
    DimensionMismatchError,
    SingularMatrixError,
)

# Default pivot threshold below which a matrix is considered singular
DEFAULT_SINGULARITY_THRESHOLD = 1e-11


def _check_square(matrix: np.ndarray, what: str = "matrix") -> None:
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise DimensionMismatchError(matrix.shape[-1], matrix.shape[0], what=f"{what} columns")


def _check_rhs(matrix: np.ndarray, rhs: np.ndarray) -> None:
    if rhs.shape[0] != matrix.shape[0]:
        raise DimensionMismatchError(rhs.shape[0], matrix.shape[0], what="right-hand side")


def solve_lu(
    matrix: np.ndarray,
    rhs: np.ndarray,
    threshold: float = DEFAULT_SINGULARITY_THRESHOLD,
) -> np.ndarray:
    """Solve ``A·x = b`` for square ``A`` with a partially pivoted LU.

    Raises
    ------
    SingularMatrixError
        If a pivot of ``U`` has magnitude below ``threshold``.
    """
    a = np.asarray(matrix, dtype=float)
    b = np.asarray(rhs, dtype=float)
    _check_square(a)
    _check_rhs(a, b)

    with warnings.catch_warnings():
        # Exactly singular input is reported below through the pivots
        warnings.simplefilter("ignore", LinAlgWarning)
        lu, piv = scipy.linalg.lu_factor(a, check_finite=False)

    pivots = np.abs(np.diag(lu))
    if np.any(pivots < threshold) or not np.all(np.isfinite(pivots)):
        raise SingularMatrixError(
            "LU decomposition found a singular matrix", threshold=threshold
        )
    return scipy.linalg.lu_solve((lu, piv), b, check_finite=False)


def solve_cholesky(
    matrix: np.ndarray,
    rhs: np.ndarray,
    threshold: float = DEFAULT_SINGULARITY_THRESHOLD,
) -> np.ndarray:
    """Solve ``A·x = b`` for symmetric positive definite ``A``.

    Raises
    ------
    SingularMatrixError
        If ``A`` is not positive definite within ``threshold``.
    """
    a = np.asarray(matrix, dtype=float)
    b = np.asarray(rhs, dtype=float)
    _check_square(a)
    _check_rhs(a, b)

    try:
        factor = scipy.linalg.cho_factor(a, lower=True, check_finite=False)
    except LinAlgError as e:
        raise SingularMatrixError(
            f"Matrix is not positive definite: {e}", threshold=threshold
        ) from e

    # Squared diagonal of L are the pivots of the LDLᵗ form
    pivots = np.diag(factor[0]) ** 2
    if np.any(pivots < threshold) or not np.all(np.isfinite(pivots)):
        raise SingularMatrixError(
            "Matrix is not positive definite", threshold=threshold
        )
    return scipy.linalg.cho_solve(factor, b, check_finite=False)


def solve_qr(
    matrix: np.ndarray,
    rhs: np.ndarray,
    threshold: float = DEFAULT_SINGULARITY_THRESHOLD,
) -> np.ndarray:
    """Least-squares solution of ``A·x ≈ b`` through ``A = Q·R``.

    ``A`` may be rectangular with at least as many rows as columns.

    Raises
    ------
    SingularMatrixError
        If ``A`` has fewer rows than columns or a diagonal element of
        ``R`` has magnitude at or below ``threshold``.
    """
    a = np.asarray(matrix, dtype=float)
    b = np.asarray(rhs, dtype=float)
    _check_rhs(a, b)
    m, n = a.shape
    if m < n:
        raise SingularMatrixError(
            f"Underdetermined system ({m} rows, {n} columns)", threshold=threshold
        )

    q, r = scipy.linalg.qr(a, mode="economic", check_finite=False)
    r_diag = np.abs(np.diag(r))
    if np.any(r_diag <= threshold) or not np.all(np.isfinite(r_diag)):
        raise SingularMatrixError(
            "QR decomposition found a singular matrix", threshold=threshold
        )
    return scipy.linalg.solve_triangular(r, q.T @ b, check_finite=False)


def solve_svd(
    matrix: np.ndarray,
    rhs: np.ndarray,
    threshold: float = DEFAULT_SINGULARITY_THRESHOLD,
) -> np.ndarray:
    """Least-squares solution of ``A·x ≈ b`` through the SVD of ``A``.

    Raises
    ------
    SingularMatrixError
        If the smallest singular value is at or below ``threshold`` times
        the largest one, or ``A`` has fewer rows than columns.
    """
    a = np.asarray(matrix, dtype=float)
    b = np.asarray(rhs, dtype=float)
    _check_rhs(a, b)
    m, n = a.shape
    if m < n:
        raise SingularMatrixError(
            f"Underdetermined system ({m} rows, {n} columns)", threshold=threshold
        )

    u, s, vt = scipy.linalg.svd(a, full_matrices=False, check_finite=False)
    if s.size == 0 or s[-1] <= threshold * s[0]:
        raise SingularMatrixError(
            "SVD found a singular matrix", threshold=threshold,
            error_context={"condition": float(s[0] / s[-1]) if s.size and s[-1] > 0 else np.inf},
        )
    return vt.T @ ((u.T @ b) / s)


def inverse(matrix: np.ndarray, threshold: float) -> np.ndarray:
    """Invert a square matrix through its QR decomposition.

    A diagonal element of ``R`` whose magnitude is at or below
    ``threshold`` times the largest one marks the matrix as singular.

    Raises
    ------
    SingularMatrixError
        If the matrix is singular at ``threshold``.
    """
    a = np.asarray(matrix, dtype=float)
    _check_square(a)
    n = a.shape[0]
    if n == 0:
        return np.zeros((0, 0))

    q, r = scipy.linalg.qr(a, check_finite=False)
    r_diag = np.abs(np.diag(r))
    largest = np.max(r_diag)
    if largest == 0 or np.any(r_diag <= threshold * largest):
        raise SingularMatrixError(
            "Unable to invert singular matrix",
            threshold=threshold,
            error_context={"min_pivot": float(np.min(r_diag)), "max_pivot": float(largest)},
        )
    return scipy.linalg.solve_triangular(r, q.T, check_finite=False)


def pseudo_inverse(matrix: np.ndarray, threshold: float) -> np.ndarray:
    """Moore-Penrose pseudo-inverse of a square symmetric matrix.

    Singular values at or below ``threshold`` times the largest one are
    treated as zero instead of being inverted.
    """
    a = np.asarray(matrix, dtype=float)
    _check_square(a)
    if a.shape[0] == 0:
        return np.zeros((0, 0))

    u, s, vt = scipy.linalg.svd(a, check_finite=False)
    cutoff = threshold * (s[0] if s.size else 0.0)
    inv_s = np.zeros_like(s)
    keep = s > cutoff
    inv_s[keep] = 1.0 / s[keep]
    return (vt.T * inv_s) @ u.T


def weight_square_root(weight: np.ndarray) -> np.ndarray:
    """Return ``L`` with ``LᵗL = W`` for a symmetric PSD weight.

    A 1-D input is taken as the diagonal of ``W``. Diagonal matrices get
    an element-wise square root; full matrices use the symmetric square
    root from the eigendecomposition, with tiny negative eigenvalues from
    round-off clipped to zero.
    """
    w = np.asarray(weight, dtype=float)
    if w.ndim == 1:
        if np.any(w < 0):
            raise SingularMatrixError("Negative weight on the diagonal")
        return np.diag(np.sqrt(w))

    _check_square(w, what="weight")
    if np.count_nonzero(w - np.diag(np.diag(w))) == 0:
        diagonal = np.diag(w)
        if np.any(diagonal < 0):
            raise SingularMatrixError("Negative weight on the diagonal")
        return np.diag(np.sqrt(diagonal))

    eigenvalues, eigenvectors = scipy.linalg.eigh(w, check_finite=False)
    eigenvalues = np.clip(eigenvalues, 0.0, None)
    return (eigenvectors * np.sqrt(eigenvalues)) @ eigenvectors.T


@dataclass(frozen=True)
class PivotedQR:
    """Householder QR decomposition with column pivoting.

    Columns are stored in pivot order: column ``k`` of :attr:`factors`
    corresponds to column :attr:`permutation` ``[k]`` of the decomposed
    matrix. Below the diagonal, :attr:`factors` holds the Householder
    vectors; above it, the strict upper triangle of ``R``. The diagonal of
    ``R`` is kept separately in :attr:`diag_r` (zero past :attr:`rank`).

    Attributes
    ----------
    factors : np.ndarray
        Householder vectors and strict upper triangle of ``R`` (m x n).
    diag_r : np.ndarray
        Diagonal of ``R`` in pivot order.
    beta : np.ndarray
        Householder scale factors in pivot order.
    permutation : np.ndarray
        Column permutation, ``permutation[k]`` is the original column index.
    rank : int
        Number of columns whose remaining norm exceeded the ranking threshold.
    column_norms : np.ndarray
        Euclidean norms of the original columns, in original order.
    """

    factors: np.ndarray
    diag_r: np.ndarray
    beta: np.ndarray
    permutation: np.ndarray
    rank: int
    column_norms: np.ndarray

    @property
    def shape(self):
        return self.factors.shape

    def qt_dot(self, y: np.ndarray) -> np.ndarray:
        """Return ``Qᵗ·y`` using the stored Householder reflections."""
        result = np.array(y, dtype=float, copy=True)
        for k in range(self.rank):
            v = self.factors[k:, k]
            gamma = self.beta[k] * (v @ result[k:])
            result[k:] -= gamma * v
        return result

    def r_matrix(self, rows: int) -> np.ndarray:
        """Return the first ``rows`` rows of ``R`` (pivot order)."""
        r = np.triu(self.factors[:rows, :], k=1)
        idx = np.arange(min(rows, self.factors.shape[1]))
        r[idx, idx] = self.diag_r[idx]
        return r


def pivoted_qr(matrix: np.ndarray, ranking_threshold: float) -> PivotedQR:
    """Rank-revealing Householder QR with column pivoting.

    At step ``k`` the column with the largest remaining squared norm is
    moved to position ``k``. The decomposition stops, fixing the rank at
    ``k``, when that squared norm is at or below ``ranking_threshold``;
    the remaining columns are left as they are (frozen directions).

    Raises
    ------
    ConvergenceError
        If the matrix contains non-finite values.
    """
    a = np.array(matrix, dtype=float, copy=True)
    m, n = a.shape
    permutation = np.arange(n)
    column_norms = np.sqrt(np.sum(a * a, axis=0))
    diag_r = np.zeros(n)
    beta = np.zeros(n)
    rank = n

    for k in range(n):
        remaining = a[k:, k:]
        norms2 = np.sum(remaining * remaining, axis=0)
        if not np.all(np.isfinite(norms2)):
            raise ConvergenceError(
                f"Unable to perform QR decomposition on the {m}x{n} jacobian",
                error_context={"column": k},
            )
        offset = int(np.argmax(norms2))
        ak2 = norms2[offset]
        if ak2 <= ranking_threshold:
            rank = k
            break

        pivot = k + offset
        if pivot != k:
            a[:, [k, pivot]] = a[:, [pivot, k]]
            permutation[[k, pivot]] = permutation[[pivot, k]]

        # choose alpha such that H·u = alpha·e_k
        akk = a[k, k]
        alpha = -np.sqrt(ak2) if akk > 0 else np.sqrt(ak2)
        beta_k = 1.0 / (ak2 - akk * alpha)
        beta[k] = beta_k
        diag_r[k] = alpha
        a[k, k] -= alpha

        if k + 1 < n:
            v = a[k:, k]
            gamma = beta_k * (v @ a[k:, k + 1:])
            a[k:, k + 1:] -= np.outer(v, gamma)

    return PivotedQR(
        factors=a,
        diag_r=diag_r,
        beta=beta,
        permutation=permutation,
        rank=rank,
        column_norms=column_norms,
    )
