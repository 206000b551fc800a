"""Dense linear algebra used by the optimizers."""

from leastsquares.linalg.decomposition import (
    DEFAULT_SINGULARITY_THRESHOLD,
    PivotedQR,
    inverse,
    pivoted_qr,
    pseudo_inverse,
    solve_cholesky,
    solve_lu,
    solve_qr,
    solve_svd,
    weight_square_root,
)

__all__ = [
    "DEFAULT_SINGULARITY_THRESHOLD",
    "PivotedQR",
    "pivoted_qr",
    "inverse",
    "pseudo_inverse",
    "solve_lu",
    "solve_cholesky",
    "solve_qr",
    "solve_svd",
    "weight_square_root",
]
