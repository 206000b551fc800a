"""leastsquares: Nonlinear Least-Squares Optimization
===================================================

Weighted nonlinear least-squares fitting with two optimizers:

- Gauss-Newton, with LU, Cholesky, QR or SVD linear solves
- Levenberg-Marquardt, a port of the MINPACK trust-region algorithm

Given a model ``f(x)`` with Jacobian ``J(x)``, observations ``y`` and a
weight matrix ``W``, the optimizers minimize ``||L·(f(x) − y)||`` with
``LᵗL = W``, and report covariances and uncertainties of the solution.

Quick Start:
    >>> import numpy as np
    >>> from leastsquares import LeastSquaresBuilder, LevenbergMarquardtOptimizer
    >>>
    >>> a = np.array([[1.0, -1.0], [0.0, 2.0], [1.0, -2.0]])
    >>> problem = (
    ...     LeastSquaresBuilder()
    ...     .with_model(lambda x: a @ x, lambda x: a)
    ...     .with_target([4.0, 6.0, 1.0])
    ...     .with_start([0.0, 0.0])
    ...     .build()
    ... )
    >>> optimum = LevenbergMarquardtOptimizer().optimize(problem)
    >>> optimum.point
    array([7., 3.])
"""

__version__ = "1.0.0"

from leastsquares.optimization import (
    BoundsValidator,
    ConfigurationError,
    ConvergenceError,
    Decomposition,
    DimensionMismatchError,
    EvaluationRmsChecker,
    EvaluationVectorChecker,
    GaussNewtonOptimizer,
    LeastSquaresBuilder,
    LeastSquaresError,
    LeastSquaresOptimizer,
    LeastSquaresProblem,
    LevenbergMarquardtOptimizer,
    MaxCountExceededError,
    Optimum,
    OptimizerKind,
    ParameterValidator,
    SimplePointChecker,
    SimpleVectorValueChecker,
    SingularMatrixError,
    SingularProblemError,
    TooManyEvaluationsError,
    TooManyIterationsError,
    create_optimizer,
)
from leastsquares.config import ConfigManager

__all__ = [
    "__version__",
    # Problem definition
    "LeastSquaresBuilder",
    "LeastSquaresProblem",
    "ParameterValidator",
    "BoundsValidator",
    # Optimizers
    "LeastSquaresOptimizer",
    "GaussNewtonOptimizer",
    "Decomposition",
    "LevenbergMarquardtOptimizer",
    "OptimizerKind",
    "create_optimizer",
    "Optimum",
    # Convergence
    "EvaluationVectorChecker",
    "SimpleVectorValueChecker",
    "SimplePointChecker",
    "EvaluationRmsChecker",
    # Errors
    "LeastSquaresError",
    "ConfigurationError",
    "DimensionMismatchError",
    "ConvergenceError",
    "SingularMatrixError",
    "SingularProblemError",
    "MaxCountExceededError",
    "TooManyEvaluationsError",
    "TooManyIterationsError",
    # Configuration
    "ConfigManager",
]
