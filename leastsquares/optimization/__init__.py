"""Least-squares problems, evaluations and optimizers.

Exceptions are imported first: the linear algebra layer depends on them.
"""

from leastsquares.optimization.exceptions import (
    ConfigurationError,
    ConvergenceError,
    DimensionMismatchError,
    LeastSquaresError,
    MaxCountExceededError,
    SingularMatrixError,
    SingularProblemError,
    TooManyEvaluationsError,
    TooManyIterationsError,
)
from leastsquares.optimization.evaluation import DenseEvaluation, Evaluation, LazyEvaluation
from leastsquares.optimization.convergence import (
    ConvergenceChecker,
    EvaluationRmsChecker,
    EvaluationVectorChecker,
    FunctionChecker,
    SimplePointChecker,
    SimpleVectorValueChecker,
)
from leastsquares.optimization.incrementor import Incrementor
from leastsquares.optimization.model import MultivariateJacobianFunction, ValueAndJacobianFunction
from leastsquares.optimization.problem import (
    BoundsValidator,
    LeastSquaresBuilder,
    LeastSquaresProblem,
    ParameterValidator,
)
from leastsquares.optimization.optimum import Optimum
from leastsquares.optimization.optimizer import (
    LeastSquaresOptimizer,
    OptimizerKind,
    create_optimizer,
)
from leastsquares.optimization.gauss_newton import Decomposition, GaussNewtonOptimizer
from leastsquares.optimization.levenberg_marquardt import LevenbergMarquardtOptimizer
from leastsquares.optimization import factory

__all__ = [
    "ConfigurationError",
    "ConvergenceError",
    "DimensionMismatchError",
    "LeastSquaresError",
    "MaxCountExceededError",
    "SingularMatrixError",
    "SingularProblemError",
    "TooManyEvaluationsError",
    "TooManyIterationsError",
    "Evaluation",
    "DenseEvaluation",
    "LazyEvaluation",
    "ConvergenceChecker",
    "EvaluationVectorChecker",
    "SimpleVectorValueChecker",
    "SimplePointChecker",
    "EvaluationRmsChecker",
    "FunctionChecker",
    "Incrementor",
    "MultivariateJacobianFunction",
    "ValueAndJacobianFunction",
    "LeastSquaresProblem",
    "LeastSquaresBuilder",
    "ParameterValidator",
    "BoundsValidator",
    "Optimum",
    "LeastSquaresOptimizer",
    "OptimizerKind",
    "create_optimizer",
    "GaussNewtonOptimizer",
    "Decomposition",
    "LevenbergMarquardtOptimizer",
    "factory",
]
