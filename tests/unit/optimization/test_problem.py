"""
Unit Tests for Problem Definition
=================================

Validation in LeastSquaresProblem, the fluent LeastSquaresBuilder and the
parameter validators.
"""

import numpy as np
import pytest

from leastsquares.optimization.convergence import FunctionChecker, SimpleVectorValueChecker
from leastsquares.optimization.evaluation import DenseEvaluation, LazyEvaluation
from leastsquares.optimization.exceptions import (
    ConfigurationError,
    DimensionMismatchError,
    TooManyEvaluationsError,
    TooManyIterationsError,
)
from leastsquares.optimization.model import MultivariateJacobianFunction, ValueAndJacobianFunction
from leastsquares.optimization.problem import (
    BoundsValidator,
    LeastSquaresBuilder,
    LeastSquaresProblem,
    ParameterValidator,
)

FACTORS = np.array([[1.0, -1.0], [0.0, 2.0], [1.0, -2.0]])


def linear_value(x):
    return FACTORS @ x


def linear_jacobian(x):
    return FACTORS


def linear_model(x):
    return FACTORS @ x, FACTORS


@pytest.fixture
def builder():
    return (
        LeastSquaresBuilder()
        .with_model(linear_value, linear_jacobian)
        .with_target([4.0, 6.0, 1.0])
        .with_start([0.0, 0.0])
    )


class TestLeastSquaresProblem:
    """Construction-time validation."""

    def test_dimensions(self, builder):
        problem = builder.build()
        assert problem.observation_size == 3
        assert problem.parameter_size == 2

    def test_callable_model_is_wrapped(self):
        problem = LeastSquaresProblem(linear_model, [4.0, 6.0, 1.0], [0.0, 0.0])
        assert isinstance(problem.model, MultivariateJacobianFunction)

    def test_inputs_are_copied_and_frozen(self):
        target = np.array([4.0, 6.0, 1.0])
        problem = LeastSquaresProblem(linear_model, target, [0.0, 0.0])
        target[0] = 100.0
        assert problem.target[0] == 4.0
        with pytest.raises(ValueError):
            problem.start[0] = 1.0

    def test_frozen(self, builder):
        problem = builder.build()
        with pytest.raises(AttributeError):
            problem.max_iterations = 5

    @pytest.mark.parametrize("target,start", [([], [0.0]), ([1.0], [])])
    def test_empty_vectors(self, target, start):
        with pytest.raises(ConfigurationError):
            LeastSquaresProblem(linear_model, target, start)

    def test_weight_size(self):
        with pytest.raises(DimensionMismatchError):
            LeastSquaresProblem(linear_model, [4.0, 6.0, 1.0], [0.0, 0.0], weight_sqrt=np.eye(2))

    @pytest.mark.parametrize("field", ["max_evaluations", "max_iterations"])
    def test_budgets_must_be_positive(self, field):
        with pytest.raises(ConfigurationError):
            LeastSquaresProblem(linear_model, [1.0], [0.0], **{field: 0})

    def test_lazy_requires_separate_functions(self):
        with pytest.raises(ConfigurationError):
            LeastSquaresProblem(linear_model, [4.0, 6.0, 1.0], [0.0, 0.0], lazy=True)

    def test_validator_must_be_callable(self):
        with pytest.raises(ConfigurationError):
            LeastSquaresProblem(linear_model, [1.0], [0.0], validator="clip")

    def test_callable_checker_is_wrapped(self):
        problem = LeastSquaresProblem(
            linear_model, [4.0, 6.0, 1.0], [0.0, 0.0], checker=lambda i, p, c: True
        )
        assert isinstance(problem.checker, FunctionChecker)

    def test_counters_are_fresh(self, builder):
        problem = builder.with_max_evaluations(1).with_max_iterations(1).build()
        evaluations = problem.evaluation_counter()
        evaluations.increment()
        with pytest.raises(TooManyEvaluationsError):
            evaluations.increment()
        assert problem.evaluation_counter().count == 0

        iterations = problem.iteration_counter()
        iterations.increment()
        with pytest.raises(TooManyIterationsError):
            iterations.increment()

    def test_replace_revalidates(self, builder):
        problem = builder.build()
        assert problem.replace(max_iterations=7).max_iterations == 7
        with pytest.raises(ConfigurationError):
            problem.replace(max_iterations=-1)

    def test_repr(self, builder):
        assert repr(builder.build()).startswith("LeastSquaresProblem(observations=3, parameters=2")


class TestEvaluate:
    """Problem.evaluate()"""

    def test_dense(self, builder):
        evaluation = builder.build().evaluate([7.0, 3.0])
        assert isinstance(evaluation, DenseEvaluation)
        np.testing.assert_allclose(evaluation.residuals, [0.0, 0.0, 0.0], atol=1e-15)
        np.testing.assert_array_equal(evaluation.jacobian, FACTORS)

    def test_lazy(self, builder):
        evaluation = builder.with_lazy_evaluation().build().evaluate([7.0, 3.0])
        assert isinstance(evaluation, LazyEvaluation)
        assert evaluation.cost == pytest.approx(0.0, abs=1e-15)

    def test_point_size_checked(self, builder):
        with pytest.raises(DimensionMismatchError):
            builder.build().evaluate([1.0, 2.0, 3.0])

    def test_model_output_checked(self, builder):
        problem = builder.with_model(lambda x: np.zeros(2), linear_jacobian).build()
        with pytest.raises(DimensionMismatchError):
            problem.evaluate([0.0, 0.0])

    def test_weighted(self, builder):
        evaluation = builder.with_weight([4.0, 1.0, 1.0]).build().evaluate([0.0, 0.0])
        np.testing.assert_allclose(evaluation.residuals, [-8.0, -6.0, -1.0])

    def test_validator_applied(self, builder):
        problem = builder.with_validator(lambda p: np.clip(p, 0.0, 1.0)).build()
        evaluation = problem.evaluate([7.0, -3.0])
        np.testing.assert_array_equal(evaluation.point, [1.0, 0.0])

    def test_validator_must_keep_size(self, builder):
        problem = builder.with_validator(lambda p: p[:1]).build()
        with pytest.raises(DimensionMismatchError):
            problem.evaluate([1.0, 1.0])


class TestLeastSquaresBuilder:
    """Fluent builder."""

    def test_builder_is_immutable(self, builder):
        derived = builder.with_max_iterations(3)
        assert builder.max_iterations != 3
        assert derived.max_iterations == 3

    def test_missing_settings(self):
        with pytest.raises(ConfigurationError) as exc_info:
            LeastSquaresBuilder().with_target([1.0]).build()
        assert exc_info.value.error_context["missing"] == ["model", "start"]

    def test_separate_functions(self, builder):
        assert isinstance(builder.build().model, ValueAndJacobianFunction)

    def test_single_function(self, builder):
        problem = builder.with_model(linear_model).build()
        assert not isinstance(problem.model, ValueAndJacobianFunction)

    def test_weight_is_square_rooted(self, builder):
        problem = builder.with_weight(np.diag([4.0, 9.0, 16.0])).build()
        np.testing.assert_allclose(problem.weight_sqrt, np.diag([2.0, 3.0, 4.0]))

    def test_weight_and_weight_sqrt_replace_each_other(self, builder):
        problem = builder.with_weight([4.0, 4.0, 4.0]).with_weight_sqrt(np.eye(3)).build()
        np.testing.assert_array_equal(problem.weight_sqrt, np.eye(3))
        problem = builder.with_weight_sqrt(np.eye(3)).with_weight([4.0, 4.0, 4.0]).build()
        np.testing.assert_allclose(problem.weight_sqrt, 2.0 * np.eye(3))

    def test_settings_are_forwarded(self, builder):
        checker = SimpleVectorValueChecker(1e-6, 1e-6)
        problem = (
            builder.with_checker(checker)
            .with_max_evaluations(12)
            .with_max_iterations(34)
            .build()
        )
        assert problem.checker is checker
        assert problem.max_evaluations == 12
        assert problem.max_iterations == 34
        assert not problem.lazy


class TestValidators:
    def test_bounds(self):
        validator = BoundsValidator(lower=[0.0, -1.0], upper=[1.0, 1.0])
        np.testing.assert_array_equal(validator(np.array([2.0, -5.0])), [1.0, -1.0])

    def test_one_sided(self):
        validator = BoundsValidator(lower=[0.0, 0.0])
        np.testing.assert_array_equal(validator(np.array([-1.0, 3.0])), [0.0, 3.0])

    def test_unbounded(self):
        point = np.array([1.0, 2.0])
        assert BoundsValidator().validate(point) is point

    def test_inconsistent_bounds(self):
        with pytest.raises(ConfigurationError):
            BoundsValidator(lower=[1.0], upper=[0.0])
        with pytest.raises(DimensionMismatchError):
            BoundsValidator(lower=[0.0, 0.0], upper=[1.0])

    def test_custom_validator(self):
        class Positive(ParameterValidator):
            def validate(self, point):
                return np.abs(point)

        np.testing.assert_array_equal(Positive()(np.array([-2.0, 3.0])), [2.0, 3.0])
