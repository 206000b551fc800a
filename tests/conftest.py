"""
Pytest Configuration and Fixtures for leastsquares
==================================================

Shared fixtures, configuration, and test utilities for the entire test suite.
"""

import numpy as np
import pytest

from leastsquares import (
    GaussNewtonOptimizer,
    LevenbergMarquardtOptimizer,
    SimpleVectorValueChecker,
)
from leastsquares.optimization import factory
from tests.factories.problems import CIRCLE_POINTS, FIVE_CIRCLE_POINTS, CircleVectorial

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests for workflows")
    config.addinivalue_line("markers", "property: Property-based tests")
    config.addinivalue_line("markers", "slow: Slow tests (> 5 seconds)")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark tests based on directory
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "property" in str(item.fspath):
            item.add_marker(pytest.mark.property)


# ============================================================================
# Core Fixtures
# ============================================================================


@pytest.fixture(params=["gauss_newton", "levenberg_marquardt"])
def optimizer(request):
    """Each optimizer with default settings."""
    if request.param == "gauss_newton":
        return GaussNewtonOptimizer()
    return LevenbergMarquardtOptimizer()


@pytest.fixture
def lm_optimizer():
    return LevenbergMarquardtOptimizer()


@pytest.fixture
def gn_optimizer():
    return GaussNewtonOptimizer()


@pytest.fixture
def checker():
    """Standard residual checker used by the reference problems."""
    return SimpleVectorValueChecker(1e-6, 1e-6)


@pytest.fixture
def five_point_circle():
    return CircleVectorial(FIVE_CIRCLE_POINTS)


@pytest.fixture
def ninety_point_circle():
    return CircleVectorial(CIRCLE_POINTS)


@pytest.fixture
def identity_problem(checker):
    """One observation, one parameter: ``x ≈ 1`` from ``x = 0``."""
    return factory.create(
        lambda x: (x.copy(), np.eye(1)),
        target=[1.0],
        start=[0.0],
        checker=checker,
        max_evaluations=10,
        max_iterations=10,
    )


@pytest.fixture
def tolerance_params():
    """Standard tolerance parameters for numerical tests."""
    return {
        "rtol": 1e-6,
        "atol": 1e-8,
    }
