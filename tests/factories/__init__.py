"""
Test Data Factories for leastsquares
====================================

Reference problems with known solutions:
- Linear systems (well-posed, rank-deficient, ill-conditioned)
- Circle fitting from sample points
- Bevington two-exponential decay
- NIST StRD Misra1a
"""

from tests.factories.problems import (
    CIRCLE_POINTS,
    FIVE_CIRCLE_POINTS,
    BevingtonProblem,
    CircleVectorial,
    LinearProblem,
    Misra1a,
    base_builder,
)

__all__ = [
    "CIRCLE_POINTS",
    "FIVE_CIRCLE_POINTS",
    "BevingtonProblem",
    "CircleVectorial",
    "LinearProblem",
    "Misra1a",
    "base_builder",
]
