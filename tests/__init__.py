"""
leastsquares Test Suite
=======================

Test Categories:
- Unit Tests: individual modules (linear algebra, evaluations, checkers,
  optimizers, configuration, logging)
- Property Tests: mathematical invariants checked with Hypothesis
- Integration Tests: configuration-driven fits of reference datasets

Requirements:
- pytest >= 6.2.0
- hypothesis >= 6.0.0
"""
