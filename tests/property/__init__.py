"""
Property-Based Tests for Homodyne
====================================

Property-based tests using Hypothesis to validate mathematical invariants:
- Physical constraints and bounds
- Mathematical identities and symmetries
- Input-output relationships
- Edge case behavior
- Numerical stability properties
"""
