"""Property-based tests using Hypothesis.

These tests use generative testing to explore edge cases:
- Hash diffing symmetry and ordering
- Similarity score bounds
- Hash store capacity limits

To run property tests:
    pytest tests/property/ -v --hypothesis-show-statistics

Requires:
    hypothesis>=6.100.0
"""
