"""Property-based tests using Hypothesis.

These tests use generative testing to check the merge rules:
- Convergence regardless of argument order
- Idempotence of repeated merges
- No loss of titles, chapters or progress

To run property tests:
    pytest tests/property/ -v --hypothesis-show-statistics
"""
