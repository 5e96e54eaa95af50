"""
scdgraph Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies, mocked driver sessions)
- integration/: SCD engine end to end over the in-memory graph
"""
