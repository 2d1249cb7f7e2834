"""
otstore Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Integration tests (SQLite file database)
- e2e/: End-to-end tests against PostgreSQL (opt-in)
"""
