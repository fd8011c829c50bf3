"""
Guardian Server Test Suite.

This package contains:
- unit/: Unit tests (SQLite stores in temporary directories)
- integration/: Integration tests (VaultService and the full HTTP app)
"""
