"""
Checkpoint module for Guardian.

Periodically folds SQLite write-ahead logs back into their main files so
-wal files stay small, and performs a final sweep at shutdown.
"""

from .sweeper import CheckpointSweeper, SweepResult

__all__ = ["CheckpointSweeper", "SweepResult"]
