"""
Sync module for Guardian - record listing and batch merge.

Invariants:
    - Batches are all-or-nothing
    - Last submitter wins; revisions are stored as submitted
"""

from .merge import SyncMergeEngine

__all__ = ["SyncMergeEngine"]
