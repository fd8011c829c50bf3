"""
Store module for Guardian - tenant vault files and their live handles.

This module handles:
- Per-tenant SQLite store creation and schema initialization
- One serialized connection (handle) per store
- The process-wide handle cache with optimistic race resolution

Invariants:
    - A tenant's store is never opened twice concurrently by this process
    - SQLite runs in WAL mode so the checkpoint sweeper can bound -wal growth
"""

from .cache import StoreHandleCache
from .handle import CheckpointResult, StoreHandle
from .tenant_store import TenantStoreManager

__all__ = [
    "CheckpointResult",
    "StoreHandle",
    "StoreHandleCache",
    "TenantStoreManager",
]
