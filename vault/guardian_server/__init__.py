"""
Guardian Server - multi-tenant sync backend for encrypted vaults.

This package implements the storage routing and sync-merge layer:
- A shared catalog maps each tenant to its own SQLite store
- One live handle per store, cached for the process lifetime
- Atomic, last-submitter-wins batch upserts of opaque encrypted records
- A periodic WAL checkpoint sweep

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Client    │────▶│  HTTP API   │────▶│  Authenticator  │
    │ (vault app) │     │  (FastAPI)  │     │  (tenant id)    │
    └─────────────┘     └─────────────┘     └────────┬────────┘
                                                     │
                                                     ▼
                        ┌─────────────────────────────────────────┐
                        │        Tenant Directory (catalog)       │
                        └────────────────────┬────────────────────┘
                                             │ storage location
                                             ▼
                        ┌─────────────────────────────────────────┐
                        │          Store Handle Cache             │◀──┐
                        └────────────────────┬────────────────────┘   │
                                             │                        │
                                             ▼                        │
                   ┌──────────────────┐   ┌─────────────┐   ┌─────────┴────────┐
                   │ Sync Merge Engine│──▶│ tenant .db  │   │Checkpoint Sweeper│
                   └──────────────────┘   └─────────────┘   └──────────────────┘

Invariants:
    - Records of one tenant are never visible through another tenant's store
    - A tenant's store is opened at most once by this process
    - Upsert batches are all-or-nothing
    - Record payloads are opaque and never parsed

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
