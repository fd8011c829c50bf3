"""
Per-tenant vault store lifecycle.

Each tenant owns one SQLite file under the data root. This module
generates storage locations, initializes the schema when a tenant is
provisioned, and opens handles lazily on first access.

Invariants:
    - One SQLite file per tenant, never shared
    - Locations are bare file names generated from a random UUID, so they
      are collision resistant and cannot escape the data root
    - Schema is created at provisioning time, never on open

Table schema:
    vault_items:
        - id TEXT PRIMARY KEY (client-chosen)
        - encrypted_blob TEXT NOT NULL (opaque ciphertext)
        - revision INTEGER NOT NULL, >= 0 (client-set)
        - updated_at TEXT NOT NULL (server-assigned, UTC ISO-8601)
"""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path

from ..errors import StorageError, ValidationError
from .handle import StoreHandle

logger = logging.getLogger(__name__)

STORE_SUFFIX = ".db"

VAULT_SCHEMA = """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS vault_items (
        id TEXT PRIMARY KEY,
        encrypted_blob TEXT NOT NULL,
        revision INTEGER NOT NULL DEFAULT 0 CHECK (revision >= 0),
        updated_at TEXT NOT NULL
    );

    INSERT OR IGNORE INTO schema_version (version, applied_at)
    VALUES (1, strftime('%Y-%m-%dT%H:%M:%fZ', 'now'));
"""


class TenantStoreManager:
    """Creates and opens tenant vault stores under a data root.

    Example:
        >>> stores = TenantStoreManager("/var/lib/guardian")
        >>> location = stores.new_location()
        >>> stores.initialize(location)
        >>> handle = stores.open(location)
    """

    def __init__(
        self,
        data_dir: str | Path,
        wal_mode: bool = True,
        busy_timeout_ms: int = 10000,
        cache_size_pages: int = -16000,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size_pages = cache_size_pages

    def new_location(self) -> str:
        """Generate a fresh storage location for a tenant."""
        return f"{uuid.uuid4()}{STORE_SUFFIX}"

    def path_for(self, location: str) -> Path:
        """Resolve a storage location to its file under the data root.

        Raises:
            ValidationError: If the location is not a bare file name
        """
        if (
            not location
            or os.sep in location
            or (os.altsep and os.altsep in location)
            or location in (".", "..")
        ):
            raise ValidationError(f"Invalid storage location: {location!r}")
        return self.data_dir / location

    def exists(self, location: str) -> bool:
        return self.path_for(location).exists()

    def initialize(self, location: str) -> None:
        """Create the store file and its schema.

        Safe to call on an existing store; the schema uses IF NOT EXISTS.

        Raises:
            StorageError: If the file cannot be created
        """
        handle = StoreHandle.open(
            self.path_for(location),
            create=True,
            wal_mode=self.wal_mode,
            busy_timeout_ms=self.busy_timeout_ms,
            cache_size_pages=self.cache_size_pages,
        )
        try:
            handle.executescript(VAULT_SCHEMA)
        finally:
            handle.close()
        logger.info("Initialized tenant store", extra={"location": location})

    def open(self, location: str) -> StoreHandle:
        """Open a handle on an existing tenant store.

        Raises:
            StoreNotFoundError: If the store was never initialized
            StorageError: If SQLite cannot open it
        """
        return StoreHandle.open(
            self.path_for(location),
            create=False,
            wal_mode=self.wal_mode,
            busy_timeout_ms=self.busy_timeout_ms,
            cache_size_pages=self.cache_size_pages,
        )

    def discard(self, location: str) -> None:
        """Remove a store that was initialized but never handed to a tenant."""
        path = self.path_for(location)
        for suffix in ("", "-wal", "-shm"):
            candidate = path.with_name(path.name + suffix)
            try:
                candidate.unlink(missing_ok=True)
            except OSError as e:
                raise StorageError(f"Failed to remove store file: {e}", location=location) from e

    def disk_usage(self, location: str) -> tuple[int, int]:
        """Return (main file bytes, WAL + SHM overhead bytes) for a store."""
        path = self.path_for(location)
        main = path.stat().st_size if path.exists() else 0
        overhead = 0
        for suffix in ("-wal", "-shm"):
            side = path.with_name(path.name + suffix)
            if side.exists():
                overhead += side.stat().st_size
        return main, overhead
