"""
Tenant directory backed by the shared catalog store.

The catalog is a single SQLite database holding tenant metadata (storage
location, display name, status, admin flag, preferences) and invite
metadata. It is the authoritative source for mapping a tenant id to its
store; nothing here is cached, every resolution re-reads the catalog.

Invariants:
    - tenant_id and storage_location are each unique
    - storage_location is immutable once assigned (enforced by trigger)
    - Tenants are never deleted by this module
    - Best-effort side effects (last access) never raise

Table schema:
    tenants:
        - tenant_id TEXT PRIMARY KEY
        - storage_location TEXT UNIQUE NOT NULL
        - display_name TEXT NOT NULL
        - status TEXT (ACTIVE | INACTIVE | SUSPENDED)
        - is_admin INTEGER (0/1)
        - password_hash TEXT
        - preferences TEXT (JSON, default '{}')
        - created_at TEXT
        - last_access_at TEXT

    invites (schema only; nothing in this package reads or writes it,
    the invite workflow is not implemented):
        - id INTEGER PRIMARY KEY
        - token TEXT UNIQUE
        - created_by TEXT -> tenants.tenant_id
        - created_at, expires_at TEXT
        - max_uses, use_count INTEGER
        - note, status TEXT
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from ..errors import ConflictError, StorageError, TenantNotFoundError, ValidationError
from ..models import Tenant, TenantStatus, utc_timestamp
from ..store.handle import StoreHandle

logger = logging.getLogger(__name__)

CATALOG_SCHEMA = """
    CREATE TABLE IF NOT EXISTS tenants (
        tenant_id TEXT PRIMARY KEY,
        storage_location TEXT NOT NULL UNIQUE,
        display_name TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'ACTIVE'
            CHECK (status IN ('ACTIVE', 'INACTIVE', 'SUSPENDED')),
        is_admin INTEGER NOT NULL DEFAULT 0,
        password_hash TEXT,
        preferences TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL,
        last_access_at TEXT
    );

    CREATE TRIGGER IF NOT EXISTS tenants_location_immutable
    BEFORE UPDATE OF storage_location ON tenants
    WHEN NEW.storage_location IS NOT OLD.storage_location
    BEGIN
        SELECT RAISE(ABORT, 'storage_location is immutable');
    END;

    CREATE TABLE IF NOT EXISTS invites (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        token TEXT NOT NULL UNIQUE,
        created_by TEXT NOT NULL REFERENCES tenants(tenant_id),
        created_at TEXT NOT NULL,
        expires_at TEXT,
        max_uses INTEGER NOT NULL DEFAULT 1,
        use_count INTEGER NOT NULL DEFAULT 0,
        note TEXT,
        status TEXT NOT NULL DEFAULT 'ACTIVE'
    );
"""

_TENANT_COLUMNS = (
    "tenant_id, storage_location, display_name, status, is_admin, created_at, last_access_at"
)


def _row_to_tenant(row: sqlite3.Row) -> Tenant:
    return Tenant(
        tenant_id=row["tenant_id"],
        storage_location=row["storage_location"],
        display_name=row["display_name"],
        status=TenantStatus(row["status"]),
        is_admin=bool(row["is_admin"]),
        created_at=row["created_at"],
        last_access_at=row["last_access_at"],
    )


class TenantDirectory:
    """Durable tenant id -> storage location mapping.

    Example:
        >>> directory = TenantDirectory.open(Path("/var/lib/guardian/system.db"))
        >>> directory.provision("alice", "5f0c...e1.db", "Alice's vault")
        >>> directory.resolve_storage_location("alice")
        '5f0c...e1.db'
    """

    def __init__(self, handle: StoreHandle) -> None:
        self.handle = handle

    @classmethod
    def open(
        cls,
        path: Path,
        wal_mode: bool = True,
        busy_timeout_ms: int = 10000,
        cache_size_pages: int = -16000,
    ) -> TenantDirectory:
        """Open (creating if needed) the catalog and ensure its schema."""
        handle = StoreHandle.open(
            path,
            create=True,
            wal_mode=wal_mode,
            busy_timeout_ms=busy_timeout_ms,
            cache_size_pages=cache_size_pages,
        )
        try:
            handle.executescript(CATALOG_SCHEMA)
        except StorageError:
            handle.close()
            raise
        logger.info("Catalog opened", extra={"path": str(path)})
        return cls(handle)

    def close(self) -> None:
        self.handle.close()

    def resolve_storage_location(self, tenant_id: str) -> str:
        """Look up the storage location of a tenant.

        Raises:
            TenantNotFoundError: If the tenant is unknown
        """
        rows = self.handle.query(
            "SELECT storage_location FROM tenants WHERE tenant_id = ?", (tenant_id,)
        )
        if not rows:
            raise TenantNotFoundError(tenant_id)
        return rows[0]["storage_location"]

    def provision(
        self,
        tenant_id: str,
        storage_location: str,
        display_name: str,
        password_hash: str | None = None,
        is_admin: bool = False,
    ) -> Tenant:
        """Insert a new tenant.

        Args:
            tenant_id: Stable tenant identifier
            storage_location: Generated store file name
            display_name: Friendly name
            password_hash: Credential produced by the auth collaborator
            is_admin: Grant administrator rights

        Returns:
            The created Tenant

        Raises:
            ConflictError: If the tenant id or storage location already exists
        """
        if not tenant_id:
            raise ValidationError("tenant_id must not be empty")

        now = utc_timestamp()
        with self.handle.transaction() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO tenants (tenant_id, storage_location, display_name, status,
                                         is_admin, password_hash, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        tenant_id,
                        storage_location,
                        display_name,
                        TenantStatus.ACTIVE.value,
                        int(is_admin),
                        password_hash,
                        now,
                    ),
                )
            except sqlite3.IntegrityError as e:
                if "storage_location" in str(e):
                    raise ConflictError(
                        "Storage location already assigned", storage_location=storage_location
                    ) from e
                raise ConflictError(f"Tenant already exists: {tenant_id}", tenant_id=tenant_id) from e

        logger.info(
            "Provisioned tenant",
            extra={"tenant_id": tenant_id, "storage_location": storage_location, "is_admin": is_admin},
        )
        return Tenant(
            tenant_id=tenant_id,
            storage_location=storage_location,
            display_name=display_name,
            status=TenantStatus.ACTIVE,
            is_admin=is_admin,
            created_at=now,
        )

    def get(self, tenant_id: str) -> Tenant:
        """Get a tenant by id.

        Raises:
            TenantNotFoundError: If the tenant is unknown
        """
        rows = self.handle.query(
            f"SELECT {_TENANT_COLUMNS} FROM tenants WHERE tenant_id = ?", (tenant_id,)
        )
        if not rows:
            raise TenantNotFoundError(tenant_id)
        return _row_to_tenant(rows[0])

    def list_tenants(self) -> list[Tenant]:
        """All tenants, newest first."""
        rows = self.handle.query(
            f"SELECT {_TENANT_COLUMNS} FROM tenants ORDER BY created_at DESC, tenant_id"
        )
        return [_row_to_tenant(row) for row in rows]

    def count(self) -> int:
        return self.handle.query("SELECT COUNT(*) FROM tenants")[0][0]

    def is_administrator(self, tenant_id: str) -> bool:
        rows = self.handle.query("SELECT is_admin FROM tenants WHERE tenant_id = ?", (tenant_id,))
        return bool(rows and rows[0]["is_admin"])

    def set_status(self, tenant_id: str, status: TenantStatus) -> Tenant:
        """Change a tenant's lifecycle status.

        Raises:
            TenantNotFoundError: If the tenant is unknown
        """
        updated = self.handle.execute(
            "UPDATE tenants SET status = ? WHERE tenant_id = ?", (status.value, tenant_id)
        )
        if not updated:
            raise TenantNotFoundError(tenant_id)
        logger.info("Tenant status changed", extra={"tenant_id": tenant_id, "status": status.value})
        return self.get(tenant_id)

    def record_access(self, tenant_id: str) -> None:
        """Stamp last_access_at. Best-effort: failures are logged only."""
        try:
            self.handle.execute(
                "UPDATE tenants SET last_access_at = ? WHERE tenant_id = ?",
                (utc_timestamp(), tenant_id),
            )
        except StorageError as e:
            logger.warning(f"Failed to record access for {tenant_id}: {e}")

    def get_preferences(self, tenant_id: str) -> Any:
        """Return the tenant's preference document, or {} when absent."""
        rows = self.handle.query(
            "SELECT preferences FROM tenants WHERE tenant_id = ?", (tenant_id,)
        )
        if not rows or not rows[0]["preferences"]:
            return {}
        try:
            return json.loads(rows[0]["preferences"])
        except json.JSONDecodeError:
            logger.warning(f"Corrupt preferences for {tenant_id}, returning defaults")
            return {}

    def set_preferences(self, tenant_id: str, document: Any) -> Any:
        """Replace the tenant's preference document.

        Raises:
            ValidationError: If the document is not JSON serializable
            TenantNotFoundError: If the tenant is unknown
        """
        try:
            encoded = json.dumps(document)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Preferences are not valid JSON: {e}") from e

        updated = self.handle.execute(
            "UPDATE tenants SET preferences = ? WHERE tenant_id = ?", (encoded, tenant_id)
        )
        if not updated:
            raise TenantNotFoundError(tenant_id)
        return document
