"""
Vault service - the explicit owner of the storage core.

VaultService wires the tenant directory, the tenant store manager, the
store handle cache, the sync merge engine and the checkpoint sweeper
together, and exposes the operations the HTTP layer binds to routes.
One instance is created per process and injected into request handlers;
nothing here is module-level state.

Shutdown sequence (stop/close):
    1. Stop the sweeper loop (never mid-sweep)
    2. Run one final synchronous checkpoint sweep
    3. Close every cached tenant handle
    4. Close the catalog

Invariants:
    - Every operation takes the tenant id explicitly
    - A tenant is visible in the catalog only after its store exists
    - Handles live from first access until close()
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from .checkpoint import CheckpointSweeper, SweepResult
from .config import CheckpointConfig, ServerConfig, StorageConfig
from .directory import TenantDirectory
from .errors import ForbiddenError, GuardianError
from .models import Record, Tenant, TenantStatus
from .store import StoreHandleCache, TenantStoreManager
from .sync import SyncMergeEngine

logger = logging.getLogger(__name__)


def format_bytes(size: int) -> str:
    """Human-readable byte count (B, KB, MB, GB)."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    if size < 1024 * 1024 * 1024:
        return f"{size / (1024 * 1024):.1f} MB"
    return f"{size / (1024 * 1024 * 1024):.2f} GB"


class VaultService:
    """Per-process owner of catalog, tenant stores and sweeper.

    Attributes:
        storage: Storage configuration
        checkpoint: Checkpoint sweeper configuration
        stores: Tenant store manager
        directory: Tenant directory (set by open())
        cache: Store handle cache (set by open())
        engine: Sync merge engine (set by open())
        sweeper: Checkpoint sweeper (set by open())

    Example:
        >>> service = VaultService(StorageConfig(data_dir="/var/lib/guardian"))
        >>> await service.start()
        >>> service.provision_tenant("alice", "Alice")
        >>> await service.stop()
    """

    def __init__(
        self,
        storage: StorageConfig | None = None,
        checkpoint: CheckpointConfig | None = None,
    ) -> None:
        self.storage = storage or StorageConfig()
        self.checkpoint = checkpoint or CheckpointConfig()
        self.stores = TenantStoreManager(
            data_dir=self.storage.data_dir,
            wal_mode=self.storage.wal_mode,
            busy_timeout_ms=self.storage.busy_timeout_ms,
            cache_size_pages=self.storage.cache_size_pages,
        )

        self.directory: TenantDirectory | None = None
        self.cache: StoreHandleCache | None = None
        self.engine: SyncMergeEngine | None = None
        self.sweeper: CheckpointSweeper | None = None
        self._open = False

    @classmethod
    def from_config(cls, config: ServerConfig) -> VaultService:
        return cls(storage=config.storage, checkpoint=config.checkpoint)

    # --- Lifecycle ---

    def open(self) -> None:
        """Open the catalog and build the in-process components."""
        if self._open:
            return

        data_dir = Path(self.storage.data_dir)
        data_dir.mkdir(parents=True, exist_ok=True)

        self.directory = TenantDirectory.open(
            data_dir / self.storage.catalog_filename,
            wal_mode=self.storage.wal_mode,
            busy_timeout_ms=self.storage.busy_timeout_ms,
            cache_size_pages=self.storage.cache_size_pages,
        )
        self.cache = StoreHandleCache(opener=self.stores.open)
        self.engine = SyncMergeEngine(self.directory, self.cache)
        self.sweeper = CheckpointSweeper(
            self.cache,
            catalog=self.directory.handle,
            interval_seconds=self.checkpoint.interval_seconds,
        )
        self._open = True
        logger.info("Vault service opened", extra={"data_dir": str(data_dir)})

    async def start(self) -> None:
        """Open the service and start the checkpoint sweeper."""
        self.open()
        if self.checkpoint.enabled:
            await self.sweeper.start()

    async def stop(self) -> None:
        """Stop the sweeper, then run the synchronous close sequence."""
        if not self._open:
            return
        await self.sweeper.stop()
        self.close()

    def close(self) -> SweepResult | None:
        """Final sweep, then close all handles and the catalog.

        Returns:
            Result of the final checkpoint sweep, or None if never opened
        """
        if not self._open:
            return None

        result = self.sweeper.sweep()
        self.cache.close_all()
        self.directory.close()
        self._open = False
        logger.info("Vault service closed")
        return result

    @property
    def is_open(self) -> bool:
        return self._open

    # --- Tenants ---

    def provision_tenant(
        self,
        tenant_id: str,
        display_name: str | None = None,
        password_hash: str | None = None,
        is_admin: bool = False,
    ) -> Tenant:
        """Create a tenant: initialize its store, then register it.

        Raises:
            ConflictError: If the tenant id is taken
            StorageError: If the store cannot be created
        """
        location = self.stores.new_location()
        self.stores.initialize(location)
        try:
            return self.directory.provision(
                tenant_id,
                location,
                display_name or tenant_id,
                password_hash=password_hash,
                is_admin=is_admin,
            )
        except GuardianError:
            self.stores.discard(location)
            raise

    def tenant_count(self) -> int:
        return self.directory.count()

    def authorize(self, tenant_id: str) -> Tenant:
        """Check that an authenticated tenant may use its vault.

        Also stamps last access, best-effort.

        Raises:
            TenantNotFoundError: If the tenant is unknown
            ForbiddenError: If the tenant is not ACTIVE
        """
        tenant = self.directory.get(tenant_id)
        if tenant.status is not TenantStatus.ACTIVE:
            raise ForbiddenError(f"Tenant is {tenant.status.value.lower()}")
        self.directory.record_access(tenant_id)
        return tenant

    def is_administrator(self, tenant_id: str) -> bool:
        return self.directory.is_administrator(tenant_id)

    def set_tenant_status(self, tenant_id: str, status: TenantStatus) -> Tenant:
        return self.directory.set_status(tenant_id, status)

    def describe_tenants(self) -> list[dict[str, Any]]:
        """Admin view: every tenant with record count and disk usage."""
        described = []
        for tenant in self.directory.list_tenants():
            try:
                items = self.engine.count_records(tenant.tenant_id)
            except GuardianError as e:
                logger.warning(f"Failed to count records for {tenant.tenant_id}: {e}")
                items = 0
            main_bytes, overhead_bytes = self.stores.disk_usage(tenant.storage_location)
            entry = tenant.to_dict()
            entry.update(
                {
                    "vault_items": items,
                    "used_space": format_bytes(main_bytes),
                    "used_space_overhead": format_bytes(overhead_bytes),
                }
            )
            described.append(entry)
        return described

    # --- Records ---

    def list_records(self, tenant_id: str) -> list[Record]:
        return self.engine.list_records(tenant_id)

    def upsert_records(self, tenant_id: str, batch: Sequence[Record]) -> int:
        return self.engine.upsert_batch(tenant_id, batch)

    # --- Preferences ---

    def get_preferences(self, tenant_id: str) -> Any:
        return self.directory.get_preferences(tenant_id)

    def set_preferences(self, tenant_id: str, document: Any) -> Any:
        return self.directory.set_preferences(tenant_id, document)
