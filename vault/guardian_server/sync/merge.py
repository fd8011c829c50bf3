"""
Sync merge engine.

Reconciles client-submitted record batches against a tenant's store.
Every batch is applied inside one transaction on the tenant's shared
handle: either all records land or none do.

Merge rule:
    Incoming records overwrite stored ones unconditionally. The stored
    revision is never compared against the incoming revision, so the last
    submitter wins even with an equal or lower revision. Within one batch
    the same id may appear several times; statements run in submission
    order, so the last occurrence wins.

Invariants:
    - Tenant identity is always an explicit argument
    - updated_at is assigned by the server, one value per batch
    - Every record is checked before the transaction opens; a batch that
      cannot be bound to SQLite is rejected whole with ValidationError
    - No internal retries; failures surface as StorageError
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from ..directory.catalog import TenantDirectory
from ..errors import ValidationError
from ..models import Record, utc_timestamp
from ..store.cache import StoreHandleCache
from ..store.handle import StoreHandle

logger = logging.getLogger(__name__)

UPSERT_SQL = """
    INSERT INTO vault_items (id, encrypted_blob, revision, updated_at)
    VALUES (?, ?, ?, ?)
    ON CONFLICT(id) DO UPDATE SET
        encrypted_blob = excluded.encrypted_blob,
        revision = excluded.revision,
        updated_at = excluded.updated_at
"""

# Largest value SQLite stores in an INTEGER column
MAX_REVISION = 2**63 - 1


def _record_problems(record: Record) -> list[str]:
    """Reasons a record cannot be bound to the vault_items row, if any."""
    problems = []
    if not isinstance(record.id, str) or not record.id:
        problems.append("id must be a non-empty string")
    elif not _encodes(record.id):
        problems.append("id must be valid UTF-8 text")

    if not isinstance(record.encrypted_blob, str):
        problems.append("encrypted_blob must be a string")
    elif not _encodes(record.encrypted_blob):
        problems.append("encrypted_blob must be valid UTF-8 text")

    revision = record.revision
    if isinstance(revision, bool) or not isinstance(revision, int):
        problems.append("revision must be an integer")
    elif not 0 <= revision <= MAX_REVISION:
        problems.append(f"revision must be between 0 and {MAX_REVISION}")
    return problems


def _encodes(text: str) -> bool:
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


class SyncMergeEngine:
    """Lists and upserts vault records for a tenant.

    Example:
        >>> engine = SyncMergeEngine(directory, cache)
        >>> engine.upsert_batch("alice", [Record(id="a", encrypted_blob="X", revision=1)])
        1
        >>> [r.revision for r in engine.list_records("alice")]
        [1]
    """

    def __init__(self, directory: TenantDirectory, cache: StoreHandleCache) -> None:
        self.directory = directory
        self.cache = cache

    def handle_for(self, tenant_id: str) -> StoreHandle:
        """Resolve a tenant to its shared store handle.

        Raises:
            TenantNotFoundError: If the tenant is unknown
            StoreNotFoundError: If the tenant's store file is missing
        """
        location = self.directory.resolve_storage_location(tenant_id)
        return self.cache.acquire(location)

    def list_records(self, tenant_id: str) -> list[Record]:
        """Return every record in the tenant's store.

        No pagination; order is whatever SQLite returns for a full scan.
        """
        handle = self.handle_for(tenant_id)
        rows = handle.query("SELECT id, encrypted_blob, revision, updated_at FROM vault_items")
        return [
            Record(
                id=row["id"],
                encrypted_blob=row["encrypted_blob"],
                revision=row["revision"],
                updated_at=row["updated_at"],
            )
            for row in rows
        ]

    def upsert_batch(self, tenant_id: str, batch: Sequence[Record]) -> int:
        """Apply a batch of records atomically.

        Args:
            tenant_id: Tenant identifier
            batch: Records in submission order

        Returns:
            Number of records applied

        Raises:
            ValidationError: If a record cannot be stored as submitted (empty
                id, non-text or unencodable payload, revision outside
                0..MAX_REVISION); nothing is applied
            TenantNotFoundError: If the tenant is unknown
            StorageError: If any record fails to persist (nothing is committed)
        """
        errors = [
            f"record {index}: {problem}"
            for index, record in enumerate(batch)
            for problem in _record_problems(record)
        ]
        if errors:
            raise ValidationError("Invalid record batch", errors=errors)

        handle = self.handle_for(tenant_id)
        if not batch:
            return 0

        now = utc_timestamp()
        with handle.transaction() as conn:
            for record in batch:
                conn.execute(UPSERT_SQL, (record.id, record.encrypted_blob, record.revision, now))

        logger.debug(
            "Applied record batch",
            extra={"tenant_id": tenant_id, "count": len(batch), "location": handle.location},
        )
        return len(batch)

    def count_records(self, tenant_id: str) -> int:
        handle = self.handle_for(tenant_id)
        return handle.query("SELECT COUNT(*) FROM vault_items")[0][0]
