"""
Core data types shared by the directory, store and sync layers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with millisecond precision."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


class TenantStatus(Enum):
    """Tenant lifecycle status."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


@dataclass
class Tenant:
    """A catalog entry for one vault owner.

    Attributes:
        tenant_id: Stable identifier (the human-chosen handle)
        storage_location: File name of the tenant store under the data root
        display_name: Friendly name shown in admin views
        status: Lifecycle status
        is_admin: Whether the tenant may administer others
        created_at: Provisioning timestamp (UTC ISO-8601)
        last_access_at: Last authenticated access, if any
    """

    tenant_id: str
    storage_location: str
    display_name: str
    status: TenantStatus
    is_admin: bool
    created_at: str
    last_access_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "display_name": self.display_name,
            "status": self.status.value,
            "is_admin": self.is_admin,
            "created_at": self.created_at,
            "last_access_at": self.last_access_at,
        }


@dataclass
class Record:
    """One encrypted vault entry.

    The payload is never parsed; revision is trusted as submitted.

    Attributes:
        id: Client-chosen identifier, stable across syncs
        encrypted_blob: Opaque ciphertext
        revision: Client-set revision counter
        updated_at: Server-assigned timestamp (None before persisting)
    """

    id: str
    encrypted_blob: str
    revision: int
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "encrypted_blob": self.encrypted_blob,
            "revision": self.revision,
            "updated_at": self.updated_at,
        }
