"""
Unit tests for TenantDirectory.

Tests cover:
- Provisioning and resolution
- Identity and storage location conflicts
- Storage location immutability
- Status, access stamping and preferences
"""

import tempfile
from pathlib import Path

import pytest

from vault.guardian_server.directory.catalog import TenantDirectory
from vault.guardian_server.errors import (
    ConflictError,
    StorageError,
    TenantNotFoundError,
    ValidationError,
)
from vault.guardian_server.models import TenantStatus


class TestTenantDirectory:
    """Tests for TenantDirectory."""

    @pytest.fixture
    def directory(self):
        """Create a catalog in a temporary directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            directory = TenantDirectory.open(Path(tmpdir) / "system.db")
            yield directory
            directory.close()

    def test_provision_and_resolve(self, directory):
        tenant = directory.provision("alice", "a1.db", "Alice")

        assert tenant.tenant_id == "alice"
        assert tenant.status == TenantStatus.ACTIVE
        assert tenant.created_at.endswith("Z")
        assert directory.resolve_storage_location("alice") == "a1.db"

    def test_resolve_unknown_tenant(self, directory):
        with pytest.raises(TenantNotFoundError) as exc_info:
            directory.resolve_storage_location("bob")
        assert exc_info.value.tenant_id == "bob"

    def test_duplicate_tenant_id(self, directory):
        """A second provision of the same id conflicts and keeps the first mapping."""
        directory.provision("alice", "a1.db", "Alice")

        with pytest.raises(ConflictError):
            directory.provision("alice", "a2.db", "Alice again")

        assert directory.resolve_storage_location("alice") == "a1.db"
        assert directory.count() == 1

    def test_duplicate_storage_location(self, directory):
        """Two tenants never share a storage location."""
        directory.provision("alice", "shared.db", "Alice")

        with pytest.raises(ConflictError) as exc_info:
            directory.provision("bob", "shared.db", "Bob")

        assert exc_info.value.details["storage_location"] == "shared.db"
        with pytest.raises(TenantNotFoundError):
            directory.resolve_storage_location("bob")

    def test_empty_tenant_id(self, directory):
        with pytest.raises(ValidationError):
            directory.provision("", "a1.db", "Nobody")

    def test_storage_location_is_immutable(self, directory):
        """Reassigning a storage location is rejected by the catalog itself."""
        directory.provision("alice", "a1.db", "Alice")

        with pytest.raises(StorageError):
            directory.handle.execute(
                "UPDATE tenants SET storage_location = ? WHERE tenant_id = ?",
                ("other.db", "alice"),
            )

        assert directory.resolve_storage_location("alice") == "a1.db"

    def test_get_and_list(self, directory):
        directory.provision("alice", "a1.db", "Alice", is_admin=True)
        directory.provision("bob", "b1.db", "Bob")

        alice = directory.get("alice")
        assert alice.is_admin
        assert alice.display_name == "Alice"

        ids = {tenant.tenant_id for tenant in directory.list_tenants()}
        assert ids == {"alice", "bob"}
        assert directory.count() == 2

    def test_to_dict_hides_storage_location(self, directory):
        tenant = directory.provision("alice", "a1.db", "Alice")
        assert "storage_location" not in tenant.to_dict()

    def test_is_administrator(self, directory):
        directory.provision("alice", "a1.db", "Alice", is_admin=True)
        directory.provision("bob", "b1.db", "Bob")

        assert directory.is_administrator("alice")
        assert not directory.is_administrator("bob")
        assert not directory.is_administrator("nobody")

    def test_set_status(self, directory):
        directory.provision("bob", "b1.db", "Bob")

        tenant = directory.set_status("bob", TenantStatus.SUSPENDED)

        assert tenant.status == TenantStatus.SUSPENDED
        assert directory.get("bob").status == TenantStatus.SUSPENDED

    def test_set_status_unknown_tenant(self, directory):
        with pytest.raises(TenantNotFoundError):
            directory.set_status("nobody", TenantStatus.INACTIVE)

    def test_record_access(self, directory):
        directory.provision("alice", "a1.db", "Alice")
        assert directory.get("alice").last_access_at is None

        directory.record_access("alice")

        assert directory.get("alice").last_access_at is not None

    def test_record_access_never_raises(self, directory):
        """Access stamping is best-effort even when the catalog is unusable."""
        directory.close()
        directory.record_access("alice")

    def test_preferences_default_to_empty(self, directory):
        directory.provision("alice", "a1.db", "Alice")
        assert directory.get_preferences("alice") == {}
        assert directory.get_preferences("nobody") == {}

    def test_set_preferences(self, directory):
        directory.provision("alice", "a1.db", "Alice")
        document = {"theme": "dark", "autoLockMinutes": 5, "pinned": ["a", "b"]}

        directory.set_preferences("alice", document)

        assert directory.get_preferences("alice") == document

    def test_set_preferences_unknown_tenant(self, directory):
        with pytest.raises(TenantNotFoundError):
            directory.set_preferences("nobody", {"theme": "dark"})

    def test_set_preferences_rejects_non_json(self, directory):
        directory.provision("alice", "a1.db", "Alice")
        with pytest.raises(ValidationError):
            directory.set_preferences("alice", {"when": object()})

    def test_catalog_survives_reopen(self):
        """Provisioned tenants persist across catalog reopen."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "system.db"
            directory = TenantDirectory.open(path)
            directory.provision("alice", "a1.db", "Alice")
            directory.close()

            reopened = TenantDirectory.open(path)
            try:
                assert reopened.resolve_storage_location("alice") == "a1.db"
            finally:
                reopened.close()

    def test_invites_table_is_schema_only(self, directory):
        """The invites table exists but provisioning never touches it."""
        directory.provision("alice", "a1.db", "Alice", is_admin=True)

        assert directory.handle.query("SELECT COUNT(*) FROM invites")[0][0] == 0
