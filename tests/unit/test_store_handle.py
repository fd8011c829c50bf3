"""
Unit tests for StoreHandle and TenantStoreManager.

Tests cover:
- Opening, creating and configuring store files
- Transaction commit and rollback
- Checkpointing the write-ahead log
- Storage location validation
"""

import tempfile
from pathlib import Path

import pytest

from vault.guardian_server.errors import StorageError, StoreNotFoundError, ValidationError
from vault.guardian_server.store.handle import StoreHandle
from vault.guardian_server.store.tenant_store import TenantStoreManager


class TestStoreHandle:
    """Tests for StoreHandle."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.fixture
    def handle(self, data_dir):
        handle = StoreHandle.open(data_dir / "test.db", create=True)
        handle.executescript("CREATE TABLE items (id TEXT PRIMARY KEY, value TEXT NOT NULL);")
        yield handle
        handle.close()

    def test_open_missing_without_create(self, data_dir):
        """Opening a missing store without create fails."""
        with pytest.raises(StoreNotFoundError):
            StoreHandle.open(data_dir / "missing.db")

    def test_wal_mode_enabled(self, handle):
        """Handles run in WAL journal mode by default."""
        rows = handle.query("PRAGMA journal_mode")
        assert rows[0][0] == "wal"

    def test_transaction_commits(self, handle):
        """Statements in a transaction are visible after commit."""
        with handle.transaction() as conn:
            conn.execute("INSERT INTO items VALUES (?, ?)", ("a", "1"))
            conn.execute("INSERT INTO items VALUES (?, ?)", ("b", "2"))

        rows = handle.query("SELECT id FROM items ORDER BY id")
        assert [row["id"] for row in rows] == ["a", "b"]

    def test_transaction_rolls_back_on_sqlite_error(self, handle):
        """A failing statement rolls back the whole transaction."""
        with pytest.raises(StorageError):
            with handle.transaction() as conn:
                conn.execute("INSERT INTO items VALUES (?, ?)", ("a", "1"))
                conn.execute("INSERT INTO items VALUES (?, ?)", ("b", None))

        assert handle.query("SELECT COUNT(*) FROM items")[0][0] == 0

    def test_transaction_rolls_back_on_other_error(self, handle):
        """Non-SQLite exceptions also roll back and propagate unchanged."""
        with pytest.raises(RuntimeError):
            with handle.transaction() as conn:
                conn.execute("INSERT INTO items VALUES (?, ?)", ("a", "1"))
                raise RuntimeError("boom")

        assert handle.query("SELECT COUNT(*) FROM items")[0][0] == 0

    def test_handle_usable_after_rollback(self, handle):
        """A rolled back transaction leaves the handle ready for more work."""
        with pytest.raises(StorageError):
            with handle.transaction() as conn:
                conn.execute("INSERT INTO items VALUES (?, ?)", ("a", None))

        with handle.transaction() as conn:
            conn.execute("INSERT INTO items VALUES (?, ?)", ("a", "ok"))
        assert handle.query("SELECT value FROM items")[0]["value"] == "ok"

    def test_checkpoint_truncates_wal(self, handle, data_dir):
        """TRUNCATE checkpoint empties the -wal file."""
        with handle.transaction() as conn:
            for i in range(50):
                conn.execute("INSERT INTO items VALUES (?, ?)", (f"id{i}", "x" * 100))

        wal_path = data_dir / "test.db-wal"
        assert wal_path.stat().st_size > 0

        result = handle.checkpoint()

        assert result.busy == 0
        assert wal_path.stat().st_size == 0

    def test_closed_handle_refuses_work(self, handle):
        """Closed handles raise StorageError."""
        handle.close()
        assert handle.closed

        with pytest.raises(StorageError):
            handle.query("SELECT 1")
        with pytest.raises(StorageError):
            handle.checkpoint()

    def test_close_is_idempotent(self, handle):
        handle.close()
        handle.close()
        assert handle.closed


class TestTenantStoreManager:
    """Tests for TenantStoreManager."""

    @pytest.fixture
    def stores(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield TenantStoreManager(tmpdir)

    def test_new_locations_are_unique(self, stores):
        locations = {stores.new_location() for _ in range(100)}
        assert len(locations) == 100
        assert all(loc.endswith(".db") for loc in locations)

    def test_initialize_creates_empty_store(self, stores):
        """Initialized stores exist and hold an empty vault_items table."""
        location = stores.new_location()
        assert not stores.exists(location)

        stores.initialize(location)

        assert stores.exists(location)
        handle = stores.open(location)
        try:
            assert handle.query("SELECT COUNT(*) FROM vault_items")[0][0] == 0
        finally:
            handle.close()

    def test_open_uninitialized_store_fails(self, stores):
        with pytest.raises(StoreNotFoundError):
            stores.open(stores.new_location())

    @pytest.mark.parametrize("location", ["", "..", "../escape.db", "nested/store.db"])
    def test_rejects_non_bare_locations(self, stores, location):
        """Locations must not escape the data root."""
        with pytest.raises(ValidationError):
            stores.path_for(location)

    def test_discard_removes_files(self, stores):
        location = stores.new_location()
        stores.initialize(location)

        stores.discard(location)

        assert not stores.exists(location)

    def test_disk_usage(self, stores):
        location = stores.new_location()
        stores.initialize(location)

        main, overhead = stores.disk_usage(location)

        assert main > 0
        assert overhead >= 0
