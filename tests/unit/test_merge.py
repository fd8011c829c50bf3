"""
Unit tests for SyncMergeEngine.

Tests cover:
- Listing and upserting records
- Last-submitter-wins overwrite semantics
- Batch atomicity
- Tenant isolation
"""

import tempfile
from pathlib import Path

import pytest

from vault.guardian_server.directory.catalog import TenantDirectory
from vault.guardian_server.errors import StorageError, TenantNotFoundError, ValidationError
from vault.guardian_server.models import Record
from vault.guardian_server.store.cache import StoreHandleCache
from vault.guardian_server.store.tenant_store import TenantStoreManager
from vault.guardian_server.sync.merge import SyncMergeEngine


def _by_id(records):
    return {record.id: record for record in records}


class TestSyncMergeEngine:
    """Tests for SyncMergeEngine."""

    @pytest.fixture
    def engine(self):
        """Engine over two provisioned tenants, T1 and T2."""
        with tempfile.TemporaryDirectory() as tmpdir:
            stores = TenantStoreManager(tmpdir)
            directory = TenantDirectory.open(Path(tmpdir) / "system.db")
            cache = StoreHandleCache(opener=stores.open)

            for tenant_id in ("T1", "T2", "alice"):
                location = stores.new_location()
                stores.initialize(location)
                directory.provision(tenant_id, location, tenant_id)

            yield SyncMergeEngine(directory, cache)

            cache.close_all()
            directory.close()

    def test_fresh_store_is_empty(self, engine):
        assert engine.list_records("T1") == []
        assert engine.count_records("T1") == 0

    def test_upsert_then_list(self, engine):
        """Stored records carry the submitted fields and a server timestamp."""
        count = engine.upsert_batch(
            "T1",
            [
                Record(id="a", encrypted_blob="X", revision=1),
                Record(id="b", encrypted_blob="Y", revision=1),
            ],
        )

        assert count == 2
        records = _by_id(engine.list_records("T1"))
        assert set(records) == {"a", "b"}
        assert records["a"].encrypted_blob == "X"
        assert records["a"].revision == 1
        assert records["a"].updated_at.endswith("Z")

    def test_batch_shares_one_timestamp(self, engine):
        engine.upsert_batch(
            "T1",
            [Record(id=f"r{i}", encrypted_blob="X", revision=1) for i in range(10)],
        )

        stamps = {record.updated_at for record in engine.list_records("T1")}
        assert len(stamps) == 1

    def test_last_submitter_wins(self, engine):
        """A lower revision still overwrites; revisions are never compared."""
        engine.upsert_batch("alice", [Record(id="a", encrypted_blob="A5", revision=5)])
        engine.upsert_batch("alice", [Record(id="a", encrypted_blob="A3", revision=3)])

        records = engine.list_records("alice")
        assert len(records) == 1
        assert records[0].encrypted_blob == "A3"
        assert records[0].revision == 3

    def test_equal_revision_overwrites(self, engine):
        engine.upsert_batch("T1", [Record(id="a", encrypted_blob="old", revision=2)])
        engine.upsert_batch("T1", [Record(id="a", encrypted_blob="new", revision=2)])

        assert engine.list_records("T1")[0].encrypted_blob == "new"

    def test_duplicate_id_in_batch_last_wins(self, engine):
        """Within one batch, the last occurrence of an id is what is stored."""
        count = engine.upsert_batch(
            "T1",
            [
                Record(id="a", encrypted_blob="first", revision=9),
                Record(id="a", encrypted_blob="second", revision=1),
            ],
        )

        assert count == 2
        records = engine.list_records("T1")
        assert len(records) == 1
        assert records[0].encrypted_blob == "second"
        assert records[0].revision == 1

    def test_empty_batch(self, engine):
        assert engine.upsert_batch("T1", []) == 0
        assert engine.list_records("T1") == []

    def _reject_id(self, engine, tenant_id, record_id):
        """Make the tenant's store refuse one record id at write time."""
        engine.handle_for(tenant_id).executescript(
            f"""
            CREATE TRIGGER reject_{record_id} BEFORE INSERT ON vault_items
            WHEN NEW.id = '{record_id}'
            BEGIN
                SELECT RAISE(ABORT, 'record rejected');
            END;
            """
        )

    def test_failing_record_rolls_back_batch(self, engine):
        """If the last record fails to persist, none of the batch is applied."""
        engine.upsert_batch("T1", [Record(id="a", encrypted_blob="orig", revision=1)])
        self._reject_id(engine, "T1", "c")

        with pytest.raises(StorageError):
            engine.upsert_batch(
                "T1",
                [
                    Record(id="a", encrypted_blob="changed", revision=2),
                    Record(id="b", encrypted_blob="new", revision=1),
                    Record(id="c", encrypted_blob="rejected", revision=1),
                ],
            )

        records = _by_id(engine.list_records("T1"))
        assert set(records) == {"a"}
        assert records["a"].encrypted_blob == "orig"
        assert records["a"].revision == 1

    def test_store_usable_after_failed_batch(self, engine):
        self._reject_id(engine, "T1", "c")
        with pytest.raises(StorageError):
            engine.upsert_batch("T1", [Record(id="c", encrypted_blob="X", revision=1)])

        assert engine.upsert_batch("T1", [Record(id="a", encrypted_blob="X", revision=1)]) == 1

    @pytest.mark.parametrize(
        "bad_record,problem",
        [
            (Record(id="b", encrypted_blob="Y", revision=-1), "revision must be between"),
            (Record(id="b", encrypted_blob="Y", revision=2**63), "revision must be between"),
            (Record(id="b", encrypted_blob="Y", revision=10**20), "revision must be between"),
            (Record(id="b", encrypted_blob="Y", revision="3"), "revision must be an integer"),
            (Record(id="b", encrypted_blob=None, revision=1), "encrypted_blob must be a string"),
            (Record(id="b", encrypted_blob="\ud800", revision=1), "encrypted_blob must be valid"),
            (Record(id="\udfff", encrypted_blob="Y", revision=1), "id must be valid"),
        ],
    )
    def test_unstorable_record_rejects_batch(self, engine, bad_record, problem):
        """Records SQLite cannot bind are rejected up front; the store is unchanged."""
        engine.upsert_batch("T1", [Record(id="a", encrypted_blob="orig", revision=1)])

        with pytest.raises(ValidationError) as exc_info:
            engine.upsert_batch(
                "T1",
                [Record(id="a", encrypted_blob="changed", revision=2), bad_record],
            )

        assert len(exc_info.value.errors) == 1
        assert exc_info.value.errors[0].startswith("record 1: ")
        assert problem in exc_info.value.errors[0]
        records = _by_id(engine.list_records("T1"))
        assert set(records) == {"a"}
        assert records["a"].encrypted_blob == "orig"

    def test_largest_revision_accepted(self, engine):
        engine.upsert_batch("T1", [Record(id="a", encrypted_blob="X", revision=2**63 - 1)])
        assert engine.list_records("T1")[0].revision == 2**63 - 1

    def test_reapplying_batch_is_idempotent(self, engine):
        batch = [
            Record(id="a", encrypted_blob="X", revision=1),
            Record(id="b", encrypted_blob="Y", revision=4),
        ]
        engine.upsert_batch("T1", batch)
        engine.upsert_batch("T1", batch)

        records = _by_id(engine.list_records("T1"))
        assert {(r.id, r.encrypted_blob, r.revision) for r in records.values()} == {
            ("a", "X", 1),
            ("b", "Y", 4),
        }

    def test_tenants_are_isolated(self, engine):
        """The same record id in two tenants never collides."""
        engine.upsert_batch("T1", [Record(id="a", encrypted_blob="one", revision=1)])
        engine.upsert_batch("T2", [Record(id="a", encrypted_blob="two", revision=1)])

        assert engine.list_records("T1")[0].encrypted_blob == "one"
        assert engine.list_records("T2")[0].encrypted_blob == "two"
        assert engine.list_records("alice") == []

    def test_tenants_use_distinct_handles(self, engine):
        assert engine.handle_for("T1") is not engine.handle_for("T2")
        assert engine.handle_for("T1") is engine.handle_for("T1")

    def test_empty_id_rejected(self, engine):
        with pytest.raises(ValidationError) as exc_info:
            engine.upsert_batch(
                "T1",
                [
                    Record(id="ok", encrypted_blob="X", revision=1),
                    Record(id="", encrypted_blob="Y", revision=1),
                ],
            )

        assert exc_info.value.errors == ["record 1: id must be a non-empty string"]
        assert engine.list_records("T1") == []

    def test_unknown_tenant(self, engine):
        with pytest.raises(TenantNotFoundError):
            engine.upsert_batch("nobody", [Record(id="a", encrypted_blob="X", revision=1)])
        with pytest.raises(TenantNotFoundError):
            engine.upsert_batch("nobody", [])
        with pytest.raises(TenantNotFoundError):
            engine.list_records("nobody")
