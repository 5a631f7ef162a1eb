"""
Unit tests for SQLite storage.
"""

import sqlite3

import pytest

from dutch.core.storage import SQLiteAdapter, StorageManager


@pytest.fixture
def storage(tmp_path):
    manager = StorageManager(data_dir=tmp_path)
    yield manager
    manager.close()


class TestSQLiteAdapter:
    """Tests for the raw adapter."""

    def test_creates_parent_directory(self, tmp_path):
        adapter = SQLiteAdapter(tmp_path / "nested" / "dir" / "ledger.db")
        assert (tmp_path / "nested" / "dir" / "ledger.db").exists()
        adapter.close()

    def test_chain_meta(self, storage):
        adapter = storage.adapter
        assert adapter.get_chain_meta("missing") is None
        adapter.set_chain_meta("k", "v1")
        adapter.set_chain_meta("k", "v2")
        assert adapter.get_chain_meta("k") == "v2"

    def test_accounts_upsert(self, storage):
        adapter = storage.adapter
        adapter.save_accounts([(b"a" * 20, b"one"), (b"b" * 20, b"two")])
        adapter.save_accounts([(b"a" * 20, b"three")])
        assert adapter.get_account(b"a" * 20) == b"three"
        assert adapter.get_account(b"c" * 20) is None
        assert sorted(adapter.get_all_accounts()) == [(b"a" * 20, b"three"), (b"b" * 20, b"two")]

    def test_snapshots_ordered(self, storage):
        adapter = storage.adapter
        adapter.save_snapshot(2, b"r2", 3, 1)
        adapter.save_snapshot(1, b"r1", 2, 0)
        assert adapter.get_all_snapshots() == [(1, b"r1", 2, 0), (2, b"r2", 3, 1)]


class TestStorageManager:
    """Tests for the ledger-facing manager."""

    def test_tip(self, storage):
        assert storage.get_tip() is None
        storage.persist_snapshot(4, b"\x01" * 32, 10, 2)
        assert storage.get_tip() == (4, "01" * 32)

    def test_transaction_effects(self, storage):
        storage.persist_transaction_effects(
            tx_hash=b"h" * 32,
            tx_data=b"tx-bytes",
            height=3,
            executed_at=50,
            accounts=[(b"a" * 20, b"acct")],
            records=[(b"k" * 40, b"record")],
        )

        assert storage.get_transaction(b"h" * 32) == (b"tx-bytes", 3, 50)
        assert storage.get_record(b"k" * 40) == b"record"
        accounts, records, tx_hashes, snapshots = storage.load_ledger_state()
        assert accounts == [(b"a" * 20, b"acct")]
        assert records == [(b"k" * 40, b"record")]
        assert tx_hashes == [b"h" * 32]
        assert snapshots == []

    def test_transaction_effects_all_or_nothing(self, storage):
        """A failing write leaves no trace of the other writes."""
        storage.persist_transaction_effects(b"h" * 32, b"tx", 0, 1, [], [])

        with pytest.raises(sqlite3.IntegrityError):
            storage.persist_transaction_effects(
                tx_hash=b"h" * 32,
                tx_data=b"tx",
                height=0,
                executed_at=2,
                accounts=[(b"a" * 20, b"acct")],
                records=[(b"k" * 40, b"record")],
            )

        assert storage.adapter.get_account(b"a" * 20) is None
        assert storage.get_record(b"k" * 40) is None
