from pathlib import Path
from typing import List, Optional, Tuple

from dutch.core.storage.sqlite_adapter import SQLiteAdapter
from dutch.utils.logger import get_logger

logger = get_logger("storage.manager")


class StorageManager:
    """
    Manages persistent storage for the ledger.

    Coordinates data persistence using SQLite adapter.
    Handles:
    - Token accounts and program records (durable key-value state)
    - Committed transactions (replay protection across restarts)
    - Block snapshots and chain metadata
    """

    def __init__(self, data_dir: Path, db_name: str = "ledger.db"):
        self.data_dir = data_dir
        self.db_path = data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        logger.info(f"StorageManager initialized at {self.db_path}")

    def close(self):
        self.adapter.close()

    # =========================================================================
    # Chain State (Metadata)
    # =========================================================================

    def save_tip(self, height: int, state_root: str):
        """Save the latest block height and state root."""
        self.adapter.set_chain_meta("latest_block_height", str(height))
        self.adapter.set_chain_meta("latest_state_root", state_root)

    def get_tip(self) -> Optional[Tuple[int, str]]:
        """Get the latest block height and state root."""
        n = self.adapter.get_chain_meta("latest_block_height")
        root = self.adapter.get_chain_meta("latest_state_root")
        if n and root:
            return int(n), root
        return None

    # =========================================================================
    # Ledger Support
    # =========================================================================

    def persist_accounts(self, accounts: List[Tuple[bytes, bytes]]):
        self.adapter.save_accounts(accounts)

    def get_record(self, key: bytes) -> Optional[bytes]:
        return self.adapter.get_record(key)

    def get_transaction(self, tx_hash: bytes) -> Optional[Tuple[bytes, int, int]]:
        return self.adapter.get_transaction(tx_hash)

    def persist_snapshot(self, height: int, root: bytes, account_count: int, record_count: int):
        self.adapter.save_snapshot(height, root, account_count, record_count)
        self.save_tip(height, root.hex())

    def load_ledger_state(self) -> Tuple[List, List, List, List]:
        """
        Load full ledger state.

        Returns:
            (accounts, records, tx_hashes, snapshots)
            accounts: List[(address, data)]
            records: List[(key, data)]
            tx_hashes: List[bytes]
            snapshots: List[tuple]
        """
        accounts = self.adapter.get_all_accounts()
        records = self.adapter.get_all_records()
        tx_hashes = self.adapter.get_all_transaction_hashes()
        snapshots = self.adapter.get_all_snapshots()
        return accounts, records, tx_hashes, snapshots

    def persist_transaction_effects(
        self,
        tx_hash: bytes,
        tx_data: bytes,
        height: int,
        executed_at: int,
        accounts: List[Tuple[bytes, bytes]],
        records: List[Tuple[bytes, bytes]],
    ):
        """Atomically persist a committed transaction."""
        self.adapter.persist_transaction_effects(
            tx_hash, tx_data, height, executed_at, accounts, records
        )
