import sqlite3
import threading
from pathlib import Path
from typing import List, Optional, Tuple

from dutch.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for persistent storage.

    Tables:
    1. accounts: token account address -> serialized TokenAccount
    2. program_data: (program_id || key) -> program record bytes
    3. transactions: committed transactions with height and clock reading
    4. snapshots: per-block state roots
    5. chain_state: free-form metadata
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn_local = threading.local()

        if not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            self._conn_local.conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False
            )
            self._conn_local.conn.row_factory = sqlite3.Row
            self._conn_local.conn.execute("PRAGMA journal_mode=WAL;")
            self._conn_local.conn.execute("PRAGMA synchronous=NORMAL;")
        return self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS accounts (
                    address BLOB PRIMARY KEY,
                    data BLOB NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS program_data (
                    key BLOB PRIMARY KEY,
                    data BLOB NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS transactions (
                    tx_hash BLOB PRIMARY KEY,
                    data BLOB NOT NULL,
                    block_height INTEGER,
                    executed_at INTEGER
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tx_height ON transactions(block_height);")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS snapshots (
                    block_height INTEGER PRIMARY KEY,
                    state_root BLOB,
                    account_count INTEGER,
                    record_count INTEGER
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS chain_state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

    def close(self):
        """Close this thread's connection."""
        conn = getattr(self._conn_local, "conn", None)
        if conn is not None:
            conn.close()
            del self._conn_local.conn

    # =========================================================================
    # Chain State Operations
    # =========================================================================

    def set_chain_meta(self, key: str, value: str):
        conn = self._get_conn()
        with conn:
            conn.execute("INSERT OR REPLACE INTO chain_state (key, value) VALUES (?, ?)", (key, value))

    def get_chain_meta(self, key: str) -> Optional[str]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT value FROM chain_state WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row['value'] if row else None

    # =========================================================================
    # Account & Record Operations
    # =========================================================================

    def save_accounts(self, accounts: List[Tuple[bytes, bytes]]):
        conn = self._get_conn()
        with conn:
            conn.executemany("INSERT OR REPLACE INTO accounts (address, data) VALUES (?, ?)", accounts)

    def get_account(self, address: bytes) -> Optional[bytes]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT data FROM accounts WHERE address = ?", (address,))
        row = cursor.fetchone()
        return row['data'] if row else None

    def get_all_accounts(self) -> List[Tuple[bytes, bytes]]:
        """Get all (address, data)."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT address, data FROM accounts")
        return [(row['address'], row['data']) for row in cursor]

    def get_record(self, key: bytes) -> Optional[bytes]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT data FROM program_data WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row['data'] if row else None

    def get_all_records(self) -> List[Tuple[bytes, bytes]]:
        """Get all (key, data) program records."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT key, data FROM program_data")
        return [(row['key'], row['data']) for row in cursor]

    # =========================================================================
    # Transaction & Snapshot Operations
    # =========================================================================

    def get_all_transaction_hashes(self) -> List[bytes]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT tx_hash FROM transactions")
        return [row['tx_hash'] for row in cursor]

    def get_transaction(self, tx_hash: bytes) -> Optional[Tuple[bytes, int, int]]:
        """Get (data, block_height, executed_at) of a committed transaction."""
        conn = self._get_conn()
        cursor = conn.execute(
            "SELECT data, block_height, executed_at FROM transactions WHERE tx_hash = ?",
            (tx_hash,)
        )
        row = cursor.fetchone()
        return (row['data'], row['block_height'], row['executed_at']) if row else None

    def save_snapshot(self, height: int, root: bytes, account_count: int, record_count: int):
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT OR REPLACE INTO snapshots (block_height, state_root, account_count, record_count) VALUES (?, ?, ?, ?)",
                (height, root, account_count, record_count)
            )

    def get_all_snapshots(self) -> List[Tuple]:
        """Get all snapshots ordered by height."""
        conn = self._get_conn()
        cursor = conn.execute(
            "SELECT block_height, state_root, account_count, record_count FROM snapshots ORDER BY block_height ASC"
        )
        return [tuple(row) for row in cursor]

    def persist_transaction_effects(
        self,
        tx_hash: bytes,
        tx_data: bytes,
        height: int,
        executed_at: int,
        accounts: List[Tuple[bytes, bytes]],
        records: List[Tuple[bytes, bytes]],
    ):
        """
        Atomically write everything one committed transaction changed.

        Args:
            tx_hash: Transaction hash
            tx_data: Serialized transaction
            height: Block height the transaction executed in
            executed_at: Clock reading used by the transaction
            accounts: (address, data) of every account written
            records: (key, data) of every program record written
        """
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT INTO transactions (tx_hash, data, block_height, executed_at) VALUES (?, ?, ?, ?)",
                (tx_hash, tx_data, height, executed_at)
            )
            conn.executemany("INSERT OR REPLACE INTO accounts (address, data) VALUES (?, ?)", accounts)
            conn.executemany("INSERT OR REPLACE INTO program_data (key, data) VALUES (?, ?)", records)
