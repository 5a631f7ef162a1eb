"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- Token accounts
- Program records (auction records)
- Executed transactions and block snapshots
"""

from dutch.core.storage.sqlite_adapter import SQLiteAdapter
from dutch.core.storage.storage_manager import StorageManager

__all__ = ["SQLiteAdapter", "StorageManager"]
