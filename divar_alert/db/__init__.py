"""
Persistence
===========

- kv_store.py: SQLite-backed ordered key-value store with transactions
- keys.py: record key scheme
- watch_store.py: watch CRUD and due-check
- dedup.py: per-watch seen-token ledger
"""

from .dedup import DedupLedger
from .kv_store import KeyValueStore, Transaction
from .watch_store import WatchStore

__all__ = [
    "DedupLedger",
    "KeyValueStore",
    "Transaction",
    "WatchStore",
]
