"""
Dedup Ledger
============

Presence-only markers meaning "this token was already handled for this
watch". Records are written once and never updated; they disappear only
together with their watch (see WatchStore.delete).
"""

import time
from typing import Iterable, List, Optional, TYPE_CHECKING

from . import keys
from .kv_store import Transaction

if TYPE_CHECKING:
    from ..context import AppContext


class DedupLedger:
    """Seen-token bookkeeping per watch."""

    def __init__(self, context: "AppContext"):
        self.store = context.store

    def seen(self, watch_id: int, token: str, txn: Optional[Transaction] = None) -> bool:
        with self.store.transaction(txn, write=False) as t:
            return t.exists(keys.dedup_key(watch_id, token))

    def unseen(self, watch_id: int, tokens: Iterable[str]) -> List[str]:
        """
        Tokens without a record, in input order, each at most once.

        Duplicates inside `tokens` are collapsed to their first occurrence.
        """
        fresh = []
        batch = set()
        with self.store.transaction(write=False) as t:
            for token in tokens:
                if token in batch:
                    continue
                batch.add(token)
                if not t.exists(keys.dedup_key(watch_id, token)):
                    fresh.append(token)
        return fresh

    def mark(self, watch_id: int, token: str, txn: Optional[Transaction] = None, now: Optional[float] = None):
        first_seen = int(now if now is not None else time.time())
        with self.store.transaction(txn) as t:
            key = keys.dedup_key(watch_id, token)
            if not t.exists(key):
                t.set(key, str(first_seen).encode("utf-8"))

    def count(self, watch_id: int) -> int:
        with self.store.transaction(write=False) as t:
            return t.count_prefix(keys.dedup_prefix(watch_id))
