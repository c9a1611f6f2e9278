"""
Watch Store
===========

CRUD for watch definitions on top of the key-value store.

Every mutating method takes an optional `txn` so callers can fold it into a
larger atomic unit (e.g. watch creation at the end of a conversation).
"""

import logging
import threading
import time
from typing import List, Optional, TYPE_CHECKING

from ..errors import StorageError
from ..models import Watch
from . import keys
from .kv_store import Transaction, decode_json

if TYPE_CHECKING:
    from ..context import AppContext

logger = logging.getLogger(__name__)


class WatchStore:
    """Persistent watches, keyed by owner then id."""

    def __init__(self, context: "AppContext"):
        self.store = context.store
        self._id_lock = threading.Lock()
        self._last_id = 0

    def _next_id(self) -> int:
        """Nanosecond timestamp, strictly increasing within this process."""
        with self._id_lock:
            candidate = max(time.time_ns(), self._last_id + 1)
            self._last_id = candidate
            return candidate

    @staticmethod
    def _decode(raw: dict) -> Watch:
        try:
            return Watch.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Corrupt watch record: {e}") from e

    def create(self, watch: Watch, txn: Optional[Transaction] = None) -> Watch:
        """
        Assign an id and persist the watch.

        Args:
            watch: Watch with owner, title, query and interval filled in
            txn: Outer transaction to join, if any

        Returns:
            The same watch with `id` set
        """
        if watch.interval <= 0:
            raise ValueError(f"interval must be positive, got {watch.interval}")

        with self.store.transaction(txn) as t:
            watch.id = self._next_id()
            while t.exists(keys.watch_key(watch.owner_id, watch.id)):
                watch.id = self._next_id()
            t.set_json(keys.watch_key(watch.owner_id, watch.id), watch.to_dict())

        logger.info(f"Created watch {watch.id} '{watch.title}' for {watch.owner_id} (every {watch.interval}s)")
        return watch

    def get(self, owner_id: int, watch_id: int, txn: Optional[Transaction] = None) -> Optional[Watch]:
        with self.store.transaction(txn, write=False) as t:
            raw = t.get_json(keys.watch_key(owner_id, watch_id))
        return self._decode(raw) if raw is not None else None

    def list(self, owner_id: int) -> List[Watch]:
        """
        All watches of one owner.

        Ordered by key bytes, which is not necessarily creation order.
        """
        with self.store.transaction(write=False) as t:
            return [self._decode(raw) for _, raw in t.scan_json(keys.watch_prefix(owner_id))]

    def delete(self, owner_id: int, watch_id: int, txn: Optional[Transaction] = None) -> bool:
        """
        Delete a watch together with its dedup records.

        Deleting a missing watch succeeds. Returns whether the watch existed.
        """
        with self.store.transaction(txn) as t:
            existed = t.delete(keys.watch_key(owner_id, watch_id))
            pruned = t.delete_prefix(keys.dedup_prefix(watch_id)) if existed else 0

        if existed:
            logger.info(f"Deleted watch {watch_id} of {owner_id} ({pruned} dedup records)")
        else:
            logger.debug(f"Watch {watch_id} of {owner_id} already absent")
        return existed

    def list_due(self, now: float) -> List[Watch]:
        """
        Watches whose last check is at least `interval` seconds before `now`.

        Corrupt records are logged and skipped.
        """
        due = []
        with self.store.transaction(write=False) as t:
            for key, raw in t.scan_prefix(keys.watch_prefix()):
                try:
                    watch = self._decode(decode_json(key, raw))
                except StorageError as e:
                    logger.error(f"Skipping unreadable watch record {key!r}: {e}")
                    continue
                if watch.is_due(now):
                    due.append(watch)
        return due

    def update_checkpoint(self, watch: Watch, txn: Optional[Transaction] = None) -> bool:
        """
        Persist `watch.last_checked_at`.

        The stored value never moves backwards, and a watch deleted in the
        meantime is not recreated.

        Returns:
            False if the watch no longer exists, True otherwise
        """
        key = keys.watch_key(watch.owner_id, watch.id)
        with self.store.transaction(txn) as t:
            raw = t.get_json(key)
            if raw is None:
                return False
            stored = self._decode(raw)
            stored.last_checked_at = max(stored.last_checked_at, watch.last_checked_at)
            t.set_json(key, stored.to_dict())

        watch.last_checked_at = stored.last_checked_at
        return True
