"""
SQLite Key-Value Store
======================

Ordered byte-key store with atomic multi-key transactions and prefix
iteration. Everything the bot persists (watches, dedup records, conversation
state) lives in one table keyed by BLOB, so SQLite's memcmp ordering gives
byte-order iteration.

Storage: data/divar_alert.db by default (see config.DB_PATH)
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Tuple, Union

from ..errors import StorageError

logger = logging.getLogger(__name__)


def prefix_upper_bound(prefix: bytes) -> Optional[bytes]:
    """
    Smallest key greater than every key starting with `prefix`.

    Returns None when no such bound exists (prefix is all 0xff bytes).
    """
    stripped = prefix.rstrip(b"\xff")
    if not stripped:
        return None
    return stripped[:-1] + bytes([stripped[-1] + 1])


def decode_json(key: bytes, raw: bytes) -> Any:
    """Decode a stored JSON value, raising StorageError if it is corrupt."""
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise StorageError(f"Corrupt record at {key!r}: {e}") from e


class Transaction:
    """
    Operations bound to one open SQLite transaction.

    Only valid inside KeyValueStore.transaction(); sqlite3 errors raised by
    these methods are converted to StorageError by the store.
    """

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def get(self, key: bytes) -> Optional[bytes]:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return bytes(row[0]) if row else None

    def exists(self, key: bytes) -> bool:
        row = self._conn.execute("SELECT 1 FROM kv WHERE key = ?", (key,)).fetchone()
        return row is not None

    def set(self, key: bytes, value: bytes):
        self._conn.execute(
            "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (key, value)
        )

    def delete(self, key: bytes) -> bool:
        """Delete one key. Missing keys are not an error; returns whether it existed."""
        cursor = self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        return cursor.rowcount > 0

    def scan_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """Yield (key, value) pairs whose key starts with `prefix`, in byte order."""
        upper = prefix_upper_bound(prefix)
        if upper is None:
            cursor = self._conn.execute(
                "SELECT key, value FROM kv WHERE key >= ? ORDER BY key", (prefix,)
            )
        else:
            cursor = self._conn.execute(
                "SELECT key, value FROM kv WHERE key >= ? AND key < ? ORDER BY key",
                (prefix, upper),
            )
        for key, value in cursor.fetchall():
            yield bytes(key), bytes(value)

    def delete_prefix(self, prefix: bytes) -> int:
        """Delete every key starting with `prefix`; returns the number removed."""
        upper = prefix_upper_bound(prefix)
        if upper is None:
            cursor = self._conn.execute("DELETE FROM kv WHERE key >= ?", (prefix,))
        else:
            cursor = self._conn.execute(
                "DELETE FROM kv WHERE key >= ? AND key < ?", (prefix, upper)
            )
        return cursor.rowcount

    def count_prefix(self, prefix: bytes) -> int:
        upper = prefix_upper_bound(prefix)
        if upper is None:
            row = self._conn.execute("SELECT COUNT(*) FROM kv WHERE key >= ?", (prefix,)).fetchone()
        else:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM kv WHERE key >= ? AND key < ?", (prefix, upper)
            ).fetchone()
        return row[0]

    # -------------------------------------------------------------------------
    # JSON helpers
    # -------------------------------------------------------------------------

    def get_json(self, key: bytes) -> Optional[Any]:
        raw = self.get(key)
        if raw is None:
            return None
        return decode_json(key, raw)

    def scan_json(self, prefix: bytes) -> Iterator[Tuple[bytes, Any]]:
        """Like scan_prefix, with values decoded from JSON."""
        for key, raw in self.scan_prefix(prefix):
            yield key, decode_json(key, raw)

    def set_json(self, key: bytes, value: Any):
        try:
            encoded = json.dumps(value, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise StorageError(f"Cannot serialize record for {key!r}: {e}") from e
        self.set(key, encoded)


class KeyValueStore:
    """
    SQLite-backed ordered key-value store.

    Designed for minimal overhead:
    - WAL mode so the sweep's reads do not block chat handlers
    - One short-lived connection per transaction (safe across threads)
    - Write transactions take the database lock up front (BEGIN IMMEDIATE)
    """

    def __init__(self, db_path: Union[str, Path], timeout: float = 30.0):
        """
        Open (and create if needed) the store.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait for a competing writer

        Raises:
            StorageError: If the database cannot be created or opened
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_schema()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
        logger.info(f"Key-value store initialized: {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are managed explicitly below
        return sqlite3.connect(str(self.db_path), timeout=self.timeout, isolation_level=None)

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key BLOB PRIMARY KEY,
                    value BLOB NOT NULL
                )
            """)
        finally:
            conn.close()

    @contextmanager
    def transaction(self, parent: Optional[Transaction] = None, write: bool = True):
        """
        Run a block atomically.

        Commits when the block exits normally, rolls back on any exception.
        Passing `parent` joins an already open transaction instead of
        starting a new one, so helpers can be composed into one atomic unit.

        Raises:
            StorageError: On any sqlite3 failure (the original is chained)
        """
        if parent is not None:
            yield parent
            return

        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot connect to {self.db_path}: {e}") from e

        try:
            conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            yield Transaction(conn)
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback(conn)
            raise StorageError(f"Transaction failed: {e}") from e
        except BaseException:
            self._rollback(conn)
            raise
        finally:
            conn.close()

    @staticmethod
    def _rollback(conn: sqlite3.Connection):
        if conn.in_transaction:
            try:
                conn.execute("ROLLBACK")
            except sqlite3.Error as e:
                logger.error(f"Rollback failed: {e}")
