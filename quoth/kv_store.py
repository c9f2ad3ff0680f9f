"""
Ordered key-value store using SQLite.

All trees live in one database file, in a single table keyed by
``(tree, key)``. Keys and values are raw bytes and iterate in key order.

Every write commits immediately, so each single-key operation is atomic and
durable on its own. There are no multi-key transactions: a caller that
updates several keys can be interrupted between them.

``merge(key, value)`` combines the new value with the stored one through the
merge operator given to the store, ``operator(key, existing, value)``, where
``existing`` is None for a missing key. Without an operator, merge is a set.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Callable, Iterator, Optional

logger = logging.getLogger(__name__)

MergeOperator = Callable[[bytes, Optional[bytes], bytes], bytes]

MEMORY_PATH = ":memory:"

# Rows fetched per round trip while iterating a tree
_ITER_BATCH = 256


class Tree:
    """
    A named keyspace in a ``SqliteStore``.

    Obtained from ``SqliteStore.tree(name)``; trees do not need to be
    created before use.
    """

    def __init__(self, store: "SqliteStore", name: str):
        self._store = store
        self.name = name

    def __repr__(self) -> str:
        return f"Tree({self.name!r})"

    def get(self, key: bytes) -> Optional[bytes]:
        cursor = self._store._execute("""
            SELECT value FROM kv
            WHERE tree = ? AND key = ?
        """, (self.name, key))
        row = cursor.fetchone()
        return None if row is None else bytes(row[0])

    def set(self, key: bytes, value: bytes) -> None:
        with self._store._lock:
            conn = self._store._require_conn()
            conn.execute("""
                INSERT OR REPLACE INTO kv (tree, key, value)
                VALUES (?, ?, ?)
            """, (self.name, key, value))
            conn.commit()

    def delete(self, key: bytes) -> Optional[bytes]:
        """
        Remove a key.

        Returns:
            The removed value, or None if the key was absent
        """
        with self._store._lock:
            conn = self._store._require_conn()
            row = conn.execute("""
                SELECT value FROM kv
                WHERE tree = ? AND key = ?
            """, (self.name, key)).fetchone()
            if row is None:
                return None
            conn.execute("""
                DELETE FROM kv
                WHERE tree = ? AND key = ?
            """, (self.name, key))
            conn.commit()
        return bytes(row[0])

    def merge(self, key: bytes, value: bytes) -> None:
        """Combine ``value`` with the stored value using the store's merge operator."""
        operator = self._store.merge_operator
        with self._store._lock:
            conn = self._store._require_conn()
            row = conn.execute("""
                SELECT value FROM kv
                WHERE tree = ? AND key = ?
            """, (self.name, key)).fetchone()
            existing = None if row is None else bytes(row[0])
            merged = value if operator is None else operator(key, existing, value)
            conn.execute("""
                INSERT OR REPLACE INTO kv (tree, key, value)
                VALUES (?, ?, ?)
            """, (self.name, key, merged))
            conn.commit()

    def iterate(self) -> Iterator[tuple[bytes, bytes]]:
        """
        Iterate ``(key, value)`` pairs in key order.

        Each call starts a fresh scan. Rows are read in batches, so writes to
        this tree during iteration may or may not be seen.
        """
        last_key: Optional[bytes] = None
        while True:
            if last_key is None:
                cursor = self._store._execute("""
                    SELECT key, value FROM kv
                    WHERE tree = ?
                    ORDER BY key
                    LIMIT ?
                """, (self.name, _ITER_BATCH))
            else:
                cursor = self._store._execute("""
                    SELECT key, value FROM kv
                    WHERE tree = ? AND key > ?
                    ORDER BY key
                    LIMIT ?
                """, (self.name, last_key, _ITER_BATCH))
            rows = cursor.fetchall()
            for row in rows:
                yield bytes(row[0]), bytes(row[1])
            if len(rows) < _ITER_BATCH:
                return
            last_key = bytes(rows[-1][0])

    def __iter__(self) -> Iterator[tuple[bytes, bytes]]:
        return self.iterate()

    def keys(self) -> list[bytes]:
        return [key for key, _ in self.iterate()]

    def clear(self) -> int:
        """Delete every key in the tree. Returns the number removed."""
        with self._store._lock:
            conn = self._store._require_conn()
            cursor = conn.execute("""
                DELETE FROM kv WHERE tree = ?
            """, (self.name,))
            conn.commit()
        return cursor.rowcount

    def __contains__(self, key: object) -> bool:
        cursor = self._store._execute("""
            SELECT 1 FROM kv
            WHERE tree = ? AND key = ?
        """, (self.name, key))
        return cursor.fetchone() is not None

    def __len__(self) -> int:
        cursor = self._store._execute("""
            SELECT COUNT(*) FROM kv WHERE tree = ?
        """, (self.name,))
        return cursor.fetchone()[0]


class SqliteStore:
    """
    SQLite-backed ordered key-value store with named trees.

    Pass ``":memory:"`` as the path for a throwaway store.
    """

    def __init__(self, db_path: Path | str, merge_operator: Optional[MergeOperator] = None):
        """
        Args:
            db_path: Path to SQLite database file, or ":memory:"
            merge_operator: Function combining an existing value with a merged one
        """
        self._db_path = db_path if str(db_path) == MEMORY_PATH else Path(db_path)
        self.merge_operator = merge_operator
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._trees: dict[str, Tree] = {}
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        if isinstance(self._db_path, Path):
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                tree TEXT NOT NULL,
                key BLOB NOT NULL,
                value BLOB NOT NULL,
                PRIMARY KEY (tree, key)
            )
        """)
        self._conn.commit()
        logger.debug("Opened key-value store at %s", self._db_path)

    @property
    def path(self) -> Path | str:
        return self._db_path

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise sqlite3.ProgrammingError("Cannot operate on a closed store.")
        return self._conn

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            return self._require_conn().execute(sql, params)

    def tree(self, name: str) -> Tree:
        """Get the named tree, creating the handle on first use."""
        if name not in self._trees:
            self._trees[name] = Tree(self, name)
        return self._trees[name]

    def tree_names(self) -> list[str]:
        """Names of all trees holding at least one key."""
        cursor = self._execute("""
            SELECT DISTINCT tree FROM kv
            ORDER BY tree
        """)
        return [row[0] for row in cursor]

    def clear(self) -> int:
        """Delete every key in every tree. Returns the number removed."""
        with self._lock:
            conn = self._require_conn()
            cursor = conn.execute("DELETE FROM kv")
            conn.commit()
        return cursor.rowcount

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
