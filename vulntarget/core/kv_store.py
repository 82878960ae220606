"""Embedded key-value store backed by a single SQLite file.

Keys and values are strings grouped into named buckets. Every write runs in
its own transaction, so a record is either fully stored or not stored at
all. SQLite serializes writers and lets readers proceed concurrently.

Example:
    store = DiskStore(Path("~/.vt/deployments.db").expanduser(), bucket="deployment")
    store.put("docker-compose:juice-shop", '{"status": "running"}')
    for key, value in store.scan():
        ...
"""
import sqlite3
import threading
from pathlib import Path
from typing import List, Optional, Tuple

from vulntarget.core.errors import KeyNotFoundError, StoreError
from vulntarget.core.logger import get_logger

logger = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    bucket TEXT NOT NULL,
    key    TEXT NOT NULL,
    value  TEXT NOT NULL,
    PRIMARY KEY (bucket, key)
)
"""


class DiskStore:
    """Bucketed put/get/scan/delete over an SQLite file."""

    def __init__(self, path: Path, bucket: str, timeout: float = 10.0):
        """Open (and create if needed) the store.

        Args:
            path: SQLite database file
            bucket: Namespace all operations of this instance apply to
            timeout: Seconds to wait for another writer to release the database
        """
        self.path = Path(path)
        self.bucket = bucket
        self._lock = threading.Lock()

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(self.path),
                timeout=timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute(_SCHEMA)
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"failed to open store {self.path}: {e}") from e

        try:
            self.path.chmod(0o600)
        except OSError:
            logger.debug(f"Could not restrict permissions on {self.path}")

    def _write(self, sql: str, params: tuple) -> int:
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
                try:
                    cursor = self._conn.execute(sql, params)
                except sqlite3.Error:
                    self._conn.execute("ROLLBACK")
                    raise
                self._conn.execute("COMMIT")
                return cursor.rowcount
            except sqlite3.Error as e:
                raise StoreError(f"write to bucket {self.bucket} failed: {e}") from e

    def put(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        self._write(
            "INSERT OR REPLACE INTO kv (bucket, key, value) VALUES (?, ?, ?)",
            (self.bucket, key, value),
        )

    def put_if_absent(self, key: str, value: str) -> bool:
        """Store ``value`` only if ``key`` is free.

        Returns:
            True if this call inserted the key, False if it already existed
        """
        inserted = self._write(
            "INSERT OR IGNORE INTO kv (bucket, key, value) VALUES (?, ?, ?)",
            (self.bucket, key, value),
        )
        return inserted == 1

    def get(self, key: str) -> str:
        """Return the value stored under ``key``.

        Raises:
            KeyNotFoundError: If the key is not in the bucket
        """
        value = self.get_or_none(key)
        if value is None:
            raise KeyNotFoundError(self.bucket, key)
        return value

    def get_or_none(self, key: str) -> Optional[str]:
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT value FROM kv WHERE bucket = ? AND key = ?",
                    (self.bucket, key),
                ).fetchone()
            except sqlite3.Error as e:
                raise StoreError(f"read from bucket {self.bucket} failed: {e}") from e
        return row[0] if row else None

    def scan(self, prefix: str = "") -> List[Tuple[str, str]]:
        """Return ``(key, value)`` pairs whose key starts with ``prefix``, sorted by key."""
        with self._lock:
            try:
                rows = self._conn.execute(
                    "SELECT key, value FROM kv WHERE bucket = ? ORDER BY key",
                    (self.bucket,),
                ).fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"scan of bucket {self.bucket} failed: {e}") from e
        return [(k, v) for k, v in rows if k.startswith(prefix)]

    def delete(self, key: str) -> bool:
        """Remove ``key``.

        Returns:
            True if a record was removed, False if the key did not exist
        """
        removed = self._write(
            "DELETE FROM kv WHERE bucket = ? AND key = ?",
            (self.bucket, key),
        )
        return removed == 1

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
