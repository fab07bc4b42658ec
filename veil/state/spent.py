"""
Veil - Spent Stores

Append-only sets of consumed key images and nullifiers.

Verification only reads a store; consumption is the only writer.
Two implementations:
- InMemorySpentStore: single-process deployments and tests
- SqliteSpentStore: persistent store shared across restarts
"""

from __future__ import annotations
import logging
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Set

logger = logging.getLogger(__name__)


class SpentStore(ABC):
    """Used-set interface for key images and nullifiers."""

    @abstractmethod
    def is_key_image_spent(self, key_image: bytes) -> bool:
        ...

    @abstractmethod
    def is_nullifier_spent(self, nullifier: bytes) -> bool:
        ...

    @abstractmethod
    def mark_spent(self, key_image: bytes, nullifier: bytes, bundle_hash: str = "") -> bool:
        """
        Insert both values atomically.

        Returns:
            True if anything new was inserted; False if both were already
            present (idempotent re-consumption)
        """

    @abstractmethod
    def stats(self) -> Dict[str, int]:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...

    def close(self) -> None:
        pass


class InMemorySpentStore(SpentStore):
    """Process-local spent sets guarded by a lock."""

    def __init__(self):
        self._key_images: Set[bytes] = set()
        self._nullifiers: Set[bytes] = set()
        self._lock = threading.Lock()

    def is_key_image_spent(self, key_image: bytes) -> bool:
        with self._lock:
            return bytes(key_image) in self._key_images

    def is_nullifier_spent(self, nullifier: bytes) -> bool:
        with self._lock:
            return bytes(nullifier) in self._nullifiers

    def mark_spent(self, key_image: bytes, nullifier: bytes, bundle_hash: str = "") -> bool:
        with self._lock:
            new = bytes(key_image) not in self._key_images or bytes(nullifier) not in self._nullifiers
            self._key_images.add(bytes(key_image))
            self._nullifiers.add(bytes(nullifier))
            return new

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "key_images": len(self._key_images),
                "nullifiers": len(self._nullifiers),
            }

    def clear(self) -> None:
        with self._lock:
            self._key_images.clear()
            self._nullifiers.clear()


# ============================================================================
# SQLITE
# ============================================================================

SCHEMA = """
CREATE TABLE IF NOT EXISTS spent_key_images (
    key_image BLOB PRIMARY KEY,
    bundle_hash TEXT NOT NULL,
    spent_timestamp INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS spent_nullifiers (
    nullifier BLOB PRIMARY KEY,
    bundle_hash TEXT NOT NULL,
    spent_timestamp INTEGER NOT NULL
);
"""


class SqliteSpentStore(SpentStore):
    """
    Spent sets persisted in SQLite.

    One connection shared across threads, serialized by a lock.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = sqlite3.connect(
            db_path,
            check_same_thread=False,
            isolation_level='DEFERRED'
        )
        if db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.executescript(SCHEMA)
        self._conn.commit()
        logger.info(f"Spent store opened at {db_path}")

    def _exists(self, table: str, column: str, value: bytes) -> bool:
        with self._lock:
            cursor = self._conn.execute(
                f"SELECT 1 FROM {table} WHERE {column} = ?",
                (bytes(value),)
            )
            return cursor.fetchone() is not None

    def is_key_image_spent(self, key_image: bytes) -> bool:
        return self._exists("spent_key_images", "key_image", key_image)

    def is_nullifier_spent(self, nullifier: bytes) -> bool:
        return self._exists("spent_nullifiers", "nullifier", nullifier)

    def mark_spent(self, key_image: bytes, nullifier: bytes, bundle_hash: str = "") -> bool:
        now = int(time.time() * 1000)
        with self._lock:
            try:
                cursor = self._conn.cursor()
                cursor.execute("""
                    INSERT OR IGNORE INTO spent_key_images
                    (key_image, bundle_hash, spent_timestamp)
                    VALUES (?, ?, ?)
                """, (bytes(key_image), bundle_hash, now))
                inserted = cursor.rowcount
                cursor.execute("""
                    INSERT OR IGNORE INTO spent_nullifiers
                    (nullifier, bundle_hash, spent_timestamp)
                    VALUES (?, ?, ?)
                """, (bytes(nullifier), bundle_hash, now))
                inserted += cursor.rowcount
                self._conn.commit()
            except sqlite3.Error:
                self._conn.rollback()
                raise
        return inserted > 0

    def stats(self) -> Dict[str, int]:
        with self._lock:
            key_images = self._conn.execute("SELECT COUNT(*) FROM spent_key_images").fetchone()[0]
            nullifiers = self._conn.execute("SELECT COUNT(*) FROM spent_nullifiers").fetchone()[0]
        return {"key_images": key_images, "nullifiers": nullifiers}

    def clear(self) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM spent_key_images")
            self._conn.execute("DELETE FROM spent_nullifiers")
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
