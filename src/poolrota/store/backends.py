"""
Storage Backends
================
The frame store talks to storage only through ``StorageBackend``. Two
implementations ship: SQLite for real deployments and an in-memory backend
for tests and throwaway sandboxes.

Backends own atomicity: ``write_record`` is a compare-and-set on ``rev`` and
always stores ``rev = previous + 1``.
"""
import copy
import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from poolrota.errors import OptimisticConflict, StorageUnavailable
from poolrota.utils.logging_setup import get_logger

logger = get_logger("poolrota.store.backends")

Record = Dict[str, Any]


class StorageBackend(ABC):
    """Key/record storage with guarded writes and append-only slot rows."""

    @abstractmethod
    def get_record(self, key: str) -> Optional[Record]:
        """Raw stored state record, or None."""

    @abstractmethod
    def write_record(self, key: str, record: Record, expected_rev: Optional[int] = None) -> Record:
        """
        Store ``record`` under ``key`` with ``rev`` = stored rev + 1.

        Raises:
            OptimisticConflict: ``expected_rev`` given and not equal to the stored rev
        """

    @abstractmethod
    def delete_record(self, key: str) -> None:
        """Remove a state record (only used to reclaim expired sandboxes)."""

    @abstractmethod
    def scan_records(self, prefix: str) -> List[Tuple[str, Record]]:
        """All state records whose key starts with ``prefix``."""

    @abstractmethod
    def append_rows(self, key: str, rows: List[Record]) -> None:
        """Append historical slot rows; rows are never rewritten."""

    @abstractmethod
    def query_rows(self, key: str) -> List[Record]:
        """All slot rows for exactly ``key``, in insertion order."""

    @abstractmethod
    def delete_expired(self, now_epoch: int) -> int:
        """Drop records and rows whose ``ttl`` lies before ``now_epoch``."""


class MemoryBackend(StorageBackend):
    """Process-local backend guarded by a lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[str, Record] = {}
        self._rows: Dict[str, List[Record]] = {}

    def get_record(self, key: str) -> Optional[Record]:
        with self._lock:
            rec = self._records.get(key)
            return copy.deepcopy(rec) if rec is not None else None

    def write_record(self, key: str, record: Record, expected_rev: Optional[int] = None) -> Record:
        with self._lock:
            current = self._records.get(key)
            current_rev = int(current.get("rev", 0)) if current else 0
            if expected_rev is not None and current_rev != expected_rev:
                raise OptimisticConflict(key, expected_rev, current_rev)
            stored = copy.deepcopy(record)
            stored["rev"] = current_rev + 1
            self._records[key] = stored
            return copy.deepcopy(stored)

    def delete_record(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)

    def scan_records(self, prefix: str) -> List[Tuple[str, Record]]:
        with self._lock:
            return [
                (k, copy.deepcopy(v))
                for k, v in sorted(self._records.items())
                if k.startswith(prefix)
            ]

    def append_rows(self, key: str, rows: List[Record]) -> None:
        with self._lock:
            self._rows.setdefault(key, []).extend(copy.deepcopy(rows))

    def query_rows(self, key: str) -> List[Record]:
        with self._lock:
            return copy.deepcopy(self._rows.get(key, []))

    def delete_expired(self, now_epoch: int) -> int:
        with self._lock:
            expired = [
                k for k, v in self._records.items()
                if v.get("ttl") is not None and int(v["ttl"]) <= now_epoch
            ]
            for k in expired:
                del self._records[k]
            removed = len(expired)
            for k, rows in self._rows.items():
                kept = [r for r in rows if r.get("ttl") is None or int(r["ttl"]) > now_epoch]
                removed += len(rows) - len(kept)
                self._rows[k] = kept
            return removed


class SQLiteBackend(StorageBackend):
    """
    SQLite-backed storage.

    Usage:
        backend = SQLiteBackend(Path("data/rotation.db"), timeout=5.0)
        store = FrameStore(backend)

    Every call opens its own connection with ``timeout``; lock waits beyond it
    and any other sqlite error surface as StorageUnavailable.
    """

    def __init__(self, db_path: Path, timeout: float = 5.0):
        self.db_path = Path(db_path)
        self.timeout = timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        except sqlite3.Error as e:
            logger.error(f"Cannot open {self.db_path}: {e}")
            raise StorageUnavailable() from e
        try:
            yield conn
        except sqlite3.Error as e:
            logger.error(f"SQLite error on {self.db_path}: {e}")
            raise StorageUnavailable() from e
        finally:
            conn.close()

    def _init_db(self):
        """Create tables if they don't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS rotation_state (
                    pk TEXT PRIMARY KEY,
                    body TEXT NOT NULL,
                    rev INTEGER NOT NULL DEFAULT 0,
                    ttl INTEGER
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS slot_rows (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    pk TEXT NOT NULL,
                    sk TEXT NOT NULL,
                    body TEXT NOT NULL,
                    ttl INTEGER
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_slot_rows_pk
                ON slot_rows(pk)
            """)
        logger.debug(f"Database initialized at {self.db_path}")

    def get_record(self, key: str) -> Optional[Record]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT body, rev, ttl FROM rotation_state WHERE pk = ?", (key,)
            ).fetchone()
        if not row:
            return None
        record = json.loads(row[0])
        record["rev"] = row[1]
        if row[2] is not None:
            record["ttl"] = row[2]
        return record

    def write_record(self, key: str, record: Record, expected_rev: Optional[int] = None) -> Record:
        stored = dict(record)
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT rev FROM rotation_state WHERE pk = ?", (key,)
                ).fetchone()
                current_rev = row[0] if row else 0
                if expected_rev is not None and current_rev != expected_rev:
                    raise OptimisticConflict(key, expected_rev, current_rev)
                stored["rev"] = current_rev + 1
                conn.execute(
                    "INSERT OR REPLACE INTO rotation_state (pk, body, rev, ttl) VALUES (?, ?, ?, ?)",
                    (key, json.dumps(stored, ensure_ascii=False), stored["rev"], stored.get("ttl")),
                )
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        return stored

    def delete_record(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM rotation_state WHERE pk = ?", (key,))

    def scan_records(self, prefix: str) -> List[Tuple[str, Record]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT pk, body, rev, ttl FROM rotation_state WHERE substr(pk, 1, ?) = ? ORDER BY pk",
                (len(prefix), prefix),
            ).fetchall()
        out = []
        for pk, body, rev, ttl in rows:
            record = json.loads(body)
            record["rev"] = rev
            if ttl is not None:
                record["ttl"] = ttl
            out.append((pk, record))
        return out

    def append_rows(self, key: str, rows: List[Record]) -> None:
        with self._connect() as conn:
            conn.execute("BEGIN")
            try:
                conn.executemany(
                    "INSERT INTO slot_rows (pk, sk, body, ttl) VALUES (?, ?, ?, ?)",
                    [
                        (key, str(r.get("sk", "")), json.dumps(r, ensure_ascii=False), r.get("ttl"))
                        for r in rows
                    ],
                )
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise

    def query_rows(self, key: str) -> List[Record]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT body FROM slot_rows WHERE pk = ? ORDER BY id", (key,)
            ).fetchall()
        return [json.loads(r[0]) for r in rows]

    def delete_expired(self, now_epoch: int) -> int:
        with self._connect() as conn:
            n_state = conn.execute(
                "DELETE FROM rotation_state WHERE ttl IS NOT NULL AND ttl <= ?", (now_epoch,)
            ).rowcount
            n_rows = conn.execute(
                "DELETE FROM slot_rows WHERE ttl IS NOT NULL AND ttl <= ?", (now_epoch,)
            ).rowcount
        return n_state + n_rows
