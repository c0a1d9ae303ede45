"""
Storage Backend Module

Record stores for ledger state: an in-memory backend for tests and
simulations and a SQLite backend for persistence. Records are JSON
documents keyed by (table, record_id); integer amounts are kept as decimal
strings so uint256 values survive the round trip.

Atomic blocks nest. Inner blocks join the outermost one and a failure at
any depth discards every write made since it opened. An open transaction
belongs to the thread that began it: other threads block on any storage
call until it commits or rolls back.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
import sqlite3
import json
import threading
from pathlib import Path
from contextlib import contextmanager


Record = Dict[str, Any]


def _copy(record: Record) -> Record:
    return json.loads(json.dumps(record, default=str))


def _matches(record: Record, filters: Dict[str, Any]) -> bool:
    return all(key in record and record[key] == value for key, value in filters.items())


class StorageInterface(ABC):
    """Record store used by the ledger, the custodian and the audit trail"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Record) -> None:
        """Insert or replace a record"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Record]:
        """Fetch a record, or None if it was never saved"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Record]:
        """All records of a table in first-insertion order"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @abstractmethod
    def begin_transaction(self) -> None:
        """Open a transaction, or join the one already open"""
        pass

    @abstractmethod
    def commit(self) -> None:
        """Leave one level; writes become durable when the outermost level ends"""
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Discard every write made since the outermost begin_transaction"""
        pass

    @property
    @abstractmethod
    def in_transaction(self) -> bool:
        pass

    def find(self, table: str, filters: Dict[str, Any]) -> List[Record]:
        """Records whose top-level fields equal every value in filters"""
        return [record for record in self.load_all(table) if _matches(record, filters)]

    @contextmanager
    def atomic(self):
        """Run a block as one all-or-nothing transaction"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except BaseException:
            self.rollback()
            raise


class InMemoryStorage(StorageInterface):
    """Dictionary-backed storage; rollback restores a snapshot"""

    def __init__(self):
        self._tables: Dict[str, Dict[str, Record]] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._snapshot: Optional[Dict[str, Dict[str, Record]]] = None

    def _table(self, table: str) -> Dict[str, Record]:
        return self._tables.setdefault(table, {})

    def save(self, table: str, record_id: str, data: Record) -> None:
        with self._lock:
            # Stored copies are detached from the caller's dict
            self._table(table)[record_id] = _copy(data)

    def load(self, table: str, record_id: str) -> Optional[Record]:
        with self._lock:
            record = self._table(table).get(record_id)
            return _copy(record) if record is not None else None

    def load_all(self, table: str) -> List[Record]:
        with self._lock:
            return [_copy(record) for record in self._table(table).values()]

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            return record_id in self._table(table)

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))

    def close(self) -> None:
        pass

    def begin_transaction(self) -> None:
        # Held once per level until commit/rollback; other threads wait
        self._lock.acquire()
        if self._depth == 0:
            self._snapshot = _copy(self._tables)
        self._depth += 1

    def commit(self) -> None:
        with self._lock:
            if self._depth == 0:
                return
            self._depth -= 1
            if self._depth == 0:
                self._snapshot = None
            self._lock.release()

    def rollback(self) -> None:
        with self._lock:
            if self._depth == 0:
                return
            if self._snapshot is not None:
                self._tables = self._snapshot
            self._snapshot = None
            held, self._depth = self._depth, 0
            for _ in range(held):
                self._lock.release()

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0


class SQLiteStorage(StorageInterface):
    """SQLite storage; one table per record type with a JSON data column"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        # DEFERRED lets the driver open a transaction on the first write,
        # which commit()/rollback() then end explicitly
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._known_tables = set()

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    def _autocommit(self) -> None:
        if self._depth == 0:
            self._connection.commit()

    def _ensure_table(self, table: str) -> None:
        if table in self._known_tables:
            return
        with self._lock:
            self._connection.execute(
                f"CREATE TABLE IF NOT EXISTS {table} "
                f"(id TEXT PRIMARY KEY, data TEXT NOT NULL, seq INTEGER NOT NULL)"
            )
            self._connection.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_seq ON {table}(seq)")
            self._autocommit()
            # A rollback may undo DDL issued inside a transaction
            if self._depth == 0:
                self._known_tables.add(table)

    def _query(self, table: str, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        self._ensure_table(table)
        return self._connection.execute(sql.format(table=table), params)

    def save(self, table: str, record_id: str, data: Record) -> None:
        with self._lock:
            # seq is assigned on first insert and kept on replace
            self._query(table, """
                INSERT OR REPLACE INTO {table} (id, data, seq)
                VALUES (?, ?,
                    COALESCE((SELECT seq FROM {table} WHERE id = ?),
                             (SELECT COALESCE(MAX(seq), 0) + 1 FROM {table})))
            """, (record_id, json.dumps(data, default=str), record_id))
            self._autocommit()

    def load(self, table: str, record_id: str) -> Optional[Record]:
        with self._lock:
            row = self._query(table, "SELECT data FROM {table} WHERE id = ?", (record_id,)).fetchone()
            return json.loads(row['data']) if row else None

    def load_all(self, table: str) -> List[Record]:
        with self._lock:
            rows = self._query(table, "SELECT data FROM {table} ORDER BY seq").fetchall()
            return [json.loads(row['data']) for row in rows]

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            row = self._query(table, "SELECT 1 FROM {table} WHERE id = ? LIMIT 1", (record_id,)).fetchone()
            return row is not None

    def count(self, table: str) -> int:
        with self._lock:
            return self._query(table, "SELECT COUNT(*) AS n FROM {table}").fetchone()['n']

    def begin_transaction(self) -> None:
        self._lock.acquire()
        self._depth += 1

    def commit(self) -> None:
        with self._lock:
            if self._depth == 0:
                return
            self._depth -= 1
            if self._depth == 0:
                self._connection.commit()
            self._lock.release()

    def rollback(self) -> None:
        with self._lock:
            if self._depth == 0:
                return
            self._connection.rollback()
            self._known_tables.clear()
            held, self._depth = self._depth, 0
            for _ in range(held):
                self._lock.release()

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str) -> StorageInterface:
    """
    Build a storage backend from a URL

    Supported forms: "memory://", "sqlite:///relative/or/absolute.db",
    "sqlite://:memory:".
    """
    if database_url.startswith("memory://"):
        return InMemoryStorage()
    if database_url.startswith("sqlite://"):
        path = database_url[len("sqlite://"):]
        if path.startswith("/") and path != "/:memory:":
            path = path[1:]
        if path in ("", ":memory:", "/:memory:"):
            path = ":memory:"
        return SQLiteStorage(path)
    raise ValueError(f"Unsupported database URL: {database_url}")
