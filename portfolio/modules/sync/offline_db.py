"""
Local mirror of Daily Tracker entities for offline use.

Two stores live in one SQLite file: ``entries`` holds the local copy of
every server entity together with its sync metadata, and ``sync_queue``
holds pending create/update/delete operations in insertion order.
"""

import json
import logging
import sqlite3
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

PENDING = "pending"
SYNCED = "synced"
CONFLICT = "conflict"

SCHEMA = """
CREATE TABLE IF NOT EXISTS entries (
    id TEXT PRIMARY KEY,
    entity_type TEXT NOT NULL,
    data TEXT NOT NULL,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL,
    last_modified REAL NOT NULL,
    sync_status TEXT NOT NULL,
    server_id TEXT,
    local_id TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_entries_type ON entries(entity_type);
CREATE INDEX IF NOT EXISTS idx_entries_sync_status ON entries(sync_status);
CREATE INDEX IF NOT EXISTS idx_entries_server_id ON entries(server_id);

CREATE TABLE IF NOT EXISTS sync_queue (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    operation TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    data TEXT,
    timestamp REAL NOT NULL,
    retry_count INTEGER NOT NULL DEFAULT 0,
    max_retries INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_sync_queue_timestamp ON sync_queue(timestamp);
"""


def now_ms() -> float:
    return time.time() * 1000


def new_local_id() -> str:
    return f"local_{uuid.uuid4().hex}"


@dataclass
class SyncMetadata:
    last_modified: float
    sync_status: str = PENDING
    server_id: Optional[str] = None
    local_id: str = field(default_factory=new_local_id)


@dataclass
class OfflineEntry:
    id: str
    entity_type: str
    data: Dict[str, Any]
    created_at: float
    updated_at: float
    sync: SyncMetadata


@dataclass
class SyncOperation:
    operation: str  # create | update | delete
    entity_type: str
    entity_id: str
    data: Optional[Dict[str, Any]] = None
    timestamp: float = 0.0
    retry_count: int = 0
    max_retries: int = 3
    id: Optional[int] = None


def _row_to_entry(row: sqlite3.Row) -> OfflineEntry:
    return OfflineEntry(
        id=row["id"],
        entity_type=row["entity_type"],
        data=json.loads(row["data"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        sync=SyncMetadata(
            last_modified=row["last_modified"],
            sync_status=row["sync_status"],
            server_id=row["server_id"],
            local_id=row["local_id"],
        ),
    )


def _row_to_operation(row: sqlite3.Row) -> SyncOperation:
    return SyncOperation(
        id=row["id"],
        operation=row["operation"],
        entity_type=row["entity_type"],
        entity_id=row["entity_id"],
        data=json.loads(row["data"]) if row["data"] is not None else None,
        timestamp=row["timestamp"],
        retry_count=row["retry_count"],
        max_retries=row["max_retries"],
    )


class OfflineDatabase:
    def __init__(self, path: str):
        self.path = path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def init(self) -> None:
        if self._conn is not None:
            return
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA)
        self._conn.commit()
        logger.debug(f"Offline database ready at {self.path}")

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Connection]:
        if self._conn is None:
            raise RuntimeError("Database not initialized")
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    # Entries

    def get_entries(self, entity_type: Optional[str] = None) -> List[OfflineEntry]:
        with self._cursor() as conn:
            if entity_type:
                rows = conn.execute(
                    "SELECT * FROM entries WHERE entity_type = ? ORDER BY created_at", (entity_type,)
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM entries ORDER BY created_at").fetchall()
        return [_row_to_entry(r) for r in rows]

    def get_entry(self, entry_id: str) -> Optional[OfflineEntry]:
        with self._cursor() as conn:
            row = conn.execute("SELECT * FROM entries WHERE id = ?", (entry_id,)).fetchone()
        return _row_to_entry(row) if row else None

    def find_by_server_id(self, entity_type: str, server_id: str) -> Optional[OfflineEntry]:
        with self._cursor() as conn:
            row = conn.execute(
                "SELECT * FROM entries WHERE entity_type = ? AND server_id = ?", (entity_type, server_id)
            ).fetchone()
        return _row_to_entry(row) if row else None

    def save_entry(self, entry: OfflineEntry) -> None:
        with self._cursor() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO entries
                    (id, entity_type, data, created_at, updated_at,
                     last_modified, sync_status, server_id, local_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    entry.entity_type,
                    json.dumps(entry.data),
                    entry.created_at,
                    entry.updated_at,
                    entry.sync.last_modified,
                    entry.sync.sync_status,
                    entry.sync.server_id,
                    entry.sync.local_id,
                ),
            )

    def delete_entry(self, entry_id: str) -> None:
        with self._cursor() as conn:
            conn.execute("DELETE FROM entries WHERE id = ?", (entry_id,))

    def get_pending_sync(self) -> List[OfflineEntry]:
        with self._cursor() as conn:
            rows = conn.execute(
                "SELECT * FROM entries WHERE sync_status = ? ORDER BY last_modified", (PENDING,)
            ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def get_conflicts(self) -> List[OfflineEntry]:
        with self._cursor() as conn:
            rows = conn.execute("SELECT * FROM entries WHERE sync_status = ?", (CONFLICT,)).fetchall()
        return [_row_to_entry(r) for r in rows]

    def mark_synced(self, entry_id: str, server_id: Optional[str] = None) -> None:
        entry = self.get_entry(entry_id)
        if entry is None:
            return
        entry.sync.sync_status = SYNCED
        entry.sync.last_modified = now_ms()
        if server_id:
            entry.sync.server_id = server_id
        self.save_entry(entry)

    def set_sync_status(self, entry_id: str, status: str) -> None:
        with self._cursor() as conn:
            conn.execute("UPDATE entries SET sync_status = ? WHERE id = ?", (status, entry_id))

    # Sync queue

    def enqueue(self, operation: SyncOperation) -> int:
        with self._cursor() as conn:
            cursor = conn.execute(
                """
                INSERT INTO sync_queue
                    (operation, entity_type, entity_id, data, timestamp, retry_count, max_retries)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    operation.operation,
                    operation.entity_type,
                    operation.entity_id,
                    json.dumps(operation.data) if operation.data is not None else None,
                    operation.timestamp,
                    operation.retry_count,
                    operation.max_retries,
                ),
            )
            operation.id = cursor.lastrowid
        return operation.id

    def get_queue(self) -> List[SyncOperation]:
        with self._cursor() as conn:
            rows = conn.execute("SELECT * FROM sync_queue ORDER BY id").fetchall()
        return [_row_to_operation(r) for r in rows]

    def increment_retry(self, operation_id: int) -> None:
        with self._cursor() as conn:
            conn.execute("UPDATE sync_queue SET retry_count = retry_count + 1 WHERE id = ?", (operation_id,))

    def remove_operation(self, operation_id: int) -> None:
        with self._cursor() as conn:
            conn.execute("DELETE FROM sync_queue WHERE id = ?", (operation_id,))

    def remove_operations_for(self, entity_id: str) -> int:
        with self._cursor() as conn:
            cursor = conn.execute("DELETE FROM sync_queue WHERE entity_id = ?", (entity_id,))
            return cursor.rowcount
