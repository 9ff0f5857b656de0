"""SQLite-backed history store.

Design Pattern: Adapter Pattern
SqliteHistoryStore adapts a SQLite database to the HistoryStore interface.

Implementation details:
- aiosqlite for async operations
- WAL mode for concurrent reads
- History events stored as JSON text in the history event wire format
- INTEGER timestamps (milliseconds since the epoch)
- UPPERCASE status values, checked by the schema
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from pyreplay.models.history import History, HistoryEvent
from pyreplay.models.retry import RetryOptions
from pyreplay.models.status import InstanceStatus
from pyreplay.storage.base import (
    HistoryStore,
    InstanceNotFoundError,
    InstanceRecord,
    StorageError,
)

_INSTANCE_COLUMNS = """
    instance_id, name, status, input, output, custom_status, error,
    parent_instance_id, parent_event_id, retry_options, attempt,
    created_at, updated_at
"""


def _to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)


def _from_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=UTC)


def _dump(value: Any) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError) as e:
        raise StorageError(f"Value is not JSON-serializable: {e}") from e


class SqliteHistoryStore(HistoryStore):
    """SQLite-backed durable history store.

    After __init__, the instance is not yet usable. Call connect() first.
    This follows asyncio best practices (no async in __init__).

    Usage:
        store = SqliteHistoryStore("replay.db")
        await store.connect()
        try:
            await store.create_instance(record)
        finally:
            await store.close()
    """

    def __init__(self, db_path: str):
        """Initialize storage (connection not opened yet).

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()  # Serialize access to shared connection

    @classmethod
    async def in_memory(cls) -> SqliteHistoryStore:
        """
        Create an in-memory SQLite store for testing.

        Returns:
            Connected in-memory store

        Example:
            store = await SqliteHistoryStore.in_memory()
            # Ready to use immediately
        """
        instance = cls(":memory:")
        await instance.connect()
        return instance

    def __repr__(self) -> str:
        """Return string representation of storage instance."""
        if self.db_path == ":memory:":
            return "SqliteHistoryStore(in-memory)"
        return f"SqliteHistoryStore({self.db_path})"

    async def connect(self) -> None:
        """Open database connection and initialize schema.

        Pattern: Template Method
        Fixed initialization sequence:
        1. Open connection
        2. Enable WAL mode
        3. Create tables and indexes
        """
        if self._connection is not None:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(
            self.db_path,
            timeout=5.0,
            isolation_level=None,  # Autocommit mode
        )

        # In-memory databases report "memory" and don't support WAL
        cursor = await self._connection.execute("PRAGMA journal_mode=WAL")
        result = await cursor.fetchone()
        await cursor.close()

        if result:
            mode = result[0].upper()
            if mode not in ("WAL", "MEMORY"):
                raise StorageError(f"Failed to enable WAL mode, got: {result[0]}")

        await self._connection.execute("PRAGMA synchronous=NORMAL")
        await self._connection.execute("PRAGMA busy_timeout=5000")

        await self._create_schema()
        await self._connection.commit()

    async def _create_schema(self) -> None:
        """Create database tables and indexes.

        Schema design:
        - instances: one row per orchestration instance
        - history: append-only events, ordered by seq within an instance
        - inbox: events waiting for the next replay pass
        """
        statuses = ",".join(f"'{status.value}'" for status in InstanceStatus)
        await self._connection.execute(f"""
            CREATE TABLE IF NOT EXISTS instances (
                instance_id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                status TEXT CHECK( status IN ({statuses}) ) NOT NULL,
                input TEXT NOT NULL,
                output TEXT NOT NULL,
                custom_status TEXT NOT NULL,
                error TEXT,
                parent_instance_id TEXT,
                parent_event_id INTEGER,
                retry_options TEXT,
                attempt INTEGER NOT NULL DEFAULT 1,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_instances_status
            ON instances(status, created_at)
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS history (
                instance_id TEXT NOT NULL,
                seq INTEGER NOT NULL,
                event TEXT NOT NULL,
                PRIMARY KEY (instance_id, seq)
            )
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS inbox (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                instance_id TEXT NOT NULL,
                event TEXT NOT NULL,
                enqueued_at INTEGER NOT NULL,
                visible_at INTEGER
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_inbox_instance
            ON inbox(instance_id, visible_at)
        """)

    def _check_connected(self) -> None:
        """Guard clause: Ensure connection is open."""
        if self._connection is None:
            raise StorageError("Not connected. Call connect() first.")

    async def _instance_exists(self, instance_id: str) -> bool:
        cursor = await self._connection.execute(
            "SELECT 1 FROM instances WHERE instance_id = ?", (instance_id,)
        )
        row = await cursor.fetchone()
        await cursor.close()
        return row is not None

    # ========================================================================
    # Instance Operations
    # ========================================================================

    async def create_instance(self, record: InstanceRecord) -> None:
        self._check_connected()

        async with self._lock:
            try:
                await self._connection.execute(
                    f"INSERT INTO instances ({_INSTANCE_COLUMNS}) "
                    f"VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    self._record_to_row(record),
                )
            except aiosqlite.IntegrityError as e:
                raise StorageError(
                    f"Orchestration instance {record.instance_id!r} already exists"
                ) from e
            await self._connection.commit()

    async def get_instance(self, instance_id: str) -> InstanceRecord | None:
        self._check_connected()

        async with self._lock:
            cursor = await self._connection.execute(
                f"SELECT {_INSTANCE_COLUMNS} FROM instances WHERE instance_id = ?",
                (instance_id,),
            )
            row = await cursor.fetchone()
            await cursor.close()

        return self._row_to_record(row) if row is not None else None

    async def update_instance(self, record: InstanceRecord) -> None:
        self._check_connected()
        row = self._record_to_row(replace(record, updated_at=datetime.now(UTC)))

        async with self._lock:
            cursor = await self._connection.execute(
                """
                UPDATE instances
                SET name = ?, status = ?, input = ?, output = ?, custom_status = ?,
                    error = ?, parent_instance_id = ?, parent_event_id = ?,
                    retry_options = ?, attempt = ?, updated_at = ?
                WHERE instance_id = ?
                """,
                (*row[1:11], row[12], record.instance_id),
            )
            updated = cursor.rowcount
            await cursor.close()
            await self._connection.commit()

        if updated == 0:
            raise InstanceNotFoundError(record.instance_id)

    async def list_instances(self, status: InstanceStatus | None = None) -> list[InstanceRecord]:
        self._check_connected()

        query = f"SELECT {_INSTANCE_COLUMNS} FROM instances"
        params: tuple[Any, ...] = ()
        if status is not None:
            query += " WHERE status = ?"
            params = (status.value,)
        query += " ORDER BY created_at ASC, rowid ASC"

        async with self._lock:
            cursor = await self._connection.execute(query, params)
            rows = await cursor.fetchall()
            await cursor.close()

        return [self._row_to_record(row) for row in rows]

    # ========================================================================
    # History Operations
    # ========================================================================

    async def append_history(self, instance_id: str, events: Sequence[HistoryEvent]) -> None:
        self._check_connected()
        payloads = [_dump(event.to_dict()) for event in events]

        async with self._lock:
            if not await self._instance_exists(instance_id):
                raise InstanceNotFoundError(instance_id)

            cursor = await self._connection.execute(
                "SELECT COALESCE(MAX(seq), -1) FROM history WHERE instance_id = ?",
                (instance_id,),
            )
            row = await cursor.fetchone()
            await cursor.close()
            start = row[0] + 1

            await self._connection.executemany(
                "INSERT INTO history (instance_id, seq, event) VALUES (?, ?, ?)",
                [(instance_id, start + offset, payload) for offset, payload in enumerate(payloads)],
            )
            await self._connection.commit()

    async def get_history(self, instance_id: str) -> History:
        self._check_connected()

        async with self._lock:
            cursor = await self._connection.execute(
                "SELECT event FROM history WHERE instance_id = ? ORDER BY seq ASC",
                (instance_id,),
            )
            rows = await cursor.fetchall()
            await cursor.close()

        return History(HistoryEvent.from_dict(json.loads(row[0])) for row in rows)

    async def reset_history(self, instance_id: str) -> None:
        self._check_connected()

        async with self._lock:
            if not await self._instance_exists(instance_id):
                raise InstanceNotFoundError(instance_id)
            await self._connection.execute(
                "DELETE FROM history WHERE instance_id = ?", (instance_id,)
            )
            await self._connection.commit()

    # ========================================================================
    # Inbox Operations
    # ========================================================================

    async def enqueue_event(
        self,
        instance_id: str,
        event: HistoryEvent,
        visible_at: datetime | None = None,
    ) -> None:
        self._check_connected()
        payload = _dump(event.to_dict())
        now_millis = _to_millis(datetime.now(UTC))
        visible_millis = _to_millis(visible_at) if visible_at is not None else None

        async with self._lock:
            if not await self._instance_exists(instance_id):
                raise InstanceNotFoundError(instance_id)
            await self._connection.execute(
                """
                INSERT INTO inbox (instance_id, event, enqueued_at, visible_at)
                VALUES (?, ?, ?, ?)
                """,
                (instance_id, payload, now_millis, visible_millis),
            )
            await self._connection.commit()

    async def dequeue_events(self, instance_id: str, now: datetime) -> list[HistoryEvent]:
        self._check_connected()
        now_millis = _to_millis(now)

        async with self._lock:
            cursor = await self._connection.execute(
                """
                DELETE FROM inbox
                WHERE instance_id = ?
                  AND (visible_at IS NULL OR visible_at <= ?)
                RETURNING id, event
                """,
                (instance_id, now_millis),
            )
            rows = await cursor.fetchall()
            await cursor.close()
            await self._connection.commit()

        # RETURNING does not guarantee order
        rows = sorted(rows, key=lambda row: row[0])
        return [HistoryEvent.from_dict(json.loads(row[1])) for row in rows]

    async def next_event_time(self, instance_id: str) -> datetime | None:
        self._check_connected()

        async with self._lock:
            cursor = await self._connection.execute(
                "SELECT MIN(COALESCE(visible_at, enqueued_at)) FROM inbox WHERE instance_id = ?",
                (instance_id,),
            )
            row = await cursor.fetchone()
            await cursor.close()

        if row is None or row[0] is None:
            return None
        return _from_millis(row[0])

    # ========================================================================
    # Utility Operations
    # ========================================================================

    async def purge_instance(self, instance_id: str) -> bool:
        self._check_connected()

        async with self._lock:
            cursor = await self._connection.execute(
                "DELETE FROM instances WHERE instance_id = ?", (instance_id,)
            )
            existed = cursor.rowcount > 0
            await cursor.close()
            await self._connection.execute(
                "DELETE FROM history WHERE instance_id = ?", (instance_id,)
            )
            await self._connection.execute("DELETE FROM inbox WHERE instance_id = ?", (instance_id,))
            await self._connection.commit()

        return existed

    async def reset(self) -> None:
        """Clear all data (for testing/demos).

        After reset, storage is empty but functional.
        """
        self._check_connected()

        async with self._lock:
            await self._connection.execute("DELETE FROM instances")
            await self._connection.execute("DELETE FROM history")
            await self._connection.execute("DELETE FROM inbox")
            await self._connection.commit()

    async def close(self) -> None:
        """Close storage connections.

        Explicit resource cleanup, not relying on GC.
        """
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    # ========================================================================
    # Row conversion
    # ========================================================================

    def _record_to_row(self, record: InstanceRecord) -> tuple[Any, ...]:
        return (
            record.instance_id,
            record.name,
            record.status.value,
            _dump(record.input),
            _dump(record.output),
            _dump(record.custom_status),
            record.error,
            record.parent_instance_id,
            record.parent_event_id,
            _dump(record.retry_options.to_dict()) if record.retry_options else None,
            record.attempt,
            _to_millis(record.created_at),
            _to_millis(record.updated_at),
        )

    def _row_to_record(self, row: tuple) -> InstanceRecord:
        """Convert database row to InstanceRecord.

        Row format (matches _INSTANCE_COLUMNS):
        0:instance_id, 1:name, 2:status, 3:input, 4:output, 5:custom_status,
        6:error, 7:parent_instance_id, 8:parent_event_id, 9:retry_options,
        10:attempt, 11:created_at, 12:updated_at
        """
        return InstanceRecord(
            instance_id=row[0],
            name=row[1],
            status=InstanceStatus(row[2]),
            input=json.loads(row[3]),
            output=json.loads(row[4]),
            custom_status=json.loads(row[5]),
            error=row[6],
            parent_instance_id=row[7],
            parent_event_id=row[8],
            retry_options=RetryOptions.from_dict(json.loads(row[9])) if row[9] else None,
            attempt=row[10],
            created_at=_from_millis(row[11]),
            updated_at=_from_millis(row[12]),
        )
