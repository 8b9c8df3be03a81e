"""
This module provides the SQLite-specific implementation of the `StorageHandle`
protocol. Writes go through a single dedicated connection inside
`BEGIN IMMEDIATE` transactions, which take the database write lock up front:
the append-condition check and the inserts can never interleave with another
writer, in this process or any other.
"""
from typing import Any, AsyncIterator, List, Sequence
from contextlib import asynccontextmanager
import aiosqlite
import asyncio
import json
import logging

from ...errors import (
    DuplicateEventError,
    EventStoreError,
    SerializationConflictError,
    StoreUnavailableError,
)
from ...models import CompiledFilter, DomainEvent, SequencedEvent
from ...protocols import StorageHandle, Transaction


SELECT_EVENTS_SQL = """
    SELECT events.id, events.position, events.type, events.payload, json_group_array(t.tag) AS tags
    FROM events
             LEFT JOIN event_tags t ON events.position = t.event_position
    {where}
    GROUP BY events.position
    ORDER BY events.position
"""


def translate_error(e: aiosqlite.Error) -> EventStoreError:
    """Maps a raw SQLite error onto the event store taxonomy."""
    message = str(e)
    if isinstance(e, aiosqlite.OperationalError) and ("locked" in message or "busy" in message):
        return SerializationConflictError(message)
    return StoreUnavailableError(message)


class SQLiteTransaction(Transaction):
    def __init__(self, conn: aiosqlite.Connection):
        self.conn = conn

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        async with self.conn.execute(sql, params) as cursor:
            return cursor.rowcount

    async def insert(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Executes an INSERT and returns the rowid it created."""
        async with self.conn.execute(sql, params) as cursor:
            return cursor.lastrowid

    async def fetch(self, sql: str, params: Sequence[Any] = ()) -> List[Sequence[Any]]:
        async with self.conn.execute(sql, params) as cursor:
            return list(await cursor.fetchall())


class SQLiteStorageHandle(StorageHandle):
    """
    A handle that manages read and write operations using a dedicated write
    connection and, for file databases, a pool of read connections.

    When `read_pool` is None (in-memory databases) reads share the write
    connection and take the write lock, so they never observe an open
    transaction.
    """

    def __init__(
        self,
        write_conn: aiosqlite.Connection,
        write_lock: asyncio.Lock,
        read_pool: asyncio.Queue | None = None,
    ):
        self.write_conn = write_conn
        self.write_lock = write_lock
        self.read_pool = read_pool

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLiteTransaction]:
        async with self.write_lock:
            try:
                await self.write_conn.execute("BEGIN IMMEDIATE")
            except aiosqlite.Error as e:
                raise translate_error(e) from e
            try:
                yield SQLiteTransaction(self.write_conn)
                await self.write_conn.execute("COMMIT")
            except aiosqlite.Error as e:
                error = translate_error(e)
                if isinstance(error, StoreUnavailableError):
                    logging.error(f"Failed to append events to SQLite: {e}")
                raise error from e
            finally:
                if self.write_conn.in_transaction:
                    await self.write_conn.execute("ROLLBACK")

    @asynccontextmanager
    async def _read_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Provides a connection from the read pool, or the locked write connection."""
        if self.read_pool is None:
            async with self.write_lock:
                yield self.write_conn
            return
        conn = await self.read_pool.get()
        try:
            yield conn
        finally:
            await self.read_pool.put(conn)

    async def matches_exist(self, tx: SQLiteTransaction, where: CompiledFilter) -> bool:
        rows = await tx.fetch(f"SELECT 1 FROM events {where.text} LIMIT 1", where.values)
        return bool(rows)

    async def insert_event(self, tx: SQLiteTransaction, event: DomainEvent) -> int:
        try:
            position = await tx.insert(
                "INSERT INTO events (id, id_key, type, payload) VALUES (?, ?, ?, ?)",
                (event.id, event.id_key, event.type, json.dumps(event.payload)),
            )
        except aiosqlite.IntegrityError as e:
            raise DuplicateEventError(event.id) from e
        for tag in sorted(event.tags):
            await tx.execute(
                "INSERT INTO event_tags (event_position, tag) VALUES (?, ?)",
                (position, tag),
            )
        return position

    async def select_events(self, where: CompiledFilter) -> List[SequencedEvent]:
        """Loads matching events with their tag sets, ordered by position."""
        try:
            async with self._read_connection() as conn:
                async with conn.execute(SELECT_EVENTS_SQL.format(where=where.text), where.values) as cursor:
                    rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise translate_error(e) from e

        events = []
        for event_id, position, event_type, payload_json, tags_json in rows:
            events.append(
                SequencedEvent(
                    id=event_id,
                    position=position,
                    type=event_type,
                    payload=json.loads(payload_json),
                    tags=frozenset(tag for tag in json.loads(tags_json) if tag is not None),
                )
            )
        return events

    async def close(self):
        # Connections are owned by the factory, so the handle should not close them.
        pass
