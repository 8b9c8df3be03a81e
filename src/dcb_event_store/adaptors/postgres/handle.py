"""
This module provides the PostgreSQL-specific implementation of the
`StorageHandle` protocol on top of an asyncpg connection pool.

Append transactions run at SERIALIZABLE isolation. Two conditional appends
that each passed their check against the same snapshot cannot both commit:
PostgreSQL aborts one with a serialization failure, which surfaces as
`SerializationConflictError` and is retried by the store.
"""
from typing import Any, AsyncIterator, List, Sequence
from contextlib import asynccontextmanager
import asyncpg
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


# Positions are taken from MAX(position) inside the serializable transaction,
# so a rolled-back append never leaves a gap the way a sequence would.
INSERT_EVENT_SQL = """
    INSERT INTO events (position, id, id_key, type, payload, tags)
    SELECT COALESCE(MAX(position), 0) + 1, $1::text, $2::text, $3::text, $4::jsonb, $5::text[]
    FROM events
    RETURNING position
"""

EVENT_ID_INDEX = "idx_events_id_key"

BACKEND_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


def translate_error(e: Exception) -> EventStoreError:
    """Maps a raw asyncpg error onto the event store taxonomy."""
    if isinstance(e, (asyncpg.exceptions.SerializationError, asyncpg.exceptions.DeadlockDetectedError)):
        return SerializationConflictError(str(e))
    return StoreUnavailableError(str(e))


class PostgresTransaction(Transaction):
    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        # asyncpg returns the command tag, e.g. "INSERT 0 1".
        status = await self.conn.execute(sql, *params)
        count = status.rsplit(" ", 1)[-1] if status else ""
        return int(count) if count.isdigit() else 0

    async def fetch(self, sql: str, params: Sequence[Any] = ()) -> List[Sequence[Any]]:
        return list(await self.conn.fetch(sql, *params))


class PostgresStorageHandle(StorageHandle):
    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PostgresTransaction]:
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction(isolation="serializable"):
                    yield PostgresTransaction(conn)
        except BACKEND_ERRORS as e:
            error = translate_error(e)
            if isinstance(error, StoreUnavailableError):
                logging.error(f"Failed to append events to PostgreSQL: {e}")
            raise error from e

    async def matches_exist(self, tx: PostgresTransaction, where: CompiledFilter) -> bool:
        rows = await tx.fetch(f"SELECT 1 FROM events {where.text} LIMIT 1", where.values)
        return bool(rows)

    async def insert_event(self, tx: PostgresTransaction, event: DomainEvent) -> int:
        try:
            rows = await tx.fetch(
                INSERT_EVENT_SQL,
                (event.id, event.id_key, event.type, json.dumps(event.payload), sorted(event.tags)),
            )
        except asyncpg.exceptions.UniqueViolationError as e:
            if e.constraint_name == EVENT_ID_INDEX:
                raise DuplicateEventError(event.id) from e
            # A concurrent writer claimed the same position.
            raise SerializationConflictError(str(e)) from e
        return rows[0][0]

    async def select_events(self, where: CompiledFilter) -> List[SequencedEvent]:
        """Loads matching events ordered by position."""
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    f"SELECT id, position, type, payload, tags FROM events {where.text} ORDER BY position",
                    *where.values,
                )
        except BACKEND_ERRORS as e:
            raise translate_error(e) from e

        return [
            SequencedEvent(
                id=row["id"],
                position=row["position"],
                type=row["type"],
                payload=json.loads(row["payload"]),
                tags=frozenset(row["tags"]),
            )
            for row in rows
        ]

    async def close(self):
        # The pool is owned by the factory, so the handle should not close it.
        pass
