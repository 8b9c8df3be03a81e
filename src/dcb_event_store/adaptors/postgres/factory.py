from typing import AsyncIterator
from contextlib import asynccontextmanager
import asyncpg
import logging

from ...errors import StoreUnavailableError
from ...store import EventStoreImpl
from .compiler import PostgresQueryCompiler
from .handle import BACKEND_ERRORS, PostgresStorageHandle
from .schema import POSTGRES_SCHEMA_DEF


@asynccontextmanager
async def postgres_event_store_factory(
    dsn: str,
    *,
    min_pool_size: int = 1,
    max_pool_size: int = 10,
    max_retries: int = 3,
) -> AsyncIterator[EventStoreImpl]:
    """
    Opens a PostgreSQL-backed event store over an asyncpg pool, creating the
    schema if needed. The pool is closed on exit.
    """
    if not dsn:
        raise ValueError("`dsn` must be provided in the configuration.")

    try:
        pool = await asyncpg.create_pool(dsn, min_size=min_pool_size, max_size=max_pool_size)
    except BACKEND_ERRORS as e:
        raise StoreUnavailableError(f"Could not connect to PostgreSQL: {e}") from e

    try:
        try:
            async with pool.acquire() as conn:
                await conn.execute(POSTGRES_SCHEMA_DEF)
        except BACKEND_ERRORS as e:
            raise StoreUnavailableError(f"Could not create the PostgreSQL schema: {e}") from e

        store = EventStoreImpl(PostgresStorageHandle(pool), PostgresQueryCompiler(), max_retries=max_retries)
        logging.info("PostgreSQL event store opened")
        yield store
        await store.close()
    finally:
        await pool.close()
        logging.info("PostgreSQL event store closed")
