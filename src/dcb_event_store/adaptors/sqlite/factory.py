from typing import AsyncIterator, List
from contextlib import asynccontextmanager
import aiosqlite
import asyncio
import logging
import urllib.parse

from ...errors import StoreUnavailableError
from ...store import EventStoreImpl
from .compiler import SQLiteQueryCompiler
from .handle import SQLiteStorageHandle
from .schema import SQLITE_SCHEMA_DEF


async def _connect(connect_string: str, *, uri: bool, cache_size_kib: int, busy_timeout_ms: int) -> aiosqlite.Connection:
    # isolation_level=None leaves transaction control to explicit BEGIN/COMMIT statements.
    conn = await aiosqlite.connect(connect_string, uri=uri, isolation_level=None)
    await conn.execute(f"PRAGMA cache_size = {int(cache_size_kib)};")
    await conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)};")
    await conn.execute("PRAGMA foreign_keys = ON;")
    return conn


@asynccontextmanager
async def sqlite_event_store_factory(
    db_path: str,
    *,
    cache_size_kib: int = -16384,
    busy_timeout_ms: int = 5000,
    pool_size: int = 10,
    max_retries: int = 3,
) -> AsyncIterator[EventStoreImpl]:
    """
    Opens a SQLite-backed event store, creating the schema if needed, and
    closes every connection it opened on exit.

    File databases get a dedicated write connection in WAL mode plus a pool of
    `pool_size` read-only connections. `":memory:"` gets a private in-memory
    database served by the write connection alone.
    """
    if not db_path:
        raise ValueError("`db_path` must be provided in the configuration.")
    if pool_size < 1:
        raise ValueError("`pool_size` must be at least 1.")

    is_memory_db = db_path == ":memory:"

    connections: List[aiosqlite.Connection] = []
    read_pool: asyncio.Queue | None = None
    try:
        try:
            write_conn = await _connect(
                db_path, uri=False, cache_size_kib=cache_size_kib, busy_timeout_ms=busy_timeout_ms
            )
            connections.append(write_conn)
            if not is_memory_db:
                await write_conn.execute("PRAGMA journal_mode=WAL;")
                await write_conn.execute("PRAGMA synchronous = NORMAL;")
            await write_conn.executescript(SQLITE_SCHEMA_DEF)

            if not is_memory_db:
                # Characters such as ? # % would otherwise be read as URI syntax.
                read_connect_string = f"file:{urllib.parse.quote(db_path)}?mode=ro"
                read_pool = asyncio.Queue(maxsize=pool_size)
                for _ in range(pool_size):
                    conn = await _connect(
                        read_connect_string,
                        uri=True,
                        cache_size_kib=cache_size_kib,
                        busy_timeout_ms=busy_timeout_ms,
                    )
                    connections.append(conn)
                    await read_pool.put(conn)
        except aiosqlite.Error as e:
            raise StoreUnavailableError(f"Could not open SQLite event store at {db_path}: {e}") from e

        handle = SQLiteStorageHandle(
            write_conn=write_conn,
            write_lock=asyncio.Lock(),
            read_pool=read_pool,
        )
        store = EventStoreImpl(handle, SQLiteQueryCompiler(), max_retries=max_retries)
        logging.info(f"SQLite event store opened at {db_path}")
        yield store
        await store.close()
    finally:
        await asyncio.gather(*(conn.close() for conn in connections))
        logging.info(f"SQLite event store closed at {db_path}")
