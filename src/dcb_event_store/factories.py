"""
Opens an event store from a configuration dictionary.

The `url` key picks the backend by scheme:

    {"url": "sqlite://"}                      in-memory SQLite (also the default)
    {"url": "sqlite:///var/lib/app/events.db"}
    {"url": "postgresql://user:pw@host/db"}

Backend tuning keys (`pool_size`, `cache_size_kib`, `busy_timeout_ms`,
`min_pool_size`, `max_pool_size`) and `max_retries` are optional.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict
import os
import urllib.parse

from .adaptors.postgres import postgres_event_store_factory
from .adaptors.sqlite import sqlite_event_store_factory
from .store import EventStoreImpl


def sqlite_path_from_url(url: str) -> str:
    parsed = urllib.parse.urlparse(url)
    db_path = parsed.path
    # sqlite:////abs/path parses to "//abs/path".
    if db_path.startswith('//'):
        db_path = db_path[1:]
    elif os.name == 'nt' and db_path.startswith('/'):
        db_path = db_path[1:]
    if not db_path or db_path == '/':
        db_path = ':memory:'
    return db_path


@asynccontextmanager
async def open_event_store(config: Dict) -> AsyncIterator[EventStoreImpl]:
    # If no URL is provided, default to an in-memory SQLite database.
    url = config.get('url') or 'sqlite://'
    scheme = url.split('://', 1)[0] if '://' in url else ''
    max_retries = config.get('max_retries', 3)

    if scheme == 'sqlite':
        factory = sqlite_event_store_factory(
            sqlite_path_from_url(url),
            cache_size_kib=config.get('cache_size_kib', -16384),
            busy_timeout_ms=config.get('busy_timeout_ms', 5000),
            pool_size=config.get('pool_size', 10),
            max_retries=max_retries,
        )
    elif scheme in ('postgresql', 'postgres'):
        factory = postgres_event_store_factory(
            url,
            min_pool_size=config.get('min_pool_size', 1),
            max_pool_size=config.get('max_pool_size', config.get('pool_size', 10)),
            max_retries=max_retries,
        )
    else:
        raise ValueError(f"Unsupported scheme: {scheme}. Only 'sqlite' and 'postgresql' are supported.")

    async with factory as store:
        yield store
