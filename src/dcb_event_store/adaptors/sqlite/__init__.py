from .compiler import SQLiteQueryCompiler
from .factory import sqlite_event_store_factory
from .handle import SQLiteStorageHandle

__all__ = ["SQLiteQueryCompiler", "SQLiteStorageHandle", "sqlite_event_store_factory"]
