from .compiler import PostgresQueryCompiler
from .factory import postgres_event_store_factory
from .handle import PostgresStorageHandle

__all__ = ["PostgresQueryCompiler", "PostgresStorageHandle", "postgres_event_store_factory"]
