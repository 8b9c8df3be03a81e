# dcb_event_store package

from .models import (
    AppendCondition,
    CompiledFilter,
    DomainEvent,
    EventCriteria,
    SequencedEvent,
)
from .errors import (
    AppendConditionError,
    DuplicateEventError,
    EventStoreError,
    SerializationConflictError,
    StoreUnavailableError,
)
from .store import EventStoreImpl
from .factories import open_event_store
from .adaptors.sqlite import sqlite_event_store_factory
from .adaptors.postgres import postgres_event_store_factory

__all__ = [
    "AppendCondition",
    "AppendConditionError",
    "CompiledFilter",
    "DomainEvent",
    "DuplicateEventError",
    "EventCriteria",
    "EventStoreError",
    "EventStoreImpl",
    "SequencedEvent",
    "SerializationConflictError",
    "StoreUnavailableError",
    "open_event_store",
    "postgres_event_store_factory",
    "sqlite_event_store_factory",
]
