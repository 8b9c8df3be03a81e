"""
This module defines the abstract protocols for predicate compilation and storage.

The `EventStoreImpl` orchestrator only talks to these interfaces, so a backend
is a pair of a `PredicateCompiler` and a `StorageHandle` chosen when the store
is built. SQLite and PostgreSQL both plug in here without touching the append
and read logic.
"""
from typing import Any, AsyncContextManager, Iterable, List, Protocol, Sequence

from .models import (
    AppendCondition,
    CompiledFilter,
    DomainEvent,
    EventCriteria,
    SequencedEvent,
)


class PredicateCompiler(Protocol):
    """
    Turns criteria plus an optional position cursor into a parameterized
    WHERE clause. Compilation is pure; caller strings only ever travel as
    bound values.
    """

    def compile(self, criteria: EventCriteria, after: int = 0) -> CompiledFilter:
        ...


class Transaction(Protocol):
    """A single open backend transaction."""

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        ...

    async def fetch(self, sql: str, params: Sequence[Any] = ()) -> List[Sequence[Any]]:
        ...


class StorageHandle(Protocol):
    """
    Defines the contract that all storage adapters must implement.
    The EventStoreImpl class interacts with this protocol, not a concrete implementation.
    """

    def transaction(self) -> AsyncContextManager[Transaction]:
        """Opens a write transaction that commits on exit and rolls back on any exception."""
        ...

    async def matches_exist(self, tx: Transaction, where: CompiledFilter) -> bool:
        ...

    async def insert_event(self, tx: Transaction, event: DomainEvent) -> int:
        ...

    async def select_events(self, where: CompiledFilter) -> List[SequencedEvent]:
        ...

    async def close(self):
        ...


class EventStore(Protocol):
    """
    Defines the public interface for a DCB event store.
    """

    async def append(
        self, events: Iterable[DomainEvent], condition: AppendCondition | None = None
    ) -> List[int]:
        ...

    async def events(self, criteria: EventCriteria | None = None) -> List[SequencedEvent]:
        ...
