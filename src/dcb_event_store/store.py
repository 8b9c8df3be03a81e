"""
This module implements the backend-independent append and read protocol.

`EventStoreImpl` receives its `StorageHandle` and `PredicateCompiler` at
construction. The append condition is checked and the events inserted inside
one handle transaction, so the check is a real concurrency control rather than
an advisory pre-check.
"""
import logging
from typing import Iterable, List, Sequence

from .errors import AppendConditionError, SerializationConflictError
from .models import AppendCondition, DomainEvent, EventCriteria, SequencedEvent
from .protocols import EventStore, PredicateCompiler, StorageHandle


class EventStoreImpl(EventStore):
    def __init__(
        self,
        handle: StorageHandle,
        compiler: PredicateCompiler,
        max_retries: int = 3,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        self.handle = handle
        self.compiler = compiler
        self.max_retries = max_retries

    async def append(
        self, events: Iterable[DomainEvent], condition: AppendCondition | None = None
    ) -> List[int]:
        """
        Appends `events` in order and returns their positions.

        Raises `AppendConditionError` when `condition` is violated. A
        serialization conflict retries the whole transaction, check included,
        at most `max_retries` times before it is re-raised.
        """
        # Materialized once: a retry must replay the same batch.
        events = list(events)
        if not all(isinstance(e, DomainEvent) for e in events):
            raise TypeError("All items in events list must be DomainEvent objects")
        condition = condition or AppendCondition.empty()

        attempt = 0
        while True:
            try:
                return await self._append_once(events, condition)
            except SerializationConflictError as e:
                attempt += 1
                if attempt > self.max_retries:
                    raise
                logging.warning(
                    f"Serialization conflict while appending, retrying ({attempt}/{self.max_retries}): {e}"
                )

    async def _append_once(
        self, events: Sequence[DomainEvent], condition: AppendCondition
    ) -> List[int]:
        async with self.handle.transaction() as tx:
            if not condition.is_empty:
                where = self.compiler.compile(condition.criteria, condition.after)
                if await self.handle.matches_exist(tx, where):
                    raise AppendConditionError(condition, events)
            positions = []
            for event in events:
                positions.append(await self.handle.insert_event(tx, event))
            return positions

    async def events(self, criteria: EventCriteria | None = None) -> List[SequencedEvent]:
        """Returns every event matching `criteria`, ordered by position."""
        where = self.compiler.compile(criteria or EventCriteria())
        return await self.handle.select_events(where)

    async def close(self):
        await self.handle.close()
