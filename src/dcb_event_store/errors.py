"""
Exceptions raised by the event store. Every backend failure is translated into
one of these at the adaptor boundary, with the original exception chained.
"""
from typing import Sequence

from .models import AppendCondition, DomainEvent


class EventStoreError(Exception):
    """Base exception for event store errors."""
    pass


class AppendConditionError(EventStoreError):
    """
    Raised when an event matching the append condition was found after the
    condition's cursor. The log is left unchanged; re-read and decide again.
    """

    def __init__(self, condition: AppendCondition, events: Sequence[DomainEvent]):
        self.condition = condition
        self.events = list(events)
        attempted = "\n".join(f"    {e.type} (id={e.id})" for e in self.events)
        super().__init__(
            f"The following events could not be appended:\n{attempted}\n"
            f"The append condition was: {condition}."
        )


class SerializationConflictError(EventStoreError):
    """Raised when a concurrent transaction made the write unserializable."""
    pass


class DuplicateEventError(EventStoreError):
    """Raised when an event id already exists in the log."""

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"An event with id '{event_id}' already exists")


class StoreUnavailableError(EventStoreError):
    """Raised when the backend cannot be reached or fails for any other reason."""
    pass
