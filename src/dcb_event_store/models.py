"""
This module defines the core data models for the DCB event store using Pydantic.
These models are immutable value objects: events going in and out of the log,
the criteria used to select them, and the append condition guarding writes.
"""
import json

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from typing import Any, FrozenSet, Iterable, Tuple


def _unique(existing: Tuple[str, ...], extra: Iterable[str]) -> Tuple[str, ...]:
    """Appends `extra` to `existing`, dropping entries already present."""
    merged = list(existing)
    for item in extra:
        if item not in merged:
            merged.append(item)
    return tuple(merged)


class DomainEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)  # Caller supplied, unique across the log (case-insensitive)
    type: str = Field(min_length=1)
    payload: Any = None
    tags: FrozenSet[str] = frozenset()

    @field_validator("payload")
    @classmethod
    def _json_payload(cls, value: Any, info: ValidationInfo) -> Any:
        try:
            json.dumps(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"payload of event '{info.data.get('id')}' is not JSON serializable: {e}") from e
        return value

    @property
    def id_key(self) -> str:
        """The uniqueness key for `id`: ids differing only in case collide."""
        return self.id.casefold()


class SequencedEvent(DomainEvent):
    position: int = Field(ge=1)


class EventCriteria(BaseModel):
    """
    Selects events whose type is one of `types` (any type when empty) and
    whose tags include every entry of `tags` (any tags when empty).

    Accumulation never mutates: `for_types` and `for_tags` return a new
    criteria, so one instance can be shared between concurrent calls.
    """
    model_config = ConfigDict(frozen=True)

    types: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()

    @field_validator("types", "tags")
    @classmethod
    def _deduplicate(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        return _unique((), value)

    def for_types(self, *types: str) -> "EventCriteria":
        return self.model_copy(update={"types": _unique(self.types, types)})

    def for_tags(self, *tags: str) -> "EventCriteria":
        return self.model_copy(update={"tags": _unique(self.tags, tags)})

    @property
    def is_empty(self) -> bool:
        return not self.types and not self.tags

    def matches(self, event: DomainEvent) -> bool:
        """Evaluates the criteria in process, with the same semantics the compilers emit."""
        if self.types and event.type not in self.types:
            return False
        return set(self.tags).issubset(event.tags)


class AppendCondition(BaseModel):
    """
    Rejects an append when an event matching `criteria` exists at a
    position greater than `after`. A condition with empty criteria never
    rejects, whatever `after` holds.
    """
    model_config = ConfigDict(frozen=True)

    criteria: EventCriteria = EventCriteria()
    after: int = Field(default=0, ge=0)

    @classmethod
    def empty(cls) -> "AppendCondition":
        return cls()

    @classmethod
    def for_criteria(cls, criteria: EventCriteria, after: int = 0) -> "AppendCondition":
        if criteria.is_empty:
            return cls.empty()
        return cls(criteria=criteria, after=after)

    @property
    def is_empty(self) -> bool:
        return self.criteria.is_empty

    def __str__(self) -> str:
        if self.is_empty:
            return "AppendCondition(empty)"
        return (
            f"AppendCondition(types={list(self.criteria.types)}, "
            f"tags={list(self.criteria.tags)}, after={self.after})"
        )


class CompiledFilter(BaseModel):
    """A backend-native WHERE clause together with its positional bind values."""
    model_config = ConfigDict(frozen=True)

    text: str = ""  # Either empty or "WHERE <predicate>"
    values: Tuple[Any, ...] = ()
