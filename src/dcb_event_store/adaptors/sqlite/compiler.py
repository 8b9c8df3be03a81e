from typing import Any, List

from ...models import CompiledFilter, EventCriteria


def _types_clause(criteria: EventCriteria, params: List[Any]) -> str:
    placeholders = ", ".join("?" for _ in criteria.types)
    params.extend(criteria.types)
    return f"events.type IN ({placeholders})"


def _tag_clause(tag: str, params: List[Any]) -> str:
    params.append(tag)
    return "EXISTS (SELECT 1 FROM event_tags WHERE event_tags.event_position = events.position AND event_tags.tag = ?)"


def _position_clause(after: int, params: List[Any]) -> str:
    params.append(after)
    return "events.position > ?"


class SQLiteQueryCompiler:
    """
    Compiles criteria for the SQLite schema, where tags live in the
    `event_tags` side table. "Contains all tags" becomes one correlated
    EXISTS per tag. The emitted text references the `events` table by name.
    """

    def compile(self, criteria: EventCriteria, after: int = 0) -> CompiledFilter:
        conditions: List[str] = []
        params: List[Any] = []

        if criteria.types:
            conditions.append(_types_clause(criteria, params))
        for tag in criteria.tags:
            conditions.append(_tag_clause(tag, params))
        if after:
            conditions.append(_position_clause(after, params))

        if not conditions:
            return CompiledFilter()

        return CompiledFilter(text="WHERE " + " AND ".join(conditions), values=tuple(params))
