from typing import Any, List

from ...models import CompiledFilter, EventCriteria


class PostgresQueryCompiler:
    """
    Compiles criteria for the PostgreSQL schema, where tags are stored as a
    TEXT[] column. "Contains all tags" is a single `@>` containment test,
    which the GIN index on `tags` serves directly.
    """

    def compile(self, criteria: EventCriteria, after: int = 0) -> CompiledFilter:
        conditions: List[str] = []
        params: List[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        if criteria.types:
            conditions.append(f"type = ANY({bind(list(criteria.types))}::text[])")
        if criteria.tags:
            conditions.append(f"tags @> {bind(list(criteria.tags))}::text[]")
        if after:
            conditions.append(f"position > {bind(after)}")

        if not conditions:
            return CompiledFilter()

        return CompiledFilter(text="WHERE " + " AND ".join(conditions), values=tuple(params))
