"""Running a query against a single entity."""

from __future__ import annotations

from typing import Any

from .query import Query, With, Without, as_query
from .storage import Archetype


class QueryOne:
    """A query against the entity in ``archetype`` at row ``index``.

    Borrows taken by :meth:`get` are held until :meth:`close`, which also
    runs when the object is used as a context manager.
    """

    def __init__(self, archetype: Archetype, index: int, query: Any) -> None:
        if not 0 <= index < len(archetype):
            raise IndexError(f"row {index} out of range")
        self._archetype = archetype
        self._index = index
        self._query = as_query(query)
        self._held: tuple[Query, Any] | None = None

    @property
    def query(self) -> Query:
        return self._query

    def get(self) -> Any:
        """The query's item for the entity, or ``None`` if it does not match.

        May be called once; the borrows it takes are held until :meth:`close`.
        """
        if self._held is not None:
            raise RuntimeError("called QueryOne.get twice; construct a new query instead")
        state = self._query.prepare(self._archetype)
        if state is None:
            return None
        self._query.borrow(self._archetype, state)
        self._held = (self._query, state)
        return self._query.execute(self._archetype, state)(self._index)

    def _transform(self, query: Query) -> QueryOne:
        transformed = QueryOne(self._archetype, self._index, query)
        transformed._held, self._held = self._held, None
        return transformed

    def with_(self, component: Any) -> QueryOne:
        """A query that also requires ``component`` without fetching it."""
        return self._transform(With(component, self._query))

    def without(self, component: Any) -> QueryOne:
        """A query that rejects the entity if it has ``component``."""
        return self._transform(Without(component, self._query))

    def close(self) -> None:
        """Release any borrows taken by :meth:`get`."""
        if self._held is None:
            return
        query, state = self._held
        self._held = None
        query.release(self._archetype, state)

    def __enter__(self) -> QueryOne:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()