"""Iterating over the entities that match a query."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from .entity import Entity, EntityAllocator
from .query import Fetch, Query, With, Without, as_query, assert_borrow
from .storage import Archetype


class Batch:
    """A run of rows of one archetype, yielding ``(entity, item)`` pairs."""

    def __init__(
        self,
        entities: EntityAllocator,
        archetype: Archetype,
        fetch: Fetch,
        start: int,
        end: int,
    ) -> None:
        self._entities = entities
        self._archetype = archetype
        self._fetch = fetch
        self._position = start
        self._end = end

    @property
    def _remaining(self) -> int:
        return max(self._end - self._position, 0)

    def __iter__(self) -> Batch:
        return self

    def __next__(self) -> tuple[Entity, Any]:
        if self._position >= self._end:
            raise StopIteration
        row = self._position
        self._position += 1
        entity = self._entities.resolve(self._archetype.entity_id(row))
        return entity, self._fetch(row)


class QueryIter:
    """Yields ``(entity, item)`` for every entity matching a query."""

    def __init__(
        self,
        entities: EntityAllocator,
        archetypes: Sequence[Archetype],
        query: Any,
    ) -> None:
        self._entities = entities
        self._archetypes = list(archetypes)
        self._query = as_query(query)
        self._next_archetype = 0
        self._chunk: Batch | None = None

    def __iter__(self) -> QueryIter:
        return self

    def __next__(self) -> tuple[Entity, Any]:
        while True:
            if self._chunk is not None:
                try:
                    return next(self._chunk)
                except StopIteration:
                    self._chunk = None
            if self._next_archetype >= len(self._archetypes):
                raise StopIteration
            archetype = self._archetypes[self._next_archetype]
            self._next_archetype += 1
            state = self._query.prepare(archetype)
            if state is None:
                continue
            fetch = self._query.execute(archetype, state)
            self._chunk = Batch(self._entities, archetype, fetch, 0, len(archetype))

    def __len__(self) -> int:
        pending = sum(
            len(archetype)
            for archetype in self._archetypes[self._next_archetype:]
            if self._query.access(archetype) is not None
        )
        current = self._chunk._remaining if self._chunk is not None else 0
        return pending + current


class BatchedIter:
    """Yields :class:`Batch` objects of at most ``batch_size`` entities each."""

    def __init__(
        self,
        entities: EntityAllocator,
        archetypes: Sequence[Archetype],
        query: Any,
        batch_size: int,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch size must be at least 1")
        self._entities = entities
        self._archetypes = list(archetypes)
        self._query = as_query(query)
        self._batch_size = batch_size
        self._next_archetype = 0
        self._batch = 0

    def __iter__(self) -> BatchedIter:
        return self

    def __next__(self) -> Batch:
        while self._next_archetype < len(self._archetypes):
            archetype = self._archetypes[self._next_archetype]
            offset = self._batch_size * self._batch
            state = self._query.prepare(archetype) if offset < len(archetype) else None
            if state is None:
                self._next_archetype += 1
                self._batch = 0
                continue
            self._batch += 1
            end = offset + min(self._batch_size, len(archetype) - offset)
            fetch = self._query.execute(archetype, state)
            return Batch(self._entities, archetype, fetch, offset, end)
        raise StopIteration


class QueryBorrow:
    """A query over a world that takes dynamic borrows of the columns it reads.

    Borrows are taken on first iteration and held until :meth:`close`, which
    also runs when the object is used as a context manager.
    """

    def __init__(
        self,
        entities: EntityAllocator,
        archetypes: Sequence[Archetype],
        query: Any,
    ) -> None:
        self._entities = entities
        self._archetypes = archetypes
        self._query = as_query(query)
        self._held: list[tuple[Query, Archetype, Any]] | None = None

    @property
    def query(self) -> Query:
        return self._query

    def _borrow(self) -> None:
        if self._held is not None:
            return
        held: list[tuple[Query, Archetype, Any]] = []
        try:
            for archetype in self._archetypes:
                state = self._query.prepare(archetype)
                if state is not None:
                    self._query.borrow(archetype, state)
                    held.append((self._query, archetype, state))
        except BaseException:
            for query, archetype, state in reversed(held):
                query.release(archetype, state)
            raise
        self._held = held

    def iter(self) -> QueryIter:
        """Borrow what the query needs and iterate over its matches."""
        self._borrow()
        return QueryIter(self._entities, self._archetypes, self._query)

    def iter_batched(self, batch_size: int) -> BatchedIter:
        """Like :meth:`iter`, but in batches of at most ``batch_size`` entities."""
        self._borrow()
        return BatchedIter(self._entities, self._archetypes, self._query, batch_size)

    def _transform(self, query: Query) -> QueryBorrow:
        transformed = QueryBorrow(self._entities, self._archetypes, query)
        transformed._held, self._held = self._held, None
        return transformed

    def with_(self, component: Any) -> QueryBorrow:
        """A query that also requires ``component`` without fetching it."""
        return self._transform(With(component, self._query))

    def without(self, component: Any) -> QueryBorrow:
        """A query that skips entities having ``component``."""
        return self._transform(Without(component, self._query))

    def close(self) -> None:
        """Release every borrow taken by the query."""
        if self._held is None:
            return
        held, self._held = self._held, None
        for query, archetype, state in held:
            query.release(archetype, state)

    def __enter__(self) -> QueryBorrow:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __iter__(self) -> QueryIter:
        return self.iter()


class QueryMut:
    """A query over a world held exclusively; takes no dynamic borrows."""

    def __init__(
        self,
        entities: EntityAllocator,
        archetypes: Sequence[Archetype],
        query: Any,
    ) -> None:
        self._entities = entities
        self._archetypes = archetypes
        self._query = assert_borrow(query)

    @property
    def query(self) -> Query:
        return self._query

    def with_(self, component: Any) -> QueryMut:
        """A query that also requires ``component`` without fetching it."""
        return QueryMut(self._entities, self._archetypes, With(component, self._query))

    def without(self, component: Any) -> QueryMut:
        """A query that skips entities having ``component``."""
        return QueryMut(self._entities, self._archetypes, Without(component, self._query))

    def __iter__(self) -> QueryIter:
        return QueryIter(self._entities, self._archetypes, self._query)