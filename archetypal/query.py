"""Query descriptions: which components to fetch from which archetypes."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from .errors import BorrowError
from .storage import Archetype

Fetch = Callable[[int], Any]


class Access(enum.IntEnum):
    """How a query touches an archetype, ordered by strength."""

    ITERATE = 0
    """Reads entity ids only."""
    READ = 1
    """Reads components."""
    WRITE = 2
    """Reads and writes components."""


def _max_access(a: Access | None, b: Access | None) -> Access | None:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


class _Absent:
    __slots__ = ()

    def __repr__(self) -> str:
        return "<absent>"


_ABSENT: Any = _Absent()


class Or:
    """Holds a left value, a right value, or both."""

    __slots__ = ("_left", "_right")

    def __init__(self, left: Any = _ABSENT, right: Any = _ABSENT) -> None:
        if left is _ABSENT and right is _ABSENT:
            raise ValueError("Or needs a left value, a right value or both")
        self._left = left
        self._right = right

    @classmethod
    def from_options(cls, left: Any, right: Any) -> Or | None:
        """Build from two optional values; ``None`` if both are ``None``."""
        if left is None and right is None:
            return None
        return cls(_ABSENT if left is None else left, _ABSENT if right is None else right)

    @property
    def has_left(self) -> bool:
        return self._left is not _ABSENT

    @property
    def has_right(self) -> bool:
        return self._right is not _ABSENT

    @property
    def is_both(self) -> bool:
        return self.has_left and self.has_right

    @property
    def left(self) -> Any:
        """The left value, or ``None`` if there is none."""
        return self._left if self.has_left else None

    @property
    def right(self) -> Any:
        """The right value, or ``None`` if there is none."""
        return self._right if self.has_right else None

    def split(self) -> tuple[Any, Any]:
        """Both sides as a pair, ``None`` standing for a missing side."""
        return self.left, self.right

    def map(self, f: Callable[[Any], Any], g: Callable[[Any], Any]) -> Or:
        """Transform the left value with ``f`` and the right with ``g``."""
        return Or(
            f(self._left) if self.has_left else _ABSENT,
            g(self._right) if self.has_right else _ABSENT,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Or):
            return NotImplemented
        return (self._left, self._right) == (other._left, other._right)

    def __hash__(self) -> int:
        return hash((Or, self._left, self._right))

    def __repr__(self) -> str:
        parts = []
        if self.has_left:
            parts.append(f"left={self._left!r}")
        if self.has_right:
            parts.append(f"right={self._right!r}")
        return f"Or({', '.join(parts)})"


class Query(ABC):
    """A description of what to fetch for each matching entity.

    ``prepare`` returns ``None`` for archetypes the query skips and a state
    otherwise; that state is handed to ``borrow``, ``release`` and ``execute``.
    """

    @abstractmethod
    def access(self, archetype: Archetype) -> Access | None:
        """How this query would access ``archetype``, or ``None`` if it skips it."""

    @abstractmethod
    def prepare(self, archetype: Archetype) -> Any:
        """State for ``archetype``, or ``None`` if it is not traversed."""

    @abstractmethod
    def borrow(self, archetype: Archetype, state: Any) -> None:
        """Take the dynamic borrows the query needs from ``archetype``."""

    @abstractmethod
    def release(self, archetype: Archetype, state: Any) -> None:
        """Give back the borrows taken by ``borrow``."""

    @abstractmethod
    def execute(self, archetype: Archetype, state: Any) -> Fetch:
        """A function from row number to the item fetched for that row."""

    @abstractmethod
    def borrows(self) -> Iterator[tuple[Any, bool]]:
        """Each component that may be borrowed, with whether uniquely."""


@dataclass(frozen=True)
class Read(Query):
    """Fetch a component for reading."""

    component: Any

    def access(self, archetype: Archetype) -> Access | None:
        return Access.READ if archetype.has(self.component) else None

    def prepare(self, archetype: Archetype) -> Any:
        return True if archetype.has(self.component) else None

    def borrow(self, archetype: Archetype, state: Any) -> None:
        archetype.borrow(self.component)

    def release(self, archetype: Archetype, state: Any) -> None:
        archetype.release(self.component)

    def execute(self, archetype: Archetype, state: Any) -> Fetch:
        column = archetype.column(self.component)
        assert column is not None
        return column.__getitem__

    def borrows(self) -> Iterator[tuple[Any, bool]]:
        yield self.component, False


@dataclass(frozen=True)
class Write(Query):
    """Fetch a component for reading and writing."""

    component: Any

    def access(self, archetype: Archetype) -> Access | None:
        return Access.WRITE if archetype.has(self.component) else None

    def prepare(self, archetype: Archetype) -> Any:
        return True if archetype.has(self.component) else None

    def borrow(self, archetype: Archetype, state: Any) -> None:
        archetype.borrow_mut(self.component)

    def release(self, archetype: Archetype, state: Any) -> None:
        archetype.release_mut(self.component)

    def execute(self, archetype: Archetype, state: Any) -> Fetch:
        column = archetype.column(self.component)
        assert column is not None
        return column.__getitem__

    def borrows(self) -> Iterator[tuple[Any, bool]]:
        yield self.component, True


def _nothing(_: int) -> None:
    return None


@dataclass(frozen=True)
class Maybe(Query):
    """Fetch ``query`` where it matches and ``None`` elsewhere; never skips."""

    query: Any

    def __post_init__(self) -> None:
        object.__setattr__(self, "query", as_query(self.query))

    def access(self, archetype: Archetype) -> Access | None:
        inner = self.query.access(archetype)
        return Access.ITERATE if inner is None else inner

    def prepare(self, archetype: Archetype) -> Any:
        inner = self.query.prepare(archetype)
        return () if inner is None else (inner,)

    def borrow(self, archetype: Archetype, state: Any) -> None:
        if state:
            self.query.borrow(archetype, state[0])

    def release(self, archetype: Archetype, state: Any) -> None:
        if state:
            self.query.release(archetype, state[0])

    def execute(self, archetype: Archetype, state: Any) -> Fetch:
        if state:
            return self.query.execute(archetype, state[0])
        return _nothing

    def borrows(self) -> Iterator[tuple[Any, bool]]:
        return self.query.borrows()


@dataclass(frozen=True)
class AnyOf(Query):
    """Fetch whichever of two queries match, as an :class:`Or`."""

    left: Any
    right: Any

    def __post_init__(self) -> None:
        object.__setattr__(self, "left", as_query(self.left))
        object.__setattr__(self, "right", as_query(self.right))

    def access(self, archetype: Archetype) -> Access | None:
        return _max_access(self.left.access(archetype), self.right.access(archetype))

    def prepare(self, archetype: Archetype) -> Any:
        return Or.from_options(self.left.prepare(archetype), self.right.prepare(archetype))

    def borrow(self, archetype: Archetype, state: Any) -> None:
        if state.has_left:
            self.left.borrow(archetype, state.left)
        if state.has_right:
            try:
                self.right.borrow(archetype, state.right)
            except BaseException:
                if state.has_left:
                    self.left.release(archetype, state.left)
                raise

    def release(self, archetype: Archetype, state: Any) -> None:
        if state.has_left:
            self.left.release(archetype, state.left)
        if state.has_right:
            self.right.release(archetype, state.right)

    def execute(self, archetype: Archetype, state: Any) -> Fetch:
        fetches = state.map(
            lambda s: self.left.execute(archetype, s),
            lambda s: self.right.execute(archetype, s),
        )
        return lambda n: fetches.map(lambda f: f(n), lambda f: f(n))

    def borrows(self) -> Iterator[tuple[Any, bool]]:
        yield from self.left.borrows()
        yield from self.right.borrows()


@dataclass(frozen=True)
class With(Query):
    """Run ``query`` only on entities that also have ``component``."""

    component: Any
    query: Any

    def __post_init__(self) -> None:
        object.__setattr__(self, "query", as_query(self.query))

    def access(self, archetype: Archetype) -> Access | None:
        return self.query.access(archetype) if archetype.has(self.component) else None

    def prepare(self, archetype: Archetype) -> Any:
        if not archetype.has(self.component):
            return None
        return self.query.prepare(archetype)

    def borrow(self, archetype: Archetype, state: Any) -> None:
        self.query.borrow(archetype, state)

    def release(self, archetype: Archetype, state: Any) -> None:
        self.query.release(archetype, state)

    def execute(self, archetype: Archetype, state: Any) -> Fetch:
        return self.query.execute(archetype, state)

    def borrows(self) -> Iterator[tuple[Any, bool]]:
        return self.query.borrows()


@dataclass(frozen=True)
class Without(Query):
    """Run ``query`` only on entities that lack ``component``."""

    component: Any
    query: Any

    def __post_init__(self) -> None:
        object.__setattr__(self, "query", as_query(self.query))

    def access(self, archetype: Archetype) -> Access | None:
        return None if archetype.has(self.component) else self.query.access(archetype)

    def prepare(self, archetype: Archetype) -> Any:
        if archetype.has(self.component):
            return None
        return self.query.prepare(archetype)

    def borrow(self, archetype: Archetype, state: Any) -> None:
        self.query.borrow(archetype, state)

    def release(self, archetype: Archetype, state: Any) -> None:
        self.query.release(archetype, state)

    def execute(self, archetype: Archetype, state: Any) -> Fetch:
        return self.query.execute(archetype, state)

    def borrows(self) -> Iterator[tuple[Any, bool]]:
        return self.query.borrows()


@dataclass(frozen=True)
class Satisfies(Query):
    """Yield whether each entity would match ``query``; borrows nothing."""

    query: Any

    def __post_init__(self) -> None:
        object.__setattr__(self, "query", as_query(self.query))

    def access(self, archetype: Archetype) -> Access | None:
        return None if self.query.access(archetype) is None else Access.ITERATE

    def prepare(self, archetype: Archetype) -> Any:
        return self.query.prepare(archetype) is not None

    def borrow(self, archetype: Archetype, state: Any) -> None:
        return None

    def release(self, archetype: Archetype, state: Any) -> None:
        return None

    def execute(self, archetype: Archetype, state: Any) -> Fetch:
        return lambda n: state

    def borrows(self) -> Iterator[tuple[Any, bool]]:
        return iter(())


class All(Query):
    """Fetch several queries at once, yielding a tuple of their items."""

    __slots__ = ("queries",)

    def __init__(self, *queries: Any) -> None:
        self.queries: tuple[Query, ...] = tuple(as_query(q) for q in queries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, All):
            return NotImplemented
        return self.queries == other.queries

    def __hash__(self) -> int:
        return hash((All, self.queries))

    def __repr__(self) -> str:
        return f"All({', '.join(map(repr, self.queries))})"

    def access(self, archetype: Archetype) -> Access | None:
        access = Access.ITERATE
        for query in self.queries:
            inner = query.access(archetype)
            if inner is None:
                return None
            access = max(access, inner)
        return access

    def prepare(self, archetype: Archetype) -> Any:
        states = []
        for query in self.queries:
            state = query.prepare(archetype)
            if state is None:
                return None
            states.append(state)
        return tuple(states)

    def borrow(self, archetype: Archetype, state: Any) -> None:
        taken: list[tuple[Query, Any]] = []
        try:
            for query, inner in zip(self.queries, state):
                query.borrow(archetype, inner)
                taken.append((query, inner))
        except BaseException:
            for query, inner in reversed(taken):
                query.release(archetype, inner)
            raise

    def release(self, archetype: Archetype, state: Any) -> None:
        for query, inner in zip(self.queries, state):
            query.release(archetype, inner)

    def execute(self, archetype: Archetype, state: Any) -> Fetch:
        fetches = [query.execute(archetype, inner) for query, inner in zip(self.queries, state)]
        return lambda n: tuple(fetch(n) for fetch in fetches)

    def borrows(self) -> Iterator[tuple[Any, bool]]:
        for query in self.queries:
            yield from query.borrows()


def as_query(spec: Any) -> Query:
    """Turn a query description into a :class:`Query`.

    A query is returned as is, a tuple or list becomes :class:`All`, and
    anything else is taken as a component to :class:`Read`.
    """
    if isinstance(spec, Query):
        return spec
    if isinstance(spec, (tuple, list)):
        return All(*spec)
    return Read(spec)


def assert_borrow(query: Any) -> Query:
    """Raise :class:`BorrowError` if a uniquely borrowed component appears twice."""
    query = as_query(query)
    borrows = list(query.borrows())
    counts = Counter(component for component, _ in borrows)
    for component, unique in borrows:
        if unique and counts[component] > 1:
            raise BorrowError("query violates a unique borrow")
    return query