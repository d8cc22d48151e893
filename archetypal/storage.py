"""Column storage for entities that share one set of component types."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from .errors import BorrowError, MissingComponent


def _type_key(component: Any) -> tuple[str, str, int]:
    return (
        getattr(component, "__module__", "") or "",
        getattr(component, "__qualname__", "") or repr(component),
        id(component),
    )


def _name(component: Any) -> str:
    return getattr(component, "__qualname__", None) or repr(component)


class Archetype:
    """Entities with exactly the same component types, stored column by column."""

    def __init__(self, types: Iterable[Any] = ()) -> None:
        self._types = tuple(sorted(set(types), key=_type_key))
        self._columns: dict[Any, list[Any]] = {t: [] for t in self._types}
        self._ids: list[int] = []
        self._borrows: dict[Any, int] = dict.fromkeys(self._types, 0)

    def __len__(self) -> int:
        return len(self._ids)

    def __repr__(self) -> str:
        names = ", ".join(_name(t) for t in self._types)
        return f"Archetype([{names}], len={len(self)})"

    def has(self, component: Any) -> bool:
        """Whether this archetype stores ``component``."""
        return component in self._columns

    def component_types(self) -> tuple[Any, ...]:
        """The component types, in a fixed order."""
        return self._types

    def column(self, component: Any) -> list[Any] | None:
        """The live list of ``component`` values, or ``None`` if absent."""
        return self._columns.get(component)

    def ids(self) -> tuple[int, ...]:
        """Entity ids, one per row."""
        return tuple(self._ids)

    def entity_id(self, index: int) -> int:
        return self._ids[index]

    def set_entity_id(self, index: int, id: int) -> None:
        self._ids[index] = id

    def allocate(self, entity_id: int, components: Mapping[Any, Any]) -> int:
        """Append a row for ``entity_id`` and return its index."""
        if set(components) != set(self._types):
            raise ValueError("components do not match the archetype's types")
        for component, column in self._columns.items():
            column.append(components[component])
        self._ids.append(entity_id)
        return len(self._ids) - 1

    def remove(self, index: int) -> int | None:
        """Remove a row by moving the last row into its place.

        Returns the id of the entity that moved, if any.
        """
        last = len(self._ids) - 1
        if not 0 <= index <= last:
            raise IndexError(f"row {index} out of range")
        moved = None
        if index != last:
            moved = self._ids[last]
            self._ids[index] = moved
            for column in self._columns.values():
                column[index] = column[last]
        self._ids.pop()
        for column in self._columns.values():
            column.pop()
        return moved

    def merge(self, other: Archetype) -> None:
        """Append every row of ``other``, which must have the same types."""
        if set(other._types) != set(self._types):
            raise ValueError("cannot merge archetypes with different types")
        self._ids.extend(other._ids)
        for component, column in self._columns.items():
            column.extend(other._columns[component])

    def _state(self, component: Any) -> int:
        try:
            return self._borrows[component]
        except KeyError:
            raise MissingComponent(component) from None

    def borrow(self, component: Any) -> None:
        """Take a shared borrow of a column."""
        state = self._state(component)
        if state < 0:
            raise BorrowError(f"{_name(component)} already borrowed uniquely")
        self._borrows[component] = state + 1

    def borrow_mut(self, component: Any) -> None:
        """Take a unique borrow of a column."""
        if self._state(component) != 0:
            raise BorrowError(f"{_name(component)} already borrowed")
        self._borrows[component] = -1

    def release(self, component: Any) -> None:
        """Give back a shared borrow."""
        state = self._state(component)
        if state <= 0:
            raise BorrowError(f"{_name(component)} is not borrowed")
        self._borrows[component] = state - 1

    def release_mut(self, component: Any) -> None:
        """Give back a unique borrow."""
        if self._state(component) != -1:
            raise BorrowError(f"{_name(component)} is not uniquely borrowed")
        self._borrows[component] = 0

    def clear(self) -> None:
        """Drop every row."""
        self._ids.clear()
        for column in self._columns.values():
            column.clear()


class ColumnBatch:
    """A complete set of columns, ready to be spawned into a world."""

    __slots__ = ("archetype",)

    def __init__(self, archetype: Archetype) -> None:
        self.archetype = archetype

    def __len__(self) -> int:
        return len(self.archetype)


class ColumnBatchBuilder:
    """Fills columns of a fixed size one value at a time."""

    def __init__(self, types: Iterable[Any], size: int) -> None:
        if size < 0:
            raise ValueError("size must not be negative")
        self._archetype: Archetype | None = Archetype(types)
        self._size = size

    def _column(self, component: Any) -> list[Any]:
        if self._archetype is None:
            raise RuntimeError("batch already built")
        column = self._archetype.column(component)
        if column is None:
            raise MissingComponent(component)
        return column

    def push(self, component: Any, value: Any) -> None:
        """Append ``value`` to the column for ``component``."""
        column = self._column(component)
        if len(column) >= self._size:
            raise ValueError(f"{_name(component)} column is already full")
        column.append(value)

    def fill(self, component: Any) -> int:
        """How many values the column for ``component`` holds."""
        return len(self._column(component))

    def build(self) -> ColumnBatch:
        """Finish the batch; every column must be full."""
        if self._archetype is None:
            raise RuntimeError("batch already built")
        archetype = self._archetype
        for component in archetype.component_types():
            if len(archetype._columns[component]) != self._size:
                raise ValueError(f"batch incomplete: {_name(component)} column not filled")
        archetype._ids.extend([0] * self._size)
        self._archetype = None
        return ColumnBatch(archetype)


class ColumnBatchType:
    """The set of component types for a column batch."""

    def __init__(self, types: Iterable[Any] = ()) -> None:
        self._types: set[Any] = set(types)

    def add(self, component: Any) -> ColumnBatchType:
        """Include ``component``; returns ``self`` for chaining."""
        self._types.add(component)
        return self

    def into_batch(self, size: int) -> ColumnBatchBuilder:
        """Start a builder for ``size`` entities of these types."""
        return ColumnBatchBuilder(self._types, size)