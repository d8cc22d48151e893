"""Views of single entities and iterators over freshly spawned entities."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from operator import length_hint
from typing import Any

from .entity import Entity, EntityAllocator, Location
from .storage import Archetype


class EntityRef:
    """Access to one entity's components, whatever their types."""

    __slots__ = ("_archetype", "_entity", "_index")

    def __init__(self, archetype: Archetype, entity: Entity, index: int) -> None:
        self._archetype = archetype
        self._entity = entity
        self._index = index

    @property
    def entity(self) -> Entity:
        """The handle of the entity viewed."""
        return self._entity

    def get(self, component: Any) -> Any:
        """The entity's ``component`` value, or ``None`` if it has none.

        Raises :class:`BorrowError` if the column is uniquely borrowed.
        """
        column = self._archetype.column(component)
        if column is None:
            return None
        self._archetype.borrow(component)
        try:
            return column[self._index]
        finally:
            self._archetype.release(component)

    def has(self, component: Any) -> bool:
        """Whether the entity has ``component``."""
        return self._archetype.has(component)

    def component_types(self) -> tuple[Any, ...]:
        """The types of all the entity's components."""
        return self._archetype.component_types()

    def __repr__(self) -> str:
        return f"EntityRef({self._entity})"


class SpawnBatchIter:
    """Spawns one entity per bundle as it is iterated, yielding its handle.

    Every bundle is a mapping from component type to value and must hold
    exactly the types of ``archetype``.
    """

    def __init__(
        self,
        bundles: Iterable[Mapping[Any, Any]],
        entities: EntityAllocator,
        archetype_id: int,
        archetype: Archetype,
    ) -> None:
        self._bundles: Iterator[Mapping[Any, Any]] = iter(bundles)
        self._entities = entities
        self._archetype_id = archetype_id
        self._archetype = archetype

    def __iter__(self) -> SpawnBatchIter:
        return self

    def __next__(self) -> Entity:
        components = next(self._bundles)
        if set(components) != set(self._archetype.component_types()):
            raise ValueError("bundle does not match the batch's component types")
        entity = self._entities.alloc()
        index = self._archetype.allocate(entity.id, components)
        self._entities.set_location(entity.id, Location(self._archetype_id, index))
        return entity

    def __length_hint__(self) -> int:
        return length_hint(self._bundles)

    def _drain(self) -> None:
        for _ in self:
            pass


class SpawnColumnBatchIter:
    """Yields the handles of entities spawned from a column batch."""

    def __init__(self, entities: Iterable[Entity]) -> None:
        self._pending = list(entities)
        self._iter = iter(self._pending)
        self._remaining = len(self._pending)

    def __iter__(self) -> SpawnColumnBatchIter:
        return self

    def __next__(self) -> Entity:
        entity = next(self._iter)
        self._remaining -= 1
        return entity

    def __len__(self) -> int:
        return self._remaining