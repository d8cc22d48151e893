"""The set of archetypes a world stores its entities in."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from .storage import Archetype, ColumnBatch


@dataclass(frozen=True)
class InsertTarget:
    """Where an entity goes after components are inserted into it."""

    replaced: tuple[Any, ...]
    """Components the entity already has that the insert overwrites."""
    retained: tuple[Any, ...]
    """Components the entity has that the insert leaves alone and that must move."""
    index: int
    """Number of the archetype the entity ends up in."""


class ArchetypeSet:
    """All archetypes of a world, looked up by their set of component types.

    Archetype 0 always exists and holds entities without components.
    """

    def __init__(self) -> None:
        self._index: dict[frozenset[Any], int] = {frozenset(): 0}
        self._archetypes: list[Archetype] = [Archetype()]
        self.generation = 0
        self.insert_edges: list[dict[Any, InsertTarget]] = [{}]
        self.remove_edges: list[dict[Any, int]] = [{}]

    def _insert(self, key: frozenset[Any], archetype: Archetype) -> int:
        index = len(self._archetypes)
        self._archetypes.append(archetype)
        self._index[key] = index
        self.insert_edges.append({})
        self.remove_edges.append({})
        self.generation += 1
        return index

    def get(self, types: Iterable[Any]) -> int:
        """Number of the archetype with exactly ``types``, created if needed."""
        key = frozenset(types)
        found = self._index.get(key)
        if found is not None:
            return found
        return self._insert(key, Archetype(key))

    def insert_batch(self, batch: ColumnBatch) -> tuple[int, int]:
        """Store the rows of ``batch``; return archetype number and first row."""
        archetype = batch.archetype
        key = frozenset(archetype.component_types())
        found = self._index.get(key)
        if found is None:
            return self._insert(key, archetype), 0
        existing = self._archetypes[found]
        base = len(existing)
        existing.merge(archetype)
        return found, base

    def get_insert_target(self, source: int, types: Iterable[Any]) -> InsertTarget:
        """Work out what inserting ``types`` into an entity of ``source`` does."""
        archetype = self._archetypes[source]
        inserted = tuple(dict.fromkeys(types))
        replaced = tuple(t for t in inserted if archetype.has(t))
        incoming = set(inserted)
        retained = tuple(t for t in archetype.component_types() if t not in incoming)
        index = self.get((*archetype.component_types(), *inserted))
        return InsertTarget(replaced=replaced, retained=retained, index=index)

    def __iter__(self) -> Iterator[Archetype]:
        return iter(self._archetypes)

    def __getitem__(self, index: int) -> Archetype:
        return self._archetypes[index]

    def __len__(self) -> int:
        return len(self._archetypes)