"""Entity handles and the allocator that hands them out."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import total_ordering

from .errors import NoSuchEntity

_U32_MAX = 0xFFFF_FFFF


def _next_generation(generation: int) -> int:
    return generation + 1 if generation < _U32_MAX else 1


@total_ordering
@dataclass(frozen=True)
class Entity:
    """Lightweight handle to an entity: an id plus a non-zero generation."""

    id: int
    generation: int = 1

    def __post_init__(self) -> None:
        if not 0 <= self.id <= _U32_MAX:
            raise ValueError(f"entity id out of range: {self.id}")
        if not 1 <= self.generation <= _U32_MAX:
            raise ValueError(f"entity generation out of range: {self.generation}")

    def to_bits(self) -> int:
        """Pack the handle into a 64-bit integer: generation high, id low."""
        return (self.generation << 32) | self.id

    @classmethod
    def from_bits(cls, bits: int) -> Entity:
        """Unpack a handle produced by :meth:`to_bits`."""
        if not 0 <= bits < 1 << 64:
            raise ValueError(f"entity bits out of range: {bits}")
        generation = bits >> 32
        if generation == 0:
            raise ValueError("entity generation must be non-zero")
        return cls(bits & _U32_MAX, generation)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return NotImplemented
        return self.to_bits() < other.to_bits()

    def __str__(self) -> str:
        return f"{self.id}v{self.generation}"


@dataclass(frozen=True)
class Location:
    """Where an entity's components live: archetype number and row."""

    archetype: int
    index: int


@dataclass
class _Meta:
    generation: int = 1
    location: Location | None = None


class EntityAllocator:
    """Allocates entity ids, tracks generations and locations of live entities.

    Ids may be reserved ahead of time; reserved ids become live entities on
    :meth:`flush`.
    """

    def __init__(self) -> None:
        self._meta: list[_Meta] = []
        self._pending: list[int] = []
        self._free_cursor = 0
        self._len = 0

    def _verify_flushed(self) -> None:
        if self._free_cursor != len(self._pending):
            raise RuntimeError("reserved entities must be flushed first")

    def _reserved_new(self) -> int:
        return max(-self._free_cursor, 0)

    def _live_meta(self, entity: Entity) -> _Meta:
        if entity.id >= len(self._meta):
            raise NoSuchEntity(entity)
        meta = self._meta[entity.id]
        if meta.generation != entity.generation or meta.location is None:
            raise NoSuchEntity(entity)
        return meta

    def alloc(self) -> Entity:
        """Allocate a fresh entity, reusing freed ids first."""
        self._verify_flushed()
        if self._pending:
            entity_id = self._pending.pop()
            self._free_cursor = len(self._pending)
            self._len += 1
            return Entity(entity_id, self._meta[entity_id].generation)
        entity_id = len(self._meta)
        if entity_id > _U32_MAX:
            raise OverflowError("too many entities")
        self._meta.append(_Meta())
        self._len += 1
        return Entity(entity_id, 1)

    def alloc_at(self, handle: Entity) -> Location | None:
        """Make ``handle`` live; return the old location if its id was live."""
        self._verify_flushed()
        previous: Location | None = None
        if handle.id >= len(self._meta):
            self._pending.extend(range(len(self._meta), handle.id))
            self._free_cursor = len(self._pending)
            self._meta.extend(_Meta() for _ in range(handle.id + 1 - len(self._meta)))
            self._len += 1
        elif handle.id in self._pending:
            index = self._pending.index(handle.id)
            self._pending[index] = self._pending[-1]
            self._pending.pop()
            self._free_cursor = len(self._pending)
            self._len += 1
        else:
            meta = self._meta[handle.id]
            previous, meta.location = meta.location, None
        self._meta[handle.id].generation = handle.generation
        return previous

    def free(self, entity: Entity) -> Location:
        """Release ``entity`` and return where its components were stored."""
        self._verify_flushed()
        meta = self._live_meta(entity)
        meta.generation = _next_generation(meta.generation)
        location = meta.location
        meta.location = None
        self._pending.append(entity.id)
        self._free_cursor = len(self._pending)
        self._len -= 1
        assert location is not None
        return location

    def contains(self, entity: Entity) -> bool:
        """Whether ``entity`` is live or reserved."""
        if entity.id < len(self._meta):
            return self._meta[entity.id].generation == entity.generation
        return entity.generation == 1 and entity.id < len(self._meta) + self._reserved_new()

    def location(self, entity: Entity) -> Location:
        """Location of a live entity; raises :class:`NoSuchEntity` otherwise."""
        location = self._live_meta(entity).location
        assert location is not None
        return location

    def set_location(self, id: int, location: Location) -> None:
        """Record where the entity with ``id`` is now stored."""
        self._meta[id].location = location

    def generation(self, id: int) -> int:
        """Current generation of ``id``."""
        return self.resolve(id).generation

    def resolve(self, id: int) -> Entity:
        """Rebuild the current handle for ``id``."""
        if 0 <= id < len(self._meta):
            return Entity(id, self._meta[id].generation)
        if len(self._meta) <= id < len(self._meta) + self._reserved_new():
            return Entity(id, 1)
        raise NoSuchEntity()

    def reserve_entity(self) -> Entity:
        """Reserve one id; it becomes a live entity on the next flush."""
        cursor = self._free_cursor
        self._free_cursor -= 1
        if cursor > 0:
            entity_id = self._pending[cursor - 1]
            return Entity(entity_id, self._meta[entity_id].generation)
        entity_id = len(self._meta) - cursor
        if entity_id > _U32_MAX:
            raise OverflowError("too many entities")
        return Entity(entity_id, 1)

    def reserve_entities(self, count: int) -> list[Entity]:
        """Reserve ``count`` ids at once and return their handles."""
        if count < 0:
            raise ValueError("count must not be negative")
        range_end = self._free_cursor
        self._free_cursor -= count
        range_start = self._free_cursor
        reserved = [
            Entity(entity_id, self._meta[entity_id].generation)
            for entity_id in self._pending[max(range_start, 0):max(range_end, 0)]
        ]
        base = len(self._meta)
        reserved.extend(
            Entity(entity_id, 1)
            for entity_id in range(base + max(-range_end, 0), base + max(-range_start, 0))
        )
        return reserved

    def flush(self, place: Callable[[int], Location]) -> None:
        """Turn reserved ids into live entities, asking ``place`` for each location."""
        cursor = self._free_cursor
        if cursor < 0:
            old_len = len(self._meta)
            self._meta.extend(_Meta() for _ in range(-cursor))
            self._len += -cursor
            for entity_id, meta in enumerate(self._meta[old_len:], start=old_len):
                meta.location = place(entity_id)
            self._free_cursor = cursor = 0
        drained = self._pending[cursor:]
        del self._pending[cursor:]
        self._len += len(drained)
        for entity_id in drained:
            self._meta[entity_id].location = place(entity_id)

    def clear(self) -> None:
        """Forget every entity."""
        self._meta.clear()
        self._pending.clear()
        self._free_cursor = 0
        self._len = 0

    def __len__(self) -> int:
        return self._len