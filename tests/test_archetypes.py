import pytest

from archetypal.archetypes import ArchetypeSet, InsertTarget
from archetypal.storage import ColumnBatchType


def _batch(values):
    builder = ColumnBatchType().add(int).into_batch(len(values))
    for value in values:
        builder.push(int, value)
    return builder.build()


def test_new_set_has_only_the_empty_archetype():
    archetypes = ArchetypeSet()
    assert len(archetypes) == 1
    assert archetypes[0].component_types() == ()
    assert archetypes.generation == 0
    assert archetypes.get(()) == 0


def test_get_creates_once_regardless_of_order():
    archetypes = ArchetypeSet()
    before = archetypes.generation
    first = archetypes.get([int, str])
    assert first == len(archetypes) - 1
    assert set(archetypes[first].component_types()) == {int, str}
    assert archetypes.get([str, int]) == first
    assert archetypes.generation == before + 1
    assert len(archetypes.insert_edges) == len(archetypes)
    assert len(archetypes.remove_edges) == len(archetypes)


def test_insert_batch_new_then_merge():
    archetypes = ArchetypeSet()
    first = _batch([1, 2])
    index, base = archetypes.insert_batch(first)
    assert index == len(archetypes) - 1
    assert base == 0
    generation = archetypes.generation

    index2, base2 = archetypes.insert_batch(_batch([3, 4, 5]))
    assert index2 == index
    assert base2 == 2
    assert archetypes[index].column(int) == [1, 2, 3, 4, 5]
    assert archetypes.generation == generation


def test_insert_batch_into_existing_archetype():
    archetypes = ArchetypeSet()
    index = archetypes.get([int])
    got, base = archetypes.insert_batch(_batch([7]))
    assert got == index
    assert base == len(archetypes[index]) - 1


def test_insert_target_adds_and_replaces():
    archetypes = ArchetypeSet()
    source = archetypes.get([int, str])
    target = archetypes.get_insert_target(source, [int, bool])
    assert isinstance(target, InsertTarget)
    assert target.replaced == (int,)
    assert target.retained == (str,)
    assert set(archetypes[target.index].component_types()) == {int, str, bool}


def test_insert_target_all_replaced_stays_put():
    archetypes = ArchetypeSet()
    source = archetypes.get([int, str])
    generation = archetypes.generation
    target = archetypes.get_insert_target(source, [str, int])
    assert target.index == source
    assert set(target.replaced) == {int, str}
    assert target.retained == ()
    assert archetypes.generation == generation


def test_insert_target_from_empty():
    archetypes = ArchetypeSet()
    target = archetypes.get_insert_target(0, [bool])
    assert target.replaced == ()
    assert target.retained == ()
    assert archetypes[target.index].component_types() == (bool,)


def test_iteration_and_indexing():
    archetypes = ArchetypeSet()
    a = archetypes.get([int])
    b = archetypes.get([str])
    listed = list(archetypes)
    assert listed[a] is archetypes[a]
    assert listed[b] is archetypes[b]
    assert len(listed) == len(archetypes)
    with pytest.raises(IndexError):
        archetypes[len(archetypes)]