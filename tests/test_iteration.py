import pytest

from archetypal.archetypes import ArchetypeSet
from archetypal.entity import EntityAllocator, Location
from archetypal.errors import BorrowError
from archetypal.iteration import BatchedIter, QueryBorrow, QueryIter, QueryMut
from archetypal.query import All, Maybe, Read, Satisfies, With, Without, Write


class Store:
    def __init__(self):
        self.entities = EntityAllocator()
        self.archetypes = ArchetypeSet()

    def spawn(self, components):
        entity = self.entities.alloc()
        index = self.archetypes.get(components)
        row = self.archetypes[index].allocate(entity.id, components)
        self.entities.set_location(entity.id, Location(index, row))
        return entity

    def borrow(self, query):
        return QueryBorrow(self.entities, self.archetypes, query)


@pytest.fixture
def world():
    store = Store()
    a = store.spawn({int: 123, bool: True, str: "abc"})
    b = store.spawn({int: 456, bool: False})
    c = store.spawn({int: 42, str: "def"})
    return store, a, b, c


def test_query_pairs(world):
    store, a, b, c = world
    with store.borrow(All(Read(int), Read(bool))) as q:
        result = set(q.iter())
    assert result == {(a, (123, True)), (b, (456, False))}


def test_with_method(world):
    store, a, b, c = world
    with store.borrow(Read(int)).with_(bool) as q:
        assert set(q) == {(a, 123), (b, 456)}


def test_without_method(world):
    store, a, b, c = world
    with store.borrow(Read(int)).without(bool) as q:
        assert list(q) == [(c, 42)]


def test_with_and_without_queries(world):
    store, a, b, c = world
    with store.borrow(Without(bool, Read(int))) as q:
        assert list(q) == [(c, 42)]
    with store.borrow(With(bool, Read(int))) as q:
        assert set(q) == {(a, 123), (b, 456)}


def test_satisfies(world):
    store, a, b, c = world
    with store.borrow(Satisfies(Read(bool))) as q:
        assert dict(q) == {a: True, b: True, c: False}


def test_maybe_yields_none_for_missing(world):
    store, a, b, c = world
    with store.borrow(All(Read(int), Maybe(Read(str)))) as q:
        assert dict(q) == {a: (123, "abc"), b: (456, None), c: (42, "def")}


def test_query_iter_len(world):
    store, *_ = world
    with store.borrow(Read(int)) as q:
        it = q.iter()
        total = len(it)
        assert total == 3
        next(it)
        assert len(it) == total - 1
        rest = list(it)
        assert len(rest) == total - 1
        assert len(it) == 0


def test_query_iter_len_ignores_non_matching(world):
    store, *_ = world
    it = QueryIter(store.entities, store.archetypes, Read(bool))
    assert len(it) == len(list(QueryIter(store.entities, store.archetypes, Read(bool))))
    assert len(it) == 2


def test_unique_borrow_blocks_other_queries(world):
    store, *_ = world
    writer = store.borrow(Write(int))
    writer.iter()
    reader = store.borrow(Read(int))
    with pytest.raises(BorrowError):
        reader.iter()
    writer.close()
    assert len(list(reader.iter())) == 3
    reader.close()
    for archetype in store.archetypes:
        if archetype.has(int):
            archetype.borrow_mut(int)
            archetype.release_mut(int)


def test_failed_borrow_rolls_back(world):
    store, *_ = world
    with_int = [arch for arch in store.archetypes if arch.has(int)]
    with_int[-1].borrow_mut(int)
    with pytest.raises(BorrowError):
        store.borrow(Read(int)).iter()
    with_int[-1].release_mut(int)
    for archetype in with_int:
        archetype.borrow_mut(int)
        archetype.release_mut(int)


def test_iter_twice_keeps_single_borrow(world):
    store, *_ = world
    q = store.borrow(Write(int))
    first = set(q.iter())
    second = set(q.iter())
    assert first == second
    q.close()
    with store.borrow(Write(int)) as again:
        assert set(again) == first


def test_transform_carries_borrows(world):
    store, *_ = world
    q = store.borrow(Write(int))
    q.iter()
    narrowed = q.with_(bool)
    q.close()
    with pytest.raises(BorrowError):
        store.borrow(Read(int)).iter()
    narrowed.close()
    with store.borrow(Read(int)) as reader:
        assert len(list(reader)) == 3


def test_iter_batched_sizes():
    store = Store()
    for i in range(5):
        store.spawn({int: i})
    with store.borrow(Read(int)) as q:
        batches = [list(batch) for batch in q.iter_batched(2)]
    assert [len(batch) for batch in batches] == [2, 2, 1]
    assert sorted(value for batch in batches for _, value in batch) == list(range(5))


def test_iter_batched_skips_non_matching(world):
    store, a, b, c = world
    with store.borrow(Read(bool)) as q:
        items = [item for batch in q.iter_batched(1) for item in batch]
    assert dict(items) == {a: True, b: False}


def test_batched_iter_rejects_zero_size(world):
    store, *_ = world
    with pytest.raises(ValueError):
        BatchedIter(store.entities, store.archetypes, Read(int), 0)


def test_query_mut_filters(world):
    store, a, b, c = world
    q = QueryMut(store.entities, store.archetypes, Read(int))
    assert list(q.without(bool)) == [(c, 42)]
    assert set(q.with_(bool)) == {(a, 123), (b, 456)}


@pytest.mark.parametrize(
    "query",
    [All(Write(int), Write(int)), All(Write(int), Read(int)), All(Read(int), Write(int))],
)
def test_query_mut_rejects_aliasing(world, query):
    store, *_ = world
    with pytest.raises(BorrowError):
        QueryMut(store.entities, store.archetypes, query)


def test_query_mut_allows_shared_reads(world):
    store, a, *_ = world
    q = QueryMut(store.entities, store.archetypes, All(Read(int), Read(int)))
    assert dict(q)[a] == (123, 123)


def test_query_mut_takes_no_borrows(world):
    store, *_ = world
    archetype = next(arch for arch in store.archetypes if arch.has(int))
    archetype.borrow_mut(int)
    assert len(list(QueryMut(store.entities, store.archetypes, Write(int)))) == 3
    archetype.release_mut(int)


def test_entities_carry_current_generation():
    store = Store()
    first = store.spawn({int: 1})
    location = store.entities.free(first)
    store.archetypes[location.archetype].remove(location.index)
    second = store.spawn({int: 2})
    assert second.id == first.id
    with store.borrow(Read(int)) as q:
        assert list(q) == [(second, 2)]
    assert second.generation != first.generation