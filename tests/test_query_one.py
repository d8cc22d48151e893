import pytest

from archetypal.errors import BorrowError
from archetypal.query import Maybe, Read, Write
from archetypal.query_one import QueryOne
from archetypal.storage import Archetype


@pytest.fixture
def archetype():
    arch = Archetype([int, bool])
    arch.allocate(0, {int: 123, bool: True})
    arch.allocate(1, {int: 456, bool: False})
    return arch


def test_get_fetches_row(archetype):
    query = QueryOne(archetype, 1, (Write(int), Read(bool)))
    assert query.get() == (456, False)
    query.close()


def test_get_twice_fails(archetype):
    query = QueryOne(archetype, 0, int)
    assert query.get() == 123
    with pytest.raises(RuntimeError):
        query.get()
    query.close()


def test_unsatisfied_returns_none_and_holds_nothing(archetype):
    query = QueryOne(archetype, 0, (int, str))
    assert query.get() is None
    assert query.get() is None
    archetype.borrow_mut(int)
    archetype.release_mut(int)


def test_borrow_held_until_close(archetype):
    query = QueryOne(archetype, 0, Write(int))
    assert query.get() == 123
    with pytest.raises(BorrowError):
        archetype.borrow(int)
    query.close()
    archetype.borrow_mut(int)
    archetype.release_mut(int)


def test_context_manager_releases(archetype):
    with QueryOne(archetype, 0, (Write(int), Read(bool))) as query:
        assert query.get() == (123, True)
        with pytest.raises(BorrowError):
            archetype.borrow_mut(bool)
    archetype.borrow_mut(int)
    archetype.borrow_mut(bool)


def test_with_and_without(archetype):
    assert QueryOne(archetype, 0, int).with_(str).get() is None
    assert QueryOne(archetype, 0, int).with_(bool).get() == 123
    assert QueryOne(archetype, 0, int).without(str).get() == 123
    assert QueryOne(archetype, 0, int).without(bool).get() is None


def test_maybe_item(archetype):
    with QueryOne(archetype, 1, (bool, Maybe(Read(str)))) as query:
        assert query.get() == (False, None)


def test_transform_carries_borrow(archetype):
    query = QueryOne(archetype, 0, Write(int))
    assert query.get() == 123
    moved = query.with_(bool)
    with pytest.raises(RuntimeError):
        moved.get()
    query.close()
    with pytest.raises(BorrowError):
        archetype.borrow(int)
    moved.close()
    archetype.borrow_mut(int)
    archetype.release_mut(int)


def test_index_out_of_range(archetype):
    with pytest.raises(IndexError):
        QueryOne(archetype, len(archetype), int)