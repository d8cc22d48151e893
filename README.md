# archetypal

Building blocks for an in-memory entity-component store. Each entity is an
opaque handle that owns any number of components, at most one of each type.
Entities that have exactly the same set of component types are kept together
in one *archetype*, stored column by column, so a query touches only the
archetypes that hold what it asks for.

Component types are any hashable objects, usually Python classes; a set of
components is a mapping from component type to value.

## Installing

```
pip install .
```

There are no runtime dependencies. To run the test suite:

```
pip install .[test]
pytest
```

## Entities

`archetypal.entity` provides:

- `Entity`: a frozen handle made of an `id` and a non-zero `generation`.
  `to_bits()` packs it into one 64-bit integer (generation high, id low) and
  `Entity.from_bits(bits)` unpacks it.
- `Location`: the archetype number and row where an entity's components live.
- `EntityAllocator`: hands out handles and remembers where each live entity
  is stored. `alloc()` returns a new handle, reusing freed ids with a bumped
  generation so old handles stop matching; `alloc_at(handle)` makes a given
  handle live; `free(entity)` releases one and returns its `Location`;
  `contains`, `location`, `set_location`, `generation`, `resolve` and
  `len()` inspect it. `reserve_entity()` and `reserve_entities(count)` hand
  out ids ahead of time; `flush(place)` makes them live, calling `place(id)`
  for each one's `Location`. `clear()` forgets everything.

## Storage

`archetypal.storage` provides:

- `Archetype`: rows of entities sharing one set of component types.
  `allocate(entity_id, components)` appends a row, `remove(index)` swaps the
  last row into the gap and returns the id that moved, `merge(other)` appends
  another archetype's rows, `column(component)` gives the live list of
  values. Columns carry dynamic borrow counts: `borrow`/`release` for shared
  access and `borrow_mut`/`release_mut` for unique access.
- `ColumnBatchType`, `ColumnBatchBuilder` and `ColumnBatch`: build whole
  columns at once. `ColumnBatchType().add(T)` collects types,
  `into_batch(size)` starts a builder, `push(component, value)` fills a
  column, and `build()` checks that every column is full.

`archetypal.archetypes.ArchetypeSet` holds every archetype, number 0 being
the one without components. `get(types)` finds or creates the archetype for a
set of types, `insert_batch(batch)` stores a `ColumnBatch`, and
`get_insert_target(source, types)` returns an `InsertTarget` saying which
components an insert would replace, which it would keep, and where the entity
would end up. Its `generation` grows whenever an archetype is added.

## Queries

Queries are built from the classes in `archetypal.query`:

| Query            | Matches                                  | Yields per entity        |
|------------------|------------------------------------------|--------------------------|
| `Read(T)`        | entities with a `T`                      | the `T`                  |
| `Write(T)`       | entities with a `T`, borrowed uniquely   | the `T`                  |
| `Maybe(q)`       | every entity                             | the item of `q` or `None`|
| `AnyOf(a, b)`    | entities matching `a`, `b` or both       | an `Or`                  |
| `With(T, q)`     | entities matching `q` that have a `T`    | the item of `q`          |
| `Without(T, q)`  | entities matching `q` that lack a `T`    | the item of `q`          |
| `Satisfies(q)`   | every entity                             | whether it matches `q`   |
| `All(a, b, ...)` | entities matching all of them            | a tuple of their items   |

`as_query(spec)` turns a tuple or list into `All` and a bare component type
into `Read`. `assert_borrow(query)` refuses a query that borrows one type
uniquely and also borrows it again.

`archetypal.iteration` runs queries over an allocator and a sequence of
archetypes:

- `QueryBorrow` takes the dynamic borrows on first iteration and holds them
  until `close()`, so use it as a context manager. `with_(T)` and
  `without(T)` narrow it; `iter_batched(batch_size)` yields `Batch`es of at
  most `batch_size` entities.
- `QueryIter` yields `(entity, item)` pairs and knows its remaining `len()`.
- `QueryMut` takes no borrows and checks the query with `assert_borrow`.

```python
from archetypal.archetypes import ArchetypeSet
from archetypal.entity import EntityAllocator, Location
from archetypal.iteration import QueryBorrow
from archetypal.query import All, Read

entities = EntityAllocator()
archetypes = ArchetypeSet()

def spawn(components):
    entity = entities.alloc()
    number = archetypes.get(components)
    row = archetypes[number].allocate(entity.id, components)
    entities.set_location(entity.id, Location(number, row))
    return entity

a = spawn({int: 123, bool: True, str: "abc"})
b = spawn({int: 456, bool: False})
c = spawn({int: 42, str: "def"})

with QueryBorrow(entities, list(archetypes), All(Read(int), Read(bool))) as found:
    pairs = dict(found)

assert pairs == {a: (123, True), b: (456, False)}
```

`archetypal.query_one.QueryOne(archetype, index, query)` runs a query on one
row; `get()` may be called once and returns `None` if the row does not match.

`archetypal.views` has `EntityRef` for reading any component of one entity,
`SpawnBatchIter`, which spawns one entity per mapping as it is iterated, and
`SpawnColumnBatchIter`, which yields a list of handles and knows its length.

## Errors

`archetypal.errors` defines `NoSuchEntity` for a dead handle,
`MissingComponent` for an absent component (both are `ComponentError`s),
`QueryUnsatisfied` (a `QueryOneError`), and `BorrowError` when a borrow would
clash with one still held.

## What is not included

The package does not yet have a world object that ties the allocator and the
archetypes together: spawning, inserting, removing and despawning have to be
done by hand as in the example above. There are no cached queries that
remember matching archetypes between runs, and no saving or loading of
entities; `archetypal.serialize` is an empty package.