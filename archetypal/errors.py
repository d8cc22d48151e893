"""Errors raised when accessing entities and components."""

from __future__ import annotations

from typing import Any


def _component_name(component: Any) -> str:
    return getattr(component, "__qualname__", None) or repr(component)


class ComponentError(Exception):
    """A component of an entity could not be accessed."""


class QueryOneError(Exception):
    """A query against a single entity could not be answered."""


class NoSuchEntity(ComponentError, QueryOneError, LookupError):
    """The entity was already despawned or never existed."""

    def __init__(self, entity: Any = None) -> None:
        super().__init__("no such entity")
        self.entity = entity


class MissingComponent(ComponentError, LookupError):
    """The entity does not have a requested component."""

    def __init__(self, component: Any) -> None:
        super().__init__(f"missing {_component_name(component)} component")
        self.component = component


class QueryUnsatisfied(QueryOneError):
    """The entity exists but does not satisfy the query."""

    def __init__(self) -> None:
        super().__init__("unsatisfied")


class BorrowError(RuntimeError):
    """A dynamic borrow would clash with one that is already held."""