"""Deferred loading of relationship values."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from entity_tables.errors import NotFoundError

if TYPE_CHECKING:
    from entity_tables.table import Table

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Unloaded:
    """Nothing fetched yet: the rows to load are ``column = key`` in the target table."""

    column: str
    key: Any


@dataclass(frozen=True)
class Loaded:
    value: Any


class _Deferred:
    """Shared unloaded -> loaded state machine.

    The transition happens at most once per instance. Concurrent first
    accesses serialize on a lock; losers observe the winner's value.

    Every member is underscore-prefixed so that attribute reads delegated
    to the loaded entity are never shadowed by the wrapper.
    """

    def __init__(self, table: Table, column: str, key: Any) -> None:
        self._table = table
        self._lock = threading.Lock()
        self._state: Unloaded | Loaded = Unloaded(column, key)

    @property
    def _is_loaded(self) -> bool:
        return isinstance(self._state, Loaded)

    def _load(self) -> Any:
        """Return the related value, querying the target table on first use."""
        state = self._state
        if isinstance(state, Loaded):
            return state.value
        with self._lock:
            state = self._state
            if isinstance(state, Loaded):
                return state.value
            logger.debug(
                "Lazy loading %s where %s = %r", self._table.name, state.column, state.key
            )
            value = self._fetch(state)
            self._state = Loaded(value)
            return value

    def _fetch(self, state: Unloaded) -> Any:
        raise NotImplementedError


class LazyRef(_Deferred, Generic[T]):
    """A to-one relationship value loaded on first access.

    Attribute reads and equality delegate to the loaded entity. Use
    ``materialize(ref)`` for the entity itself and ``is_unloaded(ref)`` to
    check whether it has been fetched.
    """

    def _fetch(self, state: Unloaded) -> Any:
        rows = self._table.select_by_column(state.column, state.key, limit=1)
        if not rows:
            raise NotFoundError(self._table.entity_type, state.column, state.key)
        return rows[0]

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._load(), name)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, LazyRef):
            other = other._load()
        return self._load() == other

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        state = self._state
        if isinstance(state, Loaded):
            return f"LazyRef({state.value!r})"
        return f"LazyRef({self._table.entity_type.__name__}, {state.column}={state.key!r})"


class LazyList(_Deferred, Sequence, Generic[T]):
    """A to-many relationship value loaded on first access.

    Finding no rows is not an error: the list is simply empty.
    """

    def _fetch(self, state: Unloaded) -> Any:
        return list(self._table.select_by_column(state.column, state.key))

    @property
    def is_loaded(self) -> bool:
        return self._is_loaded

    def load(self) -> list[T]:
        return self._load()

    def __getitem__(self, index: Any) -> Any:
        return self._load()[index]

    def __len__(self) -> int:
        return len(self._load())

    def __iter__(self) -> Any:
        return iter(self._load())

    def __eq__(self, other: object) -> bool:
        if isinstance(other, LazyList):
            other = other._load()
        if isinstance(other, Sequence) and not isinstance(other, (str, bytes)):
            return self._load() == list(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        state = self._state
        if isinstance(state, Loaded):
            return f"LazyList({state.value!r})"
        return f"LazyList({self._table.entity_type.__name__}, {state.column}={state.key!r})"


def is_unloaded(value: Any) -> bool:
    """True for a lazy wrapper that has not been loaded yet."""
    return isinstance(value, _Deferred) and not value._is_loaded


def materialize(value: Any) -> Any:
    """Return the underlying value of a lazy wrapper, loading it if needed, or ``value`` itself."""
    if isinstance(value, _Deferred):
        return value._load()
    return value
