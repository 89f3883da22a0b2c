"""Registry of mapped tables, built at most once per (table name, entity type)."""

from __future__ import annotations

import logging
import re
import threading
from typing import TYPE_CHECKING, Any, TypeVar

from entity_tables.errors import DatabaseError, MappingError
from entity_tables.executor import QueryExecutor
from entity_tables.introspection import TypeDescriptor, inspect
from entity_tables.table import Table

if TYPE_CHECKING:
    from entity_tables.config import DatabaseManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def default_table_name(entity_type: type) -> str:
    """``PlayerQuest`` -> ``player_quests``."""
    name = entity_type.__name__
    if not name or name.startswith("<"):
        raise MappingError(entity_type, "Cannot determine a table name for an anonymous type")
    return _CAMEL_BOUNDARY.sub("_", name).lower() + "s"


class Registry:
    """Caches one Table per (table name, entity type) for an executor.

    Concurrent first registrations of the same key serialize on a per-key
    lock, so exactly one Table is built and one CREATE TABLE issued; every
    caller gets the same instance. Different keys register in parallel.
    """

    def __init__(self, executor: QueryExecutor) -> None:
        self.executor = executor
        self._guard = threading.Lock()
        self._key_locks: dict[tuple[str, type], threading.Lock] = {}
        self._tables: dict[tuple[str, type], Table[Any]] = {}
        self._by_name: dict[str, Table[Any]] = {}
        self._by_type: dict[type, Table[Any]] = {}
        self._descriptors: dict[type, TypeDescriptor] = {}

    @classmethod
    def using(cls, manager: DatabaseManager) -> Registry:
        """Create a registry on the manager's default executor."""
        return cls(manager.default())

    def _lock_for(self, key: tuple[str, type]) -> threading.Lock:
        with self._guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def descriptor(self, entity_type: type) -> TypeDescriptor:
        """Return the cached TypeDescriptor for an entity type, inspecting it once."""
        with self._guard:
            cached = self._descriptors.get(entity_type)
        if cached is not None:
            return cached
        descriptor = inspect(entity_type)
        with self._guard:
            return self._descriptors.setdefault(entity_type, descriptor)

    def register(self, entity_type: type[T], table_name: str | None = None) -> Table[T]:
        """Return the Table for ``entity_type``, creating it on first use.

        Raises:
            MappingError: If the entity cannot be mapped, or the table name is
                already registered for a different entity type.
        """
        name = table_name or default_table_name(entity_type)
        key = (name, entity_type)
        table = self._tables.get(key)
        if table is not None:
            return table

        with self._lock_for(key):
            table = self._tables.get(key)
            if table is not None:
                return table
            existing = self._by_name.get(name)
            if existing is not None:
                raise MappingError(
                    entity_type,
                    f"Table '{name}' is already registered for {existing.descriptor.name}",
                )
            table = Table(self, name, self.descriptor(entity_type))
            with self._guard:
                self._tables[key] = table
                self._by_name[name] = table
                self._by_type.setdefault(entity_type, table)
            logger.info("Registered %s as table %s", entity_type.__name__, name)
            return table

    def table_for(self, entity_type: type[T]) -> Table[T]:
        """Return the table an entity type was registered under, registering it if needed."""
        table = self._by_type.get(entity_type)
        if table is not None:
            return table
        return self.register(entity_type)

    def get(self, table_name: str, entity_type: type[T] | None = None) -> Table[Any]:
        """Look up a registered table by name.

        Raises:
            DatabaseError: If no table has that name, or it maps another type.
        """
        table = self._by_name.get(table_name)
        if table is None:
            raise DatabaseError(f"No table registered with name '{table_name}'")
        if entity_type is not None and table.entity_type is not entity_type:
            raise DatabaseError(
                f"Table '{table_name}' is registered with entity type "
                f"{table.descriptor.name} but {entity_type.__name__} was requested"
            )
        return table

    def tables(self) -> list[Table[Any]]:
        with self._guard:
            return list(self._tables.values())

    def __contains__(self, table_name: str) -> bool:
        return table_name in self._by_name
