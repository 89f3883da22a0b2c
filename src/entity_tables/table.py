"""A mapped table: DDL, CRUD entry points, query builders and cascades."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from entity_tables import relationships as rel
from entity_tables.ddl import create_table_statement
from entity_tables.errors import MappingError, NotFoundError
from entity_tables.executor import Binder, QueryExecutor
from entity_tables.introspection import TypeDescriptor
from entity_tables.lazy import is_unloaded, materialize
from entity_tables.query import DeleteQuery, FindManyQuery, FindOneQuery, UpdateQuery
from entity_tables.types import Cascade, RelationshipDescriptor, quote_identifier

if TYPE_CHECKING:
    from entity_tables.registry import Registry

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Identity of a row touched during one cascading operation: (table name, primary key)
_Visited = set[tuple[str, Any]]


class Table(Generic[T]):
    """One entity type bound to one table name.

    Construction issues ``CREATE TABLE IF NOT EXISTS`` once; after that the
    table is ready for good. Related tables are looked up through the
    registry that owns this table.
    """

    supports_cascade = True

    def __init__(self, registry: Registry, name: str, descriptor: TypeDescriptor) -> None:
        self.registry = registry
        self.name = name
        self.quoted_name = quote_identifier(name)
        self.descriptor = descriptor
        self._insert_sql = self._build_insert_sql()
        self._merge_sql = self._build_merge_sql()
        self._delete_sql = (
            f"DELETE FROM {self.quoted_name} WHERE {descriptor.primary_key.quoted_column} = ?"
        )
        self._related_ready = False
        self._check_relationships()
        self._create_table()

    @property
    def entity_type(self) -> type[T]:
        return self.descriptor.entity_type

    @property
    def executor(self) -> QueryExecutor:
        return self.registry.executor

    def _create_table(self) -> None:
        self.executor.execute(create_table_statement(self.name, self.descriptor))
        logger.info("Ensured table %s for %s", self.name, self.descriptor.name)

    def _check_relationships(self) -> None:
        """Inspect every relationship target and resolve each inverse join column.

        Raises:
            MappingError: If a target cannot be mapped or ``mapped_by`` names
                nothing on it.
        """
        for relationship in self.descriptor.relationships:
            target = self.registry.descriptor(relationship.target)
            if not relationship.is_owner:
                rel.inverse_column(relationship, target)

    def _prepare_related(self) -> None:
        """Register every table reachable through relationships.

        Runs before a cascading operation takes the executor's transaction,
        so no registry lock is ever awaited while the executor is held.
        """
        if self._related_ready:
            return
        seen = {self.entity_type}
        pending: list[Table] = [self]
        while pending:
            table = pending.pop()
            for relationship in table.descriptor.relationships:
                if relationship.target not in seen:
                    seen.add(relationship.target)
                    pending.append(self.registry.table_for(relationship.target))
        self._related_ready = True

    def _build_insert_sql(self) -> str:
        columns = self.descriptor.columns
        names = ", ".join(f.quoted_column for f in columns)
        slots = ", ".join("?" for _ in columns)
        return f"INSERT INTO {self.quoted_name} ({names}) VALUES ({slots})"

    def _build_merge_sql(self) -> str:
        pk = self.descriptor.primary_key
        assignments = ", ".join(
            f"{f.quoted_column} = ?" for f in self.descriptor.columns if f is not pk
        )
        return f"UPDATE {self.quoted_name} SET {assignments} WHERE {pk.quoted_column} = ?"

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_one(self) -> FindOneQuery[T]:
        return FindOneQuery(self)

    find_first = find_one

    def find_many(self) -> FindManyQuery[T]:
        return FindManyQuery(self)

    def update(self) -> UpdateQuery:
        return UpdateQuery(self)

    def delete_where(self) -> DeleteQuery:
        """Bulk delete by criteria. Does not cascade."""
        return DeleteQuery(self)

    def get(self, key: Any, with_relationships: bool = False) -> T | None:
        """Return the entity with the given primary key, or None."""
        query = self.find_one().where(self.descriptor.primary_key.name, key)
        return query.with_relationships(with_relationships).execute()

    def exists(self, key: Any) -> bool:
        pk = self.descriptor.primary_key
        return self.find_many().where(pk.name, key).count() > 0

    def count(self) -> int:
        return self.find_many().count()

    def select_by_column(self, column: str, key: Any, limit: int | None = None) -> list[T]:
        """Load entities whose ``column`` equals ``key``, without relationships."""
        field = self.descriptor.field_for_column(column)
        if field is None:
            raise MappingError(self.entity_type, f"No column '{column}' in table {self.name}")
        binder = Binder([field.bind(key)])
        sql = (
            f"SELECT {self.descriptor.column_list} FROM {self.quoted_name} "
            f"WHERE {field.quoted_column} = ?"
        )
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
        return self.executor.query(sql, binder, self.descriptor.map_row)

    def map_row(self, row: Any, with_relationships: bool = False) -> T:
        instance = self.descriptor.map_row(row)
        if with_relationships:
            self.resolve_relationships(instance)
        return instance

    def resolve_relationships(self, instance: T) -> T:
        """Populate every relationship field: loaded when eager, wrapped when lazy."""
        self._prepare_related()
        for relationship in self.descriptor.relationships:
            target = self.registry.table_for(relationship.target)
            value = rel.resolve(relationship, self.descriptor, instance, target)
            setattr(instance, relationship.name, value)
        return instance

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, entity: T) -> int:
        """Insert one row for ``entity``, cascading PERSIST to related entities.

        Returns:
            The number of rows inserted for ``entity`` itself.
        """
        if not self.descriptor.relationships:
            return self._insert(entity)
        self._prepare_related()
        with self.executor.transaction():
            return self._create(entity, set())

    def delete(self, entity: T) -> int:
        """Delete the row matching ``entity``'s primary key, cascading REMOVE."""
        if not self.descriptor.relationships:
            return self._delete_row(entity)
        self._prepare_related()
        with self.executor.transaction():
            return self._delete(entity, set())

    def merge(self, entity: T) -> int:
        """Write every column of ``entity`` by primary key, inserting if absent.

        Cascades MERGE to loaded related entities.
        """
        self._prepare_related()
        with self.executor.transaction():
            return self._merge(entity, set())

    def refresh(self, entity: T) -> T:
        """Reload ``entity``'s columns from the database in place.

        Cascades REFRESH to loaded related entities.

        Raises:
            NotFoundError: If the row no longer exists.
        """
        self._prepare_related()
        return self._refresh(entity, set())

    def _key(self, entity: Any) -> tuple[str, Any]:
        return self.name, self.descriptor.primary_key_value(entity)

    def _insert(self, entity: Any) -> int:
        binder = Binder(self.descriptor.bind_values(entity))
        return self.executor.execute(self._insert_sql, binder)

    def _delete_row(self, entity: Any) -> int:
        pk = self.descriptor.primary_key
        binder = Binder([pk.bind(self.descriptor.primary_key_value(entity))])
        return self.executor.execute(self._delete_sql, binder)

    def _cascading(self, operation: Cascade, owner: bool) -> list[RelationshipDescriptor]:
        return [
            r
            for r in self.descriptor.relationships
            if r.should_cascade(operation) and r.is_owner == owner
        ]

    def _loaded_related(self, entity: Any, relationship: RelationshipDescriptor) -> list[Any]:
        """Related entities already in memory; unloaded lazy values and None are skipped."""
        value = getattr(entity, relationship.name, None)
        if value is None or is_unloaded(value):
            return []
        value = materialize(value)
        if relationship.is_collection:
            return [materialize(item) for item in value if item is not None]
        return [value]

    def _fill_foreign_key(self, entity: Any, relationship: RelationshipDescriptor, related: Any) -> None:
        fk = self.descriptor.foreign_key_field(relationship)
        if getattr(entity, fk.attribute) is None:
            target = self.registry.table_for(relationship.target)
            setattr(entity, fk.attribute, target.descriptor.primary_key_value(related))

    def _fill_back_reference(
        self, entity: Any, relationship: RelationshipDescriptor, target: Table, child: Any
    ) -> None:
        column = rel.inverse_column(relationship, target.descriptor)
        back = target.descriptor.field_for_column(column)
        if back is not None and back.embedded_in is None and getattr(child, back.attribute) is None:
            setattr(child, back.attribute, self.descriptor.primary_key_value(entity))

    def _persist_if_new(self, entity: Any, visited: _Visited) -> None:
        key = self._key(entity)
        if key in visited:
            return
        if self.exists(key[1]):
            visited.add(key)
            return
        self._create(entity, visited)

    def _create(self, entity: Any, visited: _Visited) -> int:
        visited.add(self._key(entity))
        for relationship in self._cascading(Cascade.PERSIST, owner=True):
            target = self.registry.table_for(relationship.target)
            for related in self._loaded_related(entity, relationship):
                target._persist_if_new(related, visited)
                self._fill_foreign_key(entity, relationship, related)

        count = self._insert(entity)
        logger.debug("Inserted %s into %s", self.descriptor.primary_key_value(entity), self.name)

        for relationship in self._cascading(Cascade.PERSIST, owner=False):
            target = self.registry.table_for(relationship.target)
            for child in self._loaded_related(entity, relationship):
                self._fill_back_reference(entity, relationship, target, child)
                target._persist_if_new(child, visited)
        return count

    def _delete(self, entity: Any, visited: _Visited) -> int:
        key = self._key(entity)
        visited.add(key)
        for relationship in self._cascading(Cascade.REMOVE, owner=False):
            target = self.registry.table_for(relationship.target)
            column = rel.inverse_column(relationship, target.descriptor)
            for child in target.select_by_column(column, key[1]):
                if target._key(child) not in visited:
                    logger.debug("Cascading remove to %s", target.name)
                    target._delete(child, visited)

        count = self._delete_row(entity)

        for relationship in self._cascading(Cascade.REMOVE, owner=True):
            target = self.registry.table_for(relationship.target)
            related = self._loaded_related(entity, relationship)
            if not related:
                fk = self.descriptor.foreign_key_field(relationship)
                fk_value = getattr(entity, fk.attribute)
                found = target.get(fk_value) if fk_value is not None else None
                related = [found] if found is not None else []
            for item in related:
                if target._key(item) not in visited:
                    logger.debug("Cascading remove to %s", target.name)
                    target._delete(item, visited)
        return count

    def _merge(self, entity: Any, visited: _Visited) -> int:
        visited.add(self._key(entity))
        for relationship in self._cascading(Cascade.MERGE, owner=True):
            target = self.registry.table_for(relationship.target)
            for related in self._loaded_related(entity, relationship):
                if target._key(related) not in visited:
                    target._merge(related, visited)
                self._fill_foreign_key(entity, relationship, related)

        pk = self.descriptor.primary_key
        params = self.descriptor.bind_values(entity)
        pk_index = self.descriptor.columns.index(pk)
        binder = Binder(params[:pk_index] + params[pk_index + 1:] + [params[pk_index]])
        count = self.executor.execute(self._merge_sql, binder) if len(params) > 1 else 0
        if count == 0 and not self.exists(self.descriptor.primary_key_value(entity)):
            count = self._insert(entity)

        for relationship in self._cascading(Cascade.MERGE, owner=False):
            target = self.registry.table_for(relationship.target)
            for child in self._loaded_related(entity, relationship):
                self._fill_back_reference(entity, relationship, target, child)
                if target._key(child) not in visited:
                    target._merge(child, visited)
        return count

    def _refresh(self, entity: Any, visited: _Visited) -> Any:
        key = self._key(entity)
        visited.add(key)
        pk = self.descriptor.primary_key
        sql = (
            f"SELECT {self.descriptor.column_list} FROM {self.quoted_name} "
            f"WHERE {pk.quoted_column} = ?"
        )
        row = self.executor.query_one(sql, Binder([pk.bind(key[1])]), lambda r: r)
        if row is None:
            raise NotFoundError(self.entity_type, pk.column, key[1])
        self.descriptor.copy_row(row, entity)

        for relationship in self.descriptor.relationships:
            if not relationship.should_cascade(Cascade.REFRESH):
                continue
            target = self.registry.table_for(relationship.target)
            for related in self._loaded_related(entity, relationship):
                if target._key(related) not in visited:
                    target._refresh(related, visited)
        return entity

    def __repr__(self) -> str:
        return f"Table({self.name!r}, {self.descriptor.name})"
