"""Relationship descriptors: building them and resolving related rows."""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Any

from entity_tables.errors import MappingError
from entity_tables.fields import RelationshipMarker, marker_of
from entity_tables.hints import collection_element, unwrap
from entity_tables.lazy import LazyList, LazyRef
from entity_tables.types import FetchMode, RelationshipDescriptor, RelationshipKind

if TYPE_CHECKING:
    from entity_tables.introspection import TypeDescriptor
    from entity_tables.table import Table

logger = logging.getLogger(__name__)


def from_field(owner: type, field: dataclasses.Field, annotation: Any) -> RelationshipDescriptor:
    """Build the descriptor for a relationship-marked field of ``owner``.

    Raises:
        MappingError: If the target type cannot be resolved or the marker is
            inconsistent with the relationship kind.
    """
    marker: RelationshipMarker = marker_of(field)
    kind = marker.kind

    if kind is RelationshipKind.MANY_TO_ONE and marker.mapped_by:
        raise MappingError(owner, f"@many_to_one field '{field.name}' cannot declare mapped_by")
    if kind is RelationshipKind.ONE_TO_MANY and not marker.mapped_by:
        raise MappingError(owner, f"@one_to_many field '{field.name}' requires mapped_by")

    target = marker.target
    if target is None:
        if kind.is_collection:
            target = collection_element(annotation)
            if target is None:
                raise MappingError(
                    owner, f"Cannot determine target entity for @one_to_many field '{field.name}'"
                )
        else:
            target, _, _ = unwrap(annotation)
    if not isinstance(target, type) or not dataclasses.is_dataclass(target):
        raise MappingError(owner, f"Relationship field '{field.name}' does not target an entity type")

    join_column = marker.join_column
    if marker.mapped_by is None and join_column is None:
        join_column = f"{field.name}_id"

    return RelationshipDescriptor(
        name=field.name,
        kind=kind,
        target=target,
        join_column=join_column,
        fetch=marker.fetch,
        cascade=marker.cascade,
        mapped_by=marker.mapped_by,
        nullable=marker.nullable,
    )


def inverse_column(relationship: RelationshipDescriptor, target: TypeDescriptor) -> str:
    """Return the target column that points back at the owning entity's key."""
    if relationship.join_column is not None:
        return relationship.join_column
    back = target.relationships_by_name.get(relationship.mapped_by or "")
    if back is not None and back.is_owner and back.join_column is not None:
        return back.join_column
    scalar = target.fields_by_name.get(relationship.mapped_by or "")
    if scalar is not None:
        return scalar.column
    raise MappingError(
        target.entity_type,
        f"mapped_by '{relationship.mapped_by}' of relationship '{relationship.name}' "
        "names neither a relationship nor a field",
    )


def lookup(
    relationship: RelationshipDescriptor,
    owner: TypeDescriptor,
    instance: Any,
    target: TypeDescriptor,
) -> tuple[str, Any]:
    """Return (target column, key value) selecting the related rows of ``instance``."""
    if relationship.is_owner:
        fk_field = owner.foreign_key_field(relationship)
        return target.primary_key.column, owner.get_value(instance, fk_field)
    return inverse_column(relationship, target), owner.get_value(instance, owner.primary_key)


def resolve(
    relationship: RelationshipDescriptor,
    owner: TypeDescriptor,
    instance: Any,
    target_table: Table,
) -> Any:
    """Load (eager) or wrap (lazy) the related value of ``instance``.

    A missing key resolves to None, or to an empty list for collections.
    Eager loads do not resolve the related entities' own relationships.
    """
    column, key = lookup(relationship, owner, instance, target_table.descriptor)
    if key is None:
        return [] if relationship.is_collection else None

    if relationship.fetch is FetchMode.LAZY:
        if relationship.is_collection:
            return LazyList(target_table, column, key)
        return LazyRef(target_table, column, key)

    logger.debug(
        "Eagerly loading %s.%s from %s where %s = %r",
        owner.entity_type.__name__, relationship.name, target_table.name, column, key,
    )
    if relationship.is_collection:
        return target_table.select_by_column(column, key)
    rows = target_table.select_by_column(column, key, limit=1)
    return rows[0] if rows else None
