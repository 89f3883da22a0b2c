"""Entity introspection: classifying fields and building TypeDescriptors."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from entity_tables.codec import BoundParameter
from entity_tables.embedded import EmbeddedMapper
from entity_tables.errors import MappingError, UnknownFieldError
from entity_tables.fields import ColumnMarker, EmbeddedMarker, RelationshipMarker, marker_of
from entity_tables.hints import check_constructor, persistent_fields, resolve_hints, scalar_kind
from entity_tables import relationships as rel
from entity_tables.types import FieldDescriptor, RelationshipDescriptor


@dataclass(frozen=True)
class TypeDescriptor:
    """Immutable mapping metadata for one entity type.

    Columns are ordered as the declared scalar fields followed by each
    embedded group's flattened columns, in declaration order. That single
    order is used for DDL, INSERT and SELECT; rows are decoded by column name.
    """

    entity_type: type
    fields: tuple[FieldDescriptor, ...]
    primary_key: FieldDescriptor
    embedded: tuple[EmbeddedMapper, ...] = ()
    relationships: tuple[RelationshipDescriptor, ...] = ()
    columns: tuple[FieldDescriptor, ...] = field(init=False)
    column_list: str = field(init=False)
    fields_by_name: dict[str, FieldDescriptor] = field(init=False, compare=False, repr=False)
    relationships_by_name: dict[str, RelationshipDescriptor] = field(
        init=False, compare=False, repr=False
    )

    def __post_init__(self) -> None:
        columns = list(self.fields)
        for mapper in self.embedded:
            columns.extend(mapper.fields)
        by_name = {f.name: f for f in columns}
        object.__setattr__(self, "columns", tuple(columns))
        object.__setattr__(self, "column_list", ", ".join(f.quoted_column for f in columns))
        object.__setattr__(self, "fields_by_name", by_name)
        object.__setattr__(
            self, "relationships_by_name", {r.name: r for r in self.relationships}
        )

    @property
    def name(self) -> str:
        return self.entity_type.__name__

    def require_field(self, name: str) -> FieldDescriptor:
        """Look up a scalar or flattened field by name (``address.city`` for the latter).

        Raises:
            UnknownFieldError: If the entity declares no such field.
        """
        found = self.fields_by_name.get(name)
        if found is None:
            raise UnknownFieldError(self.entity_type, name)
        return found

    def field_for_column(self, column: str) -> FieldDescriptor | None:
        for f in self.columns:
            if f.column == column:
                return f
        return None

    def foreign_key_field(self, relationship: RelationshipDescriptor) -> FieldDescriptor:
        """Return the scalar field holding an owning relationship's foreign key."""
        found = self.field_for_column(relationship.join_column or "")
        if found is None or found.embedded_in is not None:
            raise MappingError(
                self.entity_type,
                f"Join column '{relationship.join_column}' of relationship "
                f"'{relationship.name}' is not a scalar column",
            )
        return found

    def get_value(self, instance: Any, f: FieldDescriptor) -> Any:
        if f.embedded_in is None:
            return getattr(instance, f.attribute)
        nested = getattr(instance, f.embedded_in)
        return None if nested is None else getattr(nested, f.attribute)

    def primary_key_value(self, instance: Any) -> Any:
        return getattr(instance, self.primary_key.attribute)

    def bind_values(self, instance: Any) -> list[BoundParameter]:
        """Encode every column of ``instance`` in column order."""
        params = [f.bind(getattr(instance, f.attribute)) for f in self.fields]
        for mapper in self.embedded:
            params.extend(mapper.flatten(instance))
        return params

    def scalar_values(self, row: Any) -> dict[str, Any]:
        return {f.attribute: f.read(row) for f in self.fields}

    def map_row(self, row: Any) -> Any:
        """Construct an entity from a row; relationship fields keep their defaults."""
        instance = self.entity_type(**self.scalar_values(row))
        for mapper in self.embedded:
            mapper.assign(instance, mapper.reconstruct(row))
        return instance

    def copy_row(self, row: Any, instance: Any) -> None:
        """Overwrite the column-backed attributes of an existing instance."""
        for name, value in self.scalar_values(row).items():
            setattr(instance, name, value)
        for mapper in self.embedded:
            mapper.assign(instance, mapper.reconstruct(row))


def inspect(entity_type: Any) -> TypeDescriptor:
    """Inspect an entity dataclass and build its TypeDescriptor.

    Fields are walked in declaration order: ``embedded()`` fields contribute
    flattened columns, relationship fields contribute RelationshipDescriptors,
    and everything else is a scalar column and a constructor parameter. The
    primary key is the field marked ``column(primary_key=True)``, or the first
    scalar field.

    This function is pure; callers that want caching go through a Registry.

    Raises:
        MappingError: If the entity declares no persistent fields, marks more
            than one primary key, or has no matching constructor, or if an
            embedded or relationship field cannot be mapped.
        UnsupportedTypeError: If a scalar field's type is outside the
            supported kinds.
    """
    declared = persistent_fields(entity_type)
    if not declared:
        raise MappingError(entity_type, "Entity does not declare any fields")

    hints = resolve_hints(entity_type)
    scalars: list[FieldDescriptor] = []
    embedded: list[EmbeddedMapper] = []
    relationships: list[RelationshipDescriptor] = []
    params: list[tuple[str, type]] = []
    primary_key: FieldDescriptor | None = None

    for declared_field in declared:
        marker = marker_of(declared_field)
        annotation = hints.get(declared_field.name)
        if annotation is None and not isinstance(marker, RelationshipMarker):
            raise MappingError(
                entity_type, f"Cannot resolve the type of field '{declared_field.name}'"
            )

        if isinstance(marker, EmbeddedMarker):
            embedded.append(EmbeddedMapper.from_field(entity_type, declared_field, annotation))
            continue

        if isinstance(marker, RelationshipMarker):
            relationships.append(rel.from_field(entity_type, declared_field, annotation))
            continue

        column_marker = marker if isinstance(marker, ColumnMarker) else ColumnMarker()
        column_name = column_marker.name or declared_field.name
        kind, nullable = scalar_kind(annotation, column_marker.kind, column_name)
        descriptor = FieldDescriptor(
            name=declared_field.name,
            attribute=declared_field.name,
            column=column_name,
            kind=kind,
            nullable=nullable and not column_marker.primary_key,
            primary_key=column_marker.primary_key,
        )
        if column_marker.primary_key:
            if primary_key is not None:
                raise MappingError(
                    entity_type,
                    f"More than one primary key: '{primary_key.name}' and '{descriptor.name}'",
                )
            primary_key = descriptor
        scalars.append(descriptor)
        params.append((declared_field.name, kind.python_type))

    if not scalars:
        raise MappingError(entity_type, "Entity does not declare any scalar fields")
    if primary_key is None:
        first = scalars[0]
        primary_key = FieldDescriptor(
            name=first.name,
            attribute=first.attribute,
            column=first.column,
            kind=first.kind,
            nullable=False,
            primary_key=True,
        )
        scalars[0] = primary_key

    check_constructor(entity_type, params)

    descriptor = TypeDescriptor(
        entity_type=entity_type,
        fields=tuple(scalars),
        primary_key=primary_key,
        embedded=tuple(embedded),
        relationships=tuple(relationships),
    )
    _validate_columns(descriptor)
    return descriptor


def _validate_columns(descriptor: TypeDescriptor) -> None:
    seen: set[str] = set()
    for f in descriptor.columns:
        if f.column in seen:
            raise MappingError(descriptor.entity_type, f"Duplicate column name '{f.column}'")
        seen.add(f.column)
    for relationship in descriptor.relationships:
        if relationship.is_owner:
            descriptor.foreign_key_field(relationship)
