"""Flattening of embedded value objects into prefixed parent columns."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any

from entity_tables.codec import BoundParameter
from entity_tables.errors import MappingError
from entity_tables.fields import ColumnMarker, EmbeddedMarker, marker_of
from entity_tables.hints import check_constructor, persistent_fields, resolve_hints, scalar_kind, unwrap
from entity_tables.types import FieldDescriptor


@dataclass(frozen=True)
class EmbeddedMapper:
    """Maps one embedded field of a parent entity to N flattened columns.

    Attributes:
        name: Name of the embedded field on the parent.
        nested_type: Dataclass of the embedded value object.
        prefix: Column prefix, without the trailing underscore.
        fields: Flattened column descriptors in the nested type's field order.
        nullable: Whether the embedded value itself may be absent.
    """

    name: str
    nested_type: type
    prefix: str
    fields: tuple[FieldDescriptor, ...]
    nullable: bool = True

    @classmethod
    def from_field(cls, owner: type, field: dataclasses.Field, annotation: Any) -> EmbeddedMapper:
        """Build the mapper for an ``embedded()`` field of ``owner``.

        Raises:
            MappingError: If the nested type is not a dataclass, declares no
                fields, or has no constructor matching its fields.
        """
        marker = marker_of(field)
        prefix = marker.prefix if isinstance(marker, EmbeddedMarker) and marker.prefix else field.name

        nested_type, optional, _ = unwrap(annotation)
        if not isinstance(nested_type, type) or not dataclasses.is_dataclass(nested_type):
            raise MappingError(owner, f"Embedded field '{field.name}' must be a dataclass type")
        nested_fields = persistent_fields(nested_type)
        if not nested_fields:
            raise MappingError(nested_type, f"Embedded type has no fields (embedded as '{field.name}')")

        hints = resolve_hints(nested_type)
        # A NULL embedded object nulls every flattened column, so those stay nullable
        nullable = optional or field.default is None
        flattened: list[FieldDescriptor] = []
        params: list[tuple[str, type]] = []
        for nested in nested_fields:
            nested_marker = marker_of(nested)
            if nested_marker is not None and not isinstance(nested_marker, ColumnMarker):
                raise MappingError(
                    nested_type,
                    f"Field '{nested.name}' of an embedded type must be a scalar",
                )
            override = None
            suffix = nested.name
            if isinstance(nested_marker, ColumnMarker):
                override = nested_marker.kind
                suffix = nested_marker.name or nested.name
            column_name = f"{prefix}_{suffix}"
            kind, nested_nullable = scalar_kind(hints.get(nested.name), override, column_name)
            flattened.append(
                FieldDescriptor(
                    name=f"{field.name}.{nested.name}",
                    attribute=nested.name,
                    column=column_name,
                    kind=kind,
                    nullable=nested_nullable or nullable,
                    embedded_in=field.name,
                )
            )
            params.append((nested.name, kind.python_type))

        check_constructor(nested_type, params)
        return cls(
            name=field.name,
            nested_type=nested_type,
            prefix=prefix,
            fields=tuple(flattened),
            nullable=nullable,
        )

    def extract(self, parent: Any) -> Any:
        return getattr(parent, self.name)

    def assign(self, parent: Any, value: Any) -> None:
        setattr(parent, self.name, value)

    def flatten(self, parent: Any) -> list[BoundParameter]:
        """Encode the embedded object's values in column order.

        An absent embedded object binds NULL for every flattened column.
        """
        nested = self.extract(parent)
        if nested is None:
            return [f.bind(None) for f in self.fields]
        return [f.bind(getattr(nested, f.attribute)) for f in self.fields]

    def reconstruct(self, row: Any) -> Any:
        """Rebuild the nested object from a row; all-NULL columns decode as None."""
        values = {f.attribute: f.read(row) for f in self.fields}
        if all(v is None for v in values.values()):
            return None
        return self.nested_type(**values)
