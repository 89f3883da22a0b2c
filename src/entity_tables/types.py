"""Scalar kinds and descriptor types for mapped entities."""

from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from entity_tables.codec import BoundParameter, FieldCodec


def quote_identifier(name: str) -> str:
    """Quote a table or column name so keywords like ``order`` stay usable."""
    return '"' + name.replace('"', '""') + '"'


class ScalarKind(Enum):
    """Closed set of scalar column kinds supported by the mapper."""

    TEXT = "text"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    DOUBLE = "double"
    FLOAT = "float"
    BOOLEAN = "boolean"
    UUID = "uuid"
    TIMESTAMP = "timestamp"

    @property
    def sql_type(self) -> str:
        """Return the column type used in CREATE TABLE statements."""
        sql_types = {
            ScalarKind.TEXT: "TEXT",
            ScalarKind.INT16: "SMALLINT",
            ScalarKind.INT32: "INTEGER",
            ScalarKind.INT64: "BIGINT",
            ScalarKind.DOUBLE: "DOUBLE",
            ScalarKind.FLOAT: "REAL",
            ScalarKind.BOOLEAN: "BOOLEAN",
            ScalarKind.UUID: "TEXT",
            ScalarKind.TIMESTAMP: "TIMESTAMP",
        }
        return sql_types[self]

    @property
    def python_type(self) -> type:
        """Return the in-memory Python type for values of this kind."""
        python_types: dict[ScalarKind, type] = {
            ScalarKind.TEXT: str,
            ScalarKind.INT16: int,
            ScalarKind.INT32: int,
            ScalarKind.INT64: int,
            ScalarKind.DOUBLE: float,
            ScalarKind.FLOAT: float,
            ScalarKind.BOOLEAN: bool,
            ScalarKind.UUID: uuid.UUID,
            ScalarKind.TIMESTAMP: datetime.datetime,
        }
        return python_types[self]


# Mapping from kind names to ScalarKind enum values (used by the entity DSL)
SCALAR_KIND_NAMES: dict[str, ScalarKind] = {kind.value: kind for kind in ScalarKind}

# Default kind for plain Python annotations
DEFAULT_KINDS: dict[type, ScalarKind] = {
    str: ScalarKind.TEXT,
    int: ScalarKind.INT32,
    float: ScalarKind.DOUBLE,
    bool: ScalarKind.BOOLEAN,
    uuid.UUID: ScalarKind.UUID,
    datetime.datetime: ScalarKind.TIMESTAMP,
}


class RelationshipKind(Enum):
    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_ONE = "many_to_one"

    @property
    def is_collection(self) -> bool:
        return self is RelationshipKind.ONE_TO_MANY


class FetchMode(Enum):
    EAGER = "eager"
    LAZY = "lazy"


class Cascade(Enum):
    """Operations propagated from an entity to its related entities."""

    PERSIST = "persist"
    REMOVE = "remove"
    MERGE = "merge"
    REFRESH = "refresh"
    ALL = "all"

    @classmethod
    def expand(cls, cascades: Any) -> frozenset[Cascade]:
        """Normalize a cascade spec, replacing ALL with the four concrete operations."""
        if cascades is None:
            return frozenset()
        if isinstance(cascades, (Cascade, str)):
            cascades = [cascades]
        result: set[Cascade] = set()
        for item in cascades:
            item = cls(item) if isinstance(item, str) else item
            if item is cls.ALL:
                result.update((cls.PERSIST, cls.REMOVE, cls.MERGE, cls.REFRESH))
            else:
                result.add(item)
        return frozenset(result)


@dataclass(frozen=True)
class FieldDescriptor:
    """A scalar field bound 1:1 to a column.

    For fields flattened out of an embedded value object, ``name`` is the
    dotted path (``address.city``), ``attribute`` is the attribute on the
    nested object and ``embedded_in`` names the parent's embedded field.
    """

    name: str
    attribute: str
    column: str
    kind: ScalarKind
    nullable: bool = True
    primary_key: bool = False
    embedded_in: str | None = None

    @property
    def codec(self) -> FieldCodec:
        from entity_tables.codec import codec_for

        return codec_for(self.kind)

    @property
    def sql_type(self) -> str:
        return self.kind.sql_type

    def bind(self, value: Any) -> BoundParameter:
        """Encode a value for this column."""
        return self.codec.encode(value, self.column)

    def read(self, row: Any) -> Any:
        """Decode this column from a result row."""
        return self.codec.decode(row, self.column)

    @property
    def quoted_column(self) -> str:
        return quote_identifier(self.column)

    def column_definition(self) -> str:
        definition = f"{self.quoted_column} {self.sql_type}"
        if self.primary_key or not self.nullable:
            definition += " NOT NULL"
        if self.primary_key:
            definition += " PRIMARY KEY"
        return definition


@dataclass(frozen=True)
class RelationshipDescriptor:
    """A link from one entity type to another.

    Owning sides (MANY_TO_ONE, and ONE_TO_ONE without ``mapped_by``) keep the
    foreign key in a scalar field of their own whose column is ``join_column``.
    Inverse sides (ONE_TO_MANY, and ONE_TO_ONE with ``mapped_by``) are found
    through the target's column that points back at this entity's key.
    """

    name: str
    kind: RelationshipKind
    target: type
    join_column: str | None
    fetch: FetchMode = FetchMode.EAGER
    cascade: frozenset[Cascade] = field(default_factory=frozenset)
    mapped_by: str | None = None
    nullable: bool = True

    @property
    def is_owner(self) -> bool:
        return self.mapped_by is None

    @property
    def is_collection(self) -> bool:
        return self.kind.is_collection

    def should_cascade(self, operation: Cascade) -> bool:
        return operation in self.cascade
