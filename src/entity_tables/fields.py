"""Declarative markers for entity dataclass fields.

Entities are plain dataclasses. A field is a scalar column unless its
``dataclasses.field`` carries one of the markers built here::

    @dataclass
    class Quest:
        id: UUID = column(primary_key=True)
        title: str = ""
        player_id: UUID | None = None
        player: Player | None = many_to_one(join_column="player_id")

    @dataclass
    class Player:
        id: UUID = column(primary_key=True)
        name: str = ""
        level: Int16 = 1
        home: Address | None = embedded(prefix="home")
        quests: list[Quest] = one_to_many(mapped_by="player", cascade=Cascade.ALL)
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Annotated, Any

from entity_tables.types import Cascade, FetchMode, RelationshipKind, ScalarKind

# Key under which markers are stored in dataclass field metadata
MARKER_KEY = "entity_tables"

# Annotated aliases selecting a kind other than the default for int/float
Int16 = Annotated[int, ScalarKind.INT16]
Int32 = Annotated[int, ScalarKind.INT32]
Int64 = Annotated[int, ScalarKind.INT64]
Float32 = Annotated[float, ScalarKind.FLOAT]
Float64 = Annotated[float, ScalarKind.DOUBLE]


@dataclass(frozen=True)
class ColumnMarker:
    primary_key: bool = False
    name: str | None = None
    kind: ScalarKind | None = None


@dataclass(frozen=True)
class EmbeddedMarker:
    prefix: str | None = None


@dataclass(frozen=True)
class RelationshipMarker:
    kind: RelationshipKind
    target: Any = None
    join_column: str | None = None
    mapped_by: str | None = None
    fetch: FetchMode = FetchMode.EAGER
    cascade: frozenset[Cascade] = frozenset()
    nullable: bool = True


def _field(marker: Any, default: Any, default_factory: Any) -> Any:
    kwargs: dict[str, Any] = {"metadata": {MARKER_KEY: marker}}
    if default_factory is not dataclasses.MISSING:
        kwargs["default_factory"] = default_factory
    elif default is not dataclasses.MISSING:
        kwargs["default"] = default
    return dataclasses.field(**kwargs)


def column(
    *,
    primary_key: bool = False,
    name: str | None = None,
    kind: ScalarKind | str | None = None,
    default: Any = dataclasses.MISSING,
    default_factory: Any = dataclasses.MISSING,
) -> Any:
    """Mark a scalar field: primary key, custom column name, or explicit kind."""
    if isinstance(kind, str):
        kind = ScalarKind(kind)
    marker = ColumnMarker(primary_key=primary_key, name=name, kind=kind)
    return _field(marker, default, default_factory)


def embedded(*, prefix: str | None = None, default: Any = None) -> Any:
    """Flatten a nested value object into ``<prefix>_<field>`` columns.

    The prefix defaults to the field name.
    """
    return _field(EmbeddedMarker(prefix=prefix), default, dataclasses.MISSING)


def _fetch(fetch: FetchMode | str) -> FetchMode:
    return FetchMode(fetch) if isinstance(fetch, str) else fetch


def many_to_one(
    target: Any = None,
    *,
    join_column: str | None = None,
    fetch: FetchMode | str = FetchMode.EAGER,
    cascade: Any = (),
    nullable: bool = True,
) -> Any:
    """Owning side of a many-to-one link.

    ``join_column`` names this entity's foreign-key column (default
    ``<field>_id``), which must belong to one of its scalar fields.
    """
    marker = RelationshipMarker(
        kind=RelationshipKind.MANY_TO_ONE,
        target=target,
        join_column=join_column,
        fetch=_fetch(fetch),
        cascade=Cascade.expand(cascade),
        nullable=nullable,
    )
    return _field(marker, None, dataclasses.MISSING)


def one_to_one(
    target: Any = None,
    *,
    join_column: str | None = None,
    mapped_by: str | None = None,
    fetch: FetchMode | str = FetchMode.LAZY,
    cascade: Any = (),
    nullable: bool = True,
) -> Any:
    """One-to-one link; owning side without ``mapped_by``, inverse side with it."""
    marker = RelationshipMarker(
        kind=RelationshipKind.ONE_TO_ONE,
        target=target,
        join_column=join_column,
        mapped_by=mapped_by,
        fetch=_fetch(fetch),
        cascade=Cascade.expand(cascade),
        nullable=nullable,
    )
    return _field(marker, None, dataclasses.MISSING)


def one_to_many(
    target: Any = None,
    *,
    mapped_by: str | None = None,
    join_column: str | None = None,
    fetch: FetchMode | str = FetchMode.LAZY,
    cascade: Any = (),
) -> Any:
    """Inverse side of a many-to-one link, held as a list.

    ``mapped_by`` names the relationship (or foreign-key field) on the target
    that points back at this entity.
    """
    marker = RelationshipMarker(
        kind=RelationshipKind.ONE_TO_MANY,
        target=target,
        join_column=join_column,
        mapped_by=mapped_by,
        fetch=_fetch(fetch),
        cascade=Cascade.expand(cascade),
    )
    return _field(marker, dataclasses.MISSING, list)


def marker_of(field: dataclasses.Field) -> Any:
    """Return the marker attached to a dataclass field, if any."""
    return field.metadata.get(MARKER_KEY)
