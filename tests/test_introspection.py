"""Tests for entity introspection."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

import pytest

from entity_tables import relationships
from entity_tables.errors import MappingError, UnknownFieldError, UnsupportedTypeError
from entity_tables.fields import Float32, Int16, column, embedded, many_to_one, one_to_many
from entity_tables.hints import resolve_hints
from entity_tables.introspection import inspect
from entity_tables.types import FetchMode, RelationshipKind, ScalarKind


@dataclass
class Address:
    street: str
    city: str
    zip: str | None = None


@dataclass
class Customer:
    id: uuid.UUID = column(primary_key=True)
    name: str = ""
    age: int | None = None
    address: Address | None = embedded(prefix="addr")


@dataclass
class Shipment:
    code: str
    weight: Float32 = 0.0
    parcels: Int16 = 1
    express: bool = False
    origin: Address | None = embedded()


@dataclass
class Team:
    id: int = column(primary_key=True)
    name: str = ""
    members: list[Member] = one_to_many(mapped_by="team")


@dataclass
class Member:
    id: int = column(primary_key=True)
    name: str = ""
    team_id: int | None = None
    team: Team | None = many_to_one()


@dataclass
class Empty:
    pass


@dataclass
class TwoKeys:
    a: int = column(primary_key=True)
    b: int = column(primary_key=True)


@dataclass
class WithDict:
    id: int
    tags: dict = field(default_factory=dict)


@dataclass
class Renamed:
    id: int
    label: str = column(name="full_label")
    size: int = column(kind="int64", default=0)


@dataclass
class Clashing:
    id: int
    addr_city: str = ""
    address: Address | None = embedded(prefix="addr")


@dataclass
class Orphan:
    id: int
    team: Team | None = many_to_one()


@dataclass
class Unmapped:
    id: int
    teams: list[Team] = one_to_many()


@dataclass(init=False)
class OddConstructor:
    id: int
    label: str

    def __init__(self, id: int, title: str) -> None:
        self.id = id
        self.label = title


@dataclass
class Dangling:
    id: int
    late: Late | None = None
    owner: Missing | None = None  # noqa: F821


@dataclass
class Late:
    id: int


class NotADataclass:
    id: int = 0


class TestColumns:
    """Tests for column metadata built from declared fields."""

    def test_column_count_includes_flattened_fields(self):
        """Test scalars plus embedded fields make up the column list."""
        descriptor = inspect(Customer)

        assert len(descriptor.columns) == 6
        assert [f.column for f in descriptor.columns] == [
            "id", "name", "age", "addr_street", "addr_city", "addr_zip",
        ]
        assert sum(1 for f in descriptor.columns if f.primary_key) == 1

    def test_column_list_string(self):
        """Test the cached SELECT column list."""
        descriptor = inspect(Customer)

        assert descriptor.column_list == '"id", "name", "age", "addr_street", "addr_city", "addr_zip"'

    def test_default_prefix_is_field_name(self):
        """Test that embedded columns default to the field name as prefix."""
        descriptor = inspect(Shipment)

        assert [f.column for f in descriptor.embedded[0].fields] == [
            "origin_street", "origin_city", "origin_zip",
        ]

    def test_kinds(self):
        """Test kinds chosen from annotations."""
        descriptor = inspect(Shipment)
        kinds = {f.name: f.kind for f in descriptor.fields}

        assert kinds == {
            "code": ScalarKind.TEXT,
            "weight": ScalarKind.FLOAT,
            "parcels": ScalarKind.INT16,
            "express": ScalarKind.BOOLEAN,
        }
        assert inspect(Customer).fields_by_name["age"].kind == ScalarKind.INT32
        assert inspect(Customer).fields_by_name["id"].kind == ScalarKind.UUID

    def test_nullability(self):
        """Test that Optional annotations make a column nullable."""
        descriptor = inspect(Customer)

        assert descriptor.fields_by_name["age"].nullable
        assert not descriptor.fields_by_name["name"].nullable
        assert descriptor.fields_by_name["age"].column_definition() == '"age" INTEGER'
        assert descriptor.fields_by_name["name"].column_definition() == '"name" TEXT NOT NULL'
        assert descriptor.primary_key.column_definition() == '"id" TEXT NOT NULL PRIMARY KEY'

    def test_column_overrides(self):
        """Test custom column names and explicit kinds."""
        descriptor = inspect(Renamed)

        assert descriptor.fields_by_name["label"].column == "full_label"
        assert descriptor.fields_by_name["size"].kind == ScalarKind.INT64

    def test_flattened_field_names(self):
        """Test that flattened fields are addressable by dotted path."""
        descriptor = inspect(Customer)

        city = descriptor.require_field("address.city")
        assert city.column == "addr_city"
        assert city.embedded_in == "address"

    def test_unknown_field(self):
        """Test that looking up an undeclared field raises."""
        with pytest.raises(UnknownFieldError, match="nickname"):
            inspect(Customer).require_field("nickname")

    def test_inspect_is_structurally_stable(self):
        """Test that inspecting the same type twice yields equal descriptors."""
        assert inspect(Customer) == inspect(Customer)


class TestPrimaryKey:
    """Tests for primary key resolution."""

    def test_explicit_primary_key(self):
        """Test the marked field becomes the primary key."""
        descriptor = inspect(Team)

        assert descriptor.primary_key.name == "id"
        assert descriptor.primary_key.primary_key

    def test_first_scalar_is_default_primary_key(self):
        """Test that without a marker the first scalar is the key."""
        descriptor = inspect(Shipment)

        assert descriptor.primary_key.name == "code"
        assert not descriptor.primary_key.nullable
        assert descriptor.columns[0] is descriptor.primary_key

    def test_two_primary_keys(self):
        """Test that marking two keys is a mapping error."""
        with pytest.raises(MappingError, match="More than one primary key"):
            inspect(TwoKeys)


class TestRelationships:
    """Tests for relationship descriptors."""

    def test_many_to_one_defaults(self):
        """Test the owning side's join column and fetch mode."""
        team = inspect(Member).relationships_by_name["team"]

        assert team.kind == RelationshipKind.MANY_TO_ONE
        assert team.target is Team
        assert team.join_column == "team_id"
        assert team.fetch == FetchMode.EAGER
        assert team.is_owner

    def test_one_to_many(self):
        """Test the inverse side resolves its target from list[T]."""
        members = inspect(Team).relationships_by_name["members"]

        assert members.kind == RelationshipKind.ONE_TO_MANY
        assert members.target is Member
        assert members.fetch == FetchMode.LAZY
        assert not members.is_owner
        assert relationships.inverse_column(members, inspect(Member)) == "team_id"

    def test_relationships_are_not_columns(self):
        """Test relationship fields contribute no columns."""
        assert [f.column for f in inspect(Member).columns] == ["id", "name", "team_id"]

    def test_missing_foreign_key_column(self):
        """Test that an owning relationship needs its join column as a field."""
        with pytest.raises(MappingError, match="team_id"):
            inspect(Orphan)

    def test_one_to_many_requires_mapped_by(self):
        """Test that a one-to-many without mapped_by is rejected."""
        with pytest.raises(MappingError, match="requires mapped_by"):
            inspect(Unmapped)


class TestMappingErrors:
    """Tests for shapes that cannot be mapped."""

    def test_not_a_dataclass(self):
        """Test that plain classes are rejected."""
        with pytest.raises(MappingError, match="must be a dataclass"):
            inspect(NotADataclass)

    def test_no_fields(self):
        """Test that an entity needs at least one field."""
        with pytest.raises(MappingError, match="does not declare any fields"):
            inspect(Empty)

    def test_unsupported_type(self):
        """Test that annotations outside the scalar set are rejected."""
        with pytest.raises(UnsupportedTypeError, match="column 'tags'"):
            inspect(WithDict)

    def test_duplicate_columns(self):
        """Test that a flattened column may not collide with a scalar column."""
        with pytest.raises(MappingError, match="Duplicate column name 'addr_city'"):
            inspect(Clashing)

    def test_constructor_mismatch(self):
        """Test that the constructor must accept every scalar field."""
        with pytest.raises(MappingError, match="Failed to resolve constructor"):
            inspect(OddConstructor)

    def test_unresolvable_annotation(self):
        """Test that a name missing from the module is reported for its field."""
        with pytest.raises(MappingError, match="Cannot resolve the type of field 'owner'"):
            inspect(Dangling)


class TestResolveHints:
    """Tests for reading annotations one field at a time."""

    def test_other_fields_still_resolve(self):
        """Test that one missing name leaves the remaining annotations intact."""
        hints = resolve_hints(Dangling)

        assert hints["id"] is int
        assert hints["late"] == Late | None
        assert hints["owner"] is None
