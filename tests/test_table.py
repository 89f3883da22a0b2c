"""Tests for table CRUD and queries against SQLite."""

from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass

import pytest

from entity_tables import Registry, SqliteExecutor
from entity_tables.errors import (
    ExecutionError,
    InvalidCriterionError,
    NoUpdateFieldsError,
    NotFoundError,
    UnknownFieldError,
)
from entity_tables.fields import Int64, column


@dataclass
class Person:
    id: uuid.UUID = column(primary_key=True)
    name: str = ""
    age: int | None = None


@dataclass
class Event:
    id: Int64 = column(primary_key=True)
    title: str = ""
    starts_at: datetime.datetime | None = None
    public: bool = True
    score: float = 0.0


@dataclass
class Step:
    id: int = column(primary_key=True)
    order: int = 0
    group: str = ""


U1 = uuid.UUID("00000000-0000-0000-0000-000000000001")
U2 = uuid.UUID("00000000-0000-0000-0000-000000000002")
U3 = uuid.UUID("00000000-0000-0000-0000-000000000003")


@pytest.fixture
def registry():
    executor = SqliteExecutor()
    yield Registry(executor)
    executor.close()


@pytest.fixture
def people(registry):
    return registry.register(Person, "people")


@pytest.fixture
def populated(people):
    people.create(Person(U1, "John", 25))
    people.create(Person(U2, "Jane", None))
    people.create(Person(U3, "Mary", 30))
    return people


class TestCreateAndFind:
    """Tests for inserting and reading back entities."""

    def test_create_returns_row_count(self, people):
        """Test that create reports one inserted row."""
        assert people.create(Person(U1, "John", 25)) == 1

    def test_round_trip(self, people):
        """Test that a created entity reads back equal."""
        person = Person(U1, "John", 25)
        people.create(person)

        found = people.find_one().where("id", U1).execute()

        assert found == person

    def test_find_first_and_null_lookup(self, people):
        """Test find_first by key and find_many on a NULL column."""
        people.create(Person(U1, "John", 25))
        people.create(Person(U2, "Jane", None))

        assert people.find_first().where("id", U1).execute() == Person(U1, "John", 25)
        assert people.find_many().where("age", None).execute() == [Person(U2, "Jane", None)]

    def test_find_one_missing(self, people):
        """Test that find_one returns None when nothing matches."""
        assert people.find_one().where("id", U1).execute() is None

    def test_round_trip_other_kinds(self, registry):
        """Test timestamps, booleans, floats and 64-bit keys."""
        events = registry.register(Event)
        event = Event(2**40, "Launch", datetime.datetime(2024, 1, 2, 3, 4, 5), False, 9.5)
        events.create(event)

        assert events.get(2**40) == event
        assert events.name == "events"

    def test_duplicate_key_fails(self, people):
        """Test that a duplicate primary key surfaces the driver error."""
        people.create(Person(U1, "John", 25))
        with pytest.raises(ExecutionError) as excinfo:
            people.create(Person(U1, "Johnny", 26))
        assert excinfo.value.sql.startswith('INSERT INTO "people"')


class TestPredicates:
    """Tests for WHERE criteria."""

    def test_is_null(self, populated):
        """Test that IS NULL matches only NULL rows."""
        found = populated.find_many().where_is_null("age").execute()

        assert [p.id for p in found] == [U2]

    def test_is_not_null(self, populated):
        """Test that IS NOT NULL excludes NULL rows."""
        found = populated.find_many().where_is_not_null("age").order_by("name").execute()

        assert [p.id for p in found] == [U1, U3]

    def test_where_in(self, populated):
        """Test IN returns the union of matches."""
        found = populated.find_many().where_in("age", 25, 30, 35).order_by("age").execute()

        assert [p.name for p in found] == ["John", "Mary"]

    def test_where_in_list(self, populated):
        """Test IN accepts a single list of values."""
        found = populated.find_many().where_in("name", ["Jane", "Nobody"]).execute()

        assert [p.id for p in found] == [U2]

    def test_empty_in_and_not_in(self, populated):
        """Test empty IN matches nothing and empty NOT IN matches everything."""
        assert populated.find_many().where_in("age", []).execute() == []
        assert len(populated.find_many().where_not_in("age", []).execute()) == 3

    def test_between_is_inclusive(self, populated):
        """Test BETWEEN includes both bounds."""
        found = populated.find_many().where_between("age", 20, 30).order_by("age").execute()

        assert [p.age for p in found] == [25, 30]

    def test_like(self, populated):
        """Test LIKE and NOT LIKE patterns."""
        assert [p.name for p in populated.find_many().where_like("name", "J%").order_by("name").execute()] == [
            "Jane", "John",
        ]
        assert [p.name for p in populated.find_many().where_not_like("name", "J%").execute()] == ["Mary"]

    def test_comparison_operators(self, populated):
        """Test explicit operators in where()."""
        older = populated.find_many().where("age", ">", 25).execute()
        not_john = populated.find_many().where("name", "!=", "John").order_by("name").execute()

        assert [p.name for p in older] == ["Mary"]
        assert [p.name for p in not_john] == ["Jane", "Mary"]

    def test_criteria_are_anded(self, populated):
        """Test that several criteria must all hold."""
        found = populated.find_many().where_like("name", "%a%").where("age", ">=", 30).execute()

        assert [p.name for p in found] == ["Mary"]

    def test_order_and_limit(self, populated):
        """Test ordering and limiting results."""
        found = populated.find_many().order_by("name", descending=True).limit(2).execute()

        assert [p.name for p in found] == ["Mary", "John"]

    def test_unknown_field(self, people):
        """Test that criteria on undeclared fields fail before execution."""
        with pytest.raises(UnknownFieldError):
            people.find_many().where("nickname", "Jo")

    def test_comparison_with_none(self, people):
        """Test that ordering comparisons with NULL are rejected."""
        with pytest.raises(InvalidCriterionError):
            people.find_many().where("age", ">", None)


class TestUpdateAndDelete:
    """Tests for update and delete."""

    def test_update_row_counts(self, people):
        """Test update reports 0 without a match and 1 with one."""
        assert people.update().set("age", 26).where("id", U1).execute() == 0

        people.create(Person(U1, "John", 25))

        assert people.update().set("age", 26).where("id", U1).execute() == 1
        assert people.get(U1).age == 26

    def test_update_requires_assignment(self, people):
        """Test that an update without set() raises."""
        with pytest.raises(NoUpdateFieldsError, match="people"):
            people.update().where("id", U1).execute()

    def test_update_to_null(self, populated):
        """Test assigning NULL through update."""
        populated.update().set("age", None).where("name", "Mary").execute()

        assert populated.get(U3).age is None

    def test_delete_entity(self, populated):
        """Test deleting by primary key."""
        assert populated.delete(Person(U1, "John", 25)) == 1
        assert populated.get(U1) is None
        assert populated.count() == 2

    def test_delete_where(self, populated):
        """Test bulk delete by criteria."""
        assert populated.delete_where().where_is_not_null("age").execute() == 2
        assert [p.id for p in populated.find_many().execute()] == [U2]


class TestConvenience:
    """Tests for get/exists/count/merge/refresh."""

    def test_exists_and_count(self, populated):
        """Test existence checks and counting."""
        assert populated.exists(U1)
        assert not populated.exists(uuid.uuid4())
        assert populated.count() == 3
        assert populated.find_many().where_is_null("age").count() == 1

    def test_merge_updates_existing(self, populated):
        """Test merge overwrites an existing row."""
        populated.merge(Person(U1, "Jonathan", 40))

        assert populated.get(U1) == Person(U1, "Jonathan", 40)
        assert populated.count() == 3

    def test_merge_inserts_missing(self, people):
        """Test merge inserts when no row matches."""
        people.merge(Person(U1, "John", 25))

        assert people.get(U1) == Person(U1, "John", 25)

    def test_refresh(self, populated):
        """Test refresh reloads values onto the instance."""
        stale = Person(U1, "Someone", 99)

        populated.refresh(stale)

        assert stale == Person(U1, "John", 25)

    def test_refresh_missing(self, people):
        """Test refresh of a deleted row raises NotFoundError."""
        with pytest.raises(NotFoundError):
            people.refresh(Person(U1, "John", 25))


class TestReservedNames:
    """Tests for tables and columns named after SQL keywords."""

    def test_keyword_table_and_columns(self, registry):
        """Test every statement quotes keyword identifiers."""
        steps = registry.register(Step, "select")
        steps.create(Step(1, 2, "a"))
        steps.create(Step(2, 1, "b"))

        steps.update().set("group", "c").where("order", 1).execute()
        steps.merge(Step(1, 5, "a"))

        assert steps.find_many().order_by("order").execute() == [Step(2, 1, "c"), Step(1, 5, "a")]
        assert steps.find_many().where("group", "c").count() == 1
        assert steps.get(1).order == 5

        steps.delete(Step(2, 1, "c"))

        assert steps.count() == 1
