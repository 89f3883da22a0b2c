"""WHERE criteria and the fluent find/update/delete builders."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from entity_tables.codec import BoundParameter
from entity_tables.errors import InvalidCriterionError, NoUpdateFieldsError
from entity_tables.executor import Binder
from entity_tables.types import FieldDescriptor

if TYPE_CHECKING:
    from entity_tables.table import Table

T = TypeVar("T")
Q = TypeVar("Q", bound="_CriteriaQuery")


class Operator(Enum):
    """SQL comparison operators usable in WHERE criteria."""

    EQUALS = "="
    NOT_EQUALS = "!="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUALS = ">="
    LESS_THAN = "<"
    LESS_THAN_OR_EQUALS = "<="
    LIKE = "LIKE"
    NOT_LIKE = "NOT LIKE"
    IN = "IN"
    NOT_IN = "NOT IN"
    BETWEEN = "BETWEEN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"

    @property
    def sql(self) -> str:
        return self.value

    @property
    def arity(self) -> int | None:
        """Number of operands, or None for a variable-length list."""
        if self in (Operator.IS_NULL, Operator.IS_NOT_NULL):
            return 0
        if self is Operator.BETWEEN:
            return 2
        if self in (Operator.IN, Operator.NOT_IN):
            return None
        return 1

    @classmethod
    def parse(cls, value: Operator | str) -> Operator:
        """Accept an Operator, its SQL text (``">="``) or its name (``"greater_than"``)."""
        if isinstance(value, Operator):
            return value
        text = str(value).strip()
        if text == "<>":
            return cls.NOT_EQUALS
        for op in cls:
            if op.value == text.upper() or op.name == text.upper():
                return op
        raise InvalidCriterionError(f"Unknown operator {value!r}")


@dataclass(frozen=True)
class Criterion:
    """One WHERE condition: (field, operator, operands).

    Operand arity always matches the operator: none for IS [NOT] NULL, two
    for BETWEEN, any number for [NOT] IN and exactly one otherwise.
    """

    field: FieldDescriptor
    operator: Operator
    operands: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        arity = self.operator.arity
        if arity is not None and len(self.operands) != arity:
            raise InvalidCriterionError(
                f"{self.operator.name} on '{self.field.name}' takes {arity} operand(s), "
                f"got {len(self.operands)}"
            )
        if arity == 1 and self.operands[0] is None:
            raise InvalidCriterionError(
                f"{self.operator.name} on '{self.field.name}' cannot compare with NULL"
            )

    @classmethod
    def build(cls, field: FieldDescriptor, operator: Operator, value: Any) -> Criterion:
        """Build a criterion from a single call-site value.

        ``=`` and ``!=`` against None become IS NULL / IS NOT NULL.
        """
        if operator in (Operator.IS_NULL, Operator.IS_NOT_NULL):
            return cls(field, operator)
        if operator in (Operator.IN, Operator.NOT_IN):
            if value is None or isinstance(value, (str, bytes)):
                raise InvalidCriterionError(
                    f"{operator.name} on '{field.name}' needs a collection of values"
                )
            return cls(field, operator, tuple(value))
        if operator is Operator.BETWEEN:
            if value is None or isinstance(value, (str, bytes)):
                raise InvalidCriterionError(f"BETWEEN on '{field.name}' needs (low, high)")
            return cls(field, operator, tuple(value))
        if value is None and operator is Operator.EQUALS:
            return cls(field, Operator.IS_NULL)
        if value is None and operator is Operator.NOT_EQUALS:
            return cls(field, Operator.IS_NOT_NULL)
        return cls(field, operator, (value,))

    @property
    def bind_count(self) -> int:
        return len(self.operands)

    def render(self) -> str:
        column = self.field.quoted_column
        if self.operator in (Operator.IS_NULL, Operator.IS_NOT_NULL):
            return f"{column} {self.operator.sql}"
        if self.operator in (Operator.IN, Operator.NOT_IN):
            if not self.operands:
                # Empty IN matches nothing; empty NOT IN matches everything
                return "1 = 0" if self.operator is Operator.IN else "1 = 1"
            slots = ", ".join("?" for _ in self.operands)
            return f"{column} {self.operator.sql} ({slots})"
        if self.operator is Operator.BETWEEN:
            return f"{column} BETWEEN ? AND ?"
        return f"{column} {self.operator.sql} ?"

    def parameters(self) -> list[BoundParameter]:
        return [self.field.bind(value) for value in self.operands]


def _values(values: tuple[Any, ...]) -> tuple[Any, ...]:
    # where_in("age", [1, 2]) and where_in("age", 1, 2) mean the same thing
    if len(values) == 1 and isinstance(values[0], (list, tuple, set, frozenset)):
        return tuple(values[0])
    return values


class _CriteriaQuery:
    """Accumulates ANDed criteria; every method returns the same builder."""

    def __init__(self, table: Table) -> None:
        self._table = table
        self._criteria: list[Criterion] = []

    @property
    def criteria(self) -> tuple[Criterion, ...]:
        return tuple(self._criteria)

    def _add(self: Q, field: str, operator: Operator, value: Any = None) -> Q:
        descriptor = self._table.descriptor.require_field(field)
        self._criteria.append(Criterion.build(descriptor, operator, value))
        return self

    def where(self: Q, field: str, *args: Any) -> Q:
        """``where(field, value)`` for equality, or ``where(field, operator, value)``.

        Raises:
            UnknownFieldError: If ``field`` is not declared by the entity.
        """
        if len(args) == 1:
            return self._add(field, Operator.EQUALS, args[0])
        if len(args) == 2:
            return self._add(field, Operator.parse(args[0]), args[1])
        raise TypeError(f"where() takes a value or an operator and a value, got {len(args)} arguments")

    def where_like(self: Q, field: str, pattern: str) -> Q:
        return self._add(field, Operator.LIKE, pattern)

    def where_not_like(self: Q, field: str, pattern: str) -> Q:
        return self._add(field, Operator.NOT_LIKE, pattern)

    def where_in(self: Q, field: str, *values: Any) -> Q:
        return self._add(field, Operator.IN, _values(values))

    def where_not_in(self: Q, field: str, *values: Any) -> Q:
        return self._add(field, Operator.NOT_IN, _values(values))

    def where_between(self: Q, field: str, low: Any, high: Any) -> Q:
        return self._add(field, Operator.BETWEEN, (low, high))

    def where_is_null(self: Q, field: str) -> Q:
        return self._add(field, Operator.IS_NULL)

    def where_is_not_null(self: Q, field: str) -> Q:
        return self._add(field, Operator.IS_NOT_NULL)

    def _where_clause(self, binder: Binder) -> str:
        if not self._criteria:
            return ""
        for criterion in self._criteria:
            binder.extend(criterion.parameters())
        return " WHERE " + " AND ".join(c.render() for c in self._criteria)


class _SelectQuery(_CriteriaQuery, Generic[T]):
    def __init__(self, table: Table) -> None:
        super().__init__(table)
        self._relationships = False

    def with_relationships(self: Q, enabled: bool = True) -> Q:
        """Resolve relationship fields of the returned entities."""
        self._relationships = enabled
        return self

    def _select(self, binder: Binder) -> str:
        table = self._table
        sql = f"SELECT {table.descriptor.column_list} FROM {table.quoted_name}"
        return sql + self._where_clause(binder)

    def _map(self, row: Any) -> T:
        return self._table.map_row(row, self._relationships)


class FindOneQuery(_SelectQuery[T]):
    """Finds the first entity matching the criteria."""

    def render(self) -> tuple[str, Binder]:
        binder = Binder()
        sql = self._select(binder) + " LIMIT 1"
        return sql, binder

    def execute(self) -> T | None:
        sql, binder = self.render()
        return self._table.executor.query_one(sql, binder, self._map)


class FindManyQuery(_SelectQuery[T]):
    """Finds every entity matching the criteria."""

    def __init__(self, table: Table) -> None:
        super().__init__(table)
        self._order: list[tuple[FieldDescriptor, bool]] = []
        self._limit: int | None = None

    def order_by(self, field: str, descending: bool = False) -> FindManyQuery[T]:
        self._order.append((self._table.descriptor.require_field(field), descending))
        return self

    def limit(self, count: int) -> FindManyQuery[T]:
        if count < 0:
            raise ValueError("limit must be non-negative")
        self._limit = count
        return self

    def render(self) -> tuple[str, Binder]:
        binder = Binder()
        sql = self._select(binder)
        if self._order:
            sql += " ORDER BY " + ", ".join(
                f"{f.quoted_column} DESC" if descending else f.quoted_column
                for f, descending in self._order
            )
        if self._limit is not None:
            sql += f" LIMIT {int(self._limit)}"
        return sql, binder

    def execute(self) -> list[T]:
        sql, binder = self.render()
        return self._table.executor.query(sql, binder, self._map)

    def count(self) -> int:
        """Count matching rows instead of loading them."""
        binder = Binder()
        sql = f"SELECT COUNT(*) AS n FROM {self._table.quoted_name}" + self._where_clause(binder)
        result = self._table.executor.query_one(sql, binder, lambda row: row["n"])
        return int(result or 0)


class UpdateQuery(_CriteriaQuery):
    """``UPDATE <table> SET ... [WHERE ...]``; SET values bind before WHERE values."""

    def __init__(self, table: Table) -> None:
        super().__init__(table)
        self._assignments: dict[str, tuple[FieldDescriptor, Any]] = {}

    def set(self, field: str, value: Any) -> UpdateQuery:
        descriptor = self._table.descriptor.require_field(field)
        self._assignments[descriptor.name] = (descriptor, value)
        return self

    def render(self) -> tuple[str, Binder]:
        if not self._assignments:
            raise NoUpdateFieldsError(self._table.name)
        binder = Binder()
        assignments = []
        for descriptor, value in self._assignments.values():
            assignments.append(f"{descriptor.quoted_column} = ?")
            binder.add(descriptor.bind(value))
        sql = f"UPDATE {self._table.quoted_name} SET " + ", ".join(assignments)
        return sql + self._where_clause(binder), binder

    def execute(self) -> int:
        sql, binder = self.render()
        return self._table.executor.execute(sql, binder)


class DeleteQuery(_CriteriaQuery):
    """``DELETE FROM <table> [WHERE ...]``; does not cascade."""

    def render(self) -> tuple[str, Binder]:
        binder = Binder()
        sql = f"DELETE FROM {self._table.quoted_name}" + self._where_clause(binder)
        return sql, binder

    def execute(self) -> int:
        sql, binder = self.render()
        return self._table.executor.execute(sql, binder)
