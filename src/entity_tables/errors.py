"""Exception types raised by the entity_tables mapper."""

from __future__ import annotations

from typing import Any

__all__ = [
    "DatabaseError",
    "ConfigurationError",
    "MappingError",
    "UnsupportedTypeError",
    "UnknownFieldError",
    "NoUpdateFieldsError",
    "InvalidCriterionError",
    "NotFoundError",
    "ExecutionError",
]


def _type_name(entity_type: Any) -> str:
    if isinstance(entity_type, str):
        return entity_type
    return getattr(entity_type, "__qualname__", None) or repr(entity_type)


class DatabaseError(Exception):
    """Base class for every error raised by entity_tables."""


class ConfigurationError(DatabaseError):
    """Invalid or incomplete database configuration."""


class MappingError(DatabaseError):
    """An entity shape cannot be mapped to a table."""

    def __init__(self, entity_type: Any, message: str) -> None:
        super().__init__(f"Failed to map entity {_type_name(entity_type)}: {message}")
        self.entity_type = entity_type


class UnsupportedTypeError(DatabaseError):
    """A value or annotation falls outside the closed set of scalar kinds."""

    def __init__(self, message: str, column: str | None = None) -> None:
        if column is not None:
            message = f"{message} (column '{column}')"
        super().__init__(message)
        self.column = column


class UnknownFieldError(DatabaseError):
    """A query referenced a field the entity does not declare."""

    def __init__(self, entity_type: Any, field: str) -> None:
        super().__init__(f"Unknown field '{field}' for entity {_type_name(entity_type)}")
        self.entity_type = entity_type
        self.field = field


class NoUpdateFieldsError(DatabaseError):
    """An update was executed without any SET assignment."""

    def __init__(self, table_name: str) -> None:
        super().__init__(f"No fields specified for update on table '{table_name}'")
        self.table_name = table_name


class InvalidCriterionError(DatabaseError, ValueError):
    """A WHERE criterion was given the wrong number or kind of operands."""


class NotFoundError(DatabaseError):
    """A required row was not found."""

    def __init__(self, entity_type: Any, column: str, key: Any) -> None:
        super().__init__(
            f"No {_type_name(entity_type)} found with {column} = {key!r}"
        )
        self.entity_type = entity_type
        self.column = column
        self.key = key


class ExecutionError(DatabaseError):
    """The query-execution collaborator failed to run a statement."""

    def __init__(self, sql: str, message: str = "Failed to execute statement") -> None:
        super().__init__(f"{message}: {sql}")
        self.sql = sql
