"""Entity Tables - A declaration-driven object-relational mapper for dataclasses."""

from entity_tables.config import DatabaseConfig, DatabaseManager, DatabaseType
from entity_tables.ddl import DdlWriter, run_script
from entity_tables.errors import (
    ConfigurationError,
    DatabaseError,
    ExecutionError,
    InvalidCriterionError,
    MappingError,
    NoUpdateFieldsError,
    NotFoundError,
    UnknownFieldError,
    UnsupportedTypeError,
)
from entity_tables.executor import Binder, QueryExecutor, SqliteExecutor
from entity_tables.fields import (
    Float32,
    Float64,
    Int16,
    Int32,
    Int64,
    column,
    embedded,
    many_to_one,
    one_to_many,
    one_to_one,
)
from entity_tables.introspection import TypeDescriptor, inspect
from entity_tables.lazy import LazyList, LazyRef, is_unloaded, materialize
from entity_tables.parsing import EntityParser, EntitySchema
from entity_tables.query import Criterion, Operator
from entity_tables.registry import Registry
from entity_tables.table import Table
from entity_tables.types import (
    Cascade,
    FetchMode,
    FieldDescriptor,
    RelationshipDescriptor,
    RelationshipKind,
    ScalarKind,
)

__all__ = [
    # Main API
    "Registry",
    "Table",
    "inspect",
    "EntityParser",
    "EntitySchema",
    # Declarations
    "column",
    "embedded",
    "many_to_one",
    "one_to_one",
    "one_to_many",
    "Int16",
    "Int32",
    "Int64",
    "Float32",
    "Float64",
    # Descriptors
    "TypeDescriptor",
    "FieldDescriptor",
    "RelationshipDescriptor",
    "RelationshipKind",
    "ScalarKind",
    "FetchMode",
    "Cascade",
    # Queries
    "Criterion",
    "Operator",
    "LazyRef",
    "LazyList",
    "is_unloaded",
    "materialize",
    # Execution
    "Binder",
    "QueryExecutor",
    "SqliteExecutor",
    "DdlWriter",
    "run_script",
    # Configuration
    "DatabaseConfig",
    "DatabaseManager",
    "DatabaseType",
    # Errors
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

__version__ = "0.1.0"
