"""Query-execution collaborator: the narrow contract the mapper runs SQL through."""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

from entity_tables.codec import BoundParameter
from entity_tables.errors import ExecutionError

if TYPE_CHECKING:
    from entity_tables.config import DatabaseConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

RowMapper = Callable[[Any], T]


class Binder:
    """Ordered positional parameters for one statement."""

    def __init__(self, parameters: Iterable[BoundParameter] = ()) -> None:
        self._parameters: list[BoundParameter] = list(parameters)

    def add(self, parameter: BoundParameter) -> Binder:
        self._parameters.append(parameter)
        return self

    def extend(self, parameters: Iterable[BoundParameter]) -> Binder:
        self._parameters.extend(parameters)
        return self

    @property
    def parameters(self) -> tuple[BoundParameter, ...]:
        return tuple(self._parameters)

    def values(self) -> tuple[Any, ...]:
        """Return the raw driver values in binding order."""
        return tuple(p.value for p in self._parameters)

    def __len__(self) -> int:
        return len(self._parameters)

    def __iter__(self) -> Iterator[BoundParameter]:
        return iter(self._parameters)

    def __repr__(self) -> str:
        return f"Binder({self.values()!r})"


class QueryExecutor(Protocol):
    """What the mapper needs from a database driver.

    Rows handed to row mappers must support ``row[column_name]``.
    """

    def execute(self, sql: str, binder: Binder | None = None) -> int:
        """Run a statement and return the affected row count."""
        ...

    def query(self, sql: str, binder: Binder | None, mapper: RowMapper[T]) -> list[T]:
        """Run a query and map every row."""
        ...

    def query_one(self, sql: str, binder: Binder | None, mapper: RowMapper[T]) -> T | None:
        """Run a query expected to return at most one row."""
        ...

    def transaction(self) -> Any:
        """Context manager running the enclosed statements on one connection."""
        ...

    def close(self) -> None:
        ...


class SqliteExecutor:
    """QueryExecutor backed by a single ``sqlite3`` connection.

    The connection runs in autocommit mode; ``transaction()`` wraps a block in
    BEGIN/COMMIT (ROLLBACK on error). Calls from several threads serialize on
    one re-entrant lock, which a transaction holds for its whole block.
    """

    def __init__(
        self,
        path: str | Path = ":memory:",
        *,
        timeout: float = 5.0,
        pragmas: dict[str, Any] | None = None,
    ) -> None:
        self.path = str(path)
        self._lock = threading.RLock()
        self._depth = 0
        try:
            self._connection = sqlite3.connect(
                self.path, timeout=timeout, check_same_thread=False, isolation_level=None
            )
        except sqlite3.Error as exc:
            raise ExecutionError(self.path, "Failed to open database connection") from exc
        self._connection.row_factory = sqlite3.Row
        for name, value in (pragmas or {}).items():
            self.execute(f"PRAGMA {name} = {value}")

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> SqliteExecutor:
        config.validate()
        return cls(config.file, timeout=config.timeout, pragmas=dict(config.properties))

    def execute(self, sql: str, binder: Binder | None = None) -> int:
        params = binder.values() if binder is not None else ()
        logger.debug("Executing: %s [%d parameter(s)]", sql, len(params))
        with self._lock:
            try:
                cursor = self._connection.execute(sql, params)
            except sqlite3.Error as exc:
                raise ExecutionError(sql) from exc
            return max(cursor.rowcount, 0)

    def query(self, sql: str, binder: Binder | None, mapper: RowMapper[T]) -> list[T]:
        params = binder.values() if binder is not None else ()
        logger.debug("Querying: %s [%d parameter(s)]", sql, len(params))
        with self._lock:
            try:
                rows = self._connection.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise ExecutionError(sql, "Failed to execute query") from exc
        return [mapper(row) for row in rows]

    def query_one(self, sql: str, binder: Binder | None, mapper: RowMapper[T]) -> T | None:
        results = self.query(sql, binder, mapper)
        if not results:
            return None
        if len(results) > 1:
            raise ExecutionError(
                sql, f"Expected a single result but received {len(results)}"
            )
        return results[0]

    @contextmanager
    def transaction(self) -> Iterator[SqliteExecutor]:
        """Run the enclosed calls atomically; nested blocks join the outer one."""
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self.execute("BEGIN")
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if outermost:
                    self.execute("ROLLBACK")
                raise
            else:
                self._depth -= 1
                if outermost:
                    self.execute("COMMIT")

    def close(self) -> None:
        with self._lock:
            self._connection.close()

    def __enter__(self) -> SqliteExecutor:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
