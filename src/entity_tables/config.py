"""Database connection settings and a manager for named executors."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from entity_tables.errors import ConfigurationError, DatabaseError
from entity_tables.executor import QueryExecutor, SqliteExecutor

logger = logging.getLogger(__name__)


class DatabaseType(Enum):
    """Relational engines a configuration can describe."""

    SQLITE = "sqlite"
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"

    @property
    def default_port(self) -> int | None:
        ports = {
            DatabaseType.SQLITE: None,
            DatabaseType.MYSQL: 3306,
            DatabaseType.POSTGRESQL: 5432,
        }
        return ports[self]

    @property
    def required_settings(self) -> tuple[str, ...]:
        """Return the DatabaseConfig attributes that must be set for this engine."""
        if self is DatabaseType.SQLITE:
            return ("file",)
        return ("host", "database", "username", "password")

    @classmethod
    def parse(cls, value: DatabaseType | str) -> DatabaseType:
        if isinstance(value, DatabaseType):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(f"Unsupported database type: {value!r}") from None


@dataclass
class DatabaseConfig:
    """Connection settings for one database.

    For SQLite ``properties`` are applied as ``PRAGMA name = value`` on
    connect; for the other engines they are driver options.
    """

    type: DatabaseType = DatabaseType.SQLITE
    file: str | None = None
    host: str | None = None
    port: int | None = None
    database: str | None = None
    username: str | None = None
    password: str | None = None
    timeout: float = 5.0
    properties: dict[str, str] = field(default_factory=dict)

    def validate(self) -> DatabaseConfig:
        """Check the settings the engine needs are present.

        Raises:
            ConfigurationError: If a required setting is missing or invalid.
        """
        missing = [name for name in self.type.required_settings if getattr(self, name) in (None, "")]
        if missing:
            raise ConfigurationError(
                f"{self.type.value} configuration is missing: {', '.join(missing)}"
            )
        if self.port is not None and not 0 < self.port < 65536:
            raise ConfigurationError(f"Invalid port: {self.port}")
        if self.timeout <= 0:
            raise ConfigurationError(f"Timeout must be positive, got {self.timeout}")
        return self

    def port_or_default(self) -> int | None:
        return self.port if self.port is not None else self.type.default_port

    def url(self) -> str:
        """Return a connection URL, without credentials, for log messages."""
        if self.type is DatabaseType.SQLITE:
            return f"sqlite:///{self.file}"
        return f"{self.type.value}://{self.host}:{self.port_or_default()}/{self.database}"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> DatabaseConfig:
        """Build a validated config from plain data, e.g. a parsed config file.

        Raises:
            ConfigurationError: On unknown keys, an unknown type or missing settings.
        """
        known = {"type", "file", "host", "port", "database", "username", "password", "timeout", "properties"}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")
        values = dict(data)
        values["type"] = DatabaseType.parse(values.get("type", DatabaseType.SQLITE))
        try:
            if values.get("port") is not None:
                values["port"] = int(values["port"])
            if values.get("timeout") is not None:
                values["timeout"] = float(values["timeout"])
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid numeric setting: {exc}") from exc
        values["properties"] = {str(k): str(v) for k, v in (values.get("properties") or {}).items()}
        return cls(**values).validate()


def create_executor(config: DatabaseConfig) -> QueryExecutor:
    """Open an executor for ``config``.

    Raises:
        ConfigurationError: If no executor ships for the configured engine.
    """
    config.validate()
    if config.type is DatabaseType.SQLITE:
        return SqliteExecutor.from_config(config)
    raise ConfigurationError(f"No executor available for {config.type.value}")


class DatabaseManager:
    """Named executors with a default.

    The first registered executor becomes the default. Registering a name
    again closes the executor it replaces.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._executors: dict[str, QueryExecutor] = {}
        self._default: str | None = None

    def register(self, name: str, source: DatabaseConfig | QueryExecutor) -> QueryExecutor:
        """Register an executor, opening one when given a DatabaseConfig."""
        executor = create_executor(source) if isinstance(source, DatabaseConfig) else source
        with self._lock:
            previous = self._executors.get(name)
            self._executors[name] = executor
            if self._default is None:
                self._default = name
        if previous is not None and previous is not executor:
            previous.close()
        if isinstance(source, DatabaseConfig):
            logger.info("Registered database %s at %s", name, source.url())
        return executor

    def get(self, name: str) -> QueryExecutor | None:
        return self._executors.get(name)

    def require(self, name: str) -> QueryExecutor:
        """Return the named executor.

        Raises:
            DatabaseError: If nothing is registered under ``name``.
        """
        executor = self._executors.get(name)
        if executor is None:
            raise DatabaseError(f"No database registered with name '{name}'")
        return executor

    def default(self) -> QueryExecutor:
        if self._default is None:
            raise DatabaseError("No databases have been registered")
        return self.require(self._default)

    @property
    def default_name(self) -> str | None:
        return self._default

    def set_default(self, name: str) -> None:
        with self._lock:
            if name not in self._executors:
                raise DatabaseError(f"No database registered with name '{name}'")
            self._default = name

    def unregister(self, name: str) -> None:
        """Close and forget the named executor; the default moves to another one."""
        with self._lock:
            executor = self._executors.pop(name, None)
            if self._default == name:
                self._default = next(iter(self._executors), None)
        if executor is not None:
            executor.close()

    def names(self) -> list[str]:
        return list(self._executors)

    def close(self) -> None:
        with self._lock:
            executors = list(self._executors.values())
            self._executors.clear()
            self._default = None
        for executor in executors:
            executor.close()

    def __enter__(self) -> DatabaseManager:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
