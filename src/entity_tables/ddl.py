"""CREATE TABLE rendering and SQL script execution."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import IO

from entity_tables.executor import QueryExecutor
from entity_tables.introspection import TypeDescriptor
from entity_tables.types import quote_identifier

logger = logging.getLogger(__name__)


def create_table_statement(table_name: str, descriptor: TypeDescriptor) -> str:
    """Render ``CREATE TABLE IF NOT EXISTS`` with one column per scalar/flattened field."""
    columns = ", ".join(f.column_definition() for f in descriptor.columns)
    return f"CREATE TABLE IF NOT EXISTS {quote_identifier(table_name)} ({columns})"


class DdlWriter:
    """Turns a set of (table name, descriptor) pairs into DDL statements."""

    def __init__(self, tables: Iterable[tuple[str, TypeDescriptor]]) -> None:
        self.tables = list(tables)

    def statements(self) -> list[str]:
        return [create_table_statement(name, descriptor) for name, descriptor in self.tables]

    def render(self) -> str:
        """Return every statement terminated by ``;`` on its own line."""
        return "".join(f"{statement};\n" for statement in self.statements())

    def write(self, path: Path | str) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render(), encoding="utf-8")
        return path


def split_statements(script: str) -> list[str]:
    """Split a SQL script into statements.

    Blank lines and ``--`` comment lines are skipped; a statement ends at a
    line whose last character is ``;``. Trailing text without a ``;`` is the
    final statement.
    """
    statements: list[str] = []
    current: list[str] = []
    for line in script.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("--"):
            continue
        current.append(line)
        if stripped.endswith(";"):
            statements.append("\n".join(current).strip().rstrip(";").strip())
            current = []
    if current:
        statements.append("\n".join(current).strip().rstrip(";").strip())
    return [s for s in statements if s]


def run_script(executor: QueryExecutor, script: str | IO[str]) -> int:
    """Execute every statement of a SQL script inside one transaction.

    Returns:
        The number of statements executed.
    """
    text = script if isinstance(script, str) else script.read()
    statements = split_statements(text)
    with executor.transaction():
        for statement in statements:
            executor.execute(statement)
    logger.info("Executed %d statement(s) from script", len(statements))
    return len(statements)
