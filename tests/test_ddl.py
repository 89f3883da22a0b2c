"""Tests for DDL rendering and SQL script execution."""

from __future__ import annotations

import io
from dataclasses import dataclass

import pytest

from entity_tables import SqliteExecutor
from entity_tables.ddl import DdlWriter, create_table_statement, run_script, split_statements
from entity_tables.errors import ExecutionError
from entity_tables.fields import Int16, column
from entity_tables.introspection import inspect


@dataclass
class Book:
    isbn: str = column(primary_key=True)
    title: str = ""
    pages: Int16 | None = None


@dataclass
class Shelf:
    id: int
    label: str = ""


def table_names(executor):
    return executor.query(
        "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name", None, lambda row: row[0]
    )


@pytest.fixture
def executor():
    executor = SqliteExecutor()
    yield executor
    executor.close()


class TestCreateTable:
    """Tests for CREATE TABLE rendering."""

    def test_statement(self):
        """Test one column definition per field in column order."""
        assert create_table_statement("books", inspect(Book)) == (
            'CREATE TABLE IF NOT EXISTS "books" '
            '("isbn" TEXT NOT NULL PRIMARY KEY, "title" TEXT NOT NULL, "pages" SMALLINT)'
        )

    def test_writer_render(self):
        """Test the writer terminates each statement."""
        writer = DdlWriter([("books", inspect(Book)), ("shelves", inspect(Shelf))])

        rendered = writer.render()

        assert rendered.splitlines() == [
            'CREATE TABLE IF NOT EXISTS "books" '
            '("isbn" TEXT NOT NULL PRIMARY KEY, "title" TEXT NOT NULL, "pages" SMALLINT);',
            'CREATE TABLE IF NOT EXISTS "shelves" ("id" INTEGER NOT NULL PRIMARY KEY, "label" TEXT NOT NULL);',
        ]

    def test_writer_write(self, tmp_path):
        """Test writing creates parent directories."""
        target = tmp_path / "out" / "schema.sql"

        written = DdlWriter([("shelves", inspect(Shelf))]).write(target)

        assert written == target
        assert target.read_text(encoding="utf-8").startswith('CREATE TABLE IF NOT EXISTS "shelves"')


class TestSplitStatements:
    """Tests for splitting SQL scripts."""

    def test_comments_and_blank_lines(self):
        """Test comment and blank lines are skipped."""
        script = """
-- setup
CREATE TABLE a (id INTEGER);

INSERT INTO a VALUES (1);
"""
        assert split_statements(script) == ["CREATE TABLE a (id INTEGER)", "INSERT INTO a VALUES (1)"]

    def test_multi_line_statement(self):
        """Test a statement runs until a line ending in a semicolon."""
        script = "CREATE TABLE a (\n  id INTEGER\n);"

        assert split_statements(script) == ["CREATE TABLE a (\n  id INTEGER\n)"]

    def test_trailing_statement(self):
        """Test text after the last semicolon is a statement of its own."""
        assert split_statements("SELECT 1;\nSELECT 2") == ["SELECT 1", "SELECT 2"]

    def test_empty(self):
        """Test an empty script has no statements."""
        assert split_statements("\n-- nothing\n") == []


class TestRunScript:
    """Tests for executing scripts in one transaction."""

    def test_run(self, executor):
        """Test every statement runs and the count is returned."""
        count = run_script(
            executor,
            "CREATE TABLE a (id INTEGER);\nINSERT INTO a VALUES (1);\nINSERT INTO a VALUES (2);",
        )

        assert count == 3
        assert executor.query("SELECT id FROM a ORDER BY id", None, lambda row: row[0]) == [1, 2]

    def test_run_from_file_object(self, executor):
        """Test scripts can be read from an open file."""
        assert run_script(executor, io.StringIO("CREATE TABLE b (id INTEGER);")) == 1
        assert table_names(executor) == ["b"]

    def test_failure_rolls_back(self, executor):
        """Test a failing statement undoes the whole script."""
        with pytest.raises(ExecutionError, match="NOT VALID SQL"):
            run_script(executor, "CREATE TABLE c (id INTEGER);\nNOT VALID SQL;")

        assert table_names(executor) == []
