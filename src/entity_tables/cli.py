"""Command line entry point: DDL generation, schema setup and SQL scripts."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from entity_tables.ddl import DdlWriter, run_script
from entity_tables.errors import DatabaseError
from entity_tables.executor import SqliteExecutor
from entity_tables.parsing import EntityParser, EntitySchema
from entity_tables.registry import Registry


def load_schema(path: Path) -> EntitySchema:
    """Parse an entity definition file."""
    return EntityParser().parse(path.read_text(encoding="utf-8"))


def run_ddl(schema_path: Path, output: Path | None) -> int:
    writer = DdlWriter(load_schema(schema_path).tables())
    if output is None:
        sys.stdout.write(writer.render())
    else:
        writer.write(output)
        print(f"Wrote {len(writer.tables)} table(s) to {output}")
    return 0


def run_init(database: Path, schema_path: Path) -> int:
    schema = load_schema(schema_path)
    with SqliteExecutor(database) as executor:
        tables = schema.register_all(Registry(executor))
    for name, table in tables.items():
        print(f"{name} -> {table.name}")
    return 0


def run_sql_script(database: Path, script: Path) -> int:
    with SqliteExecutor(database) as executor, script.open(encoding="utf-8") as handle:
        count = run_script(executor, handle)
    print(f"Executed {count} statement(s)")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    arg_parser = argparse.ArgumentParser(
        prog="entity-tables",
        description="Generate and apply table schemas for entity definitions",
    )
    arg_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log every statement sent to the database",
    )
    commands = arg_parser.add_subparsers(dest="command", required=True)

    ddl = commands.add_parser("ddl", help="Print CREATE TABLE statements for a schema file")
    ddl.add_argument("schema", type=Path, help="Entity definition file")
    ddl.add_argument("-o", "--output", type=Path, help="Write the statements to a file")

    init = commands.add_parser("init", help="Create the tables of a schema file in a SQLite database")
    init.add_argument("database", type=Path, help="SQLite database file")
    init.add_argument("schema", type=Path, help="Entity definition file")

    script = commands.add_parser("run-script", help="Execute a SQL script in one transaction")
    script.add_argument("database", type=Path, help="SQLite database file")
    script.add_argument("script", type=Path, help="SQL script file")

    args = arg_parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    for path in (getattr(args, "schema", None), getattr(args, "script", None)):
        if path is not None and not path.exists():
            print(f"Error: File not found: {path}", file=sys.stderr)
            return 1

    try:
        if args.command == "ddl":
            return run_ddl(args.schema, args.output)
        if args.command == "init":
            return run_init(args.database, args.schema)
        return run_sql_script(args.database, args.script)
    except (DatabaseError, SyntaxError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
