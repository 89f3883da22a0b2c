"""Parsing module for the entity definition DSL."""

from entity_tables.parsing.entity_lexer import EntityLexer
from entity_tables.parsing.entity_parser import EntityParser, EntitySchema, EntitySpec

__all__ = [
    "EntityLexer",
    "EntityParser",
    "EntitySchema",
    "EntitySpec",
]
